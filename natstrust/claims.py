"""Operator, account and user claim sets.

Each entity kind is its own dataclass carrying a ``claim_type`` tag. They
share the standard JWT fields and serialize to the nats-io v2 payload shape:
the standard fields at the top level and the entity-specific ones under
``nats``. Sets are written sorted so a claim set has exactly one encoding.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Set, Union

from .jwt import decode_jwt_unverified, verify_jwt
from .keys import require_public_key_kind
from .types import (
    NATS_CLAIMS_VERSION,
    UNLIMITED,
    ClaimType,
    ConflictingConfiguration,
    ConnectionType,
    DecodingFailure,
    ExportType,
    KeyKind,
    MalformedInput,
    ResponseType,
)
from .validation import (
    normalize_tags,
    parse_connection_type,
    validate_cidr,
    validate_locale,
    validate_sampling,
    validate_subject,
    validate_time_of_day,
)


def _sorted(values) -> List[str]:
    return sorted(set(values))


@dataclass
class Permission:
    allow: Set[str] = field(default_factory=set)
    deny: Set[str] = field(default_factory=set)

    def to_dict(self) -> dict:
        d: dict = {}
        if self.allow:
            d["allow"] = _sorted(self.allow)
        if self.deny:
            d["deny"] = _sorted(self.deny)
        return d

    @classmethod
    def from_dict(cls, d: Optional[dict]) -> "Permission":
        d = d or {}
        return cls(allow=set(d.get("allow") or []), deny=set(d.get("deny") or []))

    def validate(self, field_name: str) -> None:
        for kind, subjects in (("allow", self.allow), ("deny", self.deny)):
            for s in sorted(subjects):
                validate_subject(s, f"{field_name}.{kind}")


@dataclass
class ResponsePermission:
    """Permission to publish replies. ``ttl`` is in nanoseconds."""

    max_msgs: int = 0
    ttl: int = 0

    def to_dict(self) -> dict:
        return {"max": self.max_msgs, "ttl": self.ttl}

    @classmethod
    def from_dict(cls, d: dict) -> "ResponsePermission":
        return cls(max_msgs=d.get("max", 0), ttl=d.get("ttl", 0))


@dataclass
class Permissions:
    pub: Permission = field(default_factory=Permission)
    sub: Permission = field(default_factory=Permission)
    resp: Optional[ResponsePermission] = None

    def to_dict(self) -> dict:
        d = {"pub": self.pub.to_dict(), "sub": self.sub.to_dict()}
        if self.resp is not None:
            d["resp"] = self.resp.to_dict()
        return d

    @classmethod
    def from_dict(cls, d: Optional[dict]) -> "Permissions":
        d = d or {}
        resp = d.get("resp")
        return cls(
            pub=Permission.from_dict(d.get("pub")),
            sub=Permission.from_dict(d.get("sub")),
            resp=ResponsePermission.from_dict(resp) if resp is not None else None,
        )

    def validate(self, field_name: str) -> None:
        self.pub.validate(f"{field_name}.pub")
        self.sub.validate(f"{field_name}.sub")
        if self.resp is not None:
            if self.resp.max_msgs < UNLIMITED:
                raise MalformedInput("must be -1 or greater", field=f"{field_name}.resp.max")
            if self.resp.ttl < 0:
                raise MalformedInput("cannot be negative", field=f"{field_name}.resp.ttl")


@dataclass
class NatsLimits:
    subs: int = UNLIMITED
    data: int = UNLIMITED
    payload: int = UNLIMITED

    def to_dict(self) -> dict:
        return {"subs": self.subs, "data": self.data, "payload": self.payload}

    @classmethod
    def from_dict(cls, d: dict) -> "NatsLimits":
        return cls(
            subs=d.get("subs", UNLIMITED),
            data=d.get("data", UNLIMITED),
            payload=d.get("payload", UNLIMITED),
        )


@dataclass
class AccountLimits:
    imports: int = UNLIMITED
    exports: int = UNLIMITED
    wildcard_exports: bool = True
    disallow_bearer: bool = False
    conn: int = UNLIMITED
    leaf_node_conn: int = UNLIMITED

    def to_dict(self) -> dict:
        return {
            "imports": self.imports,
            "exports": self.exports,
            "wildcards": self.wildcard_exports,
            "disallow_bearer": self.disallow_bearer,
            "conn": self.conn,
            "leaf": self.leaf_node_conn,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "AccountLimits":
        return cls(
            imports=d.get("imports", UNLIMITED),
            exports=d.get("exports", UNLIMITED),
            wildcard_exports=d.get("wildcards", True),
            disallow_bearer=d.get("disallow_bearer", False),
            conn=d.get("conn", UNLIMITED),
            leaf_node_conn=d.get("leaf", UNLIMITED),
        )


@dataclass
class JetStreamLimits:
    """JetStream resource limits. All-zero means JetStream is disabled."""

    mem_storage: int = 0
    disk_storage: int = 0
    streams: int = 0
    consumer: int = 0
    max_ack_pending: int = 0
    mem_max_stream_bytes: int = 0
    disk_max_stream_bytes: int = 0
    max_bytes_required: bool = False

    @property
    def enabled(self) -> bool:
        return self.mem_storage != 0 or self.disk_storage != 0

    def to_dict(self) -> dict:
        return {
            "mem_storage": self.mem_storage,
            "disk_storage": self.disk_storage,
            "streams": self.streams,
            "consumer": self.consumer,
            "max_ack_pending": self.max_ack_pending,
            "mem_max_stream_bytes": self.mem_max_stream_bytes,
            "disk_max_stream_bytes": self.disk_max_stream_bytes,
            "max_bytes_required": self.max_bytes_required,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "JetStreamLimits":
        return cls(**{k: d[k] for k in cls().to_dict() if k in d})


@dataclass
class TimeRange:
    start: str
    end: str

    def to_dict(self) -> dict:
        return {"start": self.start, "end": self.end}


@dataclass
class MsgTrace:
    destination: str
    sampling: int = 0

    def to_dict(self) -> dict:
        d: dict = {"dest": self.destination}
        if self.sampling:
            d["sampling"] = self.sampling
        return d


@dataclass
class Export:
    subject: str
    type: ExportType
    name: str = ""
    response_type: Optional[ResponseType] = None
    account_token_position: int = 0
    description: str = ""
    info_url: str = ""

    def to_dict(self) -> dict:
        d: dict = {"subject": self.subject, "type": ExportType(self.type).value}
        if self.name:
            d["name"] = self.name
        if self.response_type is not None:
            d["response_type"] = ResponseType(self.response_type).value
        if self.account_token_position:
            d["account_token_position"] = self.account_token_position
        if self.description:
            d["description"] = self.description
        if self.info_url:
            d["info_url"] = self.info_url
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "Export":
        rt = d.get("response_type")
        return cls(
            subject=d["subject"],
            type=ExportType(d["type"]),
            name=d.get("name", ""),
            response_type=ResponseType(rt) if rt else None,
            account_token_position=d.get("account_token_position", 0),
            description=d.get("description", ""),
            info_url=d.get("info_url", ""),
        )


@dataclass
class _ClaimsBase:
    subject: str
    name: str = ""
    issuer: str = ""
    issued_at: int = 0
    expires: int = 0
    not_before: Optional[int] = None
    tags: Set[str] = field(default_factory=set)

    claim_type: ClassVar[ClaimType]
    subject_kind: ClassVar[KeyKind]

    @property
    def effective_not_before(self) -> int:
        return self.issued_at if self.not_before is None else self.not_before

    def to_payload(self) -> Dict[str, Any]:
        """Wire payload. ``jti`` is always empty so identical claims encode identically."""
        nats = self._nats_payload()
        tags = normalize_tags(self.tags)
        if tags:
            nats["tags"] = tags
        nats["type"] = self.claim_type.value
        nats["version"] = NATS_CLAIMS_VERSION
        return {
            "jti": "",
            "iat": self.issued_at,
            "iss": self.issuer,
            "name": self.name,
            "sub": self.subject,
            "exp": self.expires,
            "nbf": self.effective_not_before,
            "nats": nats,
        }

    def validate(self) -> None:
        """Check the claim set before signing.

        Raises:
            MalformedInput: on a structurally invalid field
            KeyTypeMismatch: if the subject or a referenced key has the wrong role
        """
        require_public_key_kind(self.subject, self.subject_kind, "subject")
        for name, value in (("issued_at", self.issued_at), ("expires", self.expires)):
            if value < 0:
                raise MalformedInput("cannot be negative", field=name)
        if self.effective_not_before < 0:
            raise MalformedInput("cannot be negative", field="not_before")
        self._validate_entity()

    def _nats_payload(self) -> Dict[str, Any]:
        raise NotImplementedError

    def _validate_entity(self) -> None:
        raise NotImplementedError

    @staticmethod
    def _common_from_payload(payload: dict) -> dict:
        nats = payload.get("nats") or {}
        return {
            "subject": payload.get("sub", ""),
            "name": payload.get("name", ""),
            "issuer": payload.get("iss", ""),
            "issued_at": payload.get("iat", 0),
            "expires": payload.get("exp", 0),
            "not_before": payload.get("nbf"),
            "tags": set(nats.get("tags") or []),
        }


@dataclass
class OperatorClaims(_ClaimsBase):
    signing_keys: Set[str] = field(default_factory=set)
    account_server_url: str = ""
    operator_service_urls: List[str] = field(default_factory=list)
    system_account: str = ""
    strict_signing_key_usage: bool = False

    claim_type: ClassVar[ClaimType] = ClaimType.OPERATOR
    subject_kind: ClassVar[KeyKind] = KeyKind.OPERATOR

    def _nats_payload(self) -> Dict[str, Any]:
        nats: Dict[str, Any] = {}
        if self.signing_keys:
            nats["signing_keys"] = _sorted(self.signing_keys)
        if self.account_server_url:
            nats["account_server_url"] = self.account_server_url
        if self.operator_service_urls:
            nats["operator_service_urls"] = list(self.operator_service_urls)
        if self.system_account:
            nats["system_account"] = self.system_account
        if self.strict_signing_key_usage:
            nats["strict_signing_key_usage"] = True
        return nats

    def _validate_entity(self) -> None:
        for i, key in enumerate(sorted(self.signing_keys)):
            require_public_key_kind(key, KeyKind.OPERATOR, f"signing_keys[{i}]")
        if self.system_account:
            require_public_key_kind(self.system_account, KeyKind.ACCOUNT, "system_account")

    @classmethod
    def from_payload(cls, payload: dict) -> "OperatorClaims":
        nats = payload.get("nats") or {}
        return cls(
            **cls._common_from_payload(payload),
            signing_keys=set(nats.get("signing_keys") or []),
            account_server_url=nats.get("account_server_url", ""),
            operator_service_urls=list(nats.get("operator_service_urls") or []),
            system_account=nats.get("system_account", ""),
            strict_signing_key_usage=nats.get("strict_signing_key_usage", False),
        )


@dataclass
class AccountClaims(_ClaimsBase):
    signing_keys: Set[str] = field(default_factory=set)
    description: str = ""
    info_url: str = ""
    nats_limits: NatsLimits = field(default_factory=NatsLimits)
    account_limits: AccountLimits = field(default_factory=AccountLimits)
    jetstream_limits: JetStreamLimits = field(default_factory=JetStreamLimits)
    tiered_limits: Dict[str, JetStreamLimits] = field(default_factory=dict)
    default_permissions: Permissions = field(default_factory=Permissions)
    exports: List[Export] = field(default_factory=list)
    trace: Optional[MsgTrace] = None

    claim_type: ClassVar[ClaimType] = ClaimType.ACCOUNT
    subject_kind: ClassVar[KeyKind] = KeyKind.ACCOUNT

    def _nats_payload(self) -> Dict[str, Any]:
        limits: Dict[str, Any] = {}
        limits.update(self.nats_limits.to_dict())
        limits.update(self.account_limits.to_dict())
        limits.update(self.jetstream_limits.to_dict())
        if self.tiered_limits:
            limits["tiered_limits"] = {tier: lim.to_dict() for tier, lim in self.tiered_limits.items()}

        nats: Dict[str, Any] = {
            "limits": limits,
            "default_permissions": self.default_permissions.to_dict(),
        }
        if self.signing_keys:
            nats["signing_keys"] = _sorted(self.signing_keys)
        if self.exports:
            nats["exports"] = [e.to_dict() for e in self.exports]
        if self.trace is not None:
            nats["trace"] = self.trace.to_dict()
        if self.description:
            nats["description"] = self.description
        if self.info_url:
            nats["info_url"] = self.info_url
        return nats

    def _validate_entity(self) -> None:
        for i, key in enumerate(sorted(self.signing_keys)):
            require_public_key_kind(key, KeyKind.ACCOUNT, f"signing_keys[{i}]")
        for tier in self.tiered_limits:
            if not tier:
                raise MalformedInput("tier name cannot be empty", field="jetstream_limits.tier")
        if self.jetstream_limits.enabled and self.tiered_limits:
            raise ConflictingConfiguration(
                "JetStream Limits and tiered JetStream Limits are mutually exclusive",
                field="jetstream_limits",
            )
        self.default_permissions.validate("default_permissions")
        seen: Set[str] = set()
        for i, export in enumerate(self.exports):
            validate_subject(export.subject, f"exports[{i}].subject")
            if export.subject in seen:
                raise ConflictingConfiguration(
                    f"duplicate export subject {export.subject!r}", field=f"exports[{i}].subject"
                )
            seen.add(export.subject)
        if self.trace is not None:
            validate_subject(self.trace.destination, "trace.destination")
            validate_sampling(self.trace.sampling, "trace.sampling")

    @classmethod
    def from_payload(cls, payload: dict) -> "AccountClaims":
        nats = payload.get("nats") or {}
        limits = nats.get("limits") or {}
        trace = nats.get("trace")
        return cls(
            **cls._common_from_payload(payload),
            signing_keys=set(nats.get("signing_keys") or []),
            description=nats.get("description", ""),
            info_url=nats.get("info_url", ""),
            nats_limits=NatsLimits.from_dict(limits),
            account_limits=AccountLimits.from_dict(limits),
            jetstream_limits=JetStreamLimits.from_dict(limits),
            tiered_limits={
                tier: JetStreamLimits.from_dict(lim) for tier, lim in (limits.get("tiered_limits") or {}).items()
            },
            default_permissions=Permissions.from_dict(nats.get("default_permissions")),
            exports=[Export.from_dict(e) for e in nats.get("exports") or []],
            trace=MsgTrace(trace["dest"], trace.get("sampling", 0)) if trace else None,
        )


@dataclass
class UserClaims(_ClaimsBase):
    issuer_account: str = ""
    permissions: Permissions = field(default_factory=Permissions)
    nats_limits: NatsLimits = field(default_factory=NatsLimits)
    bearer_token: bool = False
    allowed_connection_types: Set[ConnectionType] = field(default_factory=set)
    source_networks: Set[str] = field(default_factory=set)
    time_restrictions: List[TimeRange] = field(default_factory=list)
    locale: str = ""

    claim_type: ClassVar[ClaimType] = ClaimType.USER
    subject_kind: ClassVar[KeyKind] = KeyKind.USER

    def _nats_payload(self) -> Dict[str, Any]:
        nats: Dict[str, Any] = self.permissions.to_dict()
        nats.update(self.nats_limits.to_dict())
        if self.issuer_account:
            nats["issuer_account"] = self.issuer_account
        if self.source_networks:
            nats["src"] = _sorted(self.source_networks)
        if self.time_restrictions:
            nats["times"] = [t.to_dict() for t in self.time_restrictions]
        if self.locale:
            nats["times_location"] = self.locale
        if self.bearer_token:
            nats["bearer_token"] = True
        if self.allowed_connection_types:
            nats["allowed_connection_types"] = _sorted(ConnectionType(c).value for c in self.allowed_connection_types)
        return nats

    def _validate_entity(self) -> None:
        if self.issuer_account:
            require_public_key_kind(self.issuer_account, KeyKind.ACCOUNT, "issuer_account")
        self.permissions.validate("permissions")
        for i, c in enumerate(sorted(self.allowed_connection_types)):
            if not isinstance(c, ConnectionType):
                parse_connection_type(c, f"allowed_connection_types[{i}]")
        for i, network in enumerate(sorted(self.source_networks)):
            validate_cidr(network, f"source_networks[{i}]")
        for i, tr in enumerate(self.time_restrictions):
            validate_time_of_day(tr.start, f"time_restrictions[{i}].start")
            validate_time_of_day(tr.end, f"time_restrictions[{i}].end")
        if self.time_restrictions and not self.locale:
            raise MalformedInput("locale is required when time_restrictions are set", field="locale")
        if self.locale:
            validate_locale(self.locale, "locale")

    @classmethod
    def from_payload(cls, payload: dict) -> "UserClaims":
        nats = payload.get("nats") or {}
        return cls(
            **cls._common_from_payload(payload),
            issuer_account=nats.get("issuer_account", ""),
            permissions=Permissions.from_dict(nats),
            nats_limits=NatsLimits.from_dict(nats),
            bearer_token=nats.get("bearer_token", False),
            allowed_connection_types={ConnectionType(c) for c in nats.get("allowed_connection_types") or []},
            source_networks=set(nats.get("src") or []),
            time_restrictions=[TimeRange(t["start"], t["end"]) for t in nats.get("times") or []],
            locale=nats.get("times_location", ""),
        )


Claims = Union[OperatorClaims, AccountClaims, UserClaims]

CLAIM_CLASSES = {
    ClaimType.OPERATOR: OperatorClaims,
    ClaimType.ACCOUNT: AccountClaims,
    ClaimType.USER: UserClaims,
}


def claims_from_payload(payload: dict) -> Claims:
    """Rebuild the claim variant named by ``nats.type``.

    Raises:
        DecodingFailure: on an unknown type or a payload that does not fit it
    """
    nats = payload.get("nats")
    if not isinstance(nats, dict):
        raise DecodingFailure("payload has no nats claims")
    try:
        claim_type = ClaimType(nats.get("type"))
    except ValueError:
        raise DecodingFailure(f"unknown claim type {nats.get('type')!r}") from None
    subject = payload.get("sub")
    if not subject or not isinstance(subject, str):
        raise DecodingFailure(f"{claim_type.value} claims have no subject")
    try:
        return CLAIM_CLASSES[claim_type].from_payload(payload)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise DecodingFailure(f"malformed {claim_type.value} claims: {e}") from e


def decode_claims(token: str, verify: bool = True) -> Claims:
    """Decode any signed token into its claim variant using only public keys."""
    if verify:
        _header, payload = verify_jwt(token)
    else:
        _header, payload, _sig = decode_jwt_unverified(token)
    return claims_from_payload(payload)


def _decode_as(token: str, cls, verify: bool):
    claims = decode_claims(token, verify=verify)
    if not isinstance(claims, cls):
        raise DecodingFailure(
            f"expected {cls.claim_type.value} claims, got {claims.claim_type.value} claims",
            details={"expected": cls.claim_type.value, "actual": claims.claim_type.value},
        )
    return claims


def decode_operator_claims(token: str, verify: bool = True) -> OperatorClaims:
    return _decode_as(token, OperatorClaims, verify)


def decode_account_claims(token: str, verify: bool = True) -> AccountClaims:
    return _decode_as(token, AccountClaims, verify)


def decode_user_claims(token: str, verify: bool = True) -> UserClaims:
    return _decode_as(token, UserClaims, verify)
