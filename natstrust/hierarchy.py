"""Operator, account and user token issuance for natstrust.

Each builder checks the roles of the keys it is given, turns the options
into a fresh claim set and signs it once. Nothing is kept between calls.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .claims import (
    AccountClaims,
    AccountLimits,
    Export,
    JetStreamLimits,
    MsgTrace,
    NatsLimits,
    OperatorClaims,
    Permission,
    Permissions,
    ResponsePermission,
    TimeRange,
    UserClaims,
)
from .creds import format_user_creds
from .keys import KeyPair, coerce_key_pair, require_public_key_kind
from .options import (
    AccountOptions,
    JetStreamLimitsOptions,
    OperatorOptions,
    PermissionsOptions,
    UserOptions,
)
from .signer import sign_claims
from .types import (
    UNLIMITED,
    ConflictingConfiguration,
    ExportType,
    HierarchyConfig,
    KeyKind,
    MalformedInput,
    ResponseType,
)
from .validation import (
    parse_connection_types,
    parse_duration,
    validate_cidrs,
    validate_locale,
    validate_sampling,
    validate_subject,
    validate_subjects,
    validate_time_of_day,
)

logger = logging.getLogger(__name__)

Key = Union[KeyPair, str]

SYS_ACCOUNT_INFO_URL = "https://docs.nats.io/nats-server/configuration/sys_accounts"


def system_account_default_exports() -> List[Export]:
    """The monitoring exports every system account carries."""
    return [
        Export(
            name="account-monitoring-services",
            subject="$SYS.REQ.ACCOUNT.*.*",
            type=ExportType.SERVICE,
            response_type=ResponseType.SINGLETON,
            account_token_position=4,
            description="Request account specific monitoring services for: SUBSZ, CONNZ, LEAFZ, JSZ and INFO",
            info_url=SYS_ACCOUNT_INFO_URL,
        ),
        Export(
            name="account-monitoring-streams",
            subject="$SYS.ACCOUNT.*.>",
            type=ExportType.STREAM,
            account_token_position=3,
            description="Account specific monitoring stream",
            info_url=SYS_ACCOUNT_INFO_URL,
        ),
    ]


def _pick(value, default):
    return default if value is None else value


def _apply_temporal(claims, options) -> None:
    if options.issued_at is not None:
        claims.issued_at = options.issued_at
    if options.expires is not None:
        claims.expires = options.expires
    claims.not_before = _pick(options.not_before, claims.issued_at)
    if options.tags:
        claims.tags = set(options.tags)


def _public_keys(values: Optional[Iterable[str]], kind: KeyKind, field_name: str) -> set:
    return {require_public_key_kind(v, kind, f"{field_name}[{i}]") for i, v in enumerate(values or [])}


def _permissions(options: Optional[PermissionsOptions], field_name: str) -> Permissions:
    if options is None:
        return Permissions()
    return Permissions(
        pub=Permission(
            allow=set(validate_subjects(options.pub_allow, f"{field_name}.pub_allow")),
            deny=set(validate_subjects(options.pub_deny, f"{field_name}.pub_deny")),
        ),
        sub=Permission(
            allow=set(validate_subjects(options.sub_allow, f"{field_name}.sub_allow")),
            deny=set(validate_subjects(options.sub_deny, f"{field_name}.sub_deny")),
        ),
    )


def _nats_limits(options) -> NatsLimits:
    if options is None:
        return NatsLimits()
    return NatsLimits(
        subs=_pick(options.subs, UNLIMITED),
        data=_pick(options.data, UNLIMITED),
        payload=_pick(options.payload, UNLIMITED),
    )


def _jetstream_limit(block: JetStreamLimitsOptions) -> JetStreamLimits:
    return JetStreamLimits(
        mem_storage=_pick(block.mem_storage, 0),
        disk_storage=_pick(block.disk_storage, 0),
        streams=_pick(block.streams, UNLIMITED),
        consumer=_pick(block.consumer, UNLIMITED),
        max_ack_pending=_pick(block.max_ack_pending, UNLIMITED),
        mem_max_stream_bytes=_pick(block.mem_max_stream_bytes, 0),
        disk_max_stream_bytes=_pick(block.disk_max_stream_bytes, 0),
        max_bytes_required=_pick(block.max_bytes_required, False),
    )


def partition_jetstream_limits(
    blocks: Optional[Iterable[JetStreamLimitsOptions]],
    config: Optional[HierarchyConfig] = None,
) -> Tuple[JetStreamLimits, Dict[str, JetStreamLimits], List[str]]:
    """Split JetStream limit blocks into the global record and the tier map.

    Blocks without a tier replace the global record; more than one such
    block is a conflict. Blocks with a tier are upserted by tier name, the
    last one winning unless ``config.strict_conflicts`` is set.

    Returns:
        Tuple of (global limits, tier map, tiers that were overwritten)

    Raises:
        ConflictingConfiguration: on a second global block, or a duplicate tier in strict mode
    """
    if config is None:
        config = HierarchyConfig()

    global_limits = JetStreamLimits()
    tiers: Dict[str, JetStreamLimits] = {}
    overwritten: List[str] = []
    global_index = None

    for i, block in enumerate(blocks or []):
        block = JetStreamLimitsOptions.from_dict(block, f"jetstream_limits[{i}]")
        limit = _jetstream_limit(block)
        if not block.tier:
            if global_index is not None:
                raise ConflictingConfiguration(
                    f"more than one JetStream limit block without a tier (blocks {global_index} and {i})",
                    field=f"jetstream_limits[{i}]",
                    details={"blocks": [global_index, i]},
                )
            global_index = i
            global_limits = limit
            continue

        if block.tier in tiers:
            if config.strict_conflicts:
                raise ConflictingConfiguration(
                    f"duplicate JetStream tier {block.tier!r}",
                    field=f"jetstream_limits[{i}].tier",
                    details={"tier": block.tier},
                )
            logger.warning("JetStream tier %r given more than once, using block %d", block.tier, i)
            overwritten.append(block.tier)
        tiers[block.tier] = limit

    return global_limits, tiers, overwritten


def build_operator_claims(name: str, public_key: str, options: Optional[OperatorOptions] = None) -> OperatorClaims:
    options = OperatorOptions.from_dict(options) or OperatorOptions()

    claims = OperatorClaims(subject=public_key, name=name)
    _apply_temporal(claims, options)
    claims.signing_keys = _public_keys(options.signing_keys, KeyKind.OPERATOR, "signing_keys")
    if options.account_server_url:
        claims.account_server_url = options.account_server_url
    if options.operator_service_urls:
        claims.operator_service_urls = list(options.operator_service_urls)
    if options.system_account:
        claims.system_account = require_public_key_kind(options.system_account, KeyKind.ACCOUNT, "system_account")
    claims.strict_signing_key_usage = _pick(options.strict_signing_key_usage, False)
    return claims


def build_operator(
    name: str,
    own_key: Key,
    signer_key: Optional[Key] = None,
    options: Optional[OperatorOptions] = None,
) -> str:
    """Issue an operator token. Operators sign their own claims, so the
    signer defaults to the operator's own key."""
    own = coerce_key_pair(own_key, KeyKind.OPERATOR, "seed")
    signer = own if signer_key is None else coerce_key_pair(signer_key, KeyKind.OPERATOR, "signer_seed")
    return sign_claims(build_operator_claims(name, own.public_key, options), signer)


def build_account_claims(
    name: str,
    public_key: str,
    options: Optional[AccountOptions] = None,
    config: Optional[HierarchyConfig] = None,
) -> AccountClaims:
    options = AccountOptions.from_dict(options) or AccountOptions()

    claims = AccountClaims(subject=public_key, name=name)
    _apply_temporal(claims, options)
    claims.signing_keys = _public_keys(options.signing_keys, KeyKind.ACCOUNT, "signing_keys")
    if options.description:
        claims.description = options.description
    if options.info_url:
        claims.info_url = options.info_url

    claims.nats_limits = _nats_limits(options.nats_limits)

    al = options.account_limits
    if al is not None:
        claims.account_limits = AccountLimits(
            imports=_pick(al.imports, UNLIMITED),
            exports=_pick(al.exports, UNLIMITED),
            wildcard_exports=_pick(al.wildcard_exports, True),
            disallow_bearer=_pick(al.disallow_bearer, False),
            conn=_pick(al.conn, UNLIMITED),
            leaf_node_conn=_pick(al.leaf_node_conn, UNLIMITED),
        )

    global_limits, tiers, _overwritten = partition_jetstream_limits(options.jetstream_limits, config)
    claims.jetstream_limits = global_limits
    claims.tiered_limits = tiers

    claims.default_permissions = _permissions(options.default_permissions, "default_permissions")

    if options.trace is not None:
        if not options.trace.destination:
            raise MalformedInput("trace destination is required", field="trace.destination")
        claims.trace = MsgTrace(
            destination=validate_subject(options.trace.destination, "trace.destination"),
            sampling=validate_sampling(_pick(options.trace.sampling, 0), "trace.sampling"),
        )

    if options.exports:
        claims.exports = list(options.exports)
    return claims


def build_account(
    name: str,
    own_key: Key,
    signer_key: Key,
    options: Optional[AccountOptions] = None,
    config: Optional[HierarchyConfig] = None,
) -> str:
    """Issue an account token signed by an operator (or operator signing) key."""
    own = coerce_key_pair(own_key, KeyKind.ACCOUNT, "seed")
    signer = coerce_key_pair(signer_key, KeyKind.OPERATOR, "operator_seed")
    return sign_claims(build_account_claims(name, own.public_key, options, config), signer)


def apply_system_account_defaults(claims: AccountClaims) -> AccountClaims:
    """Add the default monitoring exports whose subjects are not exported yet.

    Applying this more than once leaves the export list unchanged.
    """
    existing = {e.subject for e in claims.exports}
    for export in system_account_default_exports():
        if export.subject not in existing:
            claims.exports.append(export)
            existing.add(export.subject)
    return claims


def build_system_account(
    name: str,
    own_key: Key,
    signer_key: Key,
    options: Optional[AccountOptions] = None,
    config: Optional[HierarchyConfig] = None,
) -> str:
    """Issue a system account token carrying the default monitoring exports."""
    own = coerce_key_pair(own_key, KeyKind.ACCOUNT, "seed")
    signer = coerce_key_pair(signer_key, KeyKind.OPERATOR, "operator_seed")
    claims = apply_system_account_defaults(build_account_claims(name, own.public_key, options, config))
    return sign_claims(claims, signer)


def build_user_claims(name: str, public_key: str, options: Optional[UserOptions] = None) -> UserClaims:
    options = UserOptions.from_dict(options) or UserOptions()

    claims = UserClaims(subject=public_key, name=name)
    _apply_temporal(claims, options)
    if options.issuer_account:
        claims.issuer_account = require_public_key_kind(options.issuer_account, KeyKind.ACCOUNT, "issuer_account")

    perms = options.permissions
    claims.permissions = _permissions(perms, "permissions")
    if perms is not None and (perms.resp_max_msgs is not None or perms.resp_ttl is not None):
        resp = ResponsePermission()
        if perms.resp_max_msgs is not None:
            resp.max_msgs = perms.resp_max_msgs
        if perms.resp_ttl is not None:
            resp.ttl = parse_duration(perms.resp_ttl, "permissions.resp_ttl")
        claims.permissions.resp = resp

    claims.nats_limits = _nats_limits(options.limits)
    claims.bearer_token = _pick(options.bearer_token, False)

    if options.allowed_connection_types:
        claims.allowed_connection_types = parse_connection_types(options.allowed_connection_types)
    if options.source_networks:
        claims.source_networks = validate_cidrs(options.source_networks)

    for i, tr in enumerate(options.time_restrictions or []):
        claims.time_restrictions.append(
            TimeRange(
                start=validate_time_of_day(tr.start, f"time_restrictions[{i}].start"),
                end=validate_time_of_day(tr.end, f"time_restrictions[{i}].end"),
            )
        )
    if options.locale:
        claims.locale = validate_locale(options.locale, "locale")
    if claims.time_restrictions and not claims.locale:
        raise MalformedInput("locale is required when time_restrictions are set", field="locale")
    return claims


def build_user(
    name: str,
    own_key: Key,
    signer_key: Key,
    options: Optional[UserOptions] = None,
) -> str:
    """Issue a user token signed by an account (or account signing) key.

    When signer_key is an account signing key, set ``issuer_account`` to the
    account's public key in the options.
    """
    own = coerce_key_pair(own_key, KeyKind.USER, "seed")
    signer = coerce_key_pair(signer_key, KeyKind.ACCOUNT, "account_seed")
    return sign_claims(build_user_claims(name, own.public_key, options), signer)


def issue_user_creds(
    name: str,
    own_key: Key,
    signer_key: Key,
    options: Optional[UserOptions] = None,
) -> Tuple[str, str]:
    """Issue a user token and the creds text that carries it.

    Returns:
        Tuple of (token, creds)
    """
    own = coerce_key_pair(own_key, KeyKind.USER, "seed")
    token = build_user(name, own, signer_key, options)
    return token, format_user_creds(token, own.seed)
