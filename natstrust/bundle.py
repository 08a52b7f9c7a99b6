"""Server trust bundle assembly for natstrust.

A trust bundle is what a NATS server with a memory resolver needs: the
operator token, the system account public key, and a preload map from
account public keys to account tokens. It is built from already-issued
tokens only, so no seed is needed.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Union

from .claims import decode_account_claims, decode_operator_claims
from .types import AssemblyConfig, AssemblyError, ConflictingConfiguration, DecodingFailure, ResolverKind

logger = logging.getLogger(__name__)


@dataclass
class Bundle:
    operator: str
    system_account: str = ""
    resolver: ResolverKind = ResolverKind.MEMORY
    preload: Dict[str, str] = field(default_factory=dict)
    # Public keys that appeared more than once; the later token was kept.
    overwritten: List[str] = field(default_factory=list)

    @property
    def server_config(self) -> str:
        return render_server_config(self)


def _resolver_kind(value: Union[ResolverKind, str, None]) -> ResolverKind:
    if value is None:
        return ResolverKind.MEMORY
    try:
        return ResolverKind(value)
    except ValueError:
        raise AssemblyError(
            "unsupported resolver",
            f"Only MEMORY resolver is currently supported, got: {getattr(value, 'value', value)}",
            field="resolver_type",
        ) from None


def _account_subject(token: str, label: str) -> str:
    try:
        return decode_account_claims(token).subject
    except DecodingFailure as e:
        raise AssemblyError(
            "malformed account token",
            f"Failed to decode {label}: {e}",
            field=label,
        ) from e


def assemble_bundle(
    operator_token: str,
    system_account_token: Optional[str] = None,
    account_tokens: Optional[Iterable[str]] = None,
    resolver_kind: Union[ResolverKind, str, None] = ResolverKind.MEMORY,
    config: Optional[AssemblyConfig] = None,
) -> Bundle:
    """Build the resolver preload map from an operator token and account tokens.

    The system account, when given, goes first; account tokens follow in
    order. A public key seen twice keeps the later token and is listed in
    ``Bundle.overwritten`` (or raises in strict mode).

    Raises:
        AssemblyError: unsupported resolver, or a token that does not decode
        ConflictingConfiguration: duplicate account public key in strict mode
    """
    if config is None:
        config = AssemblyConfig()

    resolver = _resolver_kind(resolver_kind)

    try:
        decode_operator_claims(operator_token)
    except DecodingFailure as e:
        raise AssemblyError(
            "malformed operator token",
            f"Failed to decode operator JWT: {e}",
            field="operator_jwt",
        ) from e

    bundle = Bundle(operator=operator_token.strip(), resolver=resolver)

    entries = []
    if system_account_token:
        sys_token = system_account_token.strip()
        bundle.system_account = _account_subject(sys_token, "system_account_jwt")
        entries.append((bundle.system_account, sys_token, "system_account_jwt"))
    for i, token in enumerate(account_tokens or []):
        label = f"account_jwts[{i}]"
        token = token.strip()
        entries.append((_account_subject(token, label), token, label))

    for public_key, token, label in entries:
        if public_key in bundle.preload:
            if config.strict_conflicts:
                raise ConflictingConfiguration(
                    f"account {public_key} appears more than once",
                    field=label,
                    details={"public_key": public_key},
                )
            logger.warning("account %s appears more than once, keeping %s", public_key, label)
            bundle.overwritten.append(public_key)
        bundle.preload[public_key] = token

    logger.debug(
        "assembled trust bundle: resolver=%s system_account=%s accounts=%d",
        resolver.value,
        bundle.system_account or "-",
        len(bundle.preload),
    )
    return bundle


def render_server_config(bundle: Bundle) -> str:
    """Render a bundle as a NATS server configuration snippet."""
    lines = [f"operator: {bundle.operator}"]
    if bundle.system_account:
        lines.append(f"system_account: {bundle.system_account}")
    lines.append(f"resolver: {ResolverKind(bundle.resolver).value}")
    if bundle.preload:
        lines.append("resolver_preload: {")
        for public_key, token in bundle.preload.items():
            lines.append(f"  {public_key}: {token}")
        lines.append("}")
    return "\n".join(lines) + "\n"
