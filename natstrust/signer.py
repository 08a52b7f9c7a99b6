"""Deterministic claim signing.

A token is a pure function of the claim set and the signing key: ``iat``
comes from the claims (0 unless the caller set it), ``jti`` is always empty,
and the payload is serialized canonically.
"""

import dataclasses
import logging

from .claims import Claims
from .jwt import canonical_json, encode_jwt
from .keys import KeyPair
from .types import MalformedInput, SigningError

logger = logging.getLogger(__name__)


def sign_claims(claims: Claims, key_pair: KeyPair) -> str:
    """Sign a claim set with key_pair and return the token.

    The caller's claims object is not modified; the issuer is set on a copy.

    Raises:
        SigningError: if the claims are invalid ("invalid claim data") or the
            key cannot sign ("sign failure")
        KeyTypeMismatch: if the claims reference a key of the wrong role
        ConflictingConfiguration: if the claims hold mutually exclusive settings
    """
    signed = dataclasses.replace(claims, issuer=key_pair.public_key)

    try:
        signed.validate()
        payload = canonical_json(signed.to_payload())
    except MalformedInput as e:
        raise SigningError("invalid claim data", f"invalid claim data: {e.message}", field=e.field) from e
    except (TypeError, ValueError) as e:
        raise SigningError("invalid claim data", f"invalid claim data: {e}") from e

    try:
        token = encode_jwt(payload, key_pair)
    except (TypeError, ValueError, AttributeError) as e:
        raise SigningError("sign failure", f"sign failure: {e}") from e

    logger.debug(
        "signed %s claims sub=%s iss=%s",
        signed.claim_type.value,
        signed.subject,
        signed.issuer,
    )
    return token
