"""ed25519-nkey JWT encode/decode/verify for natstrust."""

import base64
import binascii
import json
from typing import Any, Dict, Tuple, Union

from .keys import KeyPair, verify_signature
from .types import TOKEN_ALG, TOKEN_TYP, DecodingFailure

HEADER = {"typ": TOKEN_TYP, "alg": TOKEN_ALG}


def base64url_encode(data: bytes) -> str:
    """Base64url encode bytes (no padding)."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("utf-8")


def base64url_decode(s: str) -> bytes:
    """Base64url decode a string."""
    padding = 4 - len(s) % 4
    if padding != 4:
        s += "=" * padding
    return base64.urlsafe_b64decode(s)


def canonical_json(value: Any) -> bytes:
    """Compact JSON with sorted keys; identical input always yields identical bytes."""
    return json.dumps(value, separators=(",", ":"), sort_keys=True, ensure_ascii=False).encode("utf-8")


def encode_jwt(payload: Union[Dict[str, Any], bytes], key_pair: KeyPair) -> str:
    """Encode and sign a JWT with an NKey pair.

    payload is either a dict or its already serialized canonical JSON bytes.
    """
    if not isinstance(payload, bytes):
        payload = canonical_json(payload)
    header_b64 = base64url_encode(canonical_json(HEADER))
    payload_b64 = base64url_encode(payload)

    signing_input = f"{header_b64}.{payload_b64}"
    sig_b64 = base64url_encode(key_pair.sign(signing_input.encode("utf-8")))

    return f"{signing_input}.{sig_b64}"


def decode_jwt_unverified(jwt_str: str) -> Tuple[dict, dict, str]:
    """Decode a JWT without verifying the signature.

    Returns:
        Tuple of (header: dict, payload: dict, signature_b64: str)

    Raises:
        DecodingFailure: if the JWT is malformed, uses another algorithm, or has no payload object
    """
    if not isinstance(jwt_str, str):
        raise DecodingFailure("JWT must be a string")
    parts = jwt_str.strip().split(".")
    if len(parts) != 3:
        raise DecodingFailure("JWT must have 3 parts")

    try:
        header = json.loads(base64url_decode(parts[0]))
        payload = json.loads(base64url_decode(parts[1]))
    except (binascii.Error, ValueError) as e:
        raise DecodingFailure(f"JWT segments are not base64url JSON: {e}") from e

    if not isinstance(header, dict) or not isinstance(payload, dict):
        raise DecodingFailure("JWT header and payload must be JSON objects")

    if header.get("alg") != TOKEN_ALG:
        raise DecodingFailure(f"Algorithm '{header.get('alg')}' rejected, must be '{TOKEN_ALG}'")

    if header.get("typ") != TOKEN_TYP:
        raise DecodingFailure(f"Token type '{header.get('typ')}' rejected, must be '{TOKEN_TYP}'")

    return header, payload, parts[2]


def verify_jwt(jwt_str: str) -> Tuple[dict, dict]:
    """Verify a JWT signature against the issuer key named in its payload.

    Returns:
        Tuple of (header: dict, payload: dict)

    Raises:
        DecodingFailure: if the JWT is invalid or signature verification fails
    """
    header, payload, sig_b64 = decode_jwt_unverified(jwt_str)

    issuer = payload.get("iss")
    if not issuer or not isinstance(issuer, str):
        raise DecodingFailure("JWT has no issuer")

    header_b64, payload_b64, _ = jwt_str.strip().split(".")
    signing_input = f"{header_b64}.{payload_b64}"
    try:
        sig_bytes = base64url_decode(sig_b64)
    except (binascii.Error, ValueError) as e:
        raise DecodingFailure(f"JWT signature is not base64url: {e}") from e

    if not verify_signature(issuer, signing_input.encode("utf-8"), sig_bytes):
        raise DecodingFailure(f"JWT signature verification failed for issuer '{issuer}'")

    return header, payload
