"""NKey seed and public key handling for natstrust.

NKeys are Ed25519 keys in a base32 text encoding whose leading characters
name the key's role. A public key is ``prefix || key || crc16`` and a seed is
``seed-prefix || role || private seed || crc16``, both base32 without padding.
"""

import base64
import binascii
from dataclasses import dataclass, field
from typing import Tuple, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from .types import KeyKind, KeyTypeMismatch, MalformedInput

PREFIX_BYTE_SEED = 18 << 3
PREFIX_BYTE_OPERATOR = 14 << 3
PREFIX_BYTE_SERVER = 13 << 3
PREFIX_BYTE_ACCOUNT = 0
PREFIX_BYTE_USER = 20 << 3

PREFIX_BYTES = {
    KeyKind.OPERATOR: PREFIX_BYTE_OPERATOR,
    KeyKind.SERVER: PREFIX_BYTE_SERVER,
    KeyKind.ACCOUNT: PREFIX_BYTE_ACCOUNT,
    KeyKind.USER: PREFIX_BYTE_USER,
}
KINDS_BY_PREFIX = {v: k for k, v in PREFIX_BYTES.items()}

PUBLIC_KEY_LETTERS = {
    KeyKind.OPERATOR: "O",
    KeyKind.SERVER: "N",
    KeyKind.ACCOUNT: "A",
    KeyKind.USER: "U",
}

GENERATABLE_KINDS = (KeyKind.OPERATOR, KeyKind.ACCOUNT, KeyKind.USER)

_RAW_KEY_LEN = 32


def _crc16(data: bytes) -> bytes:
    """CRC-16/XMODEM of data, little-endian."""
    return binascii.crc_hqx(data, 0).to_bytes(2, byteorder="little")


def _b32encode(data: bytes) -> str:
    return base64.b32encode(data).rstrip(b"=").decode("ascii")


def _b32decode(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 8)
    return base64.b32decode(padded.encode("ascii"))


def _decode_checked(text: str, what: str) -> bytes:
    if not isinstance(text, str):
        raise MalformedInput(f"invalid {what}: expected a string, got {type(text).__name__}")
    try:
        raw = _b32decode(text)
    except (binascii.Error, ValueError, UnicodeEncodeError) as e:
        raise MalformedInput(f"invalid {what} encoding: {e}") from e
    if len(raw) < 4:
        raise MalformedInput(f"invalid {what}: too short")
    body, checksum = raw[:-2], raw[-2:]
    if _crc16(body) != checksum:
        raise MalformedInput(f"invalid {what}: checksum mismatch")
    return body


def encode_public_key(kind: KeyKind, raw: bytes) -> str:
    body = bytes([PREFIX_BYTES[kind]]) + raw
    return _b32encode(body + _crc16(body))


def encode_seed(kind: KeyKind, raw: bytes) -> str:
    prefix = PREFIX_BYTES[kind]
    b1 = PREFIX_BYTE_SEED | (prefix >> 5)
    b2 = (prefix & 31) << 3
    body = bytes([b1, b2]) + raw
    return _b32encode(body + _crc16(body))


def decode_seed(seed: str) -> Tuple[KeyKind, bytes]:
    """Decode a seed string into its role and raw 32-byte Ed25519 seed.

    Raises:
        MalformedInput: if the seed is not a valid NKey seed
    """
    body = _decode_checked(seed, "seed")
    if len(body) != 2 + _RAW_KEY_LEN:
        raise MalformedInput("invalid seed: wrong length")
    if body[0] & 248 != PREFIX_BYTE_SEED:
        raise MalformedInput("invalid seed: missing seed prefix")
    prefix = (body[0] & 7) << 5 | ((body[1] & 248) >> 3)
    kind = KINDS_BY_PREFIX.get(prefix)
    if kind is None:
        raise MalformedInput(f"invalid seed: unknown role prefix {prefix}")
    return kind, body[2:]


def decode_public_key(public_key: str) -> Tuple[KeyKind, bytes]:
    """Decode a public key string into its role and raw 32-byte Ed25519 key.

    Raises:
        MalformedInput: if the key is not a valid NKey public key
    """
    body = _decode_checked(public_key, "public key")
    if len(body) != 1 + _RAW_KEY_LEN:
        raise MalformedInput("invalid public key: wrong length")
    kind = KINDS_BY_PREFIX.get(body[0])
    if kind is None:
        raise MalformedInput(f"invalid public key: unknown role prefix {body[0]}")
    return kind, body[1:]


def is_valid_public_key(public_key: str) -> bool:
    try:
        decode_public_key(public_key)
    except MalformedInput:
        return False
    return True


@dataclass(frozen=True)
class KeyPair:
    """An NKey pair decoded from a seed. The seed is never shown in repr."""

    kind: KeyKind
    public_key: str
    seed: str = field(repr=False)
    _private_key: Ed25519PrivateKey = field(repr=False, compare=False)

    def sign(self, data: bytes) -> bytes:
        return self._private_key.sign(data)

    def verify(self, data: bytes, signature: bytes) -> bool:
        return verify_signature(self.public_key, data, signature)


def from_seed(seed: str) -> KeyPair:
    """Build a key pair from a seed string (SO..., SA..., SU..., SN...)."""
    kind, raw = decode_seed(seed)
    private_key = Ed25519PrivateKey.from_private_bytes(raw)
    public_raw = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return KeyPair(
        kind=kind,
        public_key=encode_public_key(kind, public_raw),
        seed=seed,
        _private_key=private_key,
    )


def create_key_pair(kind: Union[KeyKind, str]) -> KeyPair:
    """Generate a new operator, account or user key pair."""
    try:
        kind = KeyKind(kind)
    except ValueError:
        kind = None
    if kind not in GENERATABLE_KINDS:
        raise MalformedInput("Must be one of: operator, account, user", field="kind")

    private_key = Ed25519PrivateKey.generate()
    raw = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return from_seed(encode_seed(kind, raw))


def public_key_from_seed(seed: str) -> str:
    try:
        return from_seed(seed).public_key
    except MalformedInput as e:
        raise MalformedInput(f"failed to convert seed to public key: {e.message}") from e


def verify_signature(public_key: str, data: bytes, signature: bytes) -> bool:
    """Verify an Ed25519 signature using only an NKey public key."""
    try:
        _kind, raw = decode_public_key(public_key)
        Ed25519PublicKey.from_public_bytes(raw).verify(signature, data)
        return True
    except (MalformedInput, InvalidSignature, ValueError):
        return False


def require_seed_kind(seed: str, expected: KeyKind, field_name: str = "seed") -> KeyPair:
    """Decode a seed and check its role.

    Raises:
        MalformedInput: if the seed cannot be decoded
        KeyTypeMismatch: if the seed belongs to another role
    """
    try:
        kp = from_seed(seed)
    except MalformedInput as e:
        raise MalformedInput(f"Could not decode seed: {e.message}", field=field_name) from e
    return require_key_kind(kp, expected, field_name)


def require_key_kind(key: KeyPair, expected: KeyKind, field_name: str = "seed") -> KeyPair:
    if key.kind != expected:
        raise KeyTypeMismatch(
            f"Expected {expected.value} seed, got {key.kind.value} seed",
            field=field_name,
            details={"expected": expected.value, "actual": key.kind.value},
        )
    return key


def require_public_key_kind(public_key: str, expected: KeyKind, field_name: str = "public_key") -> str:
    """Check that a public key is valid and belongs to the expected role."""
    try:
        kind, _raw = decode_public_key(public_key)
    except MalformedInput as e:
        raise MalformedInput("The value is not a valid NKey public key", field=field_name) from e
    if kind != expected:
        letter = PUBLIC_KEY_LETTERS[expected]
        raise KeyTypeMismatch(
            f"Expected {expected.value} public key (starting with {letter}), got key starting with {public_key[0]}",
            field=field_name,
            details={"expected": expected.value, "actual": kind.value},
        )
    return public_key


def coerce_key_pair(key: Union[KeyPair, str], expected: KeyKind, field_name: str) -> KeyPair:
    """Accept either a decoded key pair or a seed string, checking its role."""
    if isinstance(key, KeyPair):
        return require_key_kind(key, expected, field_name)
    return require_seed_kind(key, expected, field_name)
