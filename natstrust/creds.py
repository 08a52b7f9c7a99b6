"""Decorated user credentials ("creds" files) for natstrust.

A creds file holds a user token and the user's seed, each between
``-----BEGIN ...-----`` / ``------END ...------`` markers, and is what NATS
client libraries load to connect.
"""

import re
from typing import List

from .claims import decode_user_claims
from .keys import KeyPair, from_seed, require_seed_kind
from .types import DecodingFailure, KeyKind, MalformedInput

_DECORATED_BLOCK = re.compile(r"\s*(?:(?:-{3,}.*-{3,}\r?\n)([\w\-.=]+)(?:\r?\n-{3,}.*-{3,}(?:\r?\n|\Z)))")

_CREDS_TEMPLATE = """-----BEGIN NATS USER JWT-----
{jwt}
------END NATS USER JWT------

************************* IMPORTANT *************************
NKEY Seed printed below can be used to sign and prove identity.
NKEYs are sensitive and should be treated as secrets.

-----BEGIN USER NKEY SEED-----
{seed}
------END USER NKEY SEED------

*************************************************************
"""


def format_user_creds(token: str, seed: str) -> str:
    """Render a user token and the user's seed as creds text."""
    require_seed_kind(seed, KeyKind.USER, "seed")
    return _CREDS_TEMPLATE.format(jwt=token.strip(), seed=seed.strip())


def _blocks(text: str) -> List[str]:
    return _DECORATED_BLOCK.findall(text)


def parse_decorated_jwt(text: str) -> str:
    """Return the token from creds text; undecorated input is returned as is."""
    blocks = _blocks(text)
    if not blocks:
        return text.strip()
    return blocks[0]


def parse_decorated_nkey(text: str) -> KeyPair:
    """Return the key pair for the seed block of creds text.

    Raises:
        DecodingFailure: if there is no seed block or it holds no usable seed
    """
    blocks = _blocks(text)
    if len(blocks) < 2:
        raise DecodingFailure("no nkey seed found")
    seed = blocks[1]
    if not seed.startswith(("SO", "SA", "SU")):
        raise DecodingFailure("no nkey seed found")
    try:
        return from_seed(seed)
    except MalformedInput as e:
        raise DecodingFailure(f"invalid nkey seed in creds: {e.message}") from e


def check_creds_consistency(creds: str, token: str) -> KeyPair:
    """Check that creds carry token and a seed for the token's subject.

    Raises:
        DecodingFailure: on any mismatch
    """
    embedded = parse_decorated_jwt(creds)
    if embedded != token:
        raise DecodingFailure("creds JWT does not match the issued token")

    kp = parse_decorated_nkey(creds)
    subject = decode_user_claims(token, verify=False).subject
    if kp.public_key != subject:
        raise DecodingFailure(
            "creds seed public key does not match the token subject",
            details={"subject": subject, "public_key": kp.public_key},
        )
    return kp
