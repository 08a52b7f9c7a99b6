"""Tests for NKey seeds, public keys and key pairs."""

import pytest

from natstrust.keys import (
    create_key_pair,
    decode_public_key,
    decode_seed,
    encode_public_key,
    encode_seed,
    from_seed,
    is_valid_public_key,
    public_key_from_seed,
    require_public_key_kind,
    require_seed_kind,
    verify_signature,
)
from natstrust.types import KeyKind, KeyTypeMismatch, MalformedInput

# User key pair from the nats-io nkeys documentation.
NATS_USER_SEED = "SUACSSL3UAHUDXKFSNVUZRF5UHPMWZ6BFDTJ7M6USDXIEDNPPQYYYCU3VY"
NATS_USER_PUBLIC_KEY = "UDXU4RCSJNZOIQHZNWXHXORDPRTGNJAHAHFRGZNEEJCPQTT2M7NLCNF4"


class TestCreateKeyPair:
    @pytest.mark.parametrize(
        "kind, seed_prefix, key_prefix",
        [
            (KeyKind.OPERATOR, "SO", "O"),
            (KeyKind.ACCOUNT, "SA", "A"),
            (KeyKind.USER, "SU", "U"),
        ],
    )
    def test_prefixes(self, kind, seed_prefix, key_prefix):
        kp = create_key_pair(kind)
        assert kp.kind == kind
        assert kp.seed.startswith(seed_prefix)
        assert kp.public_key.startswith(key_prefix)
        assert len(kp.public_key) == 56
        assert len(kp.seed) == 58

    def test_accepts_type_name(self):
        assert create_key_pair("account").kind == KeyKind.ACCOUNT

    def test_invalid_type_rejected(self):
        with pytest.raises(MalformedInput, match="Must be one of: operator, account, user"):
            create_key_pair("cluster")

    def test_server_keys_not_generated(self):
        with pytest.raises(MalformedInput):
            create_key_pair(KeyKind.SERVER)

    def test_seed_not_in_repr(self):
        kp = create_key_pair(KeyKind.USER)
        assert kp.seed not in repr(kp)


class TestFromSeed:
    def test_public_key_is_derived_from_seed(self):
        kp = create_key_pair(KeyKind.ACCOUNT)
        again = from_seed(kp.seed)
        assert again.public_key == kp.public_key
        assert again.kind == KeyKind.ACCOUNT

    def test_public_key_from_seed(self):
        kp = create_key_pair(KeyKind.OPERATOR)
        assert public_key_from_seed(kp.seed) == kp.public_key

    def test_invalid_seed(self):
        with pytest.raises(MalformedInput, match="failed to convert seed to public key"):
            public_key_from_seed("not-a-seed")

    def test_checksum_detects_corruption(self):
        seed = create_key_pair(KeyKind.USER).seed
        corrupted = seed[:10] + ("A" if seed[10] != "A" else "B") + seed[11:]
        with pytest.raises(MalformedInput):
            from_seed(corrupted)

    def test_public_key_is_not_a_seed(self):
        kp = create_key_pair(KeyKind.USER)
        with pytest.raises(MalformedInput):
            decode_seed(kp.public_key)

    def test_decode_seed(self):
        kp = create_key_pair(KeyKind.USER)
        kind, raw = decode_seed(kp.seed)
        assert kind == KeyKind.USER
        assert len(raw) == 32


class TestKnownVector:
    def test_public_key_from_nats_seed(self):
        kp = from_seed(NATS_USER_SEED)
        assert kp.kind == KeyKind.USER
        assert kp.public_key == NATS_USER_PUBLIC_KEY

    def test_reencodes_identically(self):
        kind, raw = decode_seed(NATS_USER_SEED)
        assert encode_seed(kind, raw) == NATS_USER_SEED
        kind, raw = decode_public_key(NATS_USER_PUBLIC_KEY)
        assert raw.hex() == "ef4e44524b72e440f96dae7bba237c6666a40701cb1365a42244f84e7a67dab1"
        assert encode_public_key(kind, raw) == NATS_USER_PUBLIC_KEY


class TestPublicKeys:
    def test_decode(self):
        kp = create_key_pair(KeyKind.ACCOUNT)
        kind, raw = decode_public_key(kp.public_key)
        assert kind == KeyKind.ACCOUNT
        assert encode_public_key(kind, raw) == kp.public_key

    def test_validity(self):
        kp = create_key_pair(KeyKind.OPERATOR)
        assert is_valid_public_key(kp.public_key)
        assert not is_valid_public_key(kp.seed)
        assert not is_valid_public_key("OABC")

    def test_non_string_rejected(self):
        for value in (5, None, b"UABC"):
            with pytest.raises(MalformedInput, match="expected a string"):
                decode_public_key(value)
        assert not is_valid_public_key(5)

    def test_server_key_encoding(self):
        raw = bytes(range(32))
        key = encode_public_key(KeyKind.SERVER, raw)
        assert key.startswith("N")
        assert decode_public_key(key) == (KeyKind.SERVER, raw)


class TestSignAndVerify:
    def test_roundtrip(self):
        kp = create_key_pair(KeyKind.OPERATOR)
        data = b"hello nats"
        sig = kp.sign(data)
        assert len(sig) == 64
        assert verify_signature(kp.public_key, data, sig)
        assert kp.verify(data, sig)

    def test_wrong_data_fails(self):
        kp = create_key_pair(KeyKind.OPERATOR)
        sig = kp.sign(b"hello nats")
        assert not verify_signature(kp.public_key, b"wrong data", sig)

    def test_wrong_key_fails(self):
        kp1 = create_key_pair(KeyKind.ACCOUNT)
        kp2 = create_key_pair(KeyKind.ACCOUNT)
        sig = kp1.sign(b"test data")
        assert not verify_signature(kp2.public_key, b"test data", sig)

    def test_signatures_are_deterministic(self):
        kp = create_key_pair(KeyKind.USER)
        assert kp.sign(b"same") == from_seed(kp.seed).sign(b"same")


class TestRoleChecks:
    def test_seed_of_expected_kind(self):
        kp = create_key_pair(KeyKind.ACCOUNT)
        assert require_seed_kind(kp.seed, KeyKind.ACCOUNT).public_key == kp.public_key

    def test_seed_of_wrong_kind(self):
        kp = create_key_pair(KeyKind.USER)
        with pytest.raises(KeyTypeMismatch, match="Expected account seed, got user seed") as exc:
            require_seed_kind(kp.seed, KeyKind.ACCOUNT, "account_seed")
        assert exc.value.field == "account_seed"

    def test_undecodable_seed(self):
        with pytest.raises(MalformedInput, match="Could not decode seed"):
            require_seed_kind("SAXXXX", KeyKind.ACCOUNT)

    def test_public_key_of_wrong_kind(self):
        kp = create_key_pair(KeyKind.USER)
        with pytest.raises(KeyTypeMismatch, match="starting with A"):
            require_public_key_kind(kp.public_key, KeyKind.ACCOUNT, "system_account")

    def test_invalid_public_key(self):
        with pytest.raises(MalformedInput, match="not a valid NKey public key"):
            require_public_key_kind("Anope", KeyKind.ACCOUNT)
