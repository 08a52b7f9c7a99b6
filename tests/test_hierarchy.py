"""Tests for operator, account and user token issuance."""

import pytest

from natstrust.claims import (
    AccountClaims,
    Export,
    JetStreamLimits,
    TimeRange,
    decode_account_claims,
    decode_operator_claims,
    decode_user_claims,
)
from natstrust.creds import check_creds_consistency
from natstrust.hierarchy import (
    apply_system_account_defaults,
    build_account,
    build_account_claims,
    build_operator,
    build_system_account,
    build_user,
    build_user_claims,
    issue_user_creds,
    partition_jetstream_limits,
)
from natstrust.keys import create_key_pair
from natstrust.options import AccountOptions, JetStreamLimitsOptions, UserOptions
from natstrust.types import (
    ConflictingConfiguration,
    ConnectionType,
    ExportType,
    HierarchyConfig,
    KeyKind,
    KeyTypeMismatch,
    MalformedInput,
    ResponseType,
)
from natstrust.verification import verify_chain


@pytest.fixture
def operator():
    return create_key_pair(KeyKind.OPERATOR)


@pytest.fixture
def account():
    return create_key_pair(KeyKind.ACCOUNT)


@pytest.fixture
def user():
    return create_key_pair(KeyKind.USER)


class TestRoles:
    def test_user_seed_rejected_as_account(self, operator, user):
        with pytest.raises(KeyTypeMismatch) as exc:
            build_account("acme", user.seed, operator.seed)
        assert exc.value.field == "seed"

    def test_account_seed_rejected_as_operator_signer(self, account):
        other = create_key_pair(KeyKind.ACCOUNT)
        with pytest.raises(KeyTypeMismatch) as exc:
            build_account("acme", account, other)
        assert exc.value.field == "operator_seed"

    def test_user_must_be_signed_by_account(self, operator, user):
        with pytest.raises(KeyTypeMismatch):
            build_user("alice", user, operator)

    def test_garbage_seed(self, operator):
        with pytest.raises(MalformedInput, match="Could not decode seed"):
            build_account("acme", "SAnotaseed", operator)

    def test_operator_signing_key_must_be_operator(self, operator, account):
        with pytest.raises(KeyTypeMismatch):
            build_operator("op", operator, options={"signing_keys": [account.public_key]})


class TestChain:
    def test_chain_verifies(self, operator, account, user):
        op_jwt = build_operator("op", operator.seed)
        acct_jwt = build_account("acme", account.seed, operator.seed)
        user_jwt = build_user("alice", user.seed, account.seed)

        assert decode_operator_claims(op_jwt).issuer == operator.public_key
        assert decode_account_claims(acct_jwt).issuer == operator.public_key
        assert decode_user_claims(user_jwt).issuer == account.public_key

        result = verify_chain(op_jwt, acct_jwt, user_jwt)
        assert result.valid
        assert result.user == user.public_key

    def test_operator_signing_key(self, operator, account):
        signing = create_key_pair(KeyKind.OPERATOR)
        op_jwt = build_operator("op", operator, options={"signing_keys": [signing.public_key]})
        acct_jwt = build_account("acme", account, signing)
        assert decode_account_claims(acct_jwt).issuer == signing.public_key
        assert verify_chain(op_jwt, acct_jwt).valid

    def test_same_inputs_same_token(self, operator, account):
        first = build_account("acme", account, operator, {"issued_at": 100})
        second = build_account("acme", account.seed, operator.seed, {"issued_at": 100})
        assert first == second


class TestOperator:
    def test_options(self, operator, account):
        token = build_operator(
            "op",
            operator,
            options={
                "system_account": account.public_key,
                "account_server_url": "nats://localhost:4222",
                "strict_signing_key_usage": True,
            },
        )
        claims = decode_operator_claims(token)
        assert claims.name == "op"
        assert claims.system_account == account.public_key
        assert claims.account_server_url == "nats://localhost:4222"
        assert claims.strict_signing_key_usage is True

    def test_system_account_must_be_account(self, operator, user):
        with pytest.raises(KeyTypeMismatch):
            build_operator("op", operator, options={"system_account": user.public_key})


class TestAccountLimits:
    def test_defaults_unlimited(self, account):
        claims = build_account_claims("acme", account.public_key)
        assert claims.nats_limits.subs == -1
        assert claims.account_limits.conn == -1
        assert claims.jetstream_limits == JetStreamLimits()
        assert claims.tiered_limits == {}

    def test_partial_nats_limits(self, account):
        claims = build_account_claims("acme", account.public_key, {"nats_limits": {"subs": 100}})
        assert claims.nats_limits.subs == 100
        assert claims.nats_limits.data == -1

    def test_tiered_jetstream(self, operator, account):
        options = AccountOptions(
            jetstream_limits=[
                JetStreamLimitsOptions(tier="R1", streams=5),
                JetStreamLimitsOptions(tier="R3", streams=10),
            ]
        )
        claims = decode_account_claims(build_account("acme", account, operator, options))
        assert claims.tiered_limits["R1"].streams == 5
        assert claims.tiered_limits["R3"].streams == 10
        assert claims.tiered_limits["R1"].consumer == -1
        assert claims.jetstream_limits == JetStreamLimits()

    def test_global_jetstream(self, account):
        claims = build_account_claims("acme", account.public_key, {"jetstream_limits": [{"disk_storage": 1024}]})
        assert claims.jetstream_limits.disk_storage == 1024
        assert claims.jetstream_limits.streams == -1
        assert claims.tiered_limits == {}

    def test_two_global_blocks_conflict(self, account):
        options = {"jetstream_limits": [{"mem_storage": 1}, {"disk_storage": 2}]}
        with pytest.raises(ConflictingConfiguration) as exc:
            build_account_claims("acme", account.public_key, options)
        assert exc.value.field == "jetstream_limits[1]"

    def test_global_and_tier_conflict(self, operator, account):
        options = {"jetstream_limits": [{"mem_storage": 1}, {"tier": "R1", "streams": 1}]}
        with pytest.raises(ConflictingConfiguration, match="mutually exclusive"):
            build_account("acme", account, operator, options)

    def test_duplicate_tier_last_wins(self):
        blocks = [JetStreamLimitsOptions(tier="R1", streams=1), JetStreamLimitsOptions(tier="R1", streams=2)]
        global_limits, tiers, overwritten = partition_jetstream_limits(blocks)
        assert tiers["R1"].streams == 2
        assert overwritten == ["R1"]
        assert global_limits == JetStreamLimits()

    def test_duplicate_tier_strict(self):
        blocks = [JetStreamLimitsOptions(tier="R1", streams=1), JetStreamLimitsOptions(tier="R1", streams=2)]
        with pytest.raises(ConflictingConfiguration, match="R1"):
            partition_jetstream_limits(blocks, HierarchyConfig(strict_conflicts=True))

    def test_trace(self, account):
        claims = build_account_claims("acme", account.public_key, {"trace": {"destination": "trace.out", "sampling": 25}})
        assert claims.trace.destination == "trace.out"
        assert claims.trace.sampling == 25

    def test_trace_needs_destination(self, account):
        with pytest.raises(MalformedInput) as exc:
            build_account_claims("acme", account.public_key, {"trace": {"sampling": 25}})
        assert exc.value.field == "trace.destination"

    def test_default_permissions(self, account):
        claims = build_account_claims("acme", account.public_key, {"default_permissions": {"pub_allow": ["a.>"]}})
        assert claims.default_permissions.pub.allow == {"a.>"}

    def test_not_before_defaults_to_issued_at(self, operator, account):
        claims = decode_account_claims(build_account("acme", account, operator, {"issued_at": 321}))
        assert claims.issued_at == 321
        assert claims.not_before == 321


class TestSystemAccount:
    def test_default_exports(self, operator, account):
        claims = decode_account_claims(build_system_account("SYS", account, operator))
        by_subject = {e.subject: e for e in claims.exports}
        assert set(by_subject) == {"$SYS.REQ.ACCOUNT.*.*", "$SYS.ACCOUNT.*.>"}

        service = by_subject["$SYS.REQ.ACCOUNT.*.*"]
        assert service.type == ExportType.SERVICE
        assert service.response_type == ResponseType.SINGLETON
        assert service.account_token_position == 4

        stream = by_subject["$SYS.ACCOUNT.*.>"]
        assert stream.type == ExportType.STREAM
        assert stream.account_token_position == 3

    def test_defaults_idempotent(self, account):
        claims = AccountClaims(subject=account.public_key)
        apply_system_account_defaults(claims)
        apply_system_account_defaults(claims)
        assert len(claims.exports) == 2

    def test_existing_subject_kept(self, operator, account):
        custom = Export("$SYS.ACCOUNT.*.>", ExportType.STREAM, name="mine")
        claims = decode_account_claims(build_system_account("SYS", account, operator, {"exports": [custom]}))
        streams = [e for e in claims.exports if e.subject == "$SYS.ACCOUNT.*.>"]
        assert len(streams) == 1
        assert streams[0].name == "mine"
        assert len(claims.exports) == 2


class TestUser:
    def test_permissions_and_response(self, account, user):
        options = UserOptions.from_dict(
            {"permissions": {"pub_allow": ["foo.>"], "sub_deny": ["secret.>"], "resp_max_msgs": 1, "resp_ttl": "1m"}}
        )
        claims = decode_user_claims(build_user("alice", user, account, options))
        assert claims.permissions.pub.allow == {"foo.>"}
        assert claims.permissions.sub.deny == {"secret.>"}
        assert claims.permissions.resp.max_msgs == 1
        assert claims.permissions.resp.ttl == 60_000_000_000

    def test_bad_duration(self, account, user):
        with pytest.raises(MalformedInput) as exc:
            build_user("alice", user, account, {"permissions": {"resp_ttl": "soon"}})
        assert exc.value.field == "permissions.resp_ttl"

    def test_time_restrictions_need_locale(self, account, user):
        options = {"time_restrictions": [{"start": "08:00:00", "end": "17:00:00"}]}
        with pytest.raises(MalformedInput) as exc:
            build_user("alice", user, account, options)
        assert exc.value.field == "locale"

    def test_time_restrictions_with_locale(self, account, user):
        options = {
            "time_restrictions": [{"start": "08:00:00", "end": "17:00:00"}],
            "locale": "America/New_York",
        }
        claims = decode_user_claims(build_user("alice", user, account, options))
        assert claims.time_restrictions == [TimeRange("08:00:00", "17:00:00")]
        assert claims.locale == "America/New_York"

    def test_connection_types_and_networks(self, account, user):
        options = {"allowed_connection_types": ["STANDARD", "WEBSOCKET"], "source_networks": ["10.0.0.0/8"]}
        claims = decode_user_claims(build_user("alice", user, account, options))
        assert claims.allowed_connection_types == {ConnectionType.STANDARD, ConnectionType.WEBSOCKET}
        assert claims.source_networks == {"10.0.0.0/8"}

    def test_unknown_connection_type(self, account, user):
        with pytest.raises(MalformedInput, match="Must be one of"):
            build_user("alice", user, account, {"allowed_connection_types": ["FTP"]})

    def test_account_signing_key_with_issuer_account(self, operator, account, user):
        signing = create_key_pair(KeyKind.ACCOUNT)
        op_jwt = build_operator("op", operator)
        acct_jwt = build_account("acme", account, operator, {"signing_keys": [signing.public_key]})
        user_jwt = build_user("alice", user, signing, {"issuer_account": account.public_key})
        claims = decode_user_claims(user_jwt)
        assert claims.issuer == signing.public_key
        assert claims.issuer_account == account.public_key
        assert verify_chain(op_jwt, acct_jwt, user_jwt).valid

    def test_bare_string_tags_rejected(self, user):
        with pytest.raises(MalformedInput, match="expected a list") as exc:
            build_user_claims("alice", user.public_key, {"tags": "prod"})
        assert exc.value.field == "tags"

    def test_options_instance_with_nested_mapping(self, user):
        options = UserOptions(permissions={"pub_allow": ["a.>"]})
        claims = build_user_claims("alice", user.public_key, options)
        assert claims.permissions.pub.allow == {"a.>"}

    def test_issue_creds(self, account, user):
        token, creds = issue_user_creds("alice", user.seed, account.seed)
        assert token in creds
        assert user.seed in creds
        assert check_creds_consistency(creds, token).public_key == user.public_key
