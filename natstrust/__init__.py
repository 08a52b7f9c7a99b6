"""natstrust: offline issuance of NATS operator, account and user credentials."""

from .bundle import (
    Bundle,
    assemble_bundle,
    render_server_config,
)
from .claims import (
    AccountClaims,
    AccountLimits,
    Claims,
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
    claims_from_payload,
    decode_account_claims,
    decode_claims,
    decode_operator_claims,
    decode_user_claims,
)
from .creds import (
    check_creds_consistency,
    format_user_creds,
    parse_decorated_jwt,
    parse_decorated_nkey,
)
from .hierarchy import (
    apply_system_account_defaults,
    build_account,
    build_account_claims,
    build_operator,
    build_operator_claims,
    build_system_account,
    build_user,
    build_user_claims,
    issue_user_creds,
    partition_jetstream_limits,
    system_account_default_exports,
)
from .jwt import (
    base64url_decode,
    base64url_encode,
    canonical_json,
    decode_jwt_unverified,
    encode_jwt,
    verify_jwt,
)
from .keys import (
    KeyPair,
    create_key_pair,
    decode_public_key,
    decode_seed,
    from_seed,
    is_valid_public_key,
    public_key_from_seed,
    require_public_key_kind,
    require_seed_kind,
    verify_signature,
)
from .options import (
    AccountLimitsOptions,
    AccountOptions,
    JetStreamLimitsOptions,
    NatsLimitsOptions,
    OperatorOptions,
    PermissionsOptions,
    TimeRangeOptions,
    TraceOptions,
    UserOptions,
    UserPermissionsOptions,
)
from .signer import sign_claims
from .types import (
    UNLIMITED,
    AssemblyConfig,
    AssemblyError,
    ClaimType,
    ConflictingConfiguration,
    ConnectionType,
    DecodingFailure,
    ErrorCode,
    ExportType,
    HierarchyConfig,
    KeyKind,
    KeyTypeMismatch,
    MalformedInput,
    NatsTrustError,
    ResolverKind,
    ResponseType,
    SigningError,
    VerificationResult,
)
from .verification import verify_chain, verify_token

__version__ = "0.1.0"

__all__ = [
    # Types
    "UNLIMITED",
    "KeyKind",
    "ClaimType",
    "ConnectionType",
    "ExportType",
    "ResponseType",
    "ResolverKind",
    "ErrorCode",
    "NatsTrustError",
    "KeyTypeMismatch",
    "MalformedInput",
    "ConflictingConfiguration",
    "DecodingFailure",
    "SigningError",
    "AssemblyError",
    "HierarchyConfig",
    "AssemblyConfig",
    "VerificationResult",
    # Keys
    "KeyPair",
    "from_seed",
    "create_key_pair",
    "decode_seed",
    "decode_public_key",
    "is_valid_public_key",
    "public_key_from_seed",
    "require_seed_kind",
    "require_public_key_kind",
    "verify_signature",
    # JWT
    "base64url_encode",
    "base64url_decode",
    "canonical_json",
    "encode_jwt",
    "decode_jwt_unverified",
    "verify_jwt",
    # Claims
    "Claims",
    "OperatorClaims",
    "AccountClaims",
    "UserClaims",
    "Permission",
    "Permissions",
    "ResponsePermission",
    "NatsLimits",
    "AccountLimits",
    "JetStreamLimits",
    "TimeRange",
    "MsgTrace",
    "Export",
    "claims_from_payload",
    "decode_claims",
    "decode_operator_claims",
    "decode_account_claims",
    "decode_user_claims",
    # Signing
    "sign_claims",
    # Options
    "OperatorOptions",
    "AccountOptions",
    "UserOptions",
    "NatsLimitsOptions",
    "AccountLimitsOptions",
    "JetStreamLimitsOptions",
    "PermissionsOptions",
    "UserPermissionsOptions",
    "TraceOptions",
    "TimeRangeOptions",
    # Hierarchy
    "build_operator",
    "build_operator_claims",
    "build_account",
    "build_account_claims",
    "build_system_account",
    "build_user",
    "build_user_claims",
    "issue_user_creds",
    "partition_jetstream_limits",
    "apply_system_account_defaults",
    "system_account_default_exports",
    # Creds
    "format_user_creds",
    "parse_decorated_jwt",
    "parse_decorated_nkey",
    "check_creds_consistency",
    # Bundle
    "Bundle",
    "assemble_bundle",
    "render_server_config",
    # Verification
    "verify_chain",
    "verify_token",
]
