"""natstrust type constants, enums, and error classes."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

UNLIMITED = -1
NATS_CLAIMS_VERSION = 2

TOKEN_TYP = "JWT"
TOKEN_ALG = "ed25519-nkey"


class KeyKind(str, Enum):
    OPERATOR = "operator"
    ACCOUNT = "account"
    USER = "user"
    SERVER = "server"


class ClaimType(str, Enum):
    OPERATOR = "operator"
    ACCOUNT = "account"
    USER = "user"


class ConnectionType(str, Enum):
    STANDARD = "STANDARD"
    WEBSOCKET = "WEBSOCKET"
    LEAFNODE = "LEAFNODE"
    MQTT = "MQTT"


class ExportType(str, Enum):
    STREAM = "stream"
    SERVICE = "service"


class ResponseType(str, Enum):
    SINGLETON = "Singleton"
    STREAM = "Stream"
    CHUNKED = "Chunked"


class ResolverKind(str, Enum):
    MEMORY = "MEMORY"


class ErrorCode(str, Enum):
    KEY_TYPE_MISMATCH = "KEY_TYPE_MISMATCH"
    MALFORMED_INPUT = "MALFORMED_INPUT"
    CONFLICTING_CONFIGURATION = "CONFLICTING_CONFIGURATION"
    DECODING_FAILURE = "DECODING_FAILURE"
    SIGNING_ERROR = "SIGNING_ERROR"
    ASSEMBLY_ERROR = "ASSEMBLY_ERROR"
    SIGNATURE_INVALID = "SIGNATURE_INVALID"
    ISSUER_MISMATCH = "ISSUER_MISMATCH"


class NatsTrustError(Exception):
    """natstrust error with an error code and the offending field, if any."""

    code = ErrorCode.MALFORMED_INPUT

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: Optional[ErrorCode] = None,
    ):
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details or {}
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        if self.field:
            return f"{self.field}: {self.message}"
        return self.message


class KeyTypeMismatch(NatsTrustError):
    code = ErrorCode.KEY_TYPE_MISMATCH


class MalformedInput(NatsTrustError):
    code = ErrorCode.MALFORMED_INPUT


class ConflictingConfiguration(NatsTrustError):
    code = ErrorCode.CONFLICTING_CONFIGURATION


class DecodingFailure(NatsTrustError):
    code = ErrorCode.DECODING_FAILURE


class SigningError(NatsTrustError):
    """Raised when a claim set cannot be turned into a signed token."""

    code = ErrorCode.SIGNING_ERROR

    def __init__(self, reason: str, message: Optional[str] = None, **kwargs: Any):
        super().__init__(message or reason, **kwargs)
        self.reason = reason


class AssemblyError(NatsTrustError):
    """Raised when a server trust bundle cannot be assembled."""

    code = ErrorCode.ASSEMBLY_ERROR

    def __init__(self, reason: str, message: Optional[str] = None, **kwargs: Any):
        super().__init__(message or reason, **kwargs)
        self.reason = reason


@dataclass
class HierarchyConfig:
    """Builder behaviour when caller input is ambiguous.

    With ``strict_conflicts`` off, duplicate JetStream tiers resolve
    last-write-wins and are logged; with it on they raise.
    """

    strict_conflicts: bool = False


@dataclass
class AssemblyConfig:
    strict_conflicts: bool = False


@dataclass
class VerificationResult:
    valid: bool
    operator: Optional[str] = None
    account: Optional[str] = None
    user: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
