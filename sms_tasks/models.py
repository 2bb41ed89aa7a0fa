# sms_tasks/models.py

from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any

# --- Command Constants ---
CMD_CREATE = "CREATE"
CMD_CLOSE = "CLOSE"
CMD_EDIT = "EDIT"
CMD_LIST_MIT = "LIST_MIT"
CMD_LIST_ALL = "LIST_ALL"
CMD_HELP = "HELP"

# HELP does not require an ID; this stands in for the missing key.
HELP_SMS_KEY_SENTINEL = "0000"

# --- Audit Outcomes ---
RESULT_SUCCESS = "Success"
RESULT_ERROR = "Error"
RESULT_UNAUTHORIZED = "Unauthorized"
RESULT_RATE_LIMITED = "RateLimited"

# --- Credential Failure Kinds ---
PHONE_NOT_REGISTERED = "PhoneNotRegistered"
INVALID_KEY = "InvalidKey"
NOT_VERIFIED = "NotVerified"
VALIDATION_ERROR = "ValidationError"
INVALID_PHONE = "InvalidPhoneFormat"


@dataclass(frozen=True)
class ParsedCommand:
    """Structured form of an inbound SMS command."""
    kind: str
    sms_key: str
    sender_phone: str
    title: Optional[str] = None
    priority: Optional[int] = None
    is_mit: Optional[bool] = None
    due_date: Optional[str] = None  # YYYY-MM-DD
    short_code: Optional[str] = None


@dataclass(frozen=True)
class ShortCodeResult:
    code: str
    attempts: int


@dataclass(frozen=True)
class CredentialResult:
    valid: bool
    user_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: Optional[str] = None  # ISO timestamp


@dataclass(frozen=True)
class AuditLogEntry:
    """Write-once record describing the outcome of one inbound message."""
    log_id: str
    timestamp: str
    phone_number: str
    raw_message: str
    action: Optional[str]
    result: str
    user_id: Optional[str] = None
    error_message: Optional[str] = None
    response_length: Optional[int] = None

    def to_document(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ProcessResult:
    """What the orchestrator hands back to the transport adapter."""
    success: bool
    message: str
    timestamp: str
    sent: bool = field(default=False)
