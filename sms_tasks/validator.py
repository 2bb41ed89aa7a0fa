# sms_tasks/validator.py

import re
import uuid
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Callable

from . import config
from .models import (
    AuditLogEntry, CredentialResult, RateLimitResult,
    PHONE_NOT_REGISTERED, INVALID_KEY, NOT_VERIFIED, VALIDATION_ERROR,
)

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")
SMS_KEY_FORMAT_PATTERN = re.compile(r"^\d{4}$")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SmsValidator:
    """
    Gatekeeping for inbound SMS: credentials, hourly rate limit, daily quota,
    usage recording and audit logging.

    Rate-limit and quota lookups fail open when `fail_open` is True (the
    default, see config.RATE_LIMIT_FAIL_OPEN). Bookkeeping writes never raise.
    """

    def __init__(
        self,
        store,
        rate_limit_max: int = config.RATE_LIMIT_MAX,
        rate_limit_window_seconds: int = config.RATE_LIMIT_WINDOW_SECONDS,
        daily_limit_max: int = config.DAILY_LIMIT_MAX,
        fail_open: bool = config.RATE_LIMIT_FAIL_OPEN,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.rate_limit_max = rate_limit_max
        self.rate_limit_window = timedelta(seconds=rate_limit_window_seconds)
        self.daily_limit_max = daily_limit_max
        self.fail_open = fail_open
        self.clock = clock

    # --- Credentials ---

    def validate_credentials(self, phone_number: str, sms_key: str) -> CredentialResult:
        """Resolves (phone, sms_key) to a verified user id."""
        if not self.validate_sms_key_format(sms_key):
            return CredentialResult(valid=False, error=INVALID_KEY)

        try:
            found = self.store.find_user_by_phone(phone_number)
        except Exception as e:
            logging.exception(f"Error validating credentials for {phone_number}: {e}")
            return CredentialResult(valid=False, error=VALIDATION_ERROR)

        if not found:
            return CredentialResult(valid=False, error=PHONE_NOT_REGISTERED)

        user_id, settings = found
        sms_config = settings.get('sms_config') or {}

        if sms_config.get('sms_key') != sms_key:
            return CredentialResult(valid=False, error=INVALID_KEY)
        if not sms_config.get('verified'):
            return CredentialResult(valid=False, error=NOT_VERIFIED)

        return CredentialResult(valid=True, user_id=user_id)

    # --- Rate limiting ---

    def check_rate_limit(self, phone_number: str) -> RateLimitResult:
        now = self.clock()
        window_start = now - self.rate_limit_window
        try:
            entries = self.store.list_rate_limit_entries(phone_number, window_start)
        except Exception as e:
            logging.exception(f"Error checking rate limit for {phone_number}: {e}")
            if self.fail_open:
                return RateLimitResult(allowed=True, remaining=self.rate_limit_max)
            return RateLimitResult(allowed=False, remaining=0)

        count = len(entries)
        if count >= self.rate_limit_max:
            reset_time = None
            if entries:
                oldest = entries[0]
                expires_at = oldest.get('expires_at') or (oldest['timestamp'] + self.rate_limit_window)
                reset_time = expires_at.isoformat()
            logging.warning(f"Rate limit reached for {phone_number} ({count} in window)")
            return RateLimitResult(allowed=False, remaining=0, reset_time=reset_time)

        # -1 accounts for the current request
        return RateLimitResult(allowed=True, remaining=self.rate_limit_max - count - 1)

    def check_daily_limit(self, user_id: str) -> bool:
        try:
            settings = self.store.get_user_settings(user_id)
        except Exception as e:
            logging.exception(f"Error checking daily limit for user {user_id}: {e}")
            return self.fail_open

        if not settings:
            return True
        sms_config = settings.get('sms_config')
        if not sms_config:
            return True

        # A stale date means today's first use has not been recorded yet
        if sms_config.get('last_reset_date') != self._today():
            return True

        remaining = sms_config.get('daily_limit_remaining')
        if remaining is None:
            remaining = self.daily_limit_max
        return remaining > 0

    def record_usage(self, phone_number: str, user_id: Optional[str] = None):
        """Records one accepted request. Failures are logged and ignored."""
        now = self.clock()
        try:
            self.store.add_rate_limit_entry(phone_number, now, now + self.rate_limit_window)
        except Exception as e:
            logging.error(f"Error recording rate limit entry for {phone_number}: {e}")

        if not user_id:
            return
        try:
            self.store.consume_daily_quota(user_id, self._today(), self.daily_limit_max)
        except Exception as e:
            logging.error(f"Error updating daily quota for user {user_id}: {e}")

    # --- Audit ---

    def create_audit_log(
        self,
        phone_number: str,
        raw_message: str,
        action: Optional[str],
        result: str,
        user_id: Optional[str] = None,
        error_message: Optional[str] = None,
        response_length: Optional[int] = None,
    ):
        """Best-effort audit write; never raises."""
        entry = AuditLogEntry(
            log_id=str(uuid.uuid4()),
            timestamp=self.clock().isoformat(),
            phone_number=phone_number,
            raw_message=raw_message,
            action=action,
            result=result,
            user_id=user_id,
            error_message=error_message,
            response_length=response_length,
        )
        try:
            self.store.add_audit_log(entry)
        except Exception as e:
            logging.warning(f"Skipping audit log for {phone_number} ({result}): {e}")

    # --- Format checks ---

    @staticmethod
    def validate_phone_format(phone_number: str) -> bool:
        return bool(phone_number) and E164_PATTERN.match(phone_number) is not None

    @staticmethod
    def validate_sms_key_format(sms_key: str) -> bool:
        return bool(sms_key) and SMS_KEY_FORMAT_PATTERN.match(sms_key) is not None

    def _today(self) -> str:
        return self.clock().date().isoformat()
