# sms_tasks/errors.py

# --- Custom Exceptions ---

class SmsTaskError(Exception):
    """Base class for errors raised while processing an SMS command."""
    pass


class ParseFailure(SmsTaskError):
    """Message text did not match the command grammar."""
    pass


class Unauthorized(SmsTaskError):
    """Phone number / SMS key did not resolve to a verified user."""
    pass


class RateLimited(SmsTaskError):
    """Hourly rate limit or daily quota exhausted."""
    pass


class TaskCodeNotFound(SmsTaskError):
    """Short code did not resolve to a task owned by the user."""

    def __init__(self, short_code: str):
        super().__init__(f"Task code not found: {short_code}")
        self.short_code = short_code


class UpstreamFailure(SmsTaskError):
    """A collaborator (task API, identity provider, SMS gateway) failed."""
    pass


class AuthenticationError(UpstreamFailure):
    """Machine-to-machine token could not be obtained."""
    pass


class TaskApiError(UpstreamFailure):
    """Task API call failed or returned a non-2xx status."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class SmsDeliveryError(UpstreamFailure):
    """The SMS gateway rejected or failed to send a message."""
    pass


class ConfigurationError(SmsTaskError):
    """Required send-channel configuration is missing."""
    pass


class RequestValidationError(Exception):
    """Custom exception for inbound webhook validation errors."""
    def __init__(self, message, status_code):
        super().__init__(message)
        self.status_code = status_code
