"""Exception taxonomy for the UTM tracker."""


class UtmTrackerError(Exception):
    """Base exception for all UTM tracker errors."""


class AuthenticationFailure(UtmTrackerError):
    """Raised when a webhook carries a missing or wrong shared secret."""


class ValidationFailure(UtmTrackerError):
    """Raised when an inbound payload is missing required data."""


class MissingIdentifierError(ValidationFailure):
    """Raised when an inbound message has no resolvable phone number."""

    def __init__(self, field: str = "phone_number"):
        self.field = field
        super().__init__(f"Missing required identifier: {field}")


class TransientDependencyFailure(UtmTrackerError):
    """Raised when the store, the sink or the secret store is unavailable."""


class SheetsAPIError(TransientDependencyFailure):
    """Raised when the Google Sheets API returns an error."""

    def __init__(self, message: str, status_code: int = 0):
        self.status_code = status_code
        super().__init__(message)

    @property
    def is_quota_error(self) -> bool:
        return self.status_code == 429 or "quota" in str(self).lower()


class SecretResolutionError(TransientDependencyFailure):
    """Raised when a secret cannot be read from AWS Secrets Manager."""

    def __init__(self, secret_id: str, reason: str):
        self.secret_id = secret_id
        super().__init__(f"Failed to retrieve secret {secret_id}: {reason}")


class ChangeFeedError(TransientDependencyFailure):
    """Raised to a change-feed consumer when its subscription is broken."""


class PermanentFailure(UtmTrackerError):
    """Raised when an operation cannot succeed without intervention."""


class SinkNotConfiguredError(PermanentFailure):
    """Raised when export is attempted without sink credentials."""


class SyncFailedError(PermanentFailure):
    """Raised when a batch export exhausts its retry budget."""

    def __init__(self, message: str, attempts: int, retryable: bool = False):
        self.attempts = attempts
        self.retryable = retryable
        super().__init__(message)
