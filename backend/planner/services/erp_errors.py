from typing import Optional


class ERPError(Exception):
    """Base class for failures talking to the ERP."""


class ERPAuthenticationError(ERPError):
    """Credentials rejected or the auth endpoint is unreachable."""


class ERPRateLimitError(ERPError):
    """HTTP 429 from the ERP; `retry_after` is the server-advised wait in seconds."""

    def __init__(self, message: str, retry_after: float):
        super().__init__(message)
        self.retry_after = retry_after


class ERPRequestError(ERPError):
    """Any other HTTP or transport failure."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_transient(self) -> bool:
        # transport errors have no status code
        return self.status_code is None or self.status_code >= 500
