"""
Error taxonomy for Meta Graph API failures.

Routers translate these into structured responses so the dashboard can tell
"rate limited" apart from "no data" or "reconnect your account".
"""
from typing import Any, Dict, Optional


class MetaApiError(Exception):
    """Base class for classified Meta API failures."""

    kind = "REQUEST_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[int] = None,
        subcode: Optional[int] = None,
        fbtrace_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.subcode = subcode
        self.fbtrace_id = fbtrace_id

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


class RateLimitError(MetaApiError):
    """Quota exhausted; retry after a cooldown."""

    kind = "RATE_LIMIT"

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        usage_percent: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
        self.usage_percent = usage_percent

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["retry_after"] = self.retry_after
        data["usage_percent"] = self.usage_percent
        return data


class TransientError(MetaApiError):
    """Network failure, timeout or 5xx. Safe to retry."""

    kind = "TRANSIENT_ERROR"

    def __init__(self, message: str, timed_out: bool = False, **kwargs):
        super().__init__(message, **kwargs)
        self.timed_out = timed_out


class RequestError(MetaApiError):
    """Rejected request (bad token, invalid parameters). Not retried."""

    kind = "REQUEST_ERROR"


class TokenExpiredError(RequestError):
    """Access token invalid or expired (Graph API code 190)."""


class DataSizeError(RequestError):
    """The platform asked for a smaller request, usually a shorter window."""


class PartialDataError(MetaApiError):
    """
    Insights could not be fetched while entities were.

    Never raised to callers; recorded on degraded results.
    """

    kind = "PARTIAL_DATA"

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        if isinstance(self.cause, MetaApiError):
            return self.cause.to_dict()
        data = super().to_dict()
        if self.cause is not None:
            data["message"] = f"{self.message}: {self.cause}"
        return data
