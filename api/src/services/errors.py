from __future__ import annotations

from typing import Any, Optional

DEFAULT_UPSTREAM_STATUS = 502


class InvalidRequest(ValueError):
    """Malformed ranking payload, rejected before any embedding call."""

    def __init__(self, detail: Any) -> None:
        super().__init__(str(detail))
        self.detail = detail


class ProviderError(Exception):
    """Base class for failures of the embedding backend."""

    kind = "ProviderError"

    def __init__(self, message: str, *, status: Optional[int] = None, detail: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.detail = detail if detail is not None else message


class ProviderUnavailable(ProviderError):
    """Backend unreachable or timed out."""

    kind = "ProviderUnavailable"


class ProviderRejected(ProviderError):
    """Backend reachable but declined the request (bad input, quota, auth)."""

    kind = "ProviderRejected"


class ProviderMalformedResponse(ProviderError):
    """Backend answered with something that does not line up with the request."""

    kind = "ProviderMalformedResponse"


class RankingFailed(Exception):
    """Raised to callers when ranking could not be performed at all."""

    def __init__(self, cause: ProviderError) -> None:
        super().__init__(f"{cause.kind}: {cause}")
        self.cause = cause
        self.status = cause.status or DEFAULT_UPSTREAM_STATUS
        self.detail = {
            "error": cause.kind,
            "status": cause.status,
            "info": cause.detail,
        }


class EmbeddingAbandoned(ProviderUnavailable):
    """The caller stopped waiting (timeout or cancellation); do not send the call."""
