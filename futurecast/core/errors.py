"""Error taxonomy shared by the generator adapters, predictor and pipeline."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class UpstreamErrorKind(str, Enum):
    """Closed classification of text-generation failures."""

    RATE_LIMITED = "rate_limited"
    AUTH_FAILED = "auth_failed"
    TIMED_OUT = "timed_out"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"


# Kinds that count against the prediction circuit breaker
BREAKER_QUALIFYING_KINDS = frozenset(
    {
        UpstreamErrorKind.RATE_LIMITED,
        UpstreamErrorKind.TIMED_OUT,
        UpstreamErrorKind.NETWORK_ERROR,
    }
)


class UpstreamError(Exception):
    """A text-generation call failed. Always carries a classified kind."""

    kind: UpstreamErrorKind = UpstreamErrorKind.UNKNOWN

    def __init__(self, message: str = "", *, status_code: int | None = None):
        super().__init__(message or self.kind.value)
        self.status_code = status_code

    @property
    def qualifies_for_breaker(self) -> bool:
        return self.kind in BREAKER_QUALIFYING_KINDS


class UpstreamTimeout(UpstreamError):
    kind = UpstreamErrorKind.TIMED_OUT


class UpstreamRateLimited(UpstreamError):
    kind = UpstreamErrorKind.RATE_LIMITED


class UpstreamAuthFailed(UpstreamError):
    kind = UpstreamErrorKind.AUTH_FAILED


class UpstreamNetworkError(UpstreamError):
    kind = UpstreamErrorKind.NETWORK_ERROR


class UpstreamUnknown(UpstreamError):
    kind = UpstreamErrorKind.UNKNOWN


_ERROR_CLASSES: dict[UpstreamErrorKind, type[UpstreamError]] = {
    UpstreamErrorKind.TIMED_OUT: UpstreamTimeout,
    UpstreamErrorKind.RATE_LIMITED: UpstreamRateLimited,
    UpstreamErrorKind.AUTH_FAILED: UpstreamAuthFailed,
    UpstreamErrorKind.NETWORK_ERROR: UpstreamNetworkError,
    UpstreamErrorKind.UNKNOWN: UpstreamUnknown,
}


def upstream_error(
    kind: UpstreamErrorKind, message: str = "", status_code: int | None = None
) -> UpstreamError:
    """Build the UpstreamError subclass matching a kind."""
    return _ERROR_CLASSES[kind](message, status_code=status_code)


class ResponseValidationError(ValueError):
    """Generator returned something that is not the structure we asked for."""


class FatalPipelineError(RuntimeError):
    """An error outside any fan-out task; the analysis is marked failed."""


@dataclass
class PartialPipelineFailure:
    """One fan-out task that failed and was dropped from the results."""

    phase: int
    message: str
    year: int | None = None
    expert: str | None = None
    kind: UpstreamErrorKind | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "phase": self.phase,
            "year": self.year,
            "expert": self.expert,
            "kind": self.kind.value if self.kind else None,
            "message": self.message,
            "occurred_at": self.occurred_at.isoformat(),
        }
