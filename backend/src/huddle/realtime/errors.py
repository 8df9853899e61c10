"""Error taxonomy surfaced to clients through the ``error`` event."""

from __future__ import annotations

from dataclasses import dataclass


class RelayError(Exception):
    """Base class for failures reported back to the triggering connection."""

    kind = "relay_error"
    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotAuthenticated(RelayError):
    kind = "not_authenticated"
    default_message = "Not authenticated"


class NotFound(RelayError):
    kind = "not_found"
    default_message = "Not found"


class AccessDenied(RelayError):
    kind = "access_denied"
    default_message = "Access denied"


class ValidationFailed(RelayError):
    kind = "validation_failed"
    default_message = "Invalid payload"


@dataclass(slots=True)
class StepOutcome:
    """Result of a best-effort step that must not abort its caller."""

    step: str
    ok: bool
    detail: str | None = None
    error: BaseException | None = None
    affected: int = 0

    @classmethod
    def success(cls, step: str, *, affected: int = 0) -> "StepOutcome":
        return cls(step=step, ok=True, affected=affected)

    @classmethod
    def failure(cls, step: str, error: BaseException) -> "StepOutcome":
        return cls(step=step, ok=False, detail=str(error) or type(error).__name__, error=error)
