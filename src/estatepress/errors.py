"""Exception hierarchy shared by every pipeline component."""

from __future__ import annotations


class EstatePressError(Exception):
    """Base class for all estatepress errors."""


class ValidationError(EstatePressError):
    """Input rejected before any external call was made."""


class InvalidTransitionError(ValidationError):
    """A topic status change that the lifecycle does not allow."""

    def __init__(self, current: str, requested: str) -> None:
        super().__init__(f"cannot move topic from '{current}' to '{requested}'")
        self.current = current
        self.requested = requested


class DuplicateRecordError(EstatePressError):
    """The store refused an insert because a unique key already exists."""

    def __init__(self, table: str, slug: str | None = None) -> None:
        detail = f" (slug={slug!r})" if slug else ""
        super().__init__(f"duplicate {table} record{detail}")
        self.table = table
        self.slug = slug


class TopicSourceError(EstatePressError):
    """One topic source failed to produce candidates."""


class GenerationError(EstatePressError):
    """Text generation failed or returned an unusable payload.

    ``kind`` is one of ``api_error``, ``empty_response`` or ``invalid_response``.
    """

    def __init__(self, message: str, kind: str = "api_error") -> None:
        super().__init__(message)
        self.kind = kind


class PipelineError(EstatePressError):
    """A pipeline stage failed; carries the stage name and the cause."""

    def __init__(self, stage: str, cause: str) -> None:
        super().__init__(f"{stage}: {cause}")
        self.stage = stage
        self.cause = cause
