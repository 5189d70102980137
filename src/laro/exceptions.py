"""Engine error types surfaced to the transport layer."""

from __future__ import annotations


class LaroError(Exception):
    """Base class for engine errors."""


class NotFoundError(LaroError, LookupError):
    """A referenced row does not exist or is not owned by the caller."""


class AttemptNotFoundError(NotFoundError):
    """Attempt missing or owned by another user."""


class QuestionNotFoundError(NotFoundError):
    """Question missing or not part of the attempt's exercise."""


class ExerciseNotFoundError(NotFoundError):
    """Exercise missing from the catalog."""


class AttemptClosedError(LaroError, ValueError):
    """The attempt was already finished and is immutable."""
