"""Error taxonomy for sample, entity and engine operations.

Every error carries an optional ``record`` naming the addressable record the
failure is about (a sample ID, an entity name, a CSV line), so callers can
report which record failed and why.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from nlusamples.csv_import import ParseIssue


class NluSampleError(Exception):
    """Base class for all errors raised by nlusamples."""

    kind = "error"

    def __init__(self, message: str, record: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.record = record

    def __str__(self) -> str:
        if self.record:
            return f"{self.message} ({self.record})"
        return self.message


class ValidationError(NluSampleError):
    """Malformed input: empty text, unknown entity, bad offsets, bad CSV row."""

    kind = "validation"


class ImportParseError(ValidationError):
    """The delimited input as a whole could not be parsed; nothing was imported."""

    kind = "parse"

    def __init__(self, message: str, issues: Sequence["ParseIssue"] = ()) -> None:
        super().__init__(message)
        self.issues = tuple(issues)


class NotFoundError(NluSampleError):
    """A referenced sample, entity, value or annotation link does not exist."""

    kind = "not_found"


class ConflictError(NluSampleError):
    """Explicit creation of a record whose natural key is already taken."""

    kind = "conflict"


class EngineError(NluSampleError):
    """The recognition engine failed; raised by engine adapters."""

    kind = "engine"


class StorageError(NluSampleError):
    """The persistence backend failed."""

    kind = "storage"
