"""
NLU sample management - labeled training data for intent/entity recognition.

Keeps text samples, the entity catalog and per-sample annotations
consistent; imports samples from CSV, exports them for NLU trainers, and
drives training/evaluation of a pluggable recognition engine.

This module uses lazy imports so the domain models can be used without
pulling in the storage and engine stacks (sqlmodel, httpx). For example:

    # This does NOT import httpx:
    from nlusamples import Sample, AnnotationRef

    # This DOES (when the symbol is accessed):
    from nlusamples import SampleService
"""

from typing import TYPE_CHECKING

from nlusamples.entity import Entity, EntityValue, EntityWithValues
from nlusamples.errors import (
    ConflictError,
    EngineError,
    ImportParseError,
    NluSampleError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from nlusamples.sample import AnnotatedSample, AnnotationRef, Sample, SampleEntity, SampleType

if TYPE_CHECKING:
    from nlusamples.ingest import ImportSummary
    from nlusamples.service import SampleService

__all__ = [
    "Entity",
    "EntityValue",
    "EntityWithValues",
    "Sample",
    "SampleEntity",
    "SampleType",
    "AnnotationRef",
    "AnnotatedSample",
    "NluSampleError",
    "ValidationError",
    "ImportParseError",
    "NotFoundError",
    "ConflictError",
    "EngineError",
    "StorageError",
    "ImportSummary",
    "SampleService",
]

__version__ = "0.1.0"


def __getattr__(name: str):
    """Lazy import for the service layer and its dependencies."""
    if name == "SampleService":
        from nlusamples.service import SampleService

        return SampleService
    if name == "ImportSummary":
        from nlusamples.ingest import ImportSummary

        return ImportSummary
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
