"""Storage interfaces and implementations for samples and the entity catalog."""

from nlusamples.storage.interfaces import (
    EntityStorageInterface,
    SampleStorageInterface,
)
from nlusamples.storage.memory import (
    InMemoryEntityStorage,
    InMemorySampleStorage,
)

__all__ = [
    "EntityStorageInterface",
    "SampleStorageInterface",
    "InMemoryEntityStorage",
    "InMemorySampleStorage",
]
