"""Test fixtures and a mock recognition engine.

This module provides:
- A MockRecognitionEngine that records what it was asked to do and can be
  told to fail, for training orchestration tests
- Pytest fixtures that instantiate in-memory storages, the entity catalog,
  the annotation store and the ingestion pipeline
- A seeded catalog fixture with the ``intent`` trait and a ``city`` entity,
  the two entities most import tests need
"""

from typing import Any, Sequence

import pytest

from nlusamples.annotation import AnnotationStore
from nlusamples.catalog import EntityCatalog
from nlusamples.engines.interfaces import RecognitionEngineInterface
from nlusamples.entity import INTENT_ENTITY, KEYWORDS_LOOKUP, TRAIT_LOOKUP, EntityWithValues
from nlusamples.errors import EngineError
from nlusamples.ingest import IngestionPipeline
from nlusamples.sample import AnnotatedSample
from nlusamples.storage.memory import InMemoryEntityStorage, InMemorySampleStorage


class MockRecognitionEngine(RecognitionEngineInterface):
    """Recognition engine double that records its inputs.

    Each call appends ``(operation, texts, entity_names)`` to ``calls``.
    Setting ``fail_with`` makes every call raise that error instead.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, list[str], list[str]]] = []
        self.fail_with: Exception | None = None

    def _record(self, operation: str, texts: list[str], entity_names: list[str]) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.calls.append((operation, texts, entity_names))

    async def parse(self, text: str) -> dict[str, Any]:
        self._record("parse", [text], [])
        return {"text": text, "intent": {"name": "greet", "confidence": 0.9}, "entities": []}

    async def train(
        self,
        samples: Sequence[AnnotatedSample],
        entities: Sequence[EntityWithValues],
    ) -> dict[str, Any]:
        self._record("train", [s.text for s in samples], [e.name for e in entities])
        return {"status": "trained", "samples": len(samples)}

    async def evaluate(
        self,
        samples: Sequence[AnnotatedSample],
        entities: Sequence[EntityWithValues],
    ) -> dict[str, Any]:
        self._record("evaluate", [s.text for s in samples], [e.name for e in entities])
        return {"accuracy": 1.0, "samples": len(samples)}


def failing_engine(message: str = "engine unavailable") -> MockRecognitionEngine:
    engine = MockRecognitionEngine()
    engine.fail_with = EngineError(message)
    return engine


@pytest.fixture
def entity_storage() -> InMemoryEntityStorage:
    """Provide a fresh in-memory entity storage instance.

    Each test receives an empty storage, ensuring test isolation.
    """
    return InMemoryEntityStorage()


@pytest.fixture
def sample_storage() -> InMemorySampleStorage:
    """Provide a fresh in-memory sample storage instance."""
    return InMemorySampleStorage()


@pytest.fixture
def catalog(entity_storage: InMemoryEntityStorage) -> EntityCatalog:
    return EntityCatalog(entity_storage)


@pytest.fixture
async def seeded_catalog(catalog: EntityCatalog) -> EntityCatalog:
    """Catalog holding the ``intent`` trait entity and a positional ``city`` entity."""
    await catalog.create_entity(INTENT_ENTITY, lookups=(TRAIT_LOOKUP,))
    await catalog.create_entity("city", lookups=(KEYWORDS_LOOKUP,))
    return catalog


@pytest.fixture
def annotations(sample_storage: InMemorySampleStorage, seeded_catalog: EntityCatalog) -> AnnotationStore:
    return AnnotationStore(sample_storage, seeded_catalog)


@pytest.fixture
def pipeline(seeded_catalog: EntityCatalog, annotations: AnnotationStore) -> IngestionPipeline:
    return IngestionPipeline(catalog=seeded_catalog, annotations=annotations)


@pytest.fixture
def engine() -> MockRecognitionEngine:
    return MockRecognitionEngine()
