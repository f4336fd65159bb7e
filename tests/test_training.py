"""Tests for the training orchestrator and the built-in engines.

This module verifies:
- train() sends only train samples plus the whole catalog to the engine
- evaluate() sends only test samples
- Engine errors propagate unchanged and nothing is marked trained
- mark_trained is an explicit step, or flags exactly the samples sent to the engine
- get_engine selects the configured variant
"""

from typing import Any, Sequence

import pytest

from nlusamples.annotation import AnnotationStore
from nlusamples.catalog import EntityCatalog
from nlusamples.config import EngineSettings
from nlusamples.engines import DummyRecognitionEngine, HttpRecognitionEngine, get_engine
from nlusamples.entity import EntityWithValues
from nlusamples.errors import EngineError, ValidationError
from nlusamples.sample import AnnotatedSample, AnnotationRef, SampleType
from nlusamples.training import TrainingOrchestrator

from tests.conftest import MockRecognitionEngine, failing_engine


class SampleAddingEngine(MockRecognitionEngine):
    """Stores a new train sample while training is in progress."""

    def __init__(self, annotations: AnnotationStore) -> None:
        super().__init__()
        self.annotations = annotations

    async def train(
        self,
        samples: Sequence[AnnotatedSample],
        entities: Sequence[EntityWithValues],
    ) -> dict[str, Any]:
        result = await super().train(samples, entities)
        await self.annotations.create_sample("added meanwhile")
        return result


@pytest.fixture
async def populated(annotations: AnnotationStore) -> AnnotationStore:
    await annotations.create_sample("hello", annotations=[AnnotationRef(entity="intent", value="greet")])
    await annotations.create_sample("bye", annotations=[AnnotationRef(entity="intent", value="leave")])
    await annotations.create_sample("hi there", sample_type=SampleType.TEST)
    return annotations


class TestTrainingOrchestrator:
    """Orchestration against a mock engine."""

    async def test_train_uses_train_samples_and_full_catalog(
        self, populated: AnnotationStore, seeded_catalog: EntityCatalog, engine: MockRecognitionEngine
    ) -> None:
        orchestrator = TrainingOrchestrator(populated, seeded_catalog, engine)

        result = await orchestrator.train()

        assert result == {"status": "trained", "samples": 2}
        assert engine.calls == [("train", ["hello", "bye"], ["intent", "city"])]

    async def test_train_does_not_mark_samples(
        self, populated: AnnotationStore, seeded_catalog: EntityCatalog, engine: MockRecognitionEngine
    ) -> None:
        await TrainingOrchestrator(populated, seeded_catalog, engine).train()

        assert not any(s.sample.trained for s in await populated.find_all())

    async def test_evaluate_uses_test_samples(
        self, populated: AnnotationStore, seeded_catalog: EntityCatalog, engine: MockRecognitionEngine
    ) -> None:
        result = await TrainingOrchestrator(populated, seeded_catalog, engine).evaluate()

        assert result["samples"] == 1
        assert engine.calls[0][:2] == ("evaluate", ["hi there"])

    async def test_parse_has_no_side_effects(
        self, populated: AnnotationStore, seeded_catalog: EntityCatalog, engine: MockRecognitionEngine
    ) -> None:
        result = await TrainingOrchestrator(populated, seeded_catalog, engine).parse("hello")

        assert result["intent"]["name"] == "greet"
        assert await populated.count() == 3

    async def test_engine_error_propagates(self, populated: AnnotationStore, seeded_catalog: EntityCatalog) -> None:
        """The engine's own error reaches the caller and no sample becomes trained."""
        engine = failing_engine("model server down")
        orchestrator = TrainingOrchestrator(populated, seeded_catalog, engine)

        with pytest.raises(EngineError, match="model server down") as exc_info:
            await orchestrator.train()

        assert exc_info.value is engine.fail_with
        assert not any(s.sample.trained for s in await populated.find_all())

    async def test_mark_trained(
        self, populated: AnnotationStore, seeded_catalog: EntityCatalog, engine: MockRecognitionEngine
    ) -> None:
        orchestrator = TrainingOrchestrator(populated, seeded_catalog, engine)
        train = await populated.find_by_purpose(SampleType.TRAIN)

        assert await orchestrator.mark_trained([s.sample.sample_id for s in train] + ["missing"]) == 2
        assert [s.sample.trained for s in await populated.find_all()] == [True, True, False]

    async def test_train_marks_only_the_samples_it_sent(
        self, populated: AnnotationStore, seeded_catalog: EntityCatalog
    ) -> None:
        """A sample added while the engine trains is not flagged as trained."""
        engine = SampleAddingEngine(populated)
        orchestrator = TrainingOrchestrator(populated, seeded_catalog, engine)

        await orchestrator.train(mark_trained=True)

        flags = {s.text: s.sample.trained for s in await populated.find_by_purpose(SampleType.TRAIN)}
        assert flags == {"hello": True, "bye": True, "added meanwhile": False}
        assert engine.calls == [("train", ["hello", "bye"], ["intent", "city"])]

    async def test_failed_train_marks_nothing(self, populated: AnnotationStore, seeded_catalog: EntityCatalog) -> None:
        with pytest.raises(EngineError):
            await TrainingOrchestrator(populated, seeded_catalog, failing_engine()).train(mark_trained=True)

        assert not any(s.sample.trained for s in await populated.find_all())


class TestEngines:
    """Built-in engines and selection by configuration."""

    async def test_dummy_engine(self, populated: AnnotationStore, seeded_catalog: EntityCatalog) -> None:
        engine = DummyRecognitionEngine()
        samples = await populated.find_by_purpose(SampleType.TRAIN)
        entities = await seeded_catalog.list_all_with_values()

        assert await engine.train(samples, entities) == {"engine": "dummy", "samples": 2, "entities": 2}
        assert (await engine.parse("hello"))["intent"] is None

    def test_get_engine_selects_backend(self) -> None:
        assert isinstance(get_engine(EngineSettings()), DummyRecognitionEngine)

        engine = get_engine(EngineSettings(backend="HTTP", url="http://nlu:5000/", project="bot"))

        assert isinstance(engine, HttpRecognitionEngine)
        assert engine.url == "http://nlu:5000"
        assert engine.project == "bot"

    def test_get_engine_unknown_backend(self) -> None:
        with pytest.raises(ValidationError):
            get_engine(EngineSettings(backend="telepathy"))
