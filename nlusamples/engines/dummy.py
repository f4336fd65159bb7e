"""Offline recognition engine for tests and local development."""

from typing import Any, Sequence

from nlusamples.engines.interfaces import RecognitionEngineInterface
from nlusamples.entity import EntityWithValues
from nlusamples.sample import AnnotatedSample


class DummyRecognitionEngine(RecognitionEngineInterface):
    """Engine that learns nothing.

    ``train`` and ``evaluate`` report how many samples and entities they
    were given; ``parse`` always predicts no intent and no entities.
    """

    name = "dummy"

    async def parse(self, text: str) -> dict[str, Any]:
        return {"text": text, "intent": None, "entities": []}

    async def train(
        self,
        samples: Sequence[AnnotatedSample],
        entities: Sequence[EntityWithValues],
    ) -> dict[str, Any]:
        return {"engine": self.name, "samples": len(samples), "entities": len(entities)}

    async def evaluate(
        self,
        samples: Sequence[AnnotatedSample],
        entities: Sequence[EntityWithValues],
    ) -> dict[str, Any]:
        return {"engine": self.name, "samples": len(samples), "entities": len(entities), "accuracy": None}
