"""Train and evaluate the recognition engine on stored samples.

The orchestrator takes a snapshot of the relevant samples plus the full
entity catalog and hands them to the engine. It never holds a lock while the
engine runs, never retries, and lets :class:`~nlusamples.errors.EngineError`
propagate as raised. Marking samples as trained is a separate, explicit step
(:meth:`TrainingOrchestrator.mark_trained`) so a caller only does it once
training actually succeeded.
"""

from typing import Any, Sequence

from nlusamples.annotation import AnnotationStore
from nlusamples.catalog import EntityCatalog
from nlusamples.engines.interfaces import RecognitionEngineInterface
from nlusamples.logging import setup_logging
from nlusamples.sample import SampleType

logger = setup_logging(name=__name__)


class TrainingOrchestrator:
    """Coordinates train/evaluate/parse calls against a recognition engine.

    Args:
        annotations: Source of annotated samples.
        catalog: Source of the entity catalog sent along with the samples.
        engine: The recognition engine to drive.
    """

    def __init__(
        self,
        annotations: AnnotationStore,
        catalog: EntityCatalog,
        engine: RecognitionEngineInterface,
    ) -> None:
        self.annotations = annotations
        self.catalog = catalog
        self.engine = engine

    async def train(self, mark_trained: bool = False) -> dict[str, Any]:
        """Train the engine on every ``train`` sample.

        Args:
            mark_trained: After the engine succeeds, flag exactly the samples
                it was given. Samples added while training ran are left alone.
                Without it, call :meth:`mark_trained` once the result is accepted.
        """
        samples = await self.annotations.find_by_purpose(SampleType.TRAIN)
        entities = await self.catalog.list_all_with_values()
        logger.info(f"Training on {len(samples)} samples with {len(entities)} entities")
        result = await self.engine.train(samples, entities)
        if mark_trained:
            await self.mark_trained([s.sample.sample_id for s in samples])
        return result

    async def evaluate(self) -> dict[str, Any]:
        """Evaluate the engine on every ``test`` sample."""
        samples = await self.annotations.find_by_purpose(SampleType.TEST)
        entities = await self.catalog.list_all_with_values()
        logger.info(f"Evaluating on {len(samples)} samples with {len(entities)} entities")
        return await self.engine.evaluate(samples, entities)

    async def parse(self, text: str) -> dict[str, Any]:
        return await self.engine.parse(text)

    async def mark_trained(self, sample_ids: Sequence[str]) -> int:
        flagged = await self.annotations.mark_trained(sample_ids)
        logger.info(f"Marked {flagged} samples as trained")
        return flagged
