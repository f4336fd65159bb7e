"""Recognition engine contract.

The core depends on exactly three operations of an intent/entity recognition
engine: parse one utterance, train on a sample set, evaluate on a sample set.
Any engine implementing :class:`RecognitionEngineInterface` is swappable;
which one runs is chosen by configuration (see :func:`nlusamples.engines.get_engine`).

Engines report their results as plain dictionaries. The core does not
interpret them, it hands them back to the caller as-is. Engine failures
are raised as :class:`~nlusamples.errors.EngineError`.
"""

from abc import ABC, abstractmethod
from typing import Any, Sequence

from nlusamples.entity import EntityWithValues
from nlusamples.sample import AnnotatedSample


class RecognitionEngineInterface(ABC):
    """Train, evaluate and query an intent/entity recognition engine.

    Implementations might wrap:
        - a remote NLU server reached over HTTP
        - an in-process model (spaCy, transformers)
        - a rule-based matcher
    """

    @abstractmethod
    async def parse(self, text: str) -> dict[str, Any]:
        """Predict the intent and entities of a single utterance.

        Args:
            text: The utterance to analyze.

        Returns:
            The engine's prediction, typically with ``intent`` and
            ``entities`` keys.
        """

    @abstractmethod
    async def train(
        self,
        samples: Sequence[AnnotatedSample],
        entities: Sequence[EntityWithValues],
    ) -> dict[str, Any]:
        """Train on annotated samples against the full entity catalog.

        Returns:
            Whatever result or metrics the engine reports.
        """

    @abstractmethod
    async def evaluate(
        self,
        samples: Sequence[AnnotatedSample],
        entities: Sequence[EntityWithValues],
    ) -> dict[str, Any]:
        """Evaluate the trained engine on annotated samples.

        Returns:
            Evaluation metrics as reported by the engine.
        """
