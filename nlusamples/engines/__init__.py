"""Recognition engines: the contract and the available variants."""

import httpx

from nlusamples.config import EngineSettings
from nlusamples.engines.dummy import DummyRecognitionEngine
from nlusamples.engines.http import HttpRecognitionEngine
from nlusamples.engines.interfaces import RecognitionEngineInterface
from nlusamples.errors import ValidationError

ENGINE_BACKENDS = ("dummy", "http")


def get_engine(
    settings: EngineSettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> RecognitionEngineInterface:
    """Return the recognition engine for the configured backend.

    backend: "dummy" | "http"
    transport: For backend "http", an httpx transport to send requests through.
    """
    backend = settings.backend.lower()
    if backend == "dummy":
        return DummyRecognitionEngine()
    if backend == "http":
        return HttpRecognitionEngine(
            url=settings.url,
            timeout=settings.timeout,
            project=settings.project,
            transport=transport,
        )
    raise ValidationError(f"Unknown engine backend: {settings.backend}. Use {' or '.join(ENGINE_BACKENDS)}.")


__all__ = [
    "RecognitionEngineInterface",
    "DummyRecognitionEngine",
    "HttpRecognitionEngine",
    "ENGINE_BACKENDS",
    "get_engine",
]
