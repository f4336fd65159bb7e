"""Recognition engine backed by a remote NLU server.

Talks to a Rasa-NLU style HTTP API:

- ``POST {url}/train`` and ``POST {url}/evaluate`` with the Rasa NLU
  training-data document built by :func:`nlusamples.export.to_rasa_nlu`;
- ``POST {url}/parse`` with ``{"q": text}``.

When a project is configured it is sent as the ``project`` query parameter
(and as a field of the parse body). Responses must be JSON objects.
"""

from typing import Any, Sequence

import httpx

from nlusamples.engines.interfaces import RecognitionEngineInterface
from nlusamples.entity import EntityWithValues
from nlusamples.errors import EngineError
from nlusamples.export import to_rasa_nlu
from nlusamples.logging import setup_logging
from nlusamples.sample import AnnotatedSample

logger = setup_logging(name=__name__)


class HttpRecognitionEngine(RecognitionEngineInterface):
    """Remote engine reached over HTTP with ``httpx``.

    Args:
        url: Base URL of the NLU server, e.g. ``http://localhost:5000``.
        timeout: Request timeout in seconds. Training can be slow.
        project: Optional project/model name on the server.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
    """

    name = "http"

    def __init__(
        self,
        url: str = "http://localhost:5000",
        timeout: float = 300.0,
        project: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.project = project
        self.transport = transport

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.url}{path}"
        params = {"project": self.project} if self.project else None
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, json=payload, params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise EngineError(
                f"Engine returned HTTP {e.response.status_code}: {e.response.text[:500]}",
                record=url,
            ) from e
        except httpx.HTTPError as e:
            raise EngineError(f"Engine request failed: {e}", record=url) from e
        except ValueError as e:
            raise EngineError("Engine returned invalid JSON", record=url) from e

        if not isinstance(data, dict):
            raise EngineError(f"Unexpected response format: {data!r}", record=url)
        return data

    async def parse(self, text: str) -> dict[str, Any]:
        payload: dict[str, Any] = {"q": text}
        if self.project:
            payload["project"] = self.project
        return await self._post("/parse", payload)

    async def train(
        self,
        samples: Sequence[AnnotatedSample],
        entities: Sequence[EntityWithValues],
    ) -> dict[str, Any]:
        logger.info(f"Sending {len(samples)} samples to {self.url}/train")
        return await self._post("/train", to_rasa_nlu(samples, entities))

    async def evaluate(
        self,
        samples: Sequence[AnnotatedSample],
        entities: Sequence[EntityWithValues],
    ) -> dict[str, Any]:
        logger.info(f"Sending {len(samples)} samples to {self.url}/evaluate")
        return await self._post("/evaluate", to_rasa_nlu(samples, entities))
