"""Tests for the HTTP recognition engine, using httpx.MockTransport.

This module verifies:
- train/evaluate post the Rasa NLU payload to the right endpoints
- parse posts ``{"q": text}`` and returns the server's JSON
- Transport failures, error statuses and non-JSON bodies raise EngineError
"""

import json

import httpx
import pytest

from nlusamples.annotation import AnnotationStore
from nlusamples.catalog import EntityCatalog
from nlusamples.engines.http import HttpRecognitionEngine
from nlusamples.errors import EngineError
from nlusamples.sample import AnnotationRef, SampleType


def recording_transport(requests: list[httpx.Request], response: httpx.Response) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return response

    return httpx.MockTransport(handler)


class TestRequests:
    """What the engine sends."""

    async def test_train_posts_rasa_payload(self, annotations: AnnotationStore, seeded_catalog: EntityCatalog) -> None:
        await annotations.create_sample("hello", annotations=[AnnotationRef(entity="intent", value="greet")])
        requests: list[httpx.Request] = []
        engine = HttpRecognitionEngine(
            url="http://nlu.test/",
            project="bot",
            transport=recording_transport(requests, httpx.Response(200, json={"info": "new model trained"})),
        )

        result = await engine.train(
            await annotations.find_by_purpose(SampleType.TRAIN),
            await seeded_catalog.list_all_with_values(),
        )

        assert result == {"info": "new model trained"}
        [request] = requests
        assert request.method == "POST"
        assert request.url.path == "/train"
        assert request.url.params["project"] == "bot"
        body = json.loads(request.content)
        assert body["rasa_nlu_data"]["common_examples"] == [{"text": "hello", "intent": "greet", "entities": []}]

    async def test_evaluate_endpoint(self) -> None:
        requests: list[httpx.Request] = []
        engine = HttpRecognitionEngine(
            url="http://nlu.test",
            transport=recording_transport(requests, httpx.Response(200, json={"intent_evaluation": {}})),
        )

        await engine.evaluate([], [])

        assert requests[0].url.path == "/evaluate"
        assert "project" not in requests[0].url.params

    async def test_parse_posts_query(self) -> None:
        requests: list[httpx.Request] = []
        prediction = {"intent": {"name": "greet", "confidence": 0.97}, "entities": []}
        engine = HttpRecognitionEngine(
            url="http://nlu.test",
            transport=recording_transport(requests, httpx.Response(200, json=prediction)),
        )

        assert await engine.parse("hello") == prediction
        assert json.loads(requests[0].content) == {"q": "hello"}


class TestFailures:
    """Everything that goes wrong surfaces as EngineError."""

    async def test_error_status(self) -> None:
        engine = HttpRecognitionEngine(
            url="http://nlu.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")),
        )

        with pytest.raises(EngineError, match="HTTP 500"):
            await engine.parse("hello")

    async def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        engine = HttpRecognitionEngine(url="http://nlu.test", transport=httpx.MockTransport(handler))

        with pytest.raises(EngineError) as exc_info:
            await engine.train([], [])

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    async def test_invalid_json(self) -> None:
        engine = HttpRecognitionEngine(
            url="http://nlu.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="not json")),
        )

        with pytest.raises(EngineError, match="invalid JSON"):
            await engine.parse("hello")

    async def test_non_object_response(self) -> None:
        engine = HttpRecognitionEngine(
            url="http://nlu.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[1, 2])),
        )

        with pytest.raises(EngineError, match="Unexpected response format"):
            await engine.parse("hello")
