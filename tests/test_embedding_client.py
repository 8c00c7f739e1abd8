"""Tests for the remote embedding client."""

from __future__ import annotations

import asyncio
import json

import httpx
import numpy as np
import pytest

from ottotext.embedding.encoder import EmbeddingClient, EmbeddingConfig, EmbeddingError


def _client(handler, api_key: str = "test-key", slept: list | None = None) -> EmbeddingClient:
    async def fake_sleep(seconds: float) -> None:
        if slept is not None:
            slept.append(seconds)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return EmbeddingClient(EmbeddingConfig(api_key=api_key), client=http, sleep=fake_sleep)


def _sequence(*responses):
    """Handler serving `responses` in order, raising any exception instances."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        response = responses[len(calls) - 1]
        if isinstance(response, Exception):
            raise response
        return response

    return handler, calls


class TestEmbeddingConfig:
    def test_model_path(self) -> None:
        assert EmbeddingConfig(model_name="text-embedding-004").model_path == "models/text-embedding-004"
        assert EmbeddingConfig(model_name="models/custom").model_path == "models/custom"


class TestEmbed:
    """Test batch embedding."""

    def test_batch_request_shape(self) -> None:
        """Should send one batchEmbedContents request with every text."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            body = json.loads(request.content)
            return httpx.Response(
                200,
                json={"embeddings": [{"values": [float(i), 1.0]} for i, _ in enumerate(body["requests"])]},
            )

        vectors = asyncio.run(_client(handler).embed(["a", "b", "c"]))

        assert len(seen) == 1
        assert seen[0].url.path.endswith("/models/text-embedding-004:batchEmbedContents")
        assert seen[0].url.params["key"] == "test-key"
        body = json.loads(seen[0].content)
        assert [item["content"]["parts"][0]["text"] for item in body["requests"]] == ["a", "b", "c"]
        assert all(item["model"] == "models/text-embedding-004" for item in body["requests"])
        assert [vector.tolist() for vector in vectors] == [[0.0, 1.0], [1.0, 1.0], [2.0, 1.0]]
        assert vectors[0].dtype == np.float32

    def test_missing_vectors_are_none(self) -> None:
        """Inputs without values should come back as None in their position."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"embeddings": [{"values": [1.0]}, {"values": []}, {}]}
            )

        vectors = asyncio.run(_client(handler).embed(["a", "b", "c"]))

        assert vectors[0].tolist() == [1.0]
        assert vectors[1] is None
        assert vectors[2] is None

    def test_short_response_pads_with_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"embeddings": [{"values": [1.0]}]})

        vectors = asyncio.run(_client(handler).embed(["a", "b"]))

        assert vectors[1] is None

    def test_empty_input_makes_no_request(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
            raise AssertionError("no request expected")

        assert asyncio.run(_client(handler).embed([])) == []

    def test_http_error(self) -> None:
        """Server errors are retried until the budget is spent."""
        handler, calls = _sequence(*[httpx.Response(500, text="boom")] * 3)
        slept: list = []

        with pytest.raises(EmbeddingError):
            asyncio.run(_client(handler, slept=slept).embed(["a"]))

        assert len(calls) == 3
        assert slept == [1.0, 2.0]

    def test_client_error_is_not_retried(self) -> None:
        handler, calls = _sequence(httpx.Response(400, text="bad request"))

        with pytest.raises(EmbeddingError, match="400"):
            asyncio.run(_client(handler).embed(["a"]))

        assert len(calls) == 1

    def test_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("offline", request=request)

        with pytest.raises(EmbeddingError):
            asyncio.run(_client(handler).embed(["a"]))

    def test_rate_limit_then_success(self) -> None:
        handler, calls = _sequence(
            httpx.Response(429, headers={"Retry-After": "3"}),
            httpx.Response(200, json={"embeddings": [{"values": [1.0, 0.0]}]}),
        )
        slept: list = []

        vectors = asyncio.run(_client(handler, slept=slept).embed(["a"]))

        assert vectors[0].tolist() == [1.0, 0.0]
        assert len(calls) == 2
        assert slept == [3.0]

    def test_transport_error_then_success(self) -> None:
        request = httpx.Request("POST", "https://example.invalid")
        handler, calls = _sequence(
            httpx.ReadTimeout("slow", request=request),
            httpx.Response(503),
            httpx.Response(200, json={"embeddings": [{"values": [1.0]}]}),
        )
        slept: list = []

        vectors = asyncio.run(_client(handler, slept=slept).embed(["a"]))

        assert vectors[0].tolist() == [1.0]
        assert slept == [1.0, 2.0]

    def test_custom_attempt_budget(self) -> None:
        handler, calls = _sequence(httpx.Response(429), httpx.Response(429))
        http = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        async def no_sleep(seconds: float) -> None:
            return None

        client = EmbeddingClient(
            EmbeddingConfig(api_key="k", max_attempts=1), client=http, sleep=no_sleep
        )

        with pytest.raises(EmbeddingError, match="429"):
            asyncio.run(client.embed(["a"]))
        assert len(calls) == 1

    def test_malformed_body(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>")

        with pytest.raises(EmbeddingError):
            asyncio.run(_client(handler).embed(["a"]))

    def test_missing_embeddings_key(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"error": "nope"})

        with pytest.raises(EmbeddingError):
            asyncio.run(_client(handler).embed(["a"]))

    def test_missing_api_key(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
            raise AssertionError("no request expected")

        with pytest.raises(EmbeddingError, match="GEMINI_API_KEY"):
            asyncio.run(_client(handler, api_key="").embed(["a"]))


class TestEmbedQuery:
    """Test single query embedding."""

    def test_embed_query(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path.endswith(":embedContent")
            body = json.loads(request.content)
            assert body["content"]["parts"][0]["text"] == "merhaba"
            return httpx.Response(200, json={"embedding": {"values": [0.5, 0.5]}})

        vector = asyncio.run(_client(handler).embed_query("merhaba"))

        assert vector.tolist() == [0.5, 0.5]

    def test_embed_query_retries_rate_limit(self) -> None:
        handler, calls = _sequence(
            httpx.Response(429),
            httpx.Response(200, json={"embedding": {"values": [0.5, 0.5]}}),
        )
        slept: list = []

        vector = asyncio.run(_client(handler, slept=slept).embed_query("merhaba"))

        assert vector.tolist() == [0.5, 0.5]
        assert slept == [1.0]

    def test_embed_query_without_vector(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"embedding": {}})

        with pytest.raises(EmbeddingError):
            asyncio.run(_client(handler).embed_query("merhaba"))
