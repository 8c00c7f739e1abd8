"""Remote embedding service client."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence

import httpx
import numpy as np

from ottotext.config import DEFAULT_BASE_URL, DEFAULT_EMBEDDING_MODEL
from ottotext.utils.retry import DEFAULT_MAX_DELAY, backoff_delay, parse_retry_after

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class EmbeddingError(RuntimeError):
    """Raised when the embedding service cannot produce vectors for a request."""


@dataclass(slots=True)
class EmbeddingConfig:
    api_key: str = ""
    model_name: str = DEFAULT_EMBEDDING_MODEL
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 60.0
    max_attempts: int = 3
    max_retry_delay: float = DEFAULT_MAX_DELAY

    @property
    def model_path(self) -> str:
        if self.model_name.startswith("models/"):
            return self.model_name
        return f"models/{self.model_name}"


def _to_vector(payload: object) -> Optional[np.ndarray]:
    """Return a float32 vector from an ``{"values": [...]}`` object, or None if empty."""
    if not isinstance(payload, dict):
        return None
    values = payload.get("values")
    if not values:
        return None
    try:
        return np.asarray(values, dtype="float32")
    except (TypeError, ValueError):
        return None


def _is_retryable(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class EmbeddingClient:
    """Async wrapper around the ``embedContent`` / ``batchEmbedContents`` endpoints.

    Rate limits, server errors and transport failures are retried with the
    same backoff as generation. A single `httpx.AsyncClient` may be shared
    through `client`; tests inject one built on `httpx.MockTransport`.
    """

    def __init__(
        self,
        config: EmbeddingConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config or EmbeddingConfig()
        self._client = client
        self._sleep = sleep

    def _url(self, method: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{self.config.model_path}:{method}"

    def _content(self, text: str) -> dict:
        return {"parts": [{"text": text}]}

    async def _send(self, method: str, payload: dict) -> httpx.Response:
        params = {"key": self.config.api_key}
        if self._client is not None:
            return await self._client.post(
                self._url(method), params=params, json=payload, timeout=self.config.timeout
            )
        async with httpx.AsyncClient(timeout=self.config.timeout) as client:
            return await client.post(self._url(method), params=params, json=payload)

    async def _post(self, method: str, payload: dict) -> dict:
        if not self.config.api_key:
            raise EmbeddingError("GEMINI_API_KEY is not configured")

        max_attempts = max(1, self.config.max_attempts)
        for attempt in range(max_attempts):
            retry_after = None
            try:
                response = await self._send(method, payload)
            except httpx.TransportError as exc:
                LOGGER.warning("Embedding %s transport error: %r", method, exc)
                failure = str(exc)
            except httpx.HTTPError as exc:
                LOGGER.error("Embedding %s request error: %s", method, exc)
                raise EmbeddingError(str(exc)) from exc
            else:
                if not _is_retryable(response.status_code):
                    return self._parse(method, response)
                LOGGER.warning(
                    "Embedding %s returned %s: %s", method, response.status_code, response.text
                )
                failure = f"embedding service returned {response.status_code}"
                if response.status_code == 429:
                    retry_after = parse_retry_after(response.headers.get("Retry-After"))

            if attempt + 1 >= max_attempts:
                break
            delay = backoff_delay(attempt, retry_after, self.config.max_retry_delay)
            LOGGER.info(
                "Embedding attempt %d/%d failed; retrying in %.1fs", attempt + 1, max_attempts, delay
            )
            await self._sleep(delay)

        LOGGER.error("Embedding %s gave up after %d attempts", method, max_attempts)
        raise EmbeddingError(failure)

    def _parse(self, method: str, response: httpx.Response) -> dict:
        try:
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as exc:
            LOGGER.error(
                "Embedding %s failed with %s: %s",
                method,
                exc.response.status_code,
                exc.response.text,
            )
            raise EmbeddingError(f"embedding service returned {exc.response.status_code}") from exc
        except ValueError as exc:
            raise EmbeddingError("embedding response is not valid JSON") from exc
        if not isinstance(body, dict):
            raise EmbeddingError("embedding response is not a JSON object")
        return body

    async def embed(self, texts: Sequence[str]) -> List[Optional[np.ndarray]]:
        """Embed one batch of texts; entries without a vector come back as None."""
        texts = list(texts)
        if not texts:
            return []

        payload = {
            "requests": [
                {"model": self.config.model_path, "content": self._content(text)}
                for text in texts
            ]
        }
        body = await self._post("batchEmbedContents", payload)
        embeddings = body.get("embeddings")
        if not isinstance(embeddings, list):
            raise EmbeddingError("batch embedding response has no 'embeddings' list")
        if len(embeddings) != len(texts):
            LOGGER.warning(
                "Embedding service returned %d vectors for %d inputs", len(embeddings), len(texts)
            )

        vectors: List[Optional[np.ndarray]] = [None] * len(texts)
        for index, item in enumerate(embeddings[: len(texts)]):
            vectors[index] = _to_vector(item)
        return vectors

    async def embed_query(self, text: str) -> np.ndarray:
        """Embed a single query string."""
        payload = {"model": self.config.model_path, "content": self._content(text)}
        body = await self._post("embedContent", payload)
        vector = _to_vector(body.get("embedding"))
        if vector is None:
            raise EmbeddingError("embedding response has no vector")
        return vector
