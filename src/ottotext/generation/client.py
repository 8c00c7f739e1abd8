"""Retrying client for the remote ``generateContent`` endpoint.

Every call runs a small state machine: each request ends in one of the
`AttemptState` values, rate-limit and transient outcomes share one retry budget,
and the delay between attempts comes from `backoff_delay` alone.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, List, NamedTuple, Optional

import httpx

from ottotext.config import DEFAULT_BASE_URL, DEFAULT_GENERATION_MODEL
from ottotext.utils.retry import DEFAULT_MAX_DELAY, backoff_delay, parse_retry_after

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class AttemptState(str, Enum):
    ATTEMPTING = "attempting"
    SUCCEEDED = "succeeded"
    UNREADABLE = "unreadable"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_ERROR = "transient_error"
    EXHAUSTED = "exhausted"


class GenerationFailure(str, Enum):
    CONFIGURATION = "configuration"
    UNREADABLE = "unreadable"
    EXHAUSTED = "exhausted"


@dataclass(slots=True)
class GenerationConfig:
    api_key: str = ""
    model_name: str = DEFAULT_GENERATION_MODEL
    base_url: str = DEFAULT_BASE_URL
    temperature: float = 0.0
    max_output_tokens: int = 2048
    escalation_ceiling: int = 4096
    max_attempts: int = 3
    max_retry_delay: float = DEFAULT_MAX_DELAY
    timeout: float = 60.0


@dataclass(slots=True)
class GenerationResult:
    text: Optional[str] = None
    failure: Optional[GenerationFailure] = None
    attempts: int = 0
    max_output_tokens: int = 0
    delays: List[float] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failure is None and self.text is not None


class _Outcome(NamedTuple):
    state: AttemptState
    text: Optional[str] = None
    retry_after: Optional[float] = None


def extract_text(body: Any) -> Optional[str]:
    """Return the first candidate's text, or None when the body carries none."""
    try:
        text = body["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    if not isinstance(text, str) or not text.strip():
        return None
    return text.strip()


def _finish_reason(body: Any) -> Optional[str]:
    try:
        return body["candidates"][0].get("finishReason")
    except (KeyError, IndexError, TypeError, AttributeError):
        return None


class GenerationClient:
    """Sends one prompt to the generation endpoint with retry and backoff."""

    def __init__(
        self,
        config: GenerationConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.config = config or GenerationConfig()
        self._client = client
        self._sleep = sleep

    @property
    def endpoint(self) -> str:
        model = self.config.model_name
        if not model.startswith("models/"):
            model = f"models/{model}"
        return f"{self.config.base_url.rstrip('/')}/{model}:generateContent"

    def build_payload(self, prompt: str, max_output_tokens: int) -> dict:
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self.config.temperature,
                "maxOutputTokens": max_output_tokens,
                "responseMimeType": "text/plain",
            },
        }

    async def _send(self, payload: dict) -> httpx.Response:
        params = {"key": self.config.api_key}
        if self._client is not None:
            return await self._client.post(
                self.endpoint, params=params, json=payload, timeout=self.config.timeout
            )
        async with httpx.AsyncClient(timeout=self.config.timeout) as client:
            return await client.post(self.endpoint, params=params, json=payload)

    async def _attempt(self, prompt: str, max_output_tokens: int) -> _Outcome:
        try:
            response = await self._send(self.build_payload(prompt, max_output_tokens))
        except httpx.RequestError as exc:
            LOGGER.warning("Generation request failed: %r", exc)
            return _Outcome(AttemptState.TRANSIENT_ERROR)

        if response.status_code == 200:
            try:
                body = response.json()
            except ValueError:
                LOGGER.warning("Generation response is not JSON: %s", response.text[:500])
                return _Outcome(AttemptState.TRANSIENT_ERROR)

            text = extract_text(body)
            if text is not None:
                return _Outcome(AttemptState.SUCCEEDED, text=text)
            LOGGER.warning(
                "No candidate text (finishReason=%s): %s", _finish_reason(body), body
            )
            return _Outcome(AttemptState.UNREADABLE)

        if response.status_code == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            LOGGER.warning("Generation rate limited (Retry-After=%s)", retry_after)
            return _Outcome(AttemptState.RATE_LIMITED, retry_after=retry_after)

        LOGGER.error("Generation returned %s: %s", response.status_code, response.text)
        return _Outcome(AttemptState.TRANSIENT_ERROR)

    async def generate(self, prompt: str, max_attempts: int | None = None) -> GenerationResult:
        """Generate a reply for `prompt`.

        Never raises for remote failures; the outcome is carried by the returned
        `GenerationResult`.
        """
        if max_attempts is None:
            max_attempts = self.config.max_attempts
        if max_attempts < 1:
            raise ValueError("max_attempts must be positive")

        result = GenerationResult(max_output_tokens=self.config.max_output_tokens)
        if not self.config.api_key:
            LOGGER.error("GEMINI_API_KEY is not configured")
            result.failure = GenerationFailure.CONFIGURATION
            return result

        attempt = 0
        escalated = False
        state = AttemptState.ATTEMPTING
        while state is AttemptState.ATTEMPTING:
            outcome = await self._attempt(prompt, result.max_output_tokens)
            result.attempts += 1

            if outcome.state is AttemptState.SUCCEEDED:
                result.text = outcome.text
                state = AttemptState.SUCCEEDED
                continue

            if outcome.state is AttemptState.UNREADABLE:
                # A truncated reply looks the same as an empty one: allow one
                # retry with twice the room before giving up.
                if not escalated and result.max_output_tokens < self.config.escalation_ceiling:
                    escalated = True
                    result.max_output_tokens *= 2
                    LOGGER.info(
                        "Retrying with maxOutputTokens=%d", result.max_output_tokens
                    )
                    continue
                result.failure = GenerationFailure.UNREADABLE
                state = AttemptState.UNREADABLE
                continue

            attempt += 1
            if attempt >= max_attempts:
                state = AttemptState.EXHAUSTED
                continue

            delay = backoff_delay(attempt - 1, outcome.retry_after, self.config.max_retry_delay)
            LOGGER.info(
                "Attempt %d/%d failed (%s); retrying in %.1fs",
                attempt,
                max_attempts,
                outcome.state.value,
                delay,
            )
            result.delays.append(delay)
            await self._sleep(delay)

        if state is AttemptState.EXHAUSTED:
            LOGGER.error("Generation gave up after %d attempts", attempt)
            result.failure = GenerationFailure.EXHAUSTED
        return result
