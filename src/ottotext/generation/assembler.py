"""Query answering: retrieval, prompt assembly and failure messages."""

from __future__ import annotations

import logging
from typing import List, Sequence

from ottotext.config import DEFAULT_SYSTEM_INSTRUCTION, AppConfig
from ottotext.embedding.encoder import EmbeddingClient, EmbeddingConfig, EmbeddingError
from ottotext.generation.client import GenerationClient, GenerationConfig, GenerationFailure
from ottotext.index.indexer import KnowledgeIndex
from ottotext.index.search import join_context, rank

LOGGER = logging.getLogger(__name__)

CONFIGURATION_MESSAGE = "API key missing. Set GEMINI_API_KEY and try again."
UNREADABLE_MESSAGE = "The response could not be read. Please try rephrasing."
HEAVY_LOAD_MESSAGE = "The service is under heavy load. Please try again later."
UNAVAILABLE_MESSAGE = "The system is not available right now. Please try again later."
EMPTY_QUERY_MESSAGE = "Please enter some text to convert."

FAILURE_MESSAGES = {
    GenerationFailure.CONFIGURATION: CONFIGURATION_MESSAGE,
    GenerationFailure.UNREADABLE: UNREADABLE_MESSAGE,
    GenerationFailure.EXHAUSTED: HEAVY_LOAD_MESSAGE,
}

REFERENCE_RULES = (
    "Use the reference excerpts below as orthography rules. "
    "If two rules disagree, follow the one that appears later. "
    "If the reference does not cover a case, choose the most conventional spelling "
    "and apply it the same way every time."
)


def build_prompt(
    query: str,
    context: Sequence[str] = (),
    *,
    instruction: str = DEFAULT_SYSTEM_INSTRUCTION,
) -> str:
    """Assemble the single-turn prompt sent to the generation endpoint."""
    parts: List[str] = [instruction]
    if context:
        parts.append(REFERENCE_RULES)
        parts.append("Reference about orthography:\n" + join_context(context))
    parts.append("Text to convert:\n" + query)
    return "\n\n".join(parts)


class ContextAssembler:
    """Answers a user query with retrieved context.

    `answer` is the only entry point front-ends need: it always returns a
    string, either the model's reply or one of the fixed messages above.
    """

    def __init__(
        self,
        embedder: EmbeddingClient,
        generator: GenerationClient,
        index: KnowledgeIndex,
        *,
        top_k: int = 3,
        instruction: str = DEFAULT_SYSTEM_INSTRUCTION,
    ) -> None:
        self.embedder = embedder
        self.generator = generator
        self.index = index
        self.top_k = top_k
        self.instruction = instruction

    @classmethod
    def from_config(cls, config: AppConfig, index: KnowledgeIndex | None = None) -> "ContextAssembler":
        embedder = EmbeddingClient(
            EmbeddingConfig(
                api_key=config.api_key,
                model_name=config.embedding_model,
                base_url=config.base_url,
                timeout=config.request_timeout,
                max_attempts=config.max_attempts,
            )
        )
        generator = GenerationClient(
            GenerationConfig(
                api_key=config.api_key,
                model_name=config.generation_model,
                base_url=config.base_url,
                max_output_tokens=config.max_output_tokens,
                escalation_ceiling=config.escalation_ceiling,
                max_attempts=config.max_attempts,
                timeout=config.request_timeout,
            )
        )
        return cls(
            embedder,
            generator,
            index or KnowledgeIndex(),
            top_k=config.top_k,
            instruction=config.system_instruction,
        )

    async def retrieve(self, query: str) -> List[str]:
        """Return the most relevant corpus segments, or [] when none can be found."""
        if not self.index.ready:
            LOGGER.info("Knowledge base is not loaded yet; answering without context")
            return []
        records = self.index.records
        if not records:
            return []

        try:
            vector = await self.embedder.embed_query(query)
        except EmbeddingError as exc:
            LOGGER.warning("Query embedding failed, continuing without context: %s", exc)
            return []

        context = rank(vector, records, k=self.top_k)
        LOGGER.debug("Found relevant segments: %s", context)
        return context

    async def answer(self, query: str) -> str:
        query = query.strip()
        if not query:
            return EMPTY_QUERY_MESSAGE

        try:
            context = await self.retrieve(query)
            prompt = build_prompt(query, context, instruction=self.instruction)
            result = await self.generator.generate(prompt)
        except Exception:
            LOGGER.exception("Unexpected failure while answering")
            return UNAVAILABLE_MESSAGE

        if result.ok:
            return result.text  # type: ignore[return-value]
        return FAILURE_MESSAGES.get(result.failure, UNAVAILABLE_MESSAGE)  # type: ignore[arg-type]
