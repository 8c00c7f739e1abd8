"""Application configuration defaults."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import find_dotenv, load_dotenv

CACHE_FILE_NAME = "ottoman_embeddings.json"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_GENERATION_MODEL = "gemini-2.5-pro"
DEFAULT_EMBEDDING_MODEL = "text-embedding-004"

DEFAULT_SYSTEM_INSTRUCTION = (
    "You are an expert Ottoman Turkish scribe. Convert modern Turkish (Latin) "
    "into Ottoman Arabic script. Return only the Ottoman-script text; no explanations."
)


def _get_default_cache_path() -> Path:
    """Get the default embedding cache path based on platform and execution context."""
    user_cache = Path.home() / "Documents" / "Ottotext" / CACHE_FILE_NAME

    # Frozen bundles always write next to the user's documents
    if getattr(sys, "frozen", False):
        return user_cache

    # When running from source, prefer local data/ if it exists
    if Path("data").is_dir():
        return Path("data") / CACHE_FILE_NAME

    return user_cache


def _env_int(name: str, default: int) -> int:
    value = (os.getenv(name) or "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"Env var {name} must be an int, got {value!r}") from exc


@dataclass(slots=True)
class AppConfig:
    cache_path: Path | None = None
    corpus_path: Path | None = None
    api_key: str = ""
    base_url: str = DEFAULT_BASE_URL
    generation_model: str = DEFAULT_GENERATION_MODEL
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    system_instruction: str = DEFAULT_SYSTEM_INSTRUCTION
    chunk_chars: int = 500
    overlap: int = 50
    batch_size: int = 50
    top_k: int = 3
    max_attempts: int = 3
    max_output_tokens: int = 2048
    escalation_ceiling: int = 4096
    request_timeout: float = 60.0
    corpus_max_chars: int = 80_000

    def __post_init__(self) -> None:
        if self.cache_path is None:
            self.cache_path = _get_default_cache_path()

    @classmethod
    def from_env(cls, **overrides) -> "AppConfig":
        """Build a config from environment variables (and a local .env file)."""
        load_dotenv(find_dotenv(usecwd=True))
        corpus = os.getenv("OTTOTEXT_CORPUS")
        cache = os.getenv("OTTOTEXT_CACHE")
        values = {
            "api_key": (os.getenv("GEMINI_API_KEY") or "").strip(),
            "corpus_path": Path(corpus) if corpus else None,
            "cache_path": Path(cache) if cache else None,
            "generation_model": os.getenv("OTTOTEXT_GENERATION_MODEL", DEFAULT_GENERATION_MODEL),
            "embedding_model": os.getenv("OTTOTEXT_EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
            "max_attempts": _env_int("OTTOTEXT_MAX_ATTEMPTS", 3),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def resolve_cache_path(self, base_dir: Path | None = None) -> Path:
        if self.cache_path is None:
            self.cache_path = _get_default_cache_path()
        if Path(self.cache_path).is_absolute() or base_dir is None:
            return Path(self.cache_path)
        return base_dir / self.cache_path
