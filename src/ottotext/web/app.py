"""FastAPI application exposing the chat endpoint."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from ottotext.config import AppConfig
from ottotext.generation.assembler import ContextAssembler
from ottotext.index.indexer import IndexStats, warm_from_config

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="ottotext", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


class ChatPayload(BaseModel):
    query: str


class ChatReply(BaseModel):
    answer: str


def _get_config() -> AppConfig:
    config = getattr(app.state, "config", None)
    if config is None:
        config = AppConfig.from_env()
        app.state.config = config
    return config


def _get_assembler() -> ContextAssembler:
    assembler = getattr(app.state, "assembler", None)
    if assembler is None:
        assembler = ContextAssembler.from_config(_get_config())
        app.state.assembler = assembler
    return assembler


def _get_warm_lock() -> asyncio.Lock:
    lock = getattr(app.state, "warm_lock", None)
    if lock is None:
        lock = asyncio.Lock()
        app.state.warm_lock = lock
    return lock


async def _warm(assembler: ContextAssembler, *, force: bool = False) -> IndexStats:
    # One build at a time; a rebuild waits for the startup warm-up to finish
    async with _get_warm_lock():
        return await warm_from_config(
            _get_config(), assembler.embedder, assembler.index, force=force
        )


async def _warm_in_background(assembler: ContextAssembler) -> None:
    try:
        await _warm(assembler)
    except Exception:
        LOGGER.exception("Knowledge base warm-up failed")


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    assembler = _get_assembler()
    # Queries arriving before this finishes are answered without context
    app.state.warmup = asyncio.create_task(_warm_in_background(assembler))


@app.post("/chat")
async def chat(payload: ChatPayload) -> ChatReply:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")

    answer = await _get_assembler().answer(query)
    return ChatReply(answer=answer)


@app.get("/status")
async def status() -> dict[str, Any]:
    index = _get_assembler().index
    return {
        "ready": index.ready,
        "records": len(index.records),
        "source": index.stats.source,
    }


@app.post("/rebuild")
async def rebuild() -> dict[str, Any]:
    """Regenerate the embedding cache from the corpus.

    The loaded records stay in place when regeneration fails.
    """
    stats = await _warm(_get_assembler(), force=True)
    return {"status": "ok", "stats": asdict(stats)}
