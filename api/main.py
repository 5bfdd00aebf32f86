"""FastAPI wrapper around the graph question-answering pipeline."""

from __future__ import annotations

import logging
import os
import time
import uuid
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from functools import lru_cache
from typing import Annotated, Any, Literal

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from graphchat import (
    Answer,
    GenerationError,
    GraphStore,
    PipelineError,
    QueryEngine,
    QueryExecutionError,
    StoreUnavailable,
    TemplateError,
)
from graphchat.config import Settings, build_engine, build_store, build_trace, configure_logging
from graphchat.types import NormalizedEntity, with_context_trace

logger = logging.getLogger("graphchat.api")


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    messages: list[ChatMessage] = Field(..., description="Conversation history, oldest first")


class EntityModel(BaseModel):
    id: int
    labels: list[str]
    elementId: str
    properties: dict[str, Any]


class ReplyContext(BaseModel):
    query: str
    entities: list[EntityModel]


class Reply(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: str
    context: ReplyContext


class ChatResponse(BaseModel):
    reply: Reply


GENERIC_ERRORS: dict[type[PipelineError], str] = {
    StoreUnavailable: "The graph database is currently unavailable. Please try again later.",
    GenerationError: "The language model could not process the question. Please try again later.",
    QueryExecutionError: "The question could not be answered from the graph.",
    TemplateError: "The service is misconfigured.",
}


def latest_user_message(messages: Sequence[ChatMessage]) -> str | None:
    """Content of the most recent non-blank user message, if any."""
    for message in reversed(messages):
        if message.role == "user" and message.content.strip():
            return message.content.strip()
    return None


def _jsonable(value: object) -> object:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    # Temporal and spatial driver types have no JSON form; use their text form.
    return str(value)


def _entity_model(entity: NormalizedEntity) -> EntityModel:
    return EntityModel(
        id=entity.id,
        labels=sorted(entity.labels),
        elementId=entity.element_id,
        properties=_jsonable(dict(entity.properties)),  # type: ignore[arg-type]
    )


def _error_response(status_code: int, message: str, kind: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "kind": kind})


def _generic_message(exc: PipelineError) -> str:
    return next(
        (text for cls, text in GENERIC_ERRORS.items() if isinstance(exc, cls)),
        "The request could not be completed.",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


@lru_cache(maxsize=1)
def get_store() -> GraphStore:
    return build_store(get_settings())


@lru_cache(maxsize=1)
def build_api_engine() -> QueryEngine:
    settings = get_settings()
    return build_engine(settings, get_store(), trace=build_trace(settings))


def get_engine() -> QueryEngine:
    try:
        return build_api_engine()
    except RuntimeError as exc:
        raise StoreUnavailable(str(exc), step="configure") from exc


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    yield
    if get_store.cache_info().currsize:
        get_store().close()
        get_store.cache_clear()
        build_api_engine.cache_clear()


app = FastAPI(title="graphchat API", version="0.1.0", lifespan=lifespan)

allowed_origins = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("Rejected malformed request: %s", exc.errors())
    return _error_response(400, "Malformed request body.", "BadRequest")


@app.exception_handler(PipelineError)
async def pipeline_error_handler(_: Request, exc: PipelineError) -> JSONResponse:
    logger.error("Request failed in step %s: %s", exc.step or "unknown", exc)
    return _error_response(500, _generic_message(exc), type(exc).__name__)


@app.get("/healthz", response_model=dict[str, str])
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.head("/healthz")
async def healthz_head():
    return Response(status_code=200)


@app.post("/chat", response_model=ChatResponse)
def chat(body: ChatRequest, engine: Annotated[QueryEngine, Depends(get_engine)]):
    question = latest_user_message(body.messages)
    if question is None:
        return _error_response(400, "No user message found in the conversation.", "BadRequest")

    started = datetime.now(UTC).isoformat()
    started_perf = time.perf_counter()
    run_id = os.getenv("TRACE_RUN_ID_OVERRIDE") or uuid.uuid4().hex

    traced_engine = engine
    if engine.trace is not None:
        traced_engine = engine.with_trace(with_context_trace(engine.trace, {"run_id": run_id}))

    try:
        answer: Answer = traced_engine.run(question)
    except PipelineError as exc:
        error_details: dict[str, object] = {
            "started_at": started,
            "question": question,
            "error": str(exc),
            "error_type": type(exc).__name__,
            "error_step": exc.step or "unknown",
            "duration_ms": int((time.perf_counter() - started_perf) * 1000),
        }
        if isinstance(exc, QueryExecutionError):
            error_details["query"] = exc.query
        if exc.__cause__:
            error_details["original_exception"] = {
                "type": type(exc.__cause__).__name__,
                "message": str(exc.__cause__),
            }
        if traced_engine.trace is not None:
            traced_engine.trace.record("error", error_details)
        logger.warning("Chat request %s failed: %s", run_id, error_details)

        if exc.step == "question":
            return _error_response(400, "The question is empty.", "BadRequest")
        return _error_response(500, _generic_message(exc), type(exc).__name__)
    except Exception:  # pragma: no cover - defensive guard
        logger.exception("Unexpected failure in chat request %s", run_id)
        return _error_response(500, "The request could not be completed.", "InternalError")

    return ChatResponse(
        reply=Reply(
            content=answer.content,
            context=ReplyContext(
                query=answer.context.query,
                entities=[_entity_model(entity) for entity in answer.context.entities],
            ),
        )
    )
