"""Environment-driven settings and engine wiring shared by the API and CLI."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from .engine import QueryEngine
from .executor import Neo4jExecutor
from .gemini import GeminiAnswerer, GeminiConfig, GeminiQueryGenerator
from .schema import Neo4jSchemaProvider
from .store import GraphStore
from .trace import CompositeTraceSink, JsonlTraceSink, LoggingTraceSink, PostgresTraceSink, daily_trace_path
from .types import DEFAULT_UNKNOWN_PHRASES, PipelineConfig, TraceSink

TRUTHY = {"1", "true", "yes", "on"}


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _env_flag(name: str, default: str = "0") -> bool:
    return _env(name, default).lower() in TRUTHY


@dataclass(frozen=True)
class Settings:
    neo4j_uri: str
    neo4j_user: str
    neo4j_password: str
    neo4j_database: str | None
    query_model: GeminiConfig
    answer_model: GeminiConfig
    pipeline: PipelineConfig
    trace_dsn: str | None = None
    trace_stdout: bool = True
    trace_dir: Path = Path("logs") / "traces"

    @classmethod
    def from_env(cls) -> Settings:
        load_dotenv()

        api_key = os.getenv("GOOGLE_API_KEY") or None
        timeout = float(_env("GEMINI_TIMEOUT_SECONDS", "30"))
        phrases = tuple(
            phrase.strip()
            for phrase in _env("GRAPHCHAT_UNKNOWN_PHRASES", ";".join(DEFAULT_UNKNOWN_PHRASES)).split(";")
            if phrase.strip()
        )

        return cls(
            neo4j_uri=_env("NEO4J_URI"),
            neo4j_user=_env("NEO4J_USER"),
            neo4j_password=_env("NEO4J_PASSWORD"),
            neo4j_database=_env("NEO4J_DATABASE", "neo4j") or None,
            query_model=GeminiConfig(
                model=_env("GEMINI_QUERY_MODEL", "gemini-2.5-flash"),
                temperature=0.0,
                api_key=api_key,
                timeout_seconds=timeout,
            ),
            answer_model=GeminiConfig(
                model=_env("GEMINI_ANSWER_MODEL", "gemini-2.5-flash-lite"),
                temperature=0.0,
                api_key=api_key,
                timeout_seconds=timeout,
            ),
            pipeline=PipelineConfig(
                neo4j_timeout_seconds=float(_env("NEO4J_TIMEOUT_SECONDS", "15")),
                max_retries=int(_env("GRAPHCHAT_MAX_RETRIES", "1")),
                primary_alias=_env("GRAPHCHAT_PRIMARY_ALIAS", "n") or "n",
                unknown_phrases=phrases or DEFAULT_UNKNOWN_PHRASES,
                retry_on_execution_error=_env_flag("GRAPHCHAT_RETRY_ON_EXECUTION_ERROR"),
            ),
            trace_dsn=os.getenv("TRACE_DATABASE_URL") or os.getenv("DATABASE_URL") or None,
            trace_stdout=_env_flag("TRACE_STDOUT", "1"),
            trace_dir=Path(_env("TRACE_LOG_DIR") or Path("logs") / "traces"),
        )

    def require_neo4j(self) -> None:
        for name, value in (
            ("NEO4J_URI", self.neo4j_uri),
            ("NEO4J_USER", self.neo4j_user),
            ("NEO4J_PASSWORD", self.neo4j_password),
        ):
            if not value:
                raise RuntimeError(f"{name} is not set; please configure it before starting")


def configure_logging() -> None:
    logging.basicConfig(
        level=_env("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_trace(settings: Settings, *, stdout: bool | None = None) -> TraceSink:
    """JSONL (local debug) + optional Postgres + optional log mirror."""
    sinks: list[TraceSink] = [JsonlTraceSink(daily_trace_path(settings.trace_dir))]
    if settings.trace_dsn:
        sinks.append(PostgresTraceSink(settings.trace_dsn))
    if settings.trace_stdout if stdout is None else stdout:
        sinks.append(LoggingTraceSink())
    return CompositeTraceSink(*sinks)


def build_store(settings: Settings) -> GraphStore:
    settings.require_neo4j()
    return GraphStore(
        uri=settings.neo4j_uri,
        user=settings.neo4j_user,
        password=settings.neo4j_password,
        config=settings.pipeline,
        database=settings.neo4j_database,
    )


def build_engine(settings: Settings, store: GraphStore, trace: TraceSink | None = None) -> QueryEngine:
    return QueryEngine(
        config=settings.pipeline,
        schema_provider=Neo4jSchemaProvider(store=store),
        generator=GeminiQueryGenerator(config=settings.query_model),
        executor=Neo4jExecutor(store=store),
        answerer=GeminiAnswerer(config=settings.answer_model),
        trace=trace,
    )
