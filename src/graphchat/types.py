"""Shared dataclasses, protocols and errors for the question → Cypher → answer pipeline."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

DEFAULT_UNKNOWN_PHRASES = ("i don't know", "i do not know")


@dataclass(frozen=True)
class PipelineConfig:
    """Configuration for running the query pipeline."""

    neo4j_timeout_seconds: float = 15.0
    neo4j_fetch_size: int = 100
    schema_sample_size: int = 1000
    max_retries: int = 1
    primary_alias: str = "n"
    unknown_phrases: tuple[str, ...] = DEFAULT_UNKNOWN_PHRASES
    retry_on_execution_error: bool = False

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be zero or positive")


@dataclass(frozen=True, order=True)
class NodeLabel:
    """A node label together with the property names observed on it."""

    name: str
    properties: frozenset[str] = frozenset()


@dataclass(frozen=True, order=True)
class RelationshipType:
    """A relationship type with one observed (source, target) label pair."""

    name: str
    source: str
    target: str


@dataclass(frozen=True)
class SchemaSnapshot:
    """Point-in-time description of the graph store, fetched once per request."""

    nodes: tuple[NodeLabel, ...] = ()
    relationships: tuple[RelationshipType, ...] = ()

    def is_empty(self) -> bool:
        return not self.nodes and not self.relationships


@dataclass(frozen=True)
class PromptTemplate:
    """Catalog entry: template text with ``{schema}`` and ``{question}`` placeholders."""

    id: str
    text: str
    notes: str = ""


@dataclass(frozen=True)
class ResolvedPrompt:
    template_id: str
    text: str


@dataclass(frozen=True)
class NormalizedEntity:
    """Canonical shape of one graph entity found in query results."""

    id: int
    labels: frozenset[str] = frozenset()
    element_id: str = ""
    properties: Mapping[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "labels": sorted(self.labels),
            "elementId": self.element_id,
            "properties": dict(self.properties),
        }


@dataclass(frozen=True)
class AnswerContext:
    query: str
    entities: list[NormalizedEntity]


@dataclass(frozen=True)
class Answer:
    """Final response returned by the query engine."""

    content: str
    context: AnswerContext
    template_id: str = ""
    attempts: int = 1


RawRecord = dict[str, object]


class SchemaProvider(Protocol):
    """Fetches a live schema snapshot from the graph store."""

    def fetch(self) -> SchemaSnapshot:  # pragma: no cover - interface only
        ...


class QueryGenerator(Protocol):
    """Turns a resolved prompt into a Cypher query string."""

    def generate(self, prompt: ResolvedPrompt) -> str:  # pragma: no cover - interface only
        ...


class QueryExecutor(Protocol):
    """Executes Cypher read-only and returns raw records."""

    def execute(self, query: str) -> list[RawRecord]:  # pragma: no cover - interface only
        ...


class Answerer(Protocol):
    """Writes the natural language answer from the normalized entities."""

    def answer(
        self, question: str, query: str, entities: list[NormalizedEntity]
    ) -> str:  # pragma: no cover - interface only
        ...


class PipelineError(RuntimeError):
    """Raised when a pipeline step fails."""

    def __init__(self, message: str, *, step: str | None = None):
        super().__init__(message)
        self.step = step


class StoreUnavailable(PipelineError):
    """The graph store could not be reached or introspected."""


class TemplateError(PipelineError):
    """A prompt template is malformed."""


class GenerationError(PipelineError):
    """The language model call failed or returned nothing usable."""


class QueryExecutionError(PipelineError):
    """The graph store rejected the generated query."""

    def __init__(self, message: str, *, query: str = "", step: str | None = "execute_query"):
        super().__init__(message, step=step)
        self.query = query


class TraceSink(Protocol):
    """Receives step-wise trace data emitted during pipeline execution."""

    def record(self, step: str, data: dict[str, object]) -> None:  # pragma: no cover - interface only
        ...


def with_context_trace(trace: TraceSink | None, context: dict[str, object]) -> TraceSink | None:
    """Wrap a trace sink so every event carries ``context``; ``None`` passes through."""
    if trace is None:
        return None
    from .trace import ContextTraceSink  # noqa: WPS433

    return ContextTraceSink(trace, context)
