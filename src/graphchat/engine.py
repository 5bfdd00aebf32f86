"""High-level coordinator for the question → Cypher → answer pipeline.

One run walks a small state machine::

    GENERATING -> EXECUTING -> EVALUATING -> DONE
                                          -> RETRYING -> GENERATING (next template)

Any infrastructure failure moves straight to FAILED and is raised. A
low-confidence answer (unknown-answer phrase, or no entities) moves to
RETRYING while templates and retry budget remain; otherwise the last answer is
returned as DONE.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from enum import Enum
from time import perf_counter
from typing import TypeVar

from .builder import PromptBuilder
from .normalizer import ResultNormalizer
from .prompts import TEMPLATE_CATALOG
from .types import (
    Answer,
    AnswerContext,
    Answerer,
    GenerationError,
    NormalizedEntity,
    PipelineConfig,
    PipelineError,
    PromptTemplate,
    QueryExecutionError,
    QueryExecutor,
    QueryGenerator,
    SchemaProvider,
    SchemaSnapshot,
    StoreUnavailable,
    TemplateError,
    TraceSink,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EngineState(str, Enum):
    GENERATING = "GENERATING"
    EXECUTING = "EXECUTING"
    EVALUATING = "EVALUATING"
    RETRYING = "RETRYING"
    DONE = "DONE"
    FAILED = "FAILED"


def is_unknown_answer(content: str, phrases: Sequence[str]) -> bool:
    text = content.casefold()
    return any(phrase.casefold() in text for phrase in phrases if phrase)


def needs_fallback(content: str, entities: Sequence[NormalizedEntity], phrases: Sequence[str]) -> bool:
    """Low-confidence rule: the answer admits ignorance, or nothing was found."""
    return not entities or is_unknown_answer(content, phrases)


@dataclass
class QueryEngine:
    """Run the end-to-end question → Cypher → answer pipeline with template fallback."""

    config: PipelineConfig
    schema_provider: SchemaProvider
    generator: QueryGenerator
    executor: QueryExecutor
    answerer: Answerer
    builder: PromptBuilder = field(default_factory=PromptBuilder)
    normalizer: ResultNormalizer | None = None
    templates: Sequence[PromptTemplate] = TEMPLATE_CATALOG

    trace: TraceSink | None = None

    def __post_init__(self) -> None:
        self._normalizer = self.normalizer or ResultNormalizer.from_config(self.config)

    def _trace(self, step: str, data: dict[str, object]) -> None:
        if self.trace is not None:
            try:
                self.trace.record(step, data)
            except Exception:
                logger.debug("Trace sink failed on step %s", step, exc_info=True)

    def _transition(self, state: EngineState, **data: object) -> None:
        self._trace("transition", {"state": state.value, **data})

    def _run_step(
        self,
        step: str,
        func: Callable[[], T],
        error_cls: type[PipelineError],
        context: dict[str, object],
    ) -> T:
        """Run one stage, tracing its duration; foreign exceptions become ``error_cls``."""
        started = perf_counter()
        try:
            return func()
        except Exception as exc:
            duration_ms = int((perf_counter() - started) * 1000)
            self._trace("error", {"step": step, "error": str(exc), "duration_ms": duration_ms, **context})
            logger.warning("Step %s failed (%s): %s | context=%s", step, type(exc).__name__, exc, context)
            if isinstance(exc, PipelineError):
                if exc.step is None:
                    exc.step = step
                raise
            raise error_cls(f"{step} failed: {type(exc).__name__}: {exc}", step=step) from exc

    def templates_for_run(self) -> list[PromptTemplate]:
        """Primary template first, then at most ``max_retries`` fallbacks."""
        return list(self.templates)[: self.config.max_retries + 1]

    def run(self, question: str) -> Answer:
        """Answer ``question`` or raise the stage's :class:`PipelineError`."""
        if question is None or not str(question).strip():
            raise PipelineError("Question must be a non-empty string", step="question")
        question = question.strip()

        templates = self.templates_for_run()
        if not templates:
            raise TemplateError("No prompt templates configured", step="build_prompt")

        self._trace("question", {"question": question})
        run_started = perf_counter()

        try:
            answer = self._run_attempts(question, templates)
        except PipelineError as exc:
            self._transition(EngineState.FAILED, error_step=exc.step, error_type=type(exc).__name__)
            raise

        self._transition(EngineState.DONE, template_id=answer.template_id, attempts=answer.attempts)
        self._trace(
            "run",
            {
                "question": question,
                "query": answer.context.query,
                "template_id": answer.template_id,
                "attempts": answer.attempts,
                "entity_count": len(answer.context.entities),
                "answer": answer.content,
                "total_duration_ms": int((perf_counter() - run_started) * 1000),
            },
        )
        return answer

    def _run_attempts(self, question: str, templates: list[PromptTemplate]) -> Answer:
        schema = self._fetch_schema()
        last_answer: Answer | None = None
        last_execution_error: QueryExecutionError | None = None

        for attempt, template in enumerate(templates, start=1):
            self._transition(EngineState.GENERATING, template_id=template.id, attempt=attempt)
            query = self._generate(template, schema, question)

            self._transition(EngineState.EXECUTING, template_id=template.id, attempt=attempt)
            try:
                entities = self._execute(query, template)
            except QueryExecutionError as exc:
                if not self.config.retry_on_execution_error:
                    raise
                # Treated like an empty result: fall through to the next template.
                last_execution_error = exc
                self._trace("evaluate", {"template_id": template.id, "retry": True, "reason": "execution_error"})
            else:
                started = perf_counter()
                content = self._run_step(
                    "answer",
                    lambda: self.answerer.answer(question, query, entities),
                    GenerationError,
                    {"template_id": template.id, "query": query},
                )
                self._trace(
                    "answer",
                    {
                        "template_id": template.id,
                        "answer_len": len(content),
                        "answer": content,
                        "duration_ms": int((perf_counter() - started) * 1000),
                    },
                )
                self._transition(EngineState.EVALUATING, template_id=template.id, attempt=attempt)
                last_answer = Answer(
                    content=content,
                    context=AnswerContext(query=query, entities=entities),
                    template_id=template.id,
                    attempts=attempt,
                )
                retry = needs_fallback(content, entities, self.config.unknown_phrases)
                self._trace(
                    "evaluate",
                    {
                        "template_id": template.id,
                        "retry": retry,
                        "entity_count": len(entities),
                        "unknown_answer": is_unknown_answer(content, self.config.unknown_phrases),
                    },
                )
                if not retry:
                    return last_answer

            if attempt < len(templates):
                logger.info(
                    "Low-confidence result from template %s; retrying with %s",
                    template.id,
                    templates[attempt].id,
                )
                self._transition(EngineState.RETRYING, template_id=template.id, attempt=attempt)

        if last_answer is not None:
            return replace(last_answer, attempts=len(templates))
        if last_execution_error is not None:
            raise last_execution_error
        raise QueryExecutionError("No template produced an answer", step="execute_query")

    def _fetch_schema(self) -> SchemaSnapshot:
        started = perf_counter()
        schema = self._run_step("fetch_schema", self.schema_provider.fetch, StoreUnavailable, {})
        self._trace(
            "fetch_schema",
            {
                "label_count": len(schema.nodes),
                "relationship_count": len(schema.relationships),
                "duration_ms": int((perf_counter() - started) * 1000),
            },
        )
        return schema

    def _generate(self, template: PromptTemplate, schema: SchemaSnapshot, question: str) -> str:
        prompt = self._run_step(
            "build_prompt",
            lambda: self.builder.build(template, schema, question),
            TemplateError,
            {"template_id": template.id},
        )
        started = perf_counter()
        query = self._run_step(
            "generate_query",
            lambda: self.generator.generate(prompt),
            GenerationError,
            {"template_id": template.id},
        )
        self._trace(
            "generate_query",
            {
                "template_id": template.id,
                "query": query,
                "duration_ms": int((perf_counter() - started) * 1000),
            },
        )
        return query

    def _execute(self, query: str, template: PromptTemplate) -> list[NormalizedEntity]:
        started = perf_counter()
        records = self._run_step(
            "execute_query",
            lambda: self.executor.execute(query),
            QueryExecutionError,
            {"template_id": template.id, "query": query},
        )
        entities = self._normalizer.normalize(records)
        self._trace(
            "execute_query",
            {
                "template_id": template.id,
                "row_count": len(records),
                "entities_preview": [entity.to_dict() for entity in entities[:3]],
                "duration_ms": int((perf_counter() - started) * 1000),
            },
        )
        return entities

    def with_trace(self, trace: TraceSink | None) -> QueryEngine:
        """Return a shallow-copied engine instance with a different trace sink.

        Used for per-request tracing (e.g. injecting a run_id) while reusing the
        same underlying components.
        """
        return replace(self, trace=trace)
