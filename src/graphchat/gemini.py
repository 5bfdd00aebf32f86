"""Gemini-powered adapters for Cypher generation and answer writing."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass

from google import genai
from google.genai import types as genai_types

from .prompts import ANSWER_PROMPT_TEMPLATE
from .types import Answerer, GenerationError, NormalizedEntity, QueryGenerator, ResolvedPrompt

logger = logging.getLogger(__name__)

MAX_ENTITIES_IN_PROMPT = 50


@dataclass(frozen=True)
class GeminiConfig:
    """Runtime settings for Gemini calls."""

    model: str = "gemini-2.5-flash"
    temperature: float = 0.0
    max_output_tokens: int | None = None
    top_p: float | None = None
    api_key: str | None = None
    timeout_seconds: float | None = 30.0
    max_attempts: int = 1


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if stripped.startswith("```"):
        body = stripped[3:].lstrip()
        if "\n" in body:
            _, remainder = body.split("\n", 1)
        else:
            remainder = body
        remainder = remainder.rstrip()
        if remainder.endswith("```"):
            remainder = remainder[:-3]
        stripped = remainder.strip()
    for prefix in ("cypher:", "query:"):
        if stripped.lower().startswith(prefix):
            return stripped[len(prefix) :].strip()
    return stripped


def _format_entities(entities: list[NormalizedEntity]) -> str:
    if not entities:
        return "(no results)"

    formatted: list[str] = []
    for index, entity in enumerate(entities[:MAX_ENTITIES_IN_PROMPT], start=1):
        labels = ":".join(sorted(entity.labels))
        props = json.dumps(dict(entity.properties), ensure_ascii=False, sort_keys=True, default=str)
        formatted.append(f"{index}. ({labels}) {props}" if labels else f"{index}. {props}")
    hidden = len(entities) - MAX_ENTITIES_IN_PROMPT
    if hidden > 0:
        formatted.append(f"... and {hidden} more")
    return "\n".join(formatted)


class _GeminiBase:
    def __init__(self, config: GeminiConfig | None = None, client: object | None = None) -> None:
        self.config = config or GeminiConfig()
        if client is not None:
            self._client = client
        else:
            kwargs: dict[str, object] = {}
            if self.config.api_key:
                kwargs["api_key"] = self.config.api_key
            if self.config.timeout_seconds:
                kwargs["http_options"] = genai_types.HttpOptions(timeout=int(self.config.timeout_seconds * 1000))
            self._client = genai.Client(**kwargs)

    def _build_content_config(self) -> genai_types.GenerateContentConfig:
        return genai_types.GenerateContentConfig(
            temperature=self.config.temperature,
            top_p=self.config.top_p,
            max_output_tokens=self.config.max_output_tokens,
        )

    def _call_model(self, *, prompt: str, step: str) -> str:
        kwargs = {
            "model": self.config.model,
            "contents": [prompt],
            "config": self._build_content_config(),
        }

        attempts = max(1, self.config.max_attempts)
        last_exception: Exception | None = None
        for attempt in range(attempts):
            try:
                response = self._client.models.generate_content(**kwargs)
            except Exception as exc:
                last_exception = exc
                error_details = {
                    "attempt": attempt + 1,
                    "total_attempts": attempts,
                    "exception_type": type(exc).__name__,
                    "exception_message": str(exc),
                    "model": self.config.model,
                    "prompt_length": len(prompt),
                }
                for attr in ("code", "status", "details"):
                    if getattr(exc, attr, None):
                        error_details[attr] = str(getattr(exc, attr))
                logger.warning("Gemini API call failed: %s", error_details)
                if attempt + 1 < attempts:
                    time.sleep(2**attempt)
                continue

            text = getattr(response, "text", None)
            if not text or not text.strip():
                raise GenerationError("Gemini response did not include text", step=step)
            return text

        raise GenerationError(
            f"Gemini API call failed after {attempts} attempt(s): "
            f"{type(last_exception).__name__}: {last_exception}",
            step=step,
        ) from last_exception


class GeminiQueryGenerator(_GeminiBase, QueryGenerator):
    """Gemini-backed Cypher generator adapter."""

    def generate(self, prompt: ResolvedPrompt) -> str:
        text = self._call_model(prompt=prompt.text, step="generate_query")
        query = _strip_code_fence(text)
        if not query:
            raise GenerationError("Gemini returned an empty query", step="generate_query")
        return query


class GeminiAnswerer(_GeminiBase, Answerer):
    """Gemini-backed answer writer for normalized query results."""

    def answer(self, question: str, query: str, entities: list[NormalizedEntity]) -> str:
        prompt = ANSWER_PROMPT_TEMPLATE.format(
            question=question.strip(),
            query=query,
            count=len(entities),
            entities=_format_entities(entities),
        )
        return self._call_model(prompt=prompt, step="answer").strip()
