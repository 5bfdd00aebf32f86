"""Trace sinks receiving step-wise pipeline events."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path

import psycopg

from .types import TraceSink

logger = logging.getLogger("graphchat.trace")


def _payload(step: str, data: dict[str, object]) -> dict[str, object]:
    return {"timestamp": datetime.now(UTC).isoformat(), "step": step, **data}


class JsonlTraceSink:
    """Append trace events to a JSONL file."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def record(self, step: str, data: dict[str, object]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                json.dump(_payload(step, data), handle, ensure_ascii=False, default=str)
                handle.write("\n")
        except Exception:
            logger.debug("Could not write trace event to %s", self._path, exc_info=True)


class LoggingTraceSink:
    """Mirror trace events to the ``graphchat.trace`` logger."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    def record(self, step: str, data: dict[str, object]) -> None:
        level = logging.WARNING if step == "error" else self._level
        logger.log(level, "TRACE %s: %s", step, json.dumps(_payload(step, data), ensure_ascii=False, default=str))


class CompositeTraceSink:
    """Forward trace events to several sinks."""

    def __init__(self, *sinks: TraceSink) -> None:
        self._sinks = sinks

    def record(self, step: str, data: dict[str, object]) -> None:
        for sink in self._sinks:
            sink.record(step, data)


class ContextTraceSink:
    """Injects a fixed context payload into every trace event."""

    def __init__(self, sink: TraceSink, context: dict[str, object]) -> None:
        self._sink = sink
        self._context = dict(context)

    def record(self, step: str, data: dict[str, object]) -> None:
        self._sink.record(step, {**self._context, **data})


class PostgresTraceSink:
    """Persist trace events to a Postgres table as JSONB rows.

    Expects a table created via:
      create table if not exists traces (
        id bigserial primary key,
        run_id text,
        timestamp timestamptz not null default now(),
        step text not null,
        payload jsonb not null
      );
    """

    def __init__(self, dsn: str) -> None:
        self._dsn = dsn

    def record(self, step: str, data: dict[str, object]) -> None:
        payload = json.dumps(_payload(step, data), ensure_ascii=False, default=str)
        run_id = data.get("run_id")
        try:
            with psycopg.connect(self._dsn, autocommit=True) as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        "insert into traces (run_id, timestamp, step, payload) values (%s, now(), %s, %s::jsonb)",
                        (run_id if isinstance(run_id, str) else None, step, payload),
                    )
        except Exception:
            logger.debug("Could not persist trace event %s", step, exc_info=True)


def daily_trace_path(base: Path | None = None) -> Path:
    directory = (base or Path("logs") / "traces").resolve()
    filename = datetime.now(UTC).strftime("%Y%m%d.jsonl")
    return directory / filename
