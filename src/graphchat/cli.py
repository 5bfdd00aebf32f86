"""Simple CLI to run the end-to-end question → Cypher → answer pipeline."""

from __future__ import annotations

import argparse
import json
import sys
import traceback
from datetime import UTC, datetime

from .config import Settings, build_engine, build_store, build_trace, configure_logging
from .engine import QueryEngine


def _build_engine(*, trace_stdout: bool = False, no_log: bool = False) -> QueryEngine:
    settings = Settings.from_env()
    trace = None if no_log else build_trace(settings, stdout=trace_stdout)
    return build_engine(settings, build_store(settings), trace=trace)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Ask a question about the graph")
    parser.add_argument("question", nargs="+", help="User question text")
    parser.add_argument("--no-log", action="store_true", help="Disable JSONL trace logging")
    parser.add_argument(
        "--debug", action="store_true", help="Print stack traces and verbose step output"
    )
    parser.add_argument("--trace", action="store_true", help="Mirror trace events to the log")
    args = parser.parse_args(argv)

    configure_logging()
    engine = _build_engine(trace_stdout=args.trace, no_log=args.no_log)

    question_text = " ".join(args.question).strip()
    started = datetime.now(UTC).isoformat()

    try:
        result = engine.run(question_text)
    except Exception as exc:  # pragma: no cover - surface errors to CLI
        step = getattr(exc, "step", None)
        if step:
            print(f"Error in step '{step}': {exc}", file=sys.stderr)
        else:
            print(f"Error: {exc}", file=sys.stderr)
        if args.debug:
            traceback.print_exc()
        if engine.trace is not None:
            engine.trace.record(
                "error",
                {
                    "started_at": started,
                    "question": question_text,
                    "error": str(exc),
                    "error_step": step or "unknown",
                },
            )
        return 1

    print("Cypher:\n" + result.context.query + "\n")
    print("Entities:")
    print(json.dumps([entity.to_dict() for entity in result.context.entities], indent=2, default=str))
    print("\nAnswer:\n" + result.content)
    if args.debug:
        print(f"\nTemplate: {result.template_id} (attempts: {result.attempts})")

    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
