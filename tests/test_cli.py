"""Smoke test for the CLI wiring with a stubbed engine build."""

from __future__ import annotations

import json
from pathlib import Path

from graphchat.types import Answer, AnswerContext, NormalizedEntity, StoreUnavailable


class StubEngine:
    trace = None

    def __init__(self, exc: Exception | None = None):
        self.exc = exc

    def run(self, question: str) -> Answer:
        if self.exc is not None:
            raise self.exc
        return Answer(
            content="stub answer",
            context=AnswerContext(
                query="MATCH (n) RETURN n LIMIT 1",
                entities=[NormalizedEntity(id=1, labels=frozenset({"Gene"}), properties={"symbol": "TP53"})],
            ),
            template_id="schema_strict",
        )


def test_cli_runs_with_stubbed_engine(monkeypatch, tmp_path: Path, capsys):
    from graphchat import cli as cli_mod

    monkeypatch.setattr(cli_mod, "_build_engine", lambda **kwargs: StubEngine())

    rc = cli_mod.main(["Which", "genes", "are", "up?", "--no-log"])
    assert rc == 0

    captured = capsys.readouterr().out
    assert "Cypher:\nMATCH (n) RETURN n LIMIT 1" in captured
    assert "Entities:" in captured
    assert "stub answer" in captured
    entities_json = captured.split("Entities:\n", 1)[1].split("\n\nAnswer:", 1)[0]
    assert json.loads(entities_json)[0]["properties"] == {"symbol": "TP53"}


def test_cli_reports_failing_step(monkeypatch, capsys):
    from graphchat import cli as cli_mod

    monkeypatch.setattr(
        cli_mod,
        "_build_engine",
        lambda **kwargs: StubEngine(StoreUnavailable("refused", step="fetch_schema")),
    )

    rc = cli_mod.main(["Anything"])

    assert rc == 1
    assert "Error in step 'fetch_schema': refused" in capsys.readouterr().err
