"""Pytest configuration for making the src package importable and isolating side effects."""

import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
SRC_DIR = ROOT_DIR / "src"

for path in (SRC_DIR, ROOT_DIR):
    if path.exists() and str(path) not in sys.path:
        sys.path.insert(0, str(path))


@pytest.fixture(autouse=True)
def disable_db_side_effects(monkeypatch):
    # Never talk to Postgres in tests
    for var in ("TRACE_DATABASE_URL", "DATABASE_URL"):
        monkeypatch.delenv(var, raising=False)
    # Also silence log mirroring of trace events
    monkeypatch.setenv("TRACE_STDOUT", "0")


@pytest.fixture(autouse=True)
def isolate_trace_logs(tmp_path, monkeypatch):
    """Redirect trace logs to a temporary directory during tests."""
    test_log_dir = tmp_path / "test_logs"
    test_log_dir.mkdir(parents=True, exist_ok=True)
    monkeypatch.setenv("TRACE_LOG_DIR", str(test_log_dir))


class FakeNode:
    """Stand-in for ``neo4j.graph.Node`` exposing the same read API."""

    def __init__(self, identity, labels, properties, element_id=None):
        self.id = identity
        self.labels = frozenset(labels)
        self.element_id = element_id if element_id is not None else f"4:test-db:{identity}"
        self._properties = dict(properties)

    def items(self):
        return self._properties.items()


class FakeRelationship:
    """Stand-in for ``neo4j.graph.Relationship``."""

    def __init__(self, identity, rel_type, properties):
        self.id = identity
        self.type = rel_type
        self.element_id = f"5:test-db:{identity}"
        self._properties = dict(properties)

    def items(self):
        return self._properties.items()


def graph_entity(identity: int, label: str, **properties) -> dict[str, object]:
    """Mapping-shaped entity as returned by HTTP/JSON graph APIs."""
    return {
        "identity": identity,
        "labels": [label],
        "elementId": f"4:test-db:{identity}",
        "properties": properties,
    }
