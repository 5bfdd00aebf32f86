from __future__ import annotations

from collections.abc import Callable

import pytest
from conftest import graph_entity
from fastapi.testclient import TestClient

from api import main
from graphchat import PipelineConfig, QueryEngine
from graphchat.types import (
    Answer,
    AnswerContext,
    GenerationError,
    NormalizedEntity,
    QueryExecutionError,
    StoreUnavailable,
)


class StubEngine:
    def __init__(self, runner: Callable[[str], Answer]):
        self._runner = runner
        self.trace = None
        self.questions: list[str] = []

    def run(self, question: str) -> Answer:
        self.questions.append(question)
        return self._runner(question)


class ErrorEngine:
    def __init__(self, exc: Exception):
        self._exc = exc
        self.trace = None

    def run(self, question: str) -> Answer:  # type: ignore[override]
        raise self._exc


def make_answer(question: str) -> Answer:
    return Answer(
        content=f"Answer for {question}",
        context=AnswerContext(
            query="MATCH (n:Gene) RETURN n",
            entities=[
                NormalizedEntity(
                    id=1,
                    labels=frozenset({"Gene"}),
                    element_id="4:x:1",
                    properties={"symbol": "TP53", "aliases": ("p53",)},
                )
            ],
        ),
    )


@pytest.fixture
def app_client() -> TestClient:
    with TestClient(main.app) as client:
        yield client
    main.app.dependency_overrides.clear()


def test_healthz_endpoint(app_client: TestClient) -> None:
    response = app_client.get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_chat_success_uses_latest_user_message(app_client: TestClient) -> None:
    engine = StubEngine(make_answer)
    main.app.dependency_overrides[main.get_engine] = lambda: engine

    response = app_client.post(
        "/chat",
        json={
            "messages": [
                {"role": "assistant", "content": "Welcome! Ask me about your data."},
                {"role": "user", "content": "Tell me about BRCA1"},
                {"role": "assistant", "content": "BRCA1 is ..."},
                {"role": "user", "content": "  Tell me about TP53  "},
            ]
        },
    )

    assert response.status_code == 200
    assert engine.questions == ["Tell me about TP53"]
    assert response.json() == {
        "reply": {
            "role": "assistant",
            "content": "Answer for Tell me about TP53",
            "context": {
                "query": "MATCH (n:Gene) RETURN n",
                "entities": [
                    {
                        "id": 1,
                        "labels": ["Gene"],
                        "elementId": "4:x:1",
                        "properties": {"symbol": "TP53", "aliases": ["p53"]},
                    }
                ],
            },
        }
    }


def test_chat_without_user_message_returns_400(app_client: TestClient) -> None:
    engine = StubEngine(make_answer)
    main.app.dependency_overrides[main.get_engine] = lambda: engine

    response = app_client.post("/chat", json={"messages": [{"role": "assistant", "content": "Hi!"}]})

    assert response.status_code == 400
    assert "error" in response.json()
    assert engine.questions == []


def test_chat_malformed_body_returns_400(app_client: TestClient) -> None:
    main.app.dependency_overrides[main.get_engine] = lambda: StubEngine(make_answer)

    assert app_client.post("/chat", json={}).status_code == 400
    response = app_client.post("/chat", json={"messages": [{"role": "robot", "content": "x"}]})
    assert response.status_code == 400
    assert response.json()["kind"] == "BadRequest"


@pytest.mark.parametrize(
    "exc, kind",
    [
        (StoreUnavailable("bolt://10.0.0.5:7687 refused", step="fetch_schema"), "StoreUnavailable"),
        (GenerationError("503 from model", step="generate_query"), "GenerationError"),
        (QueryExecutionError("Unknown label Foo", query="MATCH (n:Foo) RETURN n"), "QueryExecutionError"),
    ],
)
def test_chat_pipeline_errors_return_generic_500(app_client: TestClient, exc: Exception, kind: str) -> None:
    main.app.dependency_overrides[main.get_engine] = lambda: ErrorEngine(exc)

    response = app_client.post("/chat", json={"messages": [{"role": "user", "content": "Genes?"}]})

    assert response.status_code == 500
    payload = response.json()
    assert payload["kind"] == kind
    assert str(exc) not in payload["error"]


def test_chat_store_unavailable_skips_generation_and_execution(app_client: TestClient) -> None:
    calls: list[str] = []

    class RefusingSchemaProvider:
        def fetch(self):
            calls.append("fetch")
            raise StoreUnavailable("Connection refused", step="fetch_schema")

    class RecordingGenerator:
        def generate(self, prompt):
            calls.append("generate")
            return "MATCH (n) RETURN n"

    class RecordingExecutor:
        def execute(self, query):
            calls.append("execute")
            return [{"n": graph_entity(1, "Gene")}]

    class RecordingAnswerer:
        def answer(self, question, query, entities):
            calls.append("answer")
            return "ok"

    engine = QueryEngine(
        config=PipelineConfig(),
        schema_provider=RefusingSchemaProvider(),
        generator=RecordingGenerator(),
        executor=RecordingExecutor(),
        answerer=RecordingAnswerer(),
    )
    main.app.dependency_overrides[main.get_engine] = lambda: engine

    response = app_client.post("/chat", json={"messages": [{"role": "user", "content": "List all genes"}]})

    assert response.status_code == 500
    assert response.json()["kind"] == "StoreUnavailable"
    assert calls == ["fetch"]


def test_latest_user_message_skips_blank_messages() -> None:
    messages = [
        main.ChatMessage(role="user", content="Which genes are up?"),
        main.ChatMessage(role="user", content="   "),
        main.ChatMessage(role="assistant", content="..."),
    ]

    assert main.latest_user_message(messages) == "Which genes are up?"
    assert main.latest_user_message([]) is None


def test_chat_without_neo4j_configuration_returns_json_error(app_client: TestClient, monkeypatch) -> None:
    for var in ("NEO4J_URI", "NEO4J_USER", "NEO4J_PASSWORD"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr("graphchat.config.load_dotenv", lambda *args, **kwargs: False)
    main.get_settings.cache_clear()
    main.get_store.cache_clear()
    main.build_api_engine.cache_clear()

    response = app_client.post("/chat", json={"messages": [{"role": "user", "content": "List all genes"}]})

    assert response.status_code == 500
    payload = response.json()
    assert payload["kind"] == "StoreUnavailable"
    assert "NEO4J_URI" not in payload["error"]
    main.get_settings.cache_clear()
