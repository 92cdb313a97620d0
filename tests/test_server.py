"""Tests for exam_rag/server.py - the POST /answer endpoint."""

import pytest
from fastapi.testclient import TestClient

from exam_rag.server import app, get_answer_service


QUESTION = "Which of the following is NOT correct? A. Foo B. Bar C. Baz D. All of the above"


@pytest.fixture
def client_for(make_service):
    """Return a factory building a TestClient around a service wired to fakes."""

    def _client(**kwargs):
        service, _, _, _ = make_service(**kwargs)
        app.dependency_overrides[get_answer_service] = lambda: service
        return TestClient(app)

    yield _client
    app.dependency_overrides.clear()


def test_answer_success(client_for):
    client = client_for(replies=["D"])

    response = client.post("/answer", json={"question": QUESTION, "answerKey": "D", "chapter": "chapter_1"})

    assert response.status_code == 200
    body = response.json()
    assert body["predicted"] == "D"
    assert body["correct"] == "D"
    assert body["isCorrect"] is True
    assert body["isNegative"] is True
    assert body["hasAllOfAbove"] is True
    assert body["hasMultipleStatements"] is False
    assert body["chapterContext"] == "general"
    assert body["rawAnswer"] == "D"
    assert body["context"].startswith("A nominee receives the policy moneys.")


def test_response_keys(client_for):
    client = client_for(replies=["A"])
    body = client.post("/answer", json={"question": QUESTION, "answerKey": "D", "chapter": "c"}).json()
    assert set(body) == {
        "predicted", "correct", "context", "chapterContext", "hasMultipleStatements",
        "hasAllOfAbove", "isNegative", "isCorrect", "rawAnswer",
    }


def test_vector_store_failure_returns_500(client_for):
    client = client_for(index_error=RuntimeError("namespace query failed"))

    response = client.post("/answer", json={"question": QUESTION, "answerKey": "D", "chapter": "c"})

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "namespace query failed"
    assert "predicted" not in body


def test_completion_failure_returns_500(client_for):
    client = client_for(completion_error=ConnectionError())

    response = client.post("/answer", json={"question": QUESTION, "answerKey": "D", "chapter": "c"})

    assert response.status_code == 500
    assert response.json()["error"]


def test_missing_field_rejected(client_for):
    client = client_for()
    response = client.post("/answer", json={"question": QUESTION, "chapter": "c"})
    assert response.status_code == 422


def test_health(client_for):
    assert client_for().get("/health").json() == {"status": "ok"}
