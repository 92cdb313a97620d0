"""Pytest fixtures: in-memory stand-ins for the embedding, vector and completion providers."""

from __future__ import annotations

import pytest

from exam_rag.providers import RetrievedPassage
from exam_rag.resolver import AnswerResolver
from exam_rag.retrieval import ExamRetriever
from exam_rag.service import AnswerService


class FakeEmbedder:
    def __init__(self, vector=None, error: Exception | None = None):
        self.vector = vector or [0.1, 0.2, 0.3]
        self.error = error
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.error:
            raise self.error
        return self.vector


class FakeVectorIndex:
    def __init__(self, passages=None, error: Exception | None = None):
        self.passages = passages if passages is not None else [
            RetrievedPassage(text="A nominee receives the policy moneys.", score=0.91, page_number=3, chapter="chapter_7"),
            RetrievedPassage(text="An assignment transfers ownership of the policy.", score=0.87, page_number=4, chapter="chapter_7"),
        ]
        self.error = error
        self.calls: list[dict] = []

    async def query(self, namespace: str, vector: list[float], top_k: int) -> list[RetrievedPassage]:
        self.calls.append({"namespace": namespace, "vector": vector, "top_k": top_k})
        if self.error:
            raise self.error
        return list(self.passages)


class FakeCompletionClient:
    """Returns queued replies in order; the last reply repeats once the queue is empty."""

    def __init__(self, replies=("A",), error: Exception | None = None):
        self.replies = list(replies)
        self.error = error
        self.calls: list[dict] = []

    async def complete(self, messages: list[dict], temperature: float, max_tokens: int) -> str:
        self.calls.append({"messages": messages, "temperature": temperature, "max_tokens": max_tokens})
        if self.error:
            raise self.error
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def vector_index():
    return FakeVectorIndex()


@pytest.fixture
def completion_client():
    return FakeCompletionClient()


@pytest.fixture
def make_service():
    """Build an AnswerService wired to fakes; returns (service, embedder, index, completion)."""

    def _make(replies=("A",), passages=None, index_error=None, completion_error=None):
        embedder = FakeEmbedder()
        index = FakeVectorIndex(passages=passages, error=index_error)
        completion = FakeCompletionClient(replies=replies, error=completion_error)
        service = AnswerService(
            retriever=ExamRetriever(embedder=embedder, index=index, enhance=True),
            resolver=AnswerResolver(client=completion, preliminary_fallback=True),
            max_concurrency=4,
        )
        return service, embedder, index, completion

    return _make
