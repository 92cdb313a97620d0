"""
Remote collaborators

Thin async adapters around the three services the pipeline talks to:
1. Embedding provider (OpenAI embeddings)
2. Vector store (Qdrant, one collection partitioned by a namespace payload field)
3. Completion provider (OpenAI chat completions)

Clients are created lazily and shared by every request. The adapters do not
retry; the SDK clients' own retry count comes from configuration.
"""

import os
from dataclasses import dataclass
from typing import Optional, Protocol

from openai import AsyncOpenAI
from qdrant_client import AsyncQdrantClient
from qdrant_client.models import FieldCondition, Filter, MatchValue

from exam_rag.errors import CompletionError


# Configuration
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL") or None
OPENAI_CHAT_MODEL = os.getenv("OPENAI_CHAT_MODEL", "gpt-4-turbo")
OPENAI_EMBEDDING_MODEL = os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-ada-002")
OPENAI_MAX_RETRIES = int(os.getenv("OPENAI_MAX_RETRIES", "0"))
OPENAI_TIMEOUT_SECONDS = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "60"))
QDRANT_URL = os.getenv("QDRANT_URL", "http://localhost:6333")
QDRANT_API_KEY = os.getenv("QDRANT_API_KEY") or None
QDRANT_COLLECTION = os.getenv("QDRANT_COLLECTION", "exam-knowledge")
QDRANT_NAMESPACE_FIELD = os.getenv("QDRANT_NAMESPACE_FIELD", "namespace")


@dataclass(frozen=True)
class RetrievedPassage:
    """One nearest-neighbour hit with the metadata stored at ingestion time."""
    text: str
    score: float = 0.0
    page_number: Optional[int] = None
    chapter: Optional[str] = None
    file_name: Optional[str] = None
    heading: Optional[str] = None


class Embedder(Protocol):
    async def embed(self, text: str) -> list[float]: ...


class VectorIndex(Protocol):
    async def query(self, namespace: str, vector: list[float], top_k: int) -> list[RetrievedPassage]: ...


class CompletionClient(Protocol):
    async def complete(self, messages: list[dict], temperature: float, max_tokens: int) -> str: ...


# Shared instances
_openai_client: Optional[AsyncOpenAI] = None
_qdrant_client: Optional[AsyncQdrantClient] = None


def _get_openai_client() -> AsyncOpenAI:
    """Lazily initialize the OpenAI client."""
    global _openai_client
    if _openai_client is None:
        if not OPENAI_API_KEY:
            raise ValueError("OPENAI_API_KEY is required.")
        _openai_client = AsyncOpenAI(
            api_key=OPENAI_API_KEY,
            base_url=OPENAI_BASE_URL,
            max_retries=OPENAI_MAX_RETRIES,
            timeout=OPENAI_TIMEOUT_SECONDS,
        )
    return _openai_client


def _get_qdrant_client() -> AsyncQdrantClient:
    """Lazily initialize the Qdrant client."""
    global _qdrant_client
    if _qdrant_client is None:
        _qdrant_client = AsyncQdrantClient(url=QDRANT_URL, api_key=QDRANT_API_KEY)
    return _qdrant_client


class OpenAIEmbedder:
    """Embeds query text with the OpenAI embeddings endpoint."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: str = OPENAI_EMBEDDING_MODEL):
        self._client = client
        self.model = model

    async def embed(self, text: str) -> list[float]:
        client = self._client or _get_openai_client()
        response = await client.embeddings.create(model=self.model, input=text)
        return list(response.data[0].embedding)


class QdrantVectorIndex:
    """
    Nearest-neighbour search restricted to one namespace.

    Every point carries its namespace in a payload field, so a namespace is a
    filter over a single collection rather than a collection of its own.
    """

    def __init__(
        self,
        client: Optional[AsyncQdrantClient] = None,
        collection_name: str = QDRANT_COLLECTION,
        namespace_field: str = QDRANT_NAMESPACE_FIELD,
    ):
        self._client = client
        self.collection_name = collection_name
        self.namespace_field = namespace_field

    async def query(self, namespace: str, vector: list[float], top_k: int) -> list[RetrievedPassage]:
        client = self._client or _get_qdrant_client()
        response = await client.query_points(
            collection_name=self.collection_name,
            query=vector,
            query_filter=Filter(
                must=[FieldCondition(key=self.namespace_field, match=MatchValue(value=namespace))]
            ),
            limit=top_k,
            with_payload=True,
        )
        passages = []
        for point in response.points:
            payload = point.payload or {}
            passages.append(RetrievedPassage(
                text=str(payload.get("text") or ""),
                score=point.score,
                page_number=payload.get("pageNumber"),
                chapter=payload.get("chapter"),
                file_name=payload.get("fileName"),
                heading=payload.get("heading"),
            ))
        return passages


class OpenAICompletionClient:
    """Chat completions returning the trimmed message text."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, model: str = OPENAI_CHAT_MODEL):
        self._client = client
        self.model = model

    async def complete(self, messages: list[dict], temperature: float, max_tokens: int) -> str:
        client = self._client or _get_openai_client()
        response = await client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        if not response.choices:
            raise CompletionError("Completion response contained no choices.")
        return (response.choices[0].message.content or "").strip()
