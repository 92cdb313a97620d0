"""
Knowledge Base Retrieval

Turns a question into retrieved context:
1. Flatten the question and append chapter-specific synonyms
2. Pick how many passages to request (topK)
3. Embed the query and search the chapter's namespace
4. Join passage text and cap it at a byte budget
"""

import logging
import os
import unicodedata
from dataclasses import dataclass, field
from typing import Optional

from exam_rag.analysis import QuestionAnalysis, detect_chapter_context
from exam_rag.errors import RetrievalError
from exam_rag.models import ChapterContext, Question
from exam_rag.providers import (
    Embedder,
    OpenAIEmbedder,
    QdrantVectorIndex,
    RetrievedPassage,
    VectorIndex,
)


logger = logging.getLogger(__name__)

# Configuration
RETRIEVAL_ENHANCEMENT_ENABLED = os.getenv("RETRIEVAL_ENHANCEMENT_ENABLED", "true").lower() in {"1", "true", "yes", "on"}
MAX_CONTEXT_BYTES = int(os.getenv("MAX_CONTEXT_BYTES", "128000"))

BASE_TOP_K = 10
MULTI_STATEMENT_TOP_K = 15
CHAPTER_TOP_K_BONUS = 5

# (trigger substring, appended terms), applied in order
QUERY_EXPANSIONS: dict[ChapterContext, tuple[tuple[str, str], ...]] = {
    ChapterContext.INSURANCE: (
        ("nominee", "beneficiary executor trustee"),
        ("trust", "statutory policy protection creditor"),
        ("assignment", "transfer ownership assignor assignee"),
    ),
    ChapterContext.BUSINESS: (
        ("sole proprietor", "individual unlimited liability"),
        ("partnership", "partners joint several liability"),
        ("company", "shareholder limited liability separate entity"),
    ),
    ChapterContext.GENERAL: (),
}


@dataclass(frozen=True)
class RetrievalContext:
    """Joined passage text plus the hits it was built from."""
    text: str
    passages: tuple[RetrievedPassage, ...] = field(default_factory=tuple)
    namespace: str = ""
    top_k: int = BASE_TOP_K


def flatten_query(text: str) -> str:
    return text.replace("\n", " ")


def build_expanded_query(
    text: str,
    chapter_context: ChapterContext,
    enhance: bool = RETRIEVAL_ENHANCEMENT_ENABLED,
) -> str:
    """Flatten the question and, when enabled, append synonym terms for its chapter."""
    query = flatten_query(text)
    if not enhance:
        return query

    expanded = query
    for trigger, terms in QUERY_EXPANSIONS.get(chapter_context, ()):
        if trigger in query:
            expanded += " " + terms
    return expanded


def compute_top_k(has_multiple_statements: bool, chapter_context: ChapterContext) -> int:
    """10 or 15 passages, plus 5 for a recognised chapter."""
    top_k = MULTI_STATEMENT_TOP_K if has_multiple_statements else BASE_TOP_K
    if chapter_context != ChapterContext.GENERAL:
        top_k += CHAPTER_TOP_K_BONUS
    return top_k


def to_ascii_namespace(name: str) -> str:
    """Drop non-ASCII characters, keeping base letters of accented ones."""
    decomposed = unicodedata.normalize("NFKD", name)
    return decomposed.encode("ascii", "ignore").decode("ascii")


def truncate_bytes(text: str, max_bytes: int) -> str:
    """Truncate to at most ``max_bytes`` UTF-8 bytes without splitting a character."""
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    return encoded[:max_bytes].decode("utf-8", errors="ignore")


def assemble_context(passages: list[RetrievedPassage], max_bytes: int = MAX_CONTEXT_BYTES) -> str:
    return truncate_bytes("\n".join(p.text for p in passages), max_bytes)


class ExamRetriever:
    """
    Retrieves context for a question from the chapter's namespace.

    Embedding and search failures surface as ``RetrievalError`` carrying the
    underlying message. Nothing is retried and no partial context is returned.
    """

    def __init__(
        self,
        embedder: Optional[Embedder] = None,
        index: Optional[VectorIndex] = None,
        enhance: bool = RETRIEVAL_ENHANCEMENT_ENABLED,
        max_context_bytes: int = MAX_CONTEXT_BYTES,
    ):
        self.embedder = embedder or OpenAIEmbedder()
        self.index = index or QdrantVectorIndex()
        self.enhance = enhance
        self.max_context_bytes = max_context_bytes

    async def retrieve(self, question: Question, analysis: QuestionAnalysis) -> RetrievalContext:
        """
        Args:
            question: The submitted question (text and chapter tag)
            analysis: Output of ``analyze_question`` for the same text

        Returns:
            RetrievalContext with the joined passage text
        """
        flat = flatten_query(question.text)
        query = build_expanded_query(flat, detect_chapter_context(flat), enhance=self.enhance)
        namespace = to_ascii_namespace(question.chapter)
        top_k = compute_top_k(analysis.has_multiple_statements, analysis.chapter_context)

        try:
            vector = await self.embedder.embed(query)
            passages = await self.index.query(namespace, vector, top_k)
        except RetrievalError:
            raise
        except Exception as exc:
            raise RetrievalError(str(exc) or exc.__class__.__name__) from exc

        logger.debug(
            "Retrieved %d/%d passages from namespace %r", len(passages), top_k, namespace
        )
        return RetrievalContext(
            text=assemble_context(passages, self.max_context_bytes),
            passages=tuple(passages),
            namespace=namespace,
            top_k=top_k,
        )
