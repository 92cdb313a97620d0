"""Exceptions raised when a remote collaborator fails."""


class ExamRagError(Exception):
    """Base class for request-level failures."""


class RetrievalError(ExamRagError):
    """Embedding or vector search failed."""


class CompletionError(ExamRagError):
    """The completion provider failed or returned an unusable response."""
