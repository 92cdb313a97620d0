"""
Exam RAG

Answers multiple-choice exam questions from a vectorized knowledge base.
"""

from dotenv import load_dotenv

# Modules read their configuration from the environment at import time.
load_dotenv()

from .analysis import QuestionAnalysis, analyze_question
from .errors import CompletionError, ExamRagError, RetrievalError
from .models import AnswerResult, ChapterContext, Question
from .resolver import AnswerResolver
from .retrieval import ExamRetriever
from .service import AnswerService

__all__ = [
    "AnswerResolver",
    "AnswerResult",
    "AnswerService",
    "ChapterContext",
    "CompletionError",
    "ExamRagError",
    "ExamRetriever",
    "Question",
    "QuestionAnalysis",
    "RetrievalError",
    "analyze_question",
]
