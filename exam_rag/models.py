"""Data models for the exam answering service."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


INDETERMINATE = "X"
ANSWER_LETTERS = ("A", "B", "C", "D")


class ChapterContext(str, Enum):
    """Coarse topic of a question, used to widen retrieval."""
    INSURANCE = "insurance"
    BUSINESS = "business"
    GENERAL = "general"


class Question(BaseModel):
    """A multiple-choice exam question as submitted to ``POST /answer``."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    text: str = Field(alias="question", description="Raw question text including options")
    answer_key: str = Field(alias="answerKey", description="Expected answer letter")
    chapter: str = Field(description="Chapter tag, used as the vector store namespace")


class AnswerOption(BaseModel):
    """One lettered option parsed from the question text."""
    model_config = ConfigDict(frozen=True)

    letter: str
    text: str


class AnswerResult(BaseModel):
    """Outcome of answering one question."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    predicted: str
    correct: str
    context: str
    chapter_context: ChapterContext
    has_multiple_statements: bool
    has_all_of_above: bool
    is_negative: bool
    is_correct: bool
    raw_answer: str

    @property
    def is_indeterminate(self) -> bool:
        return self.predicted == INDETERMINATE


class ErrorResponse(BaseModel):
    error: str
