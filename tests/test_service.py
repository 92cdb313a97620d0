"""End-to-end tests for exam_rag/service.py with stubbed providers."""

import asyncio

import pytest

from exam_rag.errors import CompletionError, RetrievalError
from exam_rag.models import ChapterContext, Question


NEGATIVE_ALL_OF_ABOVE = "Which of the following is NOT correct? A. Foo B. Bar C. Baz D. All of the above"

STATEMENTS = (
    "Consider the following statements:\n"
    "I. A will must be in writing.\n"
    "II. A nominee is a trustee of the policy moneys.\n"
    "III. Assignment transfers ownership.\n"
    "Which of the above is/are correct?\n"
    "A. I only\n"
    "B. I and II only\n"
    "C. II and III only\n"
    "D. I, II and III"
)

VERY_COMPLEX = (
    "Which of the following statements is NOT correct?\n"
    "I. A nominee is a trustee.\n"
    "II. Assignment transfers ownership.\n"
    "III. Wills need two witnesses.\n"
    "A. I only\n"
    "B. II only\n"
    "C. III only\n"
    "D. All of the above"
)


def test_negative_all_of_above_question(make_service):
    service, _, _, completion = make_service(replies=["D"])
    question = Question(text=NEGATIVE_ALL_OF_ABOVE, answer_key="D", chapter="chapter_1")

    result = asyncio.run(service.answer(question))

    assert result.is_negative is True
    assert result.has_all_of_above is True
    assert result.predicted == "D"
    assert result.correct == "D"
    assert result.is_correct is True
    assert result.raw_answer == "D"
    assert len(completion.calls) == 1


def test_multi_statement_question(make_service):
    service, _, index, _ = make_service(replies=["B) correct"])
    question = Question(text=STATEMENTS, answer_key="B", chapter="chapter_7")

    result = asyncio.run(service.answer(question))

    assert result.has_multiple_statements is True
    assert result.predicted == "B"
    assert result.is_correct is True
    assert result.raw_answer == "B) correct"
    assert result.chapter_context == ChapterContext.INSURANCE
    assert index.calls[0]["top_k"] == 20


def test_statement_walk_reaches_the_prompt(make_service):
    service, _, _, completion = make_service(replies=["B"])
    asyncio.run(service.answer(Question(text=STATEMENTS, answer_key="B", chapter="chapter_7")))

    user_prompt = completion.calls[0]["messages"][1]["content"]
    assert '- Statement III: "Assignment transfers ownership.' in user_prompt
    assert "A nominee receives the policy moneys." in user_prompt


def test_very_complex_question_uses_verification(make_service):
    service, _, _, completion = make_service(replies=["Analysis...\nYour final answer: D", "D"])
    question = Question(text=VERY_COMPLEX, answer_key="D", chapter="chapter_7")

    result = asyncio.run(service.answer(question))

    assert result.has_multiple_statements and result.has_all_of_above and result.is_negative
    assert result.predicted == "D"
    assert len(completion.calls) == 2


def test_wrong_answer(make_service):
    service, _, _, _ = make_service(replies=["A"])
    result = asyncio.run(service.answer(Question(text=NEGATIVE_ALL_OF_ABOVE, answer_key="D", chapter="c")))
    assert result.predicted == "A"
    assert result.is_correct is False
    assert result.is_indeterminate is False


def test_indeterminate_answer_is_never_correct(make_service):
    service, _, _, _ = make_service(replies=["no idea"])
    result = asyncio.run(service.answer(Question(text=NEGATIVE_ALL_OF_ABOVE, answer_key="D", chapter="c")))
    assert result.predicted == "X"
    assert result.is_indeterminate is True
    assert result.is_correct is False


def test_answer_key_comparison_is_case_sensitive(make_service):
    service, _, _, _ = make_service(replies=["D"])
    result = asyncio.run(service.answer(Question(text=NEGATIVE_ALL_OF_ABOVE, answer_key="d", chapter="c")))
    assert result.is_correct is False


def test_context_returned(make_service):
    service, _, _, _ = make_service(replies=["D"])
    result = asyncio.run(service.answer(Question(text=NEGATIVE_ALL_OF_ABOVE, answer_key="D", chapter="c")))
    assert result.context.startswith("A nominee receives the policy moneys.\n")


def test_retrieval_failure_stops_before_completion(make_service):
    service, _, _, completion = make_service(index_error=RuntimeError("vector store down"))
    with pytest.raises(RetrievalError, match="vector store down"):
        asyncio.run(service.answer(Question(text=NEGATIVE_ALL_OF_ABOVE, answer_key="D", chapter="c")))
    assert completion.calls == []


def test_completion_failure(make_service):
    service, _, _, _ = make_service(completion_error=TimeoutError("deadline exceeded"))
    with pytest.raises(CompletionError, match="deadline exceeded"):
        asyncio.run(service.answer(Question(text=NEGATIVE_ALL_OF_ABOVE, answer_key="D", chapter="c")))


def test_concurrent_requests_are_independent(make_service):
    service, _, _, _ = make_service(replies=["D"])
    questions = [
        Question(text=NEGATIVE_ALL_OF_ABOVE, answer_key="D", chapter="c"),
        Question(text=STATEMENTS, answer_key="B", chapter="chapter_7"),
    ]

    async def run_all():
        return await asyncio.gather(*(service.answer(q) for q in questions))

    first, second = asyncio.run(run_all())
    assert first.is_correct is True
    assert second.has_multiple_statements is True
    assert second.is_correct is False
