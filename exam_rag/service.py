"""
Answer Service

Answers one question end to end:
1. Analyze the question text
2. Retrieve context from the chapter's namespace
3. Build the reasoning prompt
4. Resolve a single answer letter
"""

import asyncio
import logging
import os
from typing import Optional

from exam_rag.analysis import analyze_question
from exam_rag.models import AnswerResult, Question
from exam_rag.prompts import build_prompt
from exam_rag.resolver import AnswerResolver
from exam_rag.retrieval import ExamRetriever


logger = logging.getLogger(__name__)

MAX_CONCURRENCY = int(os.getenv("MAX_CONCURRENCY", "8"))


class AnswerService:
    """
    Composes analysis, retrieval, prompting and resolution for one request.

    Requests share only the provider handles held by the retriever and the
    resolver. ``max_concurrency`` bounds how many requests are in flight
    against the providers at once; 0 disables the limit.
    """

    def __init__(
        self,
        retriever: Optional[ExamRetriever] = None,
        resolver: Optional[AnswerResolver] = None,
        max_concurrency: int = MAX_CONCURRENCY,
    ):
        self.retriever = retriever or ExamRetriever()
        self.resolver = resolver or AnswerResolver()
        self._semaphore = asyncio.Semaphore(max_concurrency) if max_concurrency > 0 else None

    async def answer(self, question: Question) -> AnswerResult:
        if self._semaphore is None:
            return await self._answer(question)
        async with self._semaphore:
            return await self._answer(question)

    async def _answer(self, question: Question) -> AnswerResult:
        analysis = analyze_question(question.text)
        logger.debug(
            "chapter=%s negative=%s statements=%s all_of_above=%s",
            analysis.chapter_context.value,
            analysis.is_negative,
            analysis.has_multiple_statements,
            analysis.has_all_of_above,
        )

        context = await self.retriever.retrieve(question, analysis)
        plan = build_prompt(question.text, context.text, analysis)
        state = await self.resolver.resolve(plan, analysis, question.text)

        return AnswerResult(
            predicted=state.predicted,
            correct=question.answer_key,
            context=context.text,
            chapter_context=analysis.chapter_context,
            has_multiple_statements=analysis.has_multiple_statements,
            has_all_of_above=analysis.has_all_of_above,
            is_negative=analysis.is_negative,
            is_correct=state.predicted == question.answer_key,
            raw_answer=state.raw_answer,
        )
