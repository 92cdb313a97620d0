"""FastAPI application exposing ``POST /answer``."""

import asyncio
import logging
import os
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse

from exam_rag.models import AnswerResult, ErrorResponse, Question
from exam_rag.service import AnswerService


logger = logging.getLogger(__name__)

APP_TITLE = "Exam RAG API"
APP_VERSION = "1.0.0"

_timeout = os.getenv("REQUEST_TIMEOUT_SECONDS")
REQUEST_TIMEOUT_SECONDS: Optional[float] = float(_timeout) if _timeout else None

app = FastAPI(
    title=APP_TITLE,
    description="Answers multiple-choice exam questions from a vectorized knowledge base",
    version=APP_VERSION,
)


@lru_cache(maxsize=1)
def get_answer_service() -> AnswerService:
    return AnswerService()


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post(
    "/answer",
    response_model=AnswerResult,
    responses={500: {"model": ErrorResponse}},
)
async def answer_endpoint(
    question: Question,
    service: AnswerService = Depends(get_answer_service),
):
    """Answer one question. Any collaborator failure becomes ``500 {"error": ...}``."""
    try:
        if REQUEST_TIMEOUT_SECONDS:
            return await asyncio.wait_for(service.answer(question), REQUEST_TIMEOUT_SECONDS)
        return await service.answer(question)
    except asyncio.TimeoutError:
        logger.error("Answering timed out after %ss", REQUEST_TIMEOUT_SECONDS)
        return JSONResponse(status_code=500, content={"error": "Request timed out."})
    except Exception as exc:
        logger.exception("Failed to answer question for chapter %r", question.chapter)
        message = str(exc) or exc.__class__.__name__
        return JSONResponse(status_code=500, content={"error": message})
