"""
Answer Resolution

Turns a built prompt into a single answer letter using one of two protocols:
1. SIMPLE: one deterministic completion sized for a letter
2. COMPLEX: a reasoning completion that yields a preliminary letter, followed
   by an independent verification completion

The protocol runs as a small state machine. Each step takes a frozen
ResolutionState and returns the next one:

    ANALYZE_COMPLEXITY -> SIMPLE -------------------------> NORMALIZE -> DONE
                       \\-> COMPLEX_REASON -> COMPLEX_VERIFY -/
"""

import logging
import os
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from exam_rag.analysis import QuestionAnalysis
from exam_rag.errors import CompletionError, ExamRagError
from exam_rag.models import ANSWER_LETTERS, INDETERMINATE
from exam_rag.prompts import PromptPlan, build_reasoning_messages, build_verification_messages
from exam_rag.providers import CompletionClient, OpenAICompletionClient


logger = logging.getLogger(__name__)

# Configuration
SIMPLE_MAX_TOKENS = int(os.getenv("SIMPLE_MAX_TOKENS", "10"))
REASONING_MAX_TOKENS = int(os.getenv("REASONING_MAX_TOKENS", "4096"))
VERIFY_MAX_TOKENS = int(os.getenv("VERIFY_MAX_TOKENS", "5"))
REASONING_TEMPERATURE = float(os.getenv("REASONING_TEMPERATURE", "0.2"))
PRELIMINARY_FALLBACK_ENABLED = os.getenv("PRELIMINARY_FALLBACK_ENABLED", "true").lower() in {"1", "true", "yes", "on"}

_LEADING_LETTER_RE = re.compile(r"^([ABCD])[^A-Za-z0-9]")
_ANY_LETTER_RE = re.compile(r"[ABCD]")
_FINAL_ANSWER_RE = re.compile(r"Your final answer: ([A-D])", re.IGNORECASE)


class Stage(str, Enum):
    ANALYZE_COMPLEXITY = "analyze_complexity"
    SIMPLE = "simple"
    COMPLEX_REASON = "complex_reason"
    COMPLEX_VERIFY = "complex_verify"
    NORMALIZE = "normalize"
    DONE = "done"


@dataclass(frozen=True)
class ResolutionState:
    """Snapshot of one question's way through the protocol."""
    plan: PromptPlan
    question_text: str
    analysis: QuestionAnalysis
    stage: Stage = Stage.ANALYZE_COMPLEXITY
    very_complex: bool = False
    reasoning: str = ""
    preliminary: str = ""
    raw_answer: str = ""
    predicted: str = ""

    def advance(self, stage: Stage, **changes) -> "ResolutionState":
        return replace(self, stage=stage, **changes)


def normalize_answer(raw: str, preliminary: str = "") -> str:
    """
    Reduce free-form model output to A-D, or X when no letter can be found.

    Checked in order: the whole reply is a letter; the reply starts with a
    letter followed by punctuation or whitespace; the first capital A-D
    anywhere; the preliminary letter, when one is given.
    """
    text = (raw or "").strip()
    if text in ANSWER_LETTERS:
        return text

    match = _LEADING_LETTER_RE.match(text)
    if match:
        return match.group(1)

    match = _ANY_LETTER_RE.search(text)
    if match:
        return match.group(0)

    if preliminary in ANSWER_LETTERS:
        return preliminary
    return INDETERMINATE


def extract_preliminary_letter(reasoning: str) -> str:
    """Find the letter after "Your final answer:" in a reasoning reply."""
    match = _FINAL_ANSWER_RE.search(reasoning or "")
    return match.group(1).upper() if match else ""


class AnswerResolver:
    """Runs the SIMPLE or COMPLEX protocol against a completion provider."""

    def __init__(
        self,
        client: Optional[CompletionClient] = None,
        simple_max_tokens: int = SIMPLE_MAX_TOKENS,
        reasoning_max_tokens: int = REASONING_MAX_TOKENS,
        verify_max_tokens: int = VERIFY_MAX_TOKENS,
        reasoning_temperature: float = REASONING_TEMPERATURE,
        preliminary_fallback: bool = PRELIMINARY_FALLBACK_ENABLED,
    ):
        self.client = client or OpenAICompletionClient()
        self.simple_max_tokens = simple_max_tokens
        self.reasoning_max_tokens = reasoning_max_tokens
        self.verify_max_tokens = verify_max_tokens
        self.reasoning_temperature = reasoning_temperature
        self.preliminary_fallback = preliminary_fallback
        self._steps = {
            Stage.ANALYZE_COMPLEXITY: self.analyze_complexity,
            Stage.SIMPLE: self.simple,
            Stage.COMPLEX_REASON: self.complex_reason,
            Stage.COMPLEX_VERIFY: self.complex_verify,
            Stage.NORMALIZE: self.normalize,
        }

    async def resolve(self, plan: PromptPlan, analysis: QuestionAnalysis, question_text: str) -> ResolutionState:
        """Run the protocol to completion and return the final state."""
        state = ResolutionState(plan=plan, question_text=question_text, analysis=analysis)
        while state.stage != Stage.DONE:
            state = await self._steps[state.stage](state)
        return state

    async def _complete(self, messages: list[dict], temperature: float, max_tokens: int) -> str:
        try:
            return await self.client.complete(messages, temperature=temperature, max_tokens=max_tokens)
        except ExamRagError:
            raise
        except Exception as exc:
            raise CompletionError(str(exc) or exc.__class__.__name__) from exc

    async def analyze_complexity(self, state: ResolutionState) -> ResolutionState:
        if state.analysis.is_very_complex:
            return state.advance(Stage.COMPLEX_REASON, very_complex=True)
        return state.advance(Stage.SIMPLE, very_complex=False)

    async def simple(self, state: ResolutionState) -> ResolutionState:
        raw = await self._complete(state.plan.messages(), 0, self.simple_max_tokens)
        if not raw:
            raise CompletionError("Completion provider returned an empty answer.")
        return state.advance(Stage.NORMALIZE, raw_answer=raw)

    async def complex_reason(self, state: ResolutionState) -> ResolutionState:
        reasoning = await self._complete(
            build_reasoning_messages(state.plan),
            self.reasoning_temperature,
            self.reasoning_max_tokens,
        )
        logger.debug("Stage 1 analysis: %s", reasoning)
        return state.advance(
            Stage.COMPLEX_VERIFY,
            reasoning=reasoning,
            preliminary=extract_preliminary_letter(reasoning),
        )

    async def complex_verify(self, state: ResolutionState) -> ResolutionState:
        raw = await self._complete(
            build_verification_messages(state.preliminary, state.question_text),
            0,
            self.verify_max_tokens,
        )
        return state.advance(Stage.NORMALIZE, raw_answer=raw)

    async def normalize(self, state: ResolutionState) -> ResolutionState:
        fallback = state.preliminary if state.very_complex and self.preliminary_fallback else ""
        predicted = normalize_answer(state.raw_answer, fallback)
        if predicted == INDETERMINATE:
            logger.warning("No answer letter in model output %r", state.raw_answer)
        return state.advance(Stage.DONE, predicted=predicted)
