"""
Batch evaluation of a question bank against the AnswerService.

The bank is a JSON object mapping chapter keys to lists of
``{"question": ..., "answer": ...}`` items. Chapter keys double as the
vector store namespace.
"""

import asyncio
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

from exam_rag.models import INDETERMINATE, Question
from exam_rag.service import AnswerService


@dataclass
class ChapterScore:
    chapter: str
    total: int = 0
    correct: int = 0
    indeterminate: int = 0
    errors: int = 0

    @property
    def accuracy(self) -> float:
        return 100 * self.correct / self.total if self.total else 0.0


@dataclass
class EvaluationReport:
    chapters: dict[str, ChapterScore] = field(default_factory=dict)
    results: list[dict] = field(default_factory=list)

    @property
    def total(self) -> int:
        return sum(c.total for c in self.chapters.values())

    @property
    def correct(self) -> int:
        return sum(c.correct for c in self.chapters.values())

    @property
    def accuracy(self) -> float:
        return 100 * self.correct / self.total if self.total else 0.0

    @property
    def wrong_answers(self) -> list[dict]:
        return [r for r in self.results if not r.get("isCorrect")]


def load_question_bank(
    path: str,
    chapter_prefix: str = "chapter_",
    limit: Optional[int] = None,
) -> dict[str, list[Question]]:
    """Load the bank, keeping chapters whose key starts with ``chapter_prefix``."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    bank = {}
    for chapter, items in data.items():
        if not chapter.startswith(chapter_prefix):
            continue
        questions = [
            Question(text=item["question"], answer_key=str(item["answer"]).strip(), chapter=chapter)
            for item in items
        ]
        bank[chapter] = questions[:limit] if limit is not None else questions
    return bank


async def evaluate_bank(
    service: AnswerService,
    bank: dict[str, list[Question]],
    on_progress: Optional[Callable[[str], None]] = None,
    max_concurrency: int = 5,
) -> EvaluationReport:
    """Answer every question; a failed question is recorded and the run continues."""
    semaphore = asyncio.Semaphore(max_concurrency)
    report = EvaluationReport(
        chapters={chapter: ChapterScore(chapter=chapter) for chapter in bank}
    )

    async def process_one(index: int, q: Question) -> dict:
        async with semaphore:
            try:
                answer = await service.answer(q)
                result = answer.model_dump(by_alias=True, mode="json")
            except Exception as e:
                result = {
                    "predicted": "",
                    "correct": q.answer_key,
                    "isCorrect": False,
                    "error": str(e) or e.__class__.__name__,
                }
        result.update({"chapter": q.chapter, "index": index, "question": q.text})

        score = report.chapters[q.chapter]
        score.total += 1
        if "error" in result:
            score.errors += 1
        elif result["isCorrect"]:
            score.correct += 1
        elif result["predicted"] == INDETERMINATE:
            score.indeterminate += 1

        if on_progress:
            on_progress(_progress_line(result))
        return result

    tasks = [
        process_one(i, q)
        for questions in bank.values()
        for i, q in enumerate(questions)
    ]
    results = await asyncio.gather(*tasks)
    report.results = sorted(results, key=lambda r: (r["chapter"], r["index"]))
    return report


def _progress_line(result: dict) -> str:
    snippet = result["question"][:60].replace("\n", " ")
    if "error" in result:
        return f"[{result['chapter']}] {snippet}... → ERROR ({result['error']})"
    mark = "✓" if result["isCorrect"] else "✗"
    return f"[{result['chapter']}] {snippet}... → {result['predicted']} ({mark})"


def print_summary(report: EvaluationReport) -> None:
    """Print per-chapter and overall accuracy."""
    print("\n=== Evaluation Results ===\n")
    for score in report.chapters.values():
        print(f"{score.chapter}: {score.correct}/{score.total} ({score.accuracy:.2f}%)")
        if score.indeterminate:
            print(f"  Indeterminate: {score.indeterminate}")
        if score.errors:
            print(f"  Errors:        {score.errors}")

    print("\n=== Summary ===")
    print(f"Correct:  {report.correct}/{report.total}")
    print(f"Accuracy: {report.accuracy:.2f}%")


def write_wrong_answers(report: EvaluationReport, output_dir: str) -> Optional[Path]:
    """Save incorrect and failed answers to a timestamped JSON file."""
    wrong = report.wrong_answers
    if not wrong:
        return None

    directory = Path(output_dir)
    directory.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    path = directory / f"wrong_answers_{timestamp}.json"
    with path.open("w", encoding="utf-8") as f:
        json.dump(wrong, f, indent=2, ensure_ascii=False)
    return path
