import argparse
import asyncio
import json
import logging
import os

from exam_rag.evaluate import evaluate_bank, load_question_bank, print_summary, write_wrong_answers
from exam_rag.service import AnswerService


def serve(args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run("exam_rag.server:app", host=args.host, port=args.port)


async def evaluate(args: argparse.Namespace) -> None:
    print(f"Loading questions from {args.questions}...")
    bank = load_question_bank(args.questions, chapter_prefix=args.chapter_prefix, limit=args.limit)
    total = sum(len(questions) for questions in bank.values())
    print(f"Found {total} questions in {len(bank)} chapters.\n")

    def on_progress(msg):
        print(msg, flush=True)

    service = AnswerService()
    report = await evaluate_bank(service, bank, on_progress=on_progress, max_concurrency=args.concurrency)

    print_summary(report)

    if args.output:
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(report.results, f, indent=2, ensure_ascii=False)
        print(f"\nResults saved to {args.output}")

    path = write_wrong_answers(report, args.wrong_output_dir)
    if path:
        print(f"Saved {len(report.wrong_answers)} wrong answers to: {path}")
    else:
        print("No incorrect answers found.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Exam RAG answering service")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", type=str, default=os.getenv("API_HOST", "0.0.0.0"))
    serve_parser.add_argument("--port", type=int, default=int(os.getenv("API_PORT", "4000")))

    eval_parser = subparsers.add_parser("evaluate", help="Answer a question bank and report accuracy")
    eval_parser.add_argument("--questions", type=str, default="data/questions.json", help="Path to the question bank JSON")
    eval_parser.add_argument("--chapter-prefix", type=str, default="chapter_", help="Only evaluate chapter keys with this prefix")
    eval_parser.add_argument("--limit", type=int, default=None, help="Limit number of questions per chapter")
    eval_parser.add_argument("--concurrency", type=int, default=5, help="Questions answered in parallel")
    eval_parser.add_argument("--output", type=str, default="exam_results.json", help="Output JSON file")
    eval_parser.add_argument("--wrong-output-dir", type=str, default="output", help="Directory for wrong answer dumps")
    return parser


def run() -> None:
    args = build_parser().parse_args()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command == "serve":
        serve(args)
    else:
        asyncio.run(evaluate(args))


if __name__ == "__main__":
    run()
