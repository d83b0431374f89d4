"""CLI entry point for the LaTeX pull request reviewer."""

import argparse
import asyncio
import dataclasses
import json
import logging
import os
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from latex_review.config import Settings
from latex_review.errors import LatexReviewError
from latex_review.llm import llm_rate_limiter
from latex_review.pipeline.loader import fetch_pull_context, github_client, github_wrapper, load_review, load_review_context
from latex_review.pipeline.partitioner import extract_blocks
from latex_review.pipeline.quiz import generate_quiz
from latex_review.pipeline.renderer import publish_comment, render_comment
from latex_review.pipeline.summarizer import empty_summary, summarize_changes
from latex_review.ratelimit import TokenUsageTracker
from latex_review.state import ReviewContext

logger = logging.getLogger(__name__)


def run_pipeline(state: dict) -> dict:
    """Run the review pipeline over a prepared state dict, return final state."""
    settings: Settings = state["settings"]
    state.setdefault("max_block_lines", settings.max_diff_lines)
    state.setdefault("usage", TokenUsageTracker(settings.max_total_tokens))
    state.setdefault("llm_limiter", llm_rate_limiter(settings))

    state.update(load_review(state))
    state.update(extract_blocks(state))

    if state.get("use_llm", True):
        state.update(summarize_changes(state))
        state.update(generate_quiz(state))
    else:
        state.update({"summary": empty_summary(), "quiz": []})

    state.update(render_comment(state))
    state.update(publish_comment(state))
    return state


def _resolve_context(args: argparse.Namespace, settings: Settings) -> ReviewContext | None:
    if args.diff_file:
        if not (args.base_ref and args.head_ref):
            return None
        owner, _, repo = (args.repo or "local/local").partition("/")
        return ReviewContext(
            owner=owner, repo=repo, number=args.pr or 0,
            base_sha=args.base_ref, head_sha=args.head_ref,
        )

    if args.repo and args.pr:
        owner, _, repo = args.repo.partition("/")

        async def _fetch() -> ReviewContext:
            async with github_client(settings) as client:
                return await fetch_pull_context(client, github_wrapper(), owner, repo, args.pr)

        return asyncio.run(_fetch())

    return load_review_context(os.environ.get("GITHUB_EVENT_PATH"), os.environ.get("GITHUB_REPOSITORY"))


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Summarize structural changes in a LaTeX pull request.")
    parser.add_argument("--diff-file", help="Read the unified diff from a local file instead of GitHub")
    parser.add_argument("--base-ref", help="Base commit of the local diff")
    parser.add_argument("--head-ref", help="Head commit of the local diff")
    parser.add_argument("--repo", help="owner/name of the GitHub repository")
    parser.add_argument("--pr", type=int, help="Pull request number")
    parser.add_argument("--max-diff-lines", type=int, help="Line budget for one block in progress")
    parser.add_argument("--no-llm", action="store_true", help="Only extract blocks, skip summary and quiz")
    parser.add_argument("--post", action="store_true", help="Post the rendered comment to the pull request")
    parser.add_argument("--output", "-o", default="output/review.json")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level), format="%(levelname)s %(name)s: %(message)s")

    try:
        settings = Settings.from_env()
        if args.max_diff_lines is not None:
            settings = dataclasses.replace(settings, max_diff_lines=args.max_diff_lines)
        settings.validate(require_llm=not args.no_llm)
    except LatexReviewError as exc:
        logger.error("Configuration error: %s", exc)
        return 1

    state: dict = {"settings": settings, "use_llm": not args.no_llm, "post": args.post}
    if args.diff_file:
        diff_path = Path(args.diff_file)
        if not diff_path.exists():
            logger.error("File not found: %s", diff_path)
            return 1
        state["diff_text"] = diff_path.read_text(encoding="utf-8")

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    start = time.time()
    try:
        state["context"] = _resolve_context(args, settings)
        state = run_pipeline(state)
    except LatexReviewError as exc:
        logger.error("%s", exc)
        return 1
    except Exception:
        logger.exception("Pipeline failed")
        return 1

    blocks = state.get("blocks", [])
    result = {
        "blocks": [b.to_dict() for b in blocks],
        "summary": state.get("summary"),
        "quiz": state.get("quiz", []),
        "comment": state.get("comment", ""),
        "usage": state["usage"].stats(),
    }
    with open(output_path, "w", encoding="utf-8") as fh:
        json.dump(result, fh, indent=2, ensure_ascii=False)

    logger.info("Done: %d blocks -> %s (%.1fs)",
                len(blocks), output_path, time.time() - start)
    return 0


if __name__ == "__main__":
    sys.exit(main())
