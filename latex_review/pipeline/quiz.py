"""
Comprehension quiz from the change summary.

Returns a list of question sets (one true/false plus one short answer each).
Invalid model output is retried up to 3 times.
"""

import asyncio
import json
import logging

from latex_review.errors import LLMResponseError, RetryExhausted
from latex_review.llm import LLMSession, complete_json, llm_session
from latex_review.pipeline.summarizer import SUMMARY_KEYS
from latex_review.state import ChangeSummary, QuizQuestion

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3

QUIZ_PROMPT = """\
Generate comprehension quiz questions based on LaTeX document changes. For each
significant change, create:

1. A True/False question testing understanding
2. A short-answer question requiring synthesis

Format response as JSON:
{
  "questions": [{
    "tf": {
      "question": "True/False question text",
      "answer": true,
      "explanation": "Why this is correct"
    },
    "short": {
      "question": "Short answer question",
      "answer": "Expected response (1-2 sentences)",
      "rubric": "Key points to look for"
    }
  }]
}

Return ONLY the JSON object."""


def _validate(data: object) -> str | None:
    if not isinstance(data, dict) or not isinstance(data.get("questions"), list):
        return "Missing 'questions' list"
    for i, item in enumerate(data["questions"]):
        if not isinstance(item, dict):
            return f"Question {i} is not an object"
        tf, short = item.get("tf"), item.get("short")
        if not isinstance(tf, dict) or not isinstance(tf.get("question"), str) or not isinstance(tf.get("answer"), bool):
            return f"Question {i} has an invalid true/false part"
        if not isinstance(short, dict) or not isinstance(short.get("question"), str) or not isinstance(short.get("answer"), str):
            return f"Question {i} has an invalid short-answer part"
    return None


def _normalize(item: dict) -> QuizQuestion:
    tf, short = item["tf"], item["short"]
    return {
        "tf": {
            "question": tf["question"],
            "answer": tf["answer"],
            "explanation": str(tf.get("explanation", "")),
        },
        "short": {
            "question": short["question"],
            "answer": short["answer"],
            "rubric": str(short.get("rubric", "")),
        },
    }


def has_content(summary: ChangeSummary | None) -> bool:
    return bool(summary) and any(summary.get(key) for key in SUMMARY_KEYS)


async def build_quiz(session: LLMSession, summary: ChangeSummary) -> list[QuizQuestion]:
    prompt = "Document change summary:\n" + json.dumps(summary, indent=2, ensure_ascii=False)

    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            data = await complete_json(session, QUIZ_PROMPT, prompt)
        except (LLMResponseError, RetryExhausted) as exc:
            logger.warning("Quiz attempt %d/%d failed: %s", attempt, MAX_ATTEMPTS, exc)
            continue

        error = _validate(data)
        if error is None:
            return [_normalize(item) for item in data["questions"]]
        logger.warning("Quiz attempt %d/%d invalid: %s", attempt, MAX_ATTEMPTS, error)

    logger.error("Quiz generation failed after %d attempts, posting without quiz", MAX_ATTEMPTS)
    return []


def generate_quiz(state: dict) -> dict:
    summary = state.get("summary")
    if not has_content(summary):
        return {"quiz": []}

    quiz = asyncio.run(build_quiz(llm_session(state), summary))
    logger.info("Generated %d question sets", len(quiz))
    return {"quiz": quiz}
