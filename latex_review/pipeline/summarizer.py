"""
Summarize semantic blocks with Claude.

Blocks are packed into prompt-sized chunks; chunks are summarized concurrently
and merged back in document order.
"""

import asyncio
import logging

from latex_review.errors import LLMResponseError, RetryExhausted
from latex_review.llm import LLMSession, complete_json, llm_session
from latex_review.state import ChangeSummary, SemanticBlock

logger = logging.getLogger(__name__)

SUMMARY_KEYS = ("new_claims", "changed_figures", "equations", "impact")

_CHARS_PER_TOKEN = 4

SYSTEM_PROMPT = """\
You are an expert LaTeX document analyzer. Your task is to analyze changes in
LaTeX documents and provide structured summaries focusing on:

1. New or modified claims and arguments
2. Changes to figures, tables, and visual elements
3. Mathematical changes (equations, theorems, proofs)
4. Impact on the document's conclusions or key points

Provide output in the following JSON format:
{
  "new_claims": ["List of new or modified claims"],
  "changed_figures": ["Description of figure/table changes"],
  "equations": ["Description of mathematical changes"],
  "impact": ["How these changes affect the document's conclusions"]
}

Keep descriptions clear and concise. For mathematical content, use LaTeX
notation when relevant."""

SUMMARY_PROMPT = """\
The following {count} changed block(s) come from a pull request against a LaTeX
manuscript. Each block lists the unchanged context and then the added or
removed lines.

{blocks}

Return ONLY the JSON object."""


def empty_summary() -> ChangeSummary:
    return ChangeSummary(new_claims=[], changed_figures=[], equations=[], impact=[])


def format_block_for_prompt(block: SemanticBlock) -> str:
    meta = block.metadata
    parts = [f"Type: {block.kind}", f"Location: {block.location()}"]
    if meta.title:
        parts.append(f"Title: {meta.title}")
    if meta.label:
        parts.append(f"Label: {meta.label}")
    if meta.has_math:
        parts.append("Contains mathematical content")
    if meta.citations:
        parts.append(f"Citations: {', '.join(meta.citations)}")

    return (
        "\n".join(parts)
        + "\n\nContext:\n" + "\n".join(block.context_lines)
        + "\n\nChanges:\n" + "\n".join(block.changed_lines)
    )


def validate_summary(data: object) -> bool:
    return isinstance(data, dict) and all(
        isinstance(data.get(key), list) for key in SUMMARY_KEYS
    )


def chunk_blocks(blocks: list[SemanticBlock], max_chars: int) -> list[list[SemanticBlock]]:
    """Greedy packing in order; an oversized block gets a chunk of its own."""
    chunks: list[list[SemanticBlock]] = []
    current: list[SemanticBlock] = []
    size = 0
    for block in blocks:
        length = len(format_block_for_prompt(block))
        if current and size + length > max_chars:
            chunks.append(current)
            current, size = [], 0
        current.append(block)
        size += length
    if current:
        chunks.append(current)
    return chunks


def merge_summaries(parts: list[ChangeSummary]) -> ChangeSummary:
    merged = empty_summary()
    for part in parts:
        for key in SUMMARY_KEYS:
            merged[key].extend(str(item) for item in part[key])
    return merged


async def _summarize_chunk(session: LLMSession, chunk: list[SemanticBlock], index: int) -> ChangeSummary:
    prompt = SUMMARY_PROMPT.format(
        count=len(chunk),
        blocks="\n\n---\n\n".join(format_block_for_prompt(b) for b in chunk),
    )
    try:
        data = await complete_json(session, SYSTEM_PROMPT, prompt)
        if not validate_summary(data):
            raise LLMResponseError(f"Summary is missing one of {SUMMARY_KEYS}")
    except (LLMResponseError, RetryExhausted) as exc:
        logger.error("Summary failed for chunk %d (%d blocks): %s", index, len(chunk), exc)
        return empty_summary()

    return ChangeSummary(**{key: data[key] for key in SUMMARY_KEYS})


async def summarize_blocks(session: LLMSession, blocks: list[SemanticBlock]) -> ChangeSummary:
    if not blocks:
        return empty_summary()
    max_chars = session.settings.max_tokens_per_request * _CHARS_PER_TOKEN
    chunks = chunk_blocks(blocks, max_chars)
    logger.info("Summarizing %d blocks in %d chunk(s)", len(blocks), len(chunks))
    parts = await asyncio.gather(*(_summarize_chunk(session, c, i) for i, c in enumerate(chunks)))
    return merge_summaries(list(parts))


def summarize_changes(state: dict) -> dict:
    blocks: list[SemanticBlock] = state.get("blocks", [])
    if not blocks:
        logger.info("No reviewable structural change, skipping summary")
        return {"summary": empty_summary()}

    summary = asyncio.run(summarize_blocks(llm_session(state), blocks))
    logger.info(
        "Summary: %s",
        ", ".join(f"{len(summary[key])} {key}" for key in SUMMARY_KEYS),
    )
    return {"summary": summary}
