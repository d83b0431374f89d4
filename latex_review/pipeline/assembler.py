"""
pipeline/assembler.py: turn one closed region of diff lines into a SemanticBlock.

A region with no added or removed line carries nothing to review and is dropped.
No LLM involved. Pure Python.
"""

import logging

from latex_review.pipeline.metadata import extract_metadata
from latex_review.state import DiffLine, SemanticBlock
from latex_review.vocabulary import DEFAULT_VOCABULARY, Vocabulary

logger = logging.getLogger(__name__)


def assemble_block(
    lines: list[DiffLine],
    kind: str,
    file_path: str,
    start_ordinal: int,
    vocabulary: Vocabulary = DEFAULT_VOCABULARY,
) -> SemanticBlock | None:
    """Split a region into changed and context lines, attach metadata and position."""
    changed = tuple(line["text"] for line in lines if line["kind"] != "context")
    if not changed:
        logger.debug("Skipping unchanged %s region in %s at %d", kind, file_path, start_ordinal)
        return None

    context = tuple(line["text"] for line in lines if line["kind"] == "context")
    head_lines = [line["head_line"] for line in lines if line.get("head_line") is not None]

    return SemanticBlock(
        kind=kind,
        changed_lines=changed,
        context_lines=context,
        metadata=extract_metadata(context + changed, vocabulary),
        path=file_path,
        line_start=start_ordinal,
        line_end=start_ordinal + len(lines) - 1,
        head_start=min(head_lines, default=None),
        head_end=max(head_lines, default=None),
    )
