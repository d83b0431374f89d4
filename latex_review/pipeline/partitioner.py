"""
pipeline/partitioner.py: walk a unified diff and cut it into semantic blocks.

One pass, left to right, with at most one open region:

  SCANNING   no file, or the current file is not .tex/.bib
  IN_FILE    eligible file, no open region
  IN_REGION  eligible file, a tracked region is open

Only the lines of the open region are buffered. When that region reaches
max_block_lines lines it is dropped without producing a block. Ordinals run
across all files of one invocation; head line numbers come from the hunk headers.
"""

import enum
import logging
import re

from latex_review.errors import InvalidContext
from latex_review.pipeline.assembler import assemble_block
from latex_review.pipeline.classifier import classify_boundary, closes_on_opening_line, is_boundary_end
from latex_review.state import DiffLine, LineKind, ReviewContext, SemanticBlock
from latex_review.vocabulary import DEFAULT_VOCABULARY, Vocabulary

logger = logging.getLogger(__name__)

_GIT_HEADER_RE = re.compile(r"^diff --git a/(.+?) b/(.+)$")
_HUNK_RE = re.compile(r"^@@ -\d+(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")

_METADATA_PREFIXES = (
    "index ",
    "new file mode",
    "deleted file mode",
    "old mode",
    "new mode",
    "similarity index",
    "dissimilarity index",
    "rename from",
    "rename to",
    "copy from",
    "copy to",
    "Binary files",
    "\\ No newline",
)

_LINE_KINDS: dict[str, LineKind] = {"+": "added", "-": "removed", " ": "context"}


class _State(enum.Enum):
    SCANNING = "scanning"
    IN_FILE = "in_file"
    IN_REGION = "in_region"


def _strip_side(path: str) -> str:
    path = path.split("\t", 1)[0].strip()
    if path.startswith(("a/", "b/")):
        return path[2:]
    return path


class DiffPartitioner:
    """Incremental extractor; feed() diff lines one by one, then finish()."""

    def __init__(self, max_block_lines: int, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> None:
        if max_block_lines < 1:
            raise ValueError(f"max_block_lines must be positive, got {max_block_lines}")
        self.max_block_lines = max_block_lines
        self.vocabulary = vocabulary
        self.blocks: list[SemanticBlock] = []

        self._state = _State.SCANNING
        self._path: str | None = None
        self._buffer: list[DiffLine] = []
        self._open_kind: str | None = None
        self._ordinal = 0

        self._hunk_seen = False
        self._old_left = 0
        self._new_left = 0
        self._head_line = 0

    # ------------------------------------------------------------------
    # Line dispatch
    # ------------------------------------------------------------------

    def feed(self, raw: str) -> None:
        if raw.startswith("diff --git "):
            m = _GIT_HEADER_RE.match(raw)
            self._begin_file(_strip_side(m.group(2)) if m else None)
            return

        if raw.startswith("@@"):
            self._begin_hunk(raw)
            return

        if not self._in_hunk():
            if raw.startswith("--- "):
                # A second file in a plain (non-git) diff starts here
                if self._hunk_seen:
                    self._begin_file(None)
                return
            if raw.startswith("+++ "):
                target = raw[4:].split("\t", 1)[0].strip()
                self._begin_file(None if target == "/dev/null" else _strip_side(target))
                return

        if raw.startswith(_METADATA_PREFIXES):
            return

        kind = "context" if raw == "" else _LINE_KINDS.get(raw[0])
        if kind is None:
            if self._state is not _State.SCANNING:
                logger.debug("Ignoring unrecognised diff line in %s: %r", self._path, raw[:40])
            return

        # Skipped files still use up their hunk counts
        self._consume_counts(kind)
        head_line = None
        if kind != "removed":
            head_line = self._head_line
            self._head_line += 1

        if self._state is _State.SCANNING or not self._hunk_seen:
            return
        self._record(kind, raw[1:], head_line)

    def finish(self) -> list[SemanticBlock]:
        if self._state is _State.IN_REGION:
            logger.debug("Discarding unclosed %s region in %s", self._open_kind, self._path)
        self._reset_region()
        return list(self.blocks)

    # ------------------------------------------------------------------
    # File and hunk tracking
    # ------------------------------------------------------------------

    def _begin_file(self, path: str | None) -> None:
        if self._state is _State.IN_REGION:
            logger.debug("Discarding unclosed %s region in %s", self._open_kind, self._path)
        self._reset_region()
        self._hunk_seen = False
        self._old_left = self._new_left = 0
        self._path = path

        if path is not None and self.vocabulary.is_eligible(path):
            self._state = _State.IN_FILE
        else:
            if path is not None:
                logger.debug("Skipping non-LaTeX file %s", path)
            self._state = _State.SCANNING

    def _begin_hunk(self, raw: str) -> None:
        m = _HUNK_RE.match(raw)
        if m is None:
            logger.warning("Malformed hunk header in %s: %r", self._path, raw)
            self._old_left = self._new_left = 0
            return
        self._hunk_seen = True
        self._old_left = int(m.group(1) or "1")
        self._head_line = int(m.group(2))
        self._new_left = int(m.group(3) or "1")

    def _in_hunk(self) -> bool:
        return self._old_left > 0 or self._new_left > 0

    def _consume_counts(self, kind: LineKind) -> None:
        if kind != "added":
            self._old_left = max(self._old_left - 1, 0)
        if kind != "removed":
            self._new_left = max(self._new_left - 1, 0)

    # ------------------------------------------------------------------
    # Region state machine
    # ------------------------------------------------------------------

    def _record(self, kind: LineKind, text: str, head_line: int | None) -> None:
        self._ordinal += 1
        line = DiffLine(kind=kind, text=text, ordinal=self._ordinal, head_line=head_line)

        if self._state is _State.IN_REGION:
            self._buffer.append(line)
            if is_boundary_end(text, self._open_kind, self.vocabulary):
                self._close_region()

        # The line that closed a section may open the next region
        if self._state is _State.IN_FILE:
            opened = classify_boundary(text, self.vocabulary)
            if opened is not None:
                self._open_kind = opened
                self._buffer = [line]
                self._state = _State.IN_REGION
                if closes_on_opening_line(text, opened, self.vocabulary):
                    self._close_region()

        if self._state is _State.IN_REGION and len(self._buffer) >= self.max_block_lines:
            logger.debug(
                "Dropping oversized %s region in %s (>= %d lines)",
                self._open_kind, self._path, self.max_block_lines,
            )
            self._reset_region()

    def _close_region(self) -> None:
        lines = self._buffer
        block = assemble_block(lines, self._open_kind, self._path, lines[0]["ordinal"], self.vocabulary)
        if block is not None:
            self.blocks.append(block)
        self._reset_region()

    def _reset_region(self) -> None:
        self._open_kind = None
        self._buffer = []
        if self._state is _State.IN_REGION:
            self._state = _State.IN_FILE


def partition_diff(
    diff_text: str,
    max_block_lines: int,
    vocabulary: Vocabulary = DEFAULT_VOCABULARY,
) -> list[SemanticBlock]:
    """Extract semantic blocks from a unified diff. Never raises on malformed input."""
    partitioner = DiffPartitioner(max_block_lines, vocabulary)
    for raw in diff_text.splitlines():
        partitioner.feed(raw)
    return partitioner.finish()


def _check_context(context: ReviewContext | None) -> ReviewContext:
    if not context or not context.get("base_sha") or not context.get("head_sha"):
        raise InvalidContext("This action only works on pull requests")
    return context


def extract_semantic_blocks(
    diff_text: str,
    context: ReviewContext | None,
    max_block_lines: int,
    vocabulary: Vocabulary = DEFAULT_VOCABULARY,
) -> list[SemanticBlock]:
    _check_context(context)
    return partition_diff(diff_text, max_block_lines, vocabulary)


def extract_blocks(state: dict) -> dict:
    """Pipeline step: diff text in state -> semantic blocks."""
    context = _check_context(state.get("context"))
    blocks = partition_diff(
        state.get("diff_text", ""),
        state["max_block_lines"],
        state.get("vocabulary", DEFAULT_VOCABULARY),
    )

    by_kind: dict[str, int] = {}
    for block in blocks:
        by_kind[block.kind] = by_kind.get(block.kind, 0) + 1
    logger.info(
        "Extracted %d semantic blocks from PR #%s: %s",
        len(blocks), context.get("number", "?"), by_kind or "none",
    )
    return {"blocks": blocks}
