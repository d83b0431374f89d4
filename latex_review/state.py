"""
Shared types for the review pipeline.
"""

from dataclasses import dataclass
from typing import Any, Literal, TypedDict

LineKind = Literal["added", "removed", "context"]


class DiffLine(TypedDict):
    kind: LineKind
    text: str        # line content without the diff prefix
    ordinal: int     # per-invocation position counter, 1-indexed
    head_line: int | None  # line number in the head version; None for removed lines


class FileCandidate(TypedDict):
    path: str
    content: str


class FileVersions(TypedDict):
    path: str
    base: str        # empty when the file is new in the PR
    head: str


class ReviewContext(TypedDict):
    owner: str
    repo: str
    number: int
    base_sha: str
    head_sha: str


@dataclass(frozen=True, slots=True)
class BlockMetadata:
    title: str | None = None
    label: str | None = None
    citations: tuple[str, ...] = ()
    has_math: bool = False


@dataclass(frozen=True, slots=True)
class SemanticBlock:
    kind: str
    changed_lines: tuple[str, ...]
    context_lines: tuple[str, ...]
    metadata: BlockMetadata
    path: str
    line_start: int
    line_end: int
    head_start: int | None = None
    head_end: int | None = None

    def location(self) -> str:
        """path:first-last in the head version, or just the path for removal-only blocks."""
        if self.head_start is None:
            return self.path
        return f"{self.path}:{self.head_start}-{self.head_end}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "changed_lines": list(self.changed_lines),
            "context_lines": list(self.context_lines),
            "metadata": {
                "title": self.metadata.title,
                "label": self.metadata.label,
                "citations": list(self.metadata.citations),
                "has_math": self.metadata.has_math,
            },
            "path": self.path,
            "line_start": self.line_start,
            "line_end": self.line_end,
            "head_start": self.head_start,
            "head_end": self.head_end,
        }


class ChangeSummary(TypedDict):
    new_claims: list[str]
    changed_figures: list[str]
    equations: list[str]
    impact: list[str]


class TrueFalseQuestion(TypedDict):
    question: str
    answer: bool
    explanation: str


class ShortAnswerQuestion(TypedDict):
    question: str
    answer: str
    rubric: str


class QuizQuestion(TypedDict):
    tf: TrueFalseQuestion
    short: ShortAnswerQuestion
