from latex_review.pipeline.assembler import assemble_block
from latex_review.state import DiffLine


def _lines(*specs: tuple[str, str], start: int = 1) -> list[DiffLine]:
    return [
        DiffLine(kind=kind, text=text, ordinal=start + i, head_line=None if kind == "removed" else 100 + i)
        for i, (kind, text) in enumerate(specs)
    ]


def test_context_only_region_is_dropped() -> None:
    lines = _lines(("context", "\\begin{proof}"), ("context", "Trivial."), ("context", "\\end{proof}"))
    assert assemble_block(lines, "proof", "paper.tex", 1) is None


def test_partitions_changed_and_context_lines() -> None:
    lines = _lines(
        ("context", "\\begin{lemma}"),
        ("removed", "old"),
        ("context", "middle"),
        ("added", "new"),
        start=7,
    )
    block = assemble_block(lines, "lemma", "paper.tex", 7)

    assert block is not None
    assert block.changed_lines == ("old", "new")
    assert block.context_lines == ("\\begin{lemma}", "middle")
    assert (block.line_start, block.line_end) == (7, 10)
    assert (block.head_start, block.head_end) == (100, 103)
    assert block.location() == "paper.tex:100-103"
    assert block.path == "paper.tex"
    assert block.kind == "lemma"


def test_whitespace_change_still_counts() -> None:
    lines = _lines(("context", "\\begin{proof}"), ("added", "   "), ("context", "\\end{proof}"))
    block = assemble_block(lines, "proof", "paper.tex", 1)
    assert block is not None
    assert block.changed_lines == ("   ",)


def test_metadata_reads_context_lines() -> None:
    lines = _lines(
        ("context", "\\begin{theorem}"),
        ("context", "\\label{thm:ctx}"),
        ("added", "Holds for $n > 1$ by \\cite{knuth}."),
        ("context", "\\end{theorem}"),
    )
    block = assemble_block(lines, "theorem", "paper.tex", 1)
    assert block is not None
    assert block.metadata.label == "thm:ctx"
    assert block.metadata.citations == ("knuth",)
    assert block.metadata.has_math


def test_to_dict_is_json_friendly() -> None:
    lines = _lines(("context", "\\section{Intro}"), ("added", "text"))
    block = assemble_block(lines, "section", "paper.tex", 3)
    assert block is not None
    assert block.to_dict() == {
        "kind": "section",
        "changed_lines": ["text"],
        "context_lines": ["\\section{Intro}"],
        "metadata": {"title": "Intro", "label": None, "citations": [], "has_math": False},
        "path": "paper.tex",
        "line_start": 3,
        "line_end": 4,
        "head_start": 100,
        "head_end": 101,
    }
