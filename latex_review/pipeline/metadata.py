"""
Block metadata: title, label, citations and a math flag.

Runs over the whole reconstructed block (context first, then changes) because
labels and titles often sit on unchanged lines.
"""

from latex_review.state import BlockMetadata
from latex_review.vocabulary import DEFAULT_VOCABULARY, Vocabulary


def _has_math(text: str, vocabulary: Vocabulary) -> bool:
    return any(
        matcher.search(text) is not None
        for matcher in (vocabulary.inline_math, vocabulary.display_math, vocabulary.math_environment)
    )


def extract_metadata(lines: list[str] | tuple[str, ...], vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> BlockMetadata:
    content = "\n".join(lines)
    return BlockMetadata(
        title=vocabulary.section_heading.first(content),
        label=vocabulary.label.first(content),
        citations=tuple(vocabulary.citation.all(content)),
        has_math=_has_math(content, vocabulary),
    )
