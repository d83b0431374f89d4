"""
Root-document detection and single-level \\input / \\include detection.

Both work on whole-file snapshots, not diffs, and never raise: unresolvable
input gives None or False.
"""

import logging
import posixpath
import re

from latex_review.state import FileCandidate
from latex_review.vocabulary import DEFAULT_VOCABULARY, Vocabulary

logger = logging.getLogger(__name__)


def resolve_main_file(
    candidates: list[FileCandidate],
    vocabulary: Vocabulary = DEFAULT_VOCABULARY,
) -> str | None:
    """Pick the document root among the candidates, or None if there is no .tex file."""
    documents = [c for c in candidates if vocabulary.is_document(c["path"])]
    if not documents:
        return None

    for candidate in documents:
        if vocabulary.main_file_name.search(candidate["path"]):
            logger.debug("Main file by name: %s", candidate["path"])
            return candidate["path"]

    for signal in vocabulary.root_signals:
        for candidate in documents:
            if signal.search(candidate["content"] or ""):
                logger.debug("Main file by %s: %s", signal.name, candidate["path"])
                return candidate["path"]

    largest = max(documents, key=lambda c: len(c["content"] or ""))
    logger.debug("Main file by size: %s", largest["path"])
    return largest["path"]


def _split_name(path: str) -> tuple[str, str]:
    """Final path segment split into base name and extension."""
    return posixpath.splitext(posixpath.basename(path.replace("\\", "/")))


def is_included_in(
    candidate_path: str,
    parent_content: str,
    vocabulary: Vocabulary = DEFAULT_VOCABULARY,
) -> bool:
    name, extension = _split_name(candidate_path)
    if not name or not parent_content:
        return False

    suffix = f"(?:{re.escape(extension)})?" if extension else ""
    target = re.compile(r"(?:^|/)" + re.escape(name) + suffix + "$")
    return any(target.search(arg) for arg in vocabulary.inclusion.all(parent_content))
