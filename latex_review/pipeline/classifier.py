"""
Line classification: does a diff line open or close a tracked region?

Only the first environment marker on a line counts when opening. Sections have
no closing syntax: a section ends at the next heading or at any tracked begin
marker on a line.
"""

from latex_review.vocabulary import DEFAULT_VOCABULARY, SECTION, Vocabulary


def classify_boundary(line: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> str | None:
    """Return the region kind opened by this line, or None."""
    marker = vocabulary.env_marker.search(line)
    if marker is not None and marker.group(1) == "begin":
        kind = vocabulary.environment_kind(marker.group(2))
        if kind is not None:
            return kind

    if vocabulary.section_heading.search(line):
        return SECTION
    return None


def is_boundary_end(line: str, open_kind: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> bool:
    if open_kind == SECTION:
        if vocabulary.section_heading.search(line):
            return True
        return any(
            m.group(1) == "begin" and vocabulary.environment_kind(m.group(2)) is not None
            for m in vocabulary.env_marker.regex.finditer(line)
        )

    for marker in vocabulary.env_marker.regex.finditer(line):
        if marker.group(1) == "end" and vocabulary.environment_kind(marker.group(2)) == open_kind:
            return True
    return False


def closes_on_opening_line(line: str, kind: str, vocabulary: Vocabulary = DEFAULT_VOCABULARY) -> bool:
    """True for one-line environments such as \\begin{equation} x \\end{equation}."""
    if kind == SECTION:
        return False
    markers = list(vocabulary.env_marker.regex.finditer(line))
    return any(
        m.group(1) == "end" and vocabulary.environment_kind(m.group(2)) == kind
        for m in markers[1:]
    )
