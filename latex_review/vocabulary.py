"""
vocabulary.py: tracked LaTeX regions and the textual patterns that mark them.

A Vocabulary is immutable and is passed explicitly to the classifier and the
metadata extractor, so any number of extractions can share one instance.
Each Matcher pairs a compiled regex with "match + extract first group".
"""

import dataclasses
import re
from dataclasses import dataclass, field

SECTION = "section"

TRACKED_ENVIRONMENTS: tuple[str, ...] = (
    "abstract",
    "theorem",
    "lemma",
    "proposition",
    "definition",
    "proof",
    "equation",
    "align",
    "figure",
    "table",
)


@dataclass(frozen=True, slots=True)
class Matcher:
    name: str
    regex: re.Pattern[str]

    def search(self, text: str) -> re.Match[str] | None:
        return self.regex.search(text)

    def first(self, text: str) -> str | None:
        """First non-empty capture group of the first match, else the whole match."""
        m = self.regex.search(text)
        if m is None:
            return None
        return _first_group(m)

    def all(self, text: str) -> list[str]:
        return [_first_group(m) for m in self.regex.finditer(text)]


def _first_group(m: re.Match[str]) -> str:
    for value in m.groups():
        if value is not None:
            return value
    return m.group(0)


def _m(name: str, pattern: str, flags: int = 0) -> Matcher:
    return Matcher(name=name, regex=re.compile(pattern, flags))


# \begin{name} / \end{name}; group 1 is the direction, group 2 the name
ENV_MARKER = _m("env_marker", r"\\(begin|end)\s*\{([^}]+)\}")

# \section{..}, \subsection*{..}, \subsubsection[short]{..}
SECTION_HEADING = _m("section_heading", r"\\(?:sub){0,2}section\*?\s*(?:\[[^\]]*\])?\s*\{([^}]+)\}")

LABEL = _m("label", r"\\label\s*\{([^}]+)\}")

# \cite, \citep, \citet, \citeauthor, \citeyear with optional star and notes
CITATION = _m("citation", r"\\cite(?:[pt]|author|year)?\*?(?:\s*\[[^\]]*\]){0,2}\s*\{([^}]+)\}")

INLINE_MATH = _m("inline_math", r"(?<!\$)\$([^$]+)\$(?!\$)|\\\(([^\\]+)\\\)")

DISPLAY_MATH = _m("display_math", r"\$\$([^$]+)\$\$|\\\[([^\\]+)\\\]")

MATH_ENVIRONMENT = _m("math_environment", r"\\begin\s*\{(equation|align|gather|multline|eqnarray)\*?\}")

INCLUSION = _m("inclusion", r"\\(?:input|include)\s*\{\s*([^}]+?)\s*\}")

MAIN_FILE_NAME = _m("main_file_name", r"(?:^|/)(main|paper|manuscript|article)\.tex$", re.IGNORECASE)

DOCUMENT_CLASS = _m("document_class", r"\\documentclass")

DOCUMENT_BEGIN = _m("document_begin", r"\\begin\s*\{document\}")

PREAMBLE = _m("preamble", r"\\usepackage|\\title|\\author")


@dataclass(frozen=True, slots=True)
class Vocabulary:
    environments: frozenset[str] = frozenset(TRACKED_ENVIRONMENTS)
    document_extensions: tuple[str, ...] = (".tex",)
    bibliography_extensions: tuple[str, ...] = (".bib",)
    env_marker: Matcher = ENV_MARKER
    section_heading: Matcher = SECTION_HEADING
    label: Matcher = LABEL
    citation: Matcher = CITATION
    inline_math: Matcher = INLINE_MATH
    display_math: Matcher = DISPLAY_MATH
    math_environment: Matcher = MATH_ENVIRONMENT
    inclusion: Matcher = INCLUSION
    main_file_name: Matcher = MAIN_FILE_NAME
    root_signals: tuple[Matcher, ...] = field(default=(DOCUMENT_CLASS, DOCUMENT_BEGIN, PREAMBLE))

    def environment_kind(self, name: str) -> str | None:
        """Map an environment name to its tracked kind; starred variants share the kind."""
        base = name.strip().rstrip("*")
        return base if base in self.environments else None

    def is_document(self, path: str) -> bool:
        return path.lower().endswith(self.document_extensions)

    def is_eligible(self, path: str) -> bool:
        return path.lower().endswith(self.document_extensions + self.bibliography_extensions)

    def with_environments(self, *names: str) -> "Vocabulary":
        return dataclasses.replace(self, environments=self.environments | frozenset(names))


DEFAULT_VOCABULARY = Vocabulary()
