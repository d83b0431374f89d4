import pytest

SAMPLE_DIFF = "\n".join([
    "diff --git a/paper.tex b/paper.tex",
    "index abc..def 100644",
    "--- a/paper.tex",
    "+++ b/paper.tex",
    "@@ -10,6 +10,7 @@",
    " \\begin{abstract}",
    " This is the original abstract.",
    "-We remove this line.",
    "+We add this new line.",
    "+And another new line.",
    " \\end{abstract}",
    " ",
    " \\section{Introduction}",
    "@@ -50,6 +51,8 @@",
    " \\begin{theorem}",
    " \\label{thm:main}",
    "-Old theorem statement",
    "+New improved theorem statement",
    "+with additional condition",
    " \\end{theorem}",
]) + "\n"

CONTEXT = {
    "owner": "test-owner",
    "repo": "test-repo",
    "number": 123,
    "base_sha": "base-sha",
    "head_sha": "head-sha",
}


@pytest.fixture
def sample_diff() -> str:
    return SAMPLE_DIFF


@pytest.fixture
def review_context() -> dict:
    return dict(CONTEXT)
