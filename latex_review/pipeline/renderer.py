"""
pipeline/renderer.py: build the pull request comment and post it.

Ordering is deterministic: summary sections, changed blocks in extraction
order, then the quiz. No LLM involved. Pure Python apart from the final POST.
"""

import asyncio
import logging
import re
from urllib.parse import quote

import httpx

from latex_review.config import Settings
from latex_review.pipeline.loader import github_client, github_wrapper
from latex_review.pipeline.resolver import is_included_in, resolve_main_file
from latex_review.ratelimit import RequestWrapper
from latex_review.state import ChangeSummary, FileCandidate, FileVersions, QuizQuestion, ReviewContext, SemanticBlock

logger = logging.getLogger(__name__)

GITHUB_WEB = "https://github.com"

_BADGE_COLORS = {"green": "2ea44f", "yellow": "daa520", "red": "d73a4a"}

_SECTION_TITLES = (
    ("new_claims", "New or modified claims"),
    ("changed_figures", "Figures and tables"),
    ("equations", "Mathematics"),
    ("impact", "Impact"),
)

_REDACTIONS = (
    (re.compile(r"(https?://)[^:/\s]+:[^@/\s]+@"), r"\1[REDACTED]@"),
    (re.compile(r"sk-[a-zA-Z0-9_-]{32,}"), "[REDACTED]"),
    (re.compile(r"ghp_[a-zA-Z0-9]{36}"), "[REDACTED]"),
    (re.compile(r"(?:API_KEY|SECRET|TOKEN|PASSWORD)=\s*[\"']?[^\s\"']+[\"']?"), "[REDACTED]"),
)


def create_collapsible(title: str, content: str, expanded: bool = False) -> str:
    return f"<details{' open' if expanded else ''}>\n<summary>{title}</summary>\n\n{content}\n</details>"


def create_table(headers: list[str], rows: list[list[str]]) -> str:
    lines = [
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join("---" for _ in headers) + " |",
    ]
    lines.extend("| " + " | ".join(row) + " |" for row in rows)
    return "\n".join(lines)


def format_quiz_question(question: QuizQuestion, index: int) -> str:
    tf, short = question["tf"], question["short"]
    return (
        f"### Question Set {index + 1}\n\n"
        f"#### True/False\n{tf['question']}\n\n"
        + create_collapsible(
            "Show Answer",
            f"**Answer:** {'True' if tf['answer'] else 'False'}  \n"
            f"**Explanation:** {tf['explanation']}",
        )
        + f"\n\n#### Short Answer\n{short['question']}\n\n"
        + create_collapsible(
            "Show Answer Guide",
            f"**Expected Answer:** {short['answer']}  \n"
            f"**Grading Rubric:**  \n{short['rubric']}",
        )
        + "\n\n---"
    )


def create_badge(label: str, status: str, color: str) -> str:
    return (
        f"![{label}](https://img.shields.io/badge/"
        f"{quote(label, safe='')}-{quote(status, safe='')}-{_BADGE_COLORS[color]})"
    )


def format_change_list(changes: list[str] | None, bullet: str = "•") -> str:
    if not changes:
        return "*No changes in this category*"
    return "\n".join(f"{bullet} {change}" for change in changes)


def blob_url(context: ReviewContext, path: str) -> str:
    return f"{GITHUB_WEB}/{context['owner']}/{context['repo']}/blob/{context['head_sha']}/{quote(path)}"


def create_file_link(
    context: ReviewContext | None,
    path: str,
    start_line: int | None,
    end_line: int | None,
) -> str:
    """Link to the head version of a file, anchored to a line range when there is one."""
    label = path if start_line is None else f"{path}:{start_line}-{end_line}"
    if context is None:
        return f"`{label}`"
    url = blob_url(context, path)
    if start_line is not None:
        url += f"#L{start_line}-L{end_line}"
    return f"[`{label}`]({url})"


def escape_markdown(text: str) -> str:
    return re.sub(r"([*_`~|])", r"\\\1", text)


def sanitize_output(text: str) -> str:
    """Redact API keys, tokens and URL credentials before anything leaves the process."""
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    return text


def _describe_documents(files: list[FileVersions]) -> str | None:
    candidates = [FileCandidate(path=f["path"], content=f["head"] or f["base"]) for f in files]
    main_path = resolve_main_file(candidates)
    if main_path is None:
        return None

    main_content = next(c["content"] for c in candidates if c["path"] == main_path)
    included = [c["path"] for c in candidates if c["path"] != main_path and is_included_in(c["path"], main_content)]
    line = f"**Main document:** `{main_path}`"
    if included:
        line += " (includes " + ", ".join(f"`{p}`" for p in included) + ")"
    return line


def _block_rows(blocks: list[SemanticBlock], context: ReviewContext | None) -> list[list[str]]:
    rows = []
    for block in blocks:
        meta = block.metadata
        name = meta.title or meta.label or ""
        rows.append([
            block.kind,
            escape_markdown(name) if name else "-",
            str(len(block.changed_lines)),
            create_file_link(context, block.path, block.head_start, block.head_end),
        ])
    return rows


def _block_source(block: SemanticBlock) -> str:
    body = "\n".join(block.context_lines + block.changed_lines)
    title = f"{block.kind} at {block.location()}"
    return create_collapsible(title, f"```latex\n{body}\n```")


def build_comment(
    blocks: list[SemanticBlock],
    summary: ChangeSummary | None,
    quiz: list[QuizQuestion],
    files: list[FileVersions] | None = None,
    show_sources: bool = False,
    context: ReviewContext | None = None,
) -> str:
    parts = ["## LaTeX change review"]

    if not blocks:
        parts.append(create_badge("blocks", "0", "yellow"))
        parts.append("No reviewable structural change (theorems, proofs, figures, sections, ...) was found in this pull request.")
        return sanitize_output("\n\n".join(parts))

    parts.append(create_badge("blocks", str(len(blocks)), "green"))

    documents = _describe_documents(files or [])
    if documents:
        parts.append(documents)

    for key, title in _SECTION_TITLES:
        parts.append(f"### {title}\n{format_change_list((summary or {}).get(key))}")

    table = create_table(["Kind", "Title / label", "Changed lines", "Location"], _block_rows(blocks, context))
    parts.append(create_collapsible(f"Changed blocks ({len(blocks)})", table))

    if show_sources:
        parts.append("\n\n".join(_block_source(b) for b in blocks))

    if quiz:
        parts.append("## Quiz\n\n" + "\n\n".join(format_quiz_question(q, i) for i, q in enumerate(quiz)))

    return sanitize_output("\n\n".join(parts))


def render_comment(state: dict) -> dict:
    settings: Settings = state["settings"]
    comment = build_comment(
        state.get("blocks", []),
        state.get("summary"),
        state.get("quiz", []),
        state.get("files", []),
        show_sources=settings.show_sources,
        context=state.get("context"),
    )
    logger.info("Rendered comment: %d chars", len(comment))
    return {"comment": comment}


async def post_comment(
    client: httpx.AsyncClient,
    wrapper: RequestWrapper,
    context: ReviewContext,
    body: str,
) -> str:
    """POST the comment to the pull request; returns its html_url."""
    async def _post() -> str:
        r = await client.post(
            f"/repos/{context['owner']}/{context['repo']}/issues/{context['number']}/comments",
            json={"body": body},
        )
        r.raise_for_status()
        return r.json().get("html_url", "")

    return await wrapper.with_retry(_post)


def publish_comment(state: dict) -> dict:
    if not state.get("post"):
        return {}

    settings: Settings = state["settings"]
    context: ReviewContext = state["context"]

    async def _run() -> str:
        async with github_client(settings) as client:
            return await post_comment(client, github_wrapper(), context, state["comment"])

    url = asyncio.run(_run())
    logger.info("Posted comment to PR #%d: %s", context["number"], url)
    return {"comment_url": url}
