"""
Pull request retrieval from the GitHub REST API.

The diff text feeds the block extractor; whole base/head file versions feed the
main-file resolver used by the comment renderer. File versions are fetched
concurrently, one task per file.
"""

import asyncio
import base64
import json
import logging
from pathlib import Path
from typing import Any

import httpx

from latex_review.config import Settings
from latex_review.ratelimit import RateLimiter, RequestWrapper
from latex_review.state import FileVersions, ReviewContext
from latex_review.vocabulary import DEFAULT_VOCABULARY, Vocabulary

logger = logging.getLogger(__name__)

GITHUB_API = "https://api.github.com"
_DIFF_MEDIA_TYPE = "application/vnd.github.v3.diff"
_JSON_MEDIA_TYPE = "application/vnd.github+json"
_PAGE_SIZE = 100
_GITHUB_REQUESTS_PER_SECOND = 10


def load_review_context(event_path: str | Path | None, repository: str | None) -> ReviewContext | None:
    """Build a ReviewContext from a GitHub Actions event payload, or None if not a PR event."""
    if not event_path or not repository or "/" not in repository:
        return None
    path = Path(event_path)
    if not path.exists():
        logger.warning("Event payload not found: %s", path)
        return None

    payload = json.loads(path.read_text(encoding="utf-8"))
    pr = payload.get("pull_request")
    if not pr:
        return None

    owner, repo = repository.split("/", 1)
    return ReviewContext(
        owner=owner,
        repo=repo,
        number=int(pr["number"]),
        base_sha=pr["base"]["sha"],
        head_sha=pr["head"]["sha"],
    )


def github_client(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    headers = {"Accept": _JSON_MEDIA_TYPE, "X-GitHub-Api-Version": "2022-11-28"}
    if settings.github_token:
        headers["Authorization"] = f"Bearer {settings.github_token}"
    return httpx.AsyncClient(
        base_url=GITHUB_API,
        headers=headers,
        timeout=settings.request_timeout,
        transport=transport,
    )


def github_wrapper() -> RequestWrapper:
    return RequestWrapper(RateLimiter(_GITHUB_REQUESTS_PER_SECOND, 1.0))


def _repo_path(context: ReviewContext) -> str:
    return f"/repos/{context['owner']}/{context['repo']}"


async def fetch_pull_context(
    client: httpx.AsyncClient,
    wrapper: RequestWrapper,
    owner: str,
    repo: str,
    number: int,
) -> ReviewContext:
    async def _get() -> dict[str, Any]:
        r = await client.get(f"/repos/{owner}/{repo}/pulls/{number}")
        r.raise_for_status()
        return r.json()

    pr = await wrapper.with_retry(_get)
    return ReviewContext(
        owner=owner,
        repo=repo,
        number=number,
        base_sha=pr["base"]["sha"],
        head_sha=pr["head"]["sha"],
    )


async def fetch_pull_diff(client: httpx.AsyncClient, wrapper: RequestWrapper, context: ReviewContext) -> str:
    async def _get() -> str:
        r = await client.get(
            f"{_repo_path(context)}/pulls/{context['number']}",
            headers={"Accept": _DIFF_MEDIA_TYPE},
        )
        r.raise_for_status()
        return r.text

    return await wrapper.with_retry(_get)


async def list_changed_files(
    client: httpx.AsyncClient,
    wrapper: RequestWrapper,
    context: ReviewContext,
    max_files: int,
) -> list[dict[str, Any]]:
    files: list[dict[str, Any]] = []
    page = 1
    while len(files) < max_files:
        async def _get(page: int = page) -> list[dict[str, Any]]:
            r = await client.get(
                f"{_repo_path(context)}/pulls/{context['number']}/files",
                params={"per_page": _PAGE_SIZE, "page": page},
            )
            r.raise_for_status()
            return r.json()

        batch = await wrapper.with_retry(_get)
        files.extend(batch)
        if len(batch) < _PAGE_SIZE:
            break
        page += 1

    if len(files) > max_files:
        logger.warning("PR touches %d files, only the first %d are fetched", len(files), max_files)
    return files[:max_files]


async def _get_content(
    client: httpx.AsyncClient,
    wrapper: RequestWrapper,
    context: ReviewContext,
    path: str,
    ref: str,
) -> str:
    async def _get() -> str:
        r = await client.get(f"{_repo_path(context)}/contents/{path}", params={"ref": ref})
        if r.status_code == 404:
            return ""
        r.raise_for_status()
        data = r.json()
        if data.get("encoding") == "base64" and data.get("content"):
            return base64.b64decode(data["content"]).decode("utf-8", errors="replace")
        return data.get("content") or ""

    return await wrapper.with_retry(_get)


async def fetch_file_versions(
    client: httpx.AsyncClient,
    wrapper: RequestWrapper,
    context: ReviewContext,
    path: str,
) -> FileVersions:
    base, head = await asyncio.gather(
        _get_content(client, wrapper, context, path, context["base_sha"]),
        _get_content(client, wrapper, context, path, context["head_sha"]),
    )
    return FileVersions(path=path, base=base, head=head)


async def fetch_review(
    client: httpx.AsyncClient,
    wrapper: RequestWrapper,
    context: ReviewContext,
    max_files: int,
    vocabulary: Vocabulary = DEFAULT_VOCABULARY,
) -> tuple[str, list[FileVersions]]:
    diff_text = await fetch_pull_diff(client, wrapper, context)

    changed = await list_changed_files(client, wrapper, context, max_files)
    paths = [
        f["filename"] for f in changed
        if f.get("status") != "removed" and vocabulary.is_eligible(f["filename"])
    ]
    logger.info("Fetching %d LaTeX files of %d changed", len(paths), len(changed))

    files = await asyncio.gather(*(fetch_file_versions(client, wrapper, context, p) for p in paths))
    return diff_text, list(files)


def load_review(state: dict) -> dict:
    """Pipeline step: fetch the PR diff and file versions unless a diff is already loaded."""
    if state.get("diff_text") is not None:
        logger.info("Using local diff (%d chars)", len(state["diff_text"]))
        return {"files": state.get("files", [])}

    context: ReviewContext | None = state.get("context")
    if not context:
        # extract_blocks reports the missing pull request
        return {"diff_text": "", "files": []}

    settings: Settings = state["settings"]

    async def _run() -> tuple[str, list[FileVersions]]:
        async with github_client(settings) as client:
            return await fetch_review(client, github_wrapper(), context, settings.max_files_per_pr)

    diff_text, files = asyncio.run(_run())
    logger.info("Loaded PR #%d: %d diff chars, %d files", context["number"], len(diff_text), len(files))
    return {"diff_text": diff_text, "files": files}
