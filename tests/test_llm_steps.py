import asyncio
import json
from types import SimpleNamespace

import pytest

from latex_review.config import Settings
from latex_review.errors import LLMResponseError
from latex_review.llm import create_llm_client, llm_rate_limiter, llm_session, parse_json_response
from latex_review.pipeline.partitioner import partition_diff
from latex_review.pipeline.quiz import MAX_ATTEMPTS, build_quiz, generate_quiz
from latex_review.pipeline.summarizer import chunk_blocks, format_block_for_prompt, summarize_changes
from latex_review.ratelimit import TokenUsageTracker

SUMMARY = {
    "new_claims": ["Main theorem now requires an additional condition"],
    "changed_figures": [],
    "equations": ["Theorem statement strengthened"],
    "impact": ["Conclusions depend on the new condition"],
}

QUIZ = {
    "questions": [{
        "tf": {"question": "The theorem gained a condition.", "answer": True, "explanation": "See thm:main."},
        "short": {"question": "What changed?", "answer": "A new condition.", "rubric": "Mentions the condition"},
    }]
}


class FakeMessages:
    def __init__(self, replies: list[str]) -> None:
        self.replies = list(replies)
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        text = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        return SimpleNamespace(
            content=[SimpleNamespace(type="text", text=text)],
            usage=SimpleNamespace(input_tokens=10, output_tokens=5),
        )


class FakeClient:
    def __init__(self, *replies: str) -> None:
        self.messages = FakeMessages(list(replies))


def _state(client: FakeClient, **extra) -> dict:
    settings = Settings(anthropic_api_key="test")
    return {
        "settings": settings,
        "llm_client": client,
        "usage": TokenUsageTracker(settings.max_total_tokens),
        **extra,
    }


def test_parse_json_strips_code_fences() -> None:
    assert parse_json_response('```json\n{"a": 1}\n```') == {"a": 1}
    assert parse_json_response('{"a": 2}') == {"a": 2}
    with pytest.raises(LLMResponseError):
        parse_json_response("I could not do that.")


def test_format_block_for_prompt(sample_diff: str) -> None:
    theorem = partition_diff(sample_diff, 500)[1]
    text = format_block_for_prompt(theorem)
    assert text.startswith("Type: theorem\nLocation: paper.tex:51-55\nLabel: thm:main")
    assert "Context:\n\\begin{theorem}" in text
    assert text.endswith("Changes:\nOld theorem statement\nNew improved theorem statement\nwith additional condition")


def test_chunking_keeps_order(sample_diff: str) -> None:
    blocks = partition_diff(sample_diff, 500)
    assert chunk_blocks(blocks, max_chars=100_000) == [blocks]
    assert chunk_blocks(blocks, max_chars=10) == [[blocks[0]], [blocks[1]]]
    assert chunk_blocks([], max_chars=10) == []


def test_summarize_changes(sample_diff: str) -> None:
    client = FakeClient("```json\n" + json.dumps(SUMMARY) + "\n```")
    state = _state(client, blocks=partition_diff(sample_diff, 500))

    result = summarize_changes(state)

    assert result["summary"] == SUMMARY
    (call,) = client.messages.calls
    assert call["model"] == Settings().model
    assert call["max_tokens"] == 4000
    assert "Label: thm:main" in call["messages"][0]["content"]
    assert state["usage"].stats()["used"] == 15


def test_summary_merges_chunks_in_order(sample_diff: str) -> None:
    first = dict(SUMMARY, new_claims=["first"])
    second = dict(SUMMARY, new_claims=["second"])
    client = FakeClient(json.dumps(first), json.dumps(second))
    state = _state(client, blocks=partition_diff(sample_diff, 500))
    state["settings"] = Settings(anthropic_api_key="test", max_tokens_per_request=1)

    result = summarize_changes(state)

    assert result["summary"]["new_claims"] == ["first", "second"]
    assert len(client.messages.calls) == 2
    assert state["usage"].stats()["used"] == 30


def test_no_blocks_skips_llm() -> None:
    client = FakeClient(json.dumps(SUMMARY))
    result = summarize_changes(_state(client, blocks=[]))
    assert result["summary"] == {"new_claims": [], "changed_figures": [], "equations": [], "impact": []}
    assert client.messages.calls == []


def test_invalid_summary_gives_empty_sections(sample_diff: str) -> None:
    client = FakeClient("not json at all")
    result = summarize_changes(_state(client, blocks=partition_diff(sample_diff, 500)))
    assert all(value == [] for value in result["summary"].values())

    client = FakeClient(json.dumps({"new_claims": []}))
    result = summarize_changes(_state(client, blocks=partition_diff(sample_diff, 500)))
    assert all(value == [] for value in result["summary"].values())


def test_generate_quiz() -> None:
    client = FakeClient(json.dumps(QUIZ))
    result = generate_quiz(_state(client, summary=SUMMARY))
    assert result["quiz"] == QUIZ["questions"]
    assert "Document change summary" in client.messages.calls[0]["messages"][0]["content"]


def test_quiz_retries_invalid_output() -> None:
    bad = json.dumps({"questions": [{"tf": {"question": "?", "answer": "yes"}}]})
    client = FakeClient(bad, json.dumps(QUIZ))
    result = generate_quiz(_state(client, summary=SUMMARY))
    assert result["quiz"] == QUIZ["questions"]
    assert len(client.messages.calls) == 2


def test_quiz_gives_up_after_max_attempts() -> None:
    client = FakeClient("[]")
    result = generate_quiz(_state(client, summary=SUMMARY))
    assert result["quiz"] == []
    assert len(client.messages.calls) == MAX_ATTEMPTS


def test_empty_summary_skips_quiz() -> None:
    client = FakeClient(json.dumps(QUIZ))
    empty = {"new_claims": [], "changed_figures": [], "equations": [], "impact": []}
    assert generate_quiz(_state(client, summary=empty)) == {"quiz": []}
    assert client.messages.calls == []


def test_quiz_fills_missing_optional_fields() -> None:
    item = {"tf": {"question": "Q", "answer": False}, "short": {"question": "S", "answer": "A"}}
    client = FakeClient(json.dumps({"questions": [item]}))
    (question,) = asyncio.run(build_quiz(llm_session(_state(client)), SUMMARY))
    assert question["tf"]["explanation"] == ""
    assert question["short"]["rubric"] == ""


def test_sdk_retries_are_disabled() -> None:
    assert create_llm_client(Settings(anthropic_api_key="x")).max_retries == 0
    local = create_llm_client(Settings(llm_base_url="http://localhost:8080"))
    assert local.max_retries == 0
    assert str(local.base_url).startswith("http://localhost:8080")


def test_steps_share_the_run_limiter() -> None:
    state = _state(FakeClient("{}"))
    state["llm_limiter"] = llm_rate_limiter(state["settings"])
    first, second = llm_session(state), llm_session(state)
    assert first.wrapper.rate_limiter is second.wrapper.rate_limiter is state["llm_limiter"]
    assert first.tracker is state["usage"]
