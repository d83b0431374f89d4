"""
Runtime settings, read from the environment (a .env file is loaded by main()).
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass

from latex_review.errors import ConfigError

DEFAULT_MODEL = "claude-sonnet-4-6"

_TRUE = {"1", "true", "yes", "on"}


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got {raw!r}") from None


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    github_token: str = ""
    anthropic_api_key: str = ""
    model: str = DEFAULT_MODEL
    llm_base_url: str = ""
    max_diff_lines: int = 500
    show_sources: bool = False
    max_tokens_per_request: int = 4000
    max_total_tokens: int = 16000
    max_requests_per_minute: int = 10
    max_files_per_pr: int = 20
    request_timeout: float = 30.0
    temperature: float = 0.3

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if env is None else env
        return cls(
            github_token=env.get("GITHUB_TOKEN", ""),
            anthropic_api_key=env.get("ANTHROPIC_API_KEY", ""),
            model=env.get("LATEX_REVIEW_MODEL", "") or DEFAULT_MODEL,
            llm_base_url=env.get("LATEX_REVIEW_BASE_URL", ""),
            max_diff_lines=_int(env, "LATEX_REVIEW_MAX_DIFF_LINES", 500),
            show_sources=env.get("LATEX_REVIEW_SHOW_SOURCES", "").strip().lower() in _TRUE,
            max_tokens_per_request=_int(env, "LATEX_REVIEW_MAX_TOKENS_PER_REQUEST", 4000),
            max_total_tokens=_int(env, "LATEX_REVIEW_MAX_TOTAL_TOKENS", 16000),
            max_requests_per_minute=_int(env, "LATEX_REVIEW_MAX_REQUESTS_PER_MINUTE", 10),
            max_files_per_pr=_int(env, "LATEX_REVIEW_MAX_FILES_PER_PR", 20),
            request_timeout=_float(env, "LATEX_REVIEW_REQUEST_TIMEOUT", 30.0),
            temperature=_float(env, "LATEX_REVIEW_TEMPERATURE", 0.3),
        )

    def validate(self, require_llm: bool = True) -> "Settings":
        limits = {
            "max_diff_lines": self.max_diff_lines,
            "max_tokens_per_request": self.max_tokens_per_request,
            "max_total_tokens": self.max_total_tokens,
            "max_requests_per_minute": self.max_requests_per_minute,
            "max_files_per_pr": self.max_files_per_pr,
            "request_timeout": self.request_timeout,
        }
        for name, value in limits.items():
            if value <= 0:
                raise ConfigError(f"Invalid {name} value: must be a positive number")

        if not 0 <= self.temperature <= 1:
            raise ConfigError("Temperature must be between 0 and 1")

        if require_llm and not self.anthropic_api_key and not self.llm_base_url:
            raise ConfigError("ANTHROPIC_API_KEY required unless LATEX_REVIEW_BASE_URL points at a local endpoint")
        return self
