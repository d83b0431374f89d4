"""
Exception hierarchy for the review pipeline.

Only main() catches these broadly; everything else lets them propagate.
"""


class LatexReviewError(Exception):
    """Base class for pipeline failures."""


class InvalidContext(LatexReviewError):
    """Extraction was requested without a pull request to compare against."""


class ConfigError(LatexReviewError):
    pass


class LLMResponseError(LatexReviewError):
    """The model returned something that is not the JSON shape we asked for."""


class TokenBudgetExceeded(LatexReviewError):
    pass


class RetryExhausted(LatexReviewError):
    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"Request failed after {attempts} attempts. Last error: {last_error}")
        self.attempts = attempts
        self.last_error = last_error
