"""
Token counting and usage tracking.

Manages token figures reported by providers and a rough estimate for
when they report none.
"""

from dataclasses import dataclass

# Rough average for Latin-script text across OpenAI-style tokenizers
CHARS_PER_TOKEN = 4


@dataclass(frozen=True)
class TokenUsage:
    """Token usage data for cost calculation.

    Contains token counts without model-specific logic.
    """
    prompt_tokens: int
    completion_tokens: int

    def __post_init__(self):
        if self.prompt_tokens < 0 or self.completion_tokens < 0:
            raise ValueError("token counts cannot be negative")

    @property
    def total_tokens(self) -> int:
        """Total tokens used (prompt + completion)."""
        return self.prompt_tokens + self.completion_tokens


def estimate_tokens(text: str) -> int:
    """Estimate the token count of a text from its length."""
    if not text:
        return 0
    return max(1, round(len(text) / CHARS_PER_TOKEN))
