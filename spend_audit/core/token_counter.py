"""
Token counting for billing lines.

Holds the token breakdown of a single usage row.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TokenUsage:
    """Token counts for one billing line.

    Thinking tokens are billed by reasoning models but never shown
    in the visible response.
    """
    input_tokens: int
    output_tokens: int
    thinking_tokens: int = 0

    def __post_init__(self):
        """Validate token counts are non-negative."""
        if self.input_tokens < 0:
            raise ValueError("input_tokens cannot be negative")
        if self.output_tokens < 0:
            raise ValueError("output_tokens cannot be negative")
        if self.thinking_tokens < 0:
            raise ValueError("thinking_tokens cannot be negative")

    @property
    def total_tokens(self) -> int:
        """Total tokens used (input + output + thinking)."""
        return self.input_tokens + self.output_tokens + self.thinking_tokens

    @property
    def is_empty(self) -> bool:
        return self.total_tokens == 0
