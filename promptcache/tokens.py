"""Approximate token counting and request budget validation."""

import math
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel, Field


class TokenCounter(ABC):
    @abstractmethod
    def count_tokens(self, text: Optional[str]) -> int:
        """Return the number of tokens ``text`` would consume."""


class ApproximateTokenCounter(TokenCounter):
    """Roughly one token per four characters; good enough for budgeting."""

    def __init__(self, chars_per_token: float = 4.0) -> None:
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be positive.")
        self.chars_per_token = chars_per_token

    def count_tokens(self, text: Optional[str]) -> int:
        if not text:
            return 0
        return math.ceil(len(text) / self.chars_per_token)


class TokenValidationResult(BaseModel):
    """Token budget breakdown for one outbound request."""

    system_prompt_tokens: int = 0
    user_message_tokens: int = 0
    data_tokens: int = 0
    total_input_tokens: int = 0
    available_tokens: int = 0
    remaining_tokens: int = 0
    fits_budget: bool = True
    utilization_percent: float = Field(
        default=0.0,
        description="Input tokens as a percentage of the tokens available for input.",
    )


class TokenBudgetManager:
    """Checks that a request fits the model's context window before it is sent."""

    def __init__(
        self,
        token_counter: Optional[TokenCounter] = None,
        context_window: int = 128000,
        max_output_tokens: int = 4000,
        safety_margin: int = 500,
    ) -> None:
        self.token_counter = token_counter or ApproximateTokenCounter()
        self.context_window = context_window
        self.max_output_tokens = max_output_tokens
        self.safety_margin = safety_margin

    @property
    def available_tokens(self) -> int:
        return self.context_window - self.max_output_tokens - self.safety_margin

    def validate_request(
        self, system_prompt: str, user_message: str, data: str = ""
    ) -> TokenValidationResult:
        system_tokens = self.token_counter.count_tokens(system_prompt)
        user_tokens = self.token_counter.count_tokens(user_message)
        data_tokens = self.token_counter.count_tokens(data)

        total = system_tokens + user_tokens + data_tokens
        available = self.available_tokens
        remaining = available - total
        utilization = (total / available * 100) if available > 0 else float("inf")

        return TokenValidationResult(
            system_prompt_tokens=system_tokens,
            user_message_tokens=user_tokens,
            data_tokens=data_tokens,
            total_input_tokens=total,
            available_tokens=available,
            remaining_tokens=remaining,
            fits_budget=remaining >= 0,
            utilization_percent=utilization,
        )
