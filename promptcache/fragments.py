from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, Field


class FragmentKind(str, Enum):
    """The two kinds of immutable prompt text the cache manages."""

    SYSTEM_PROMPT = "system_prompt"
    INSTRUCTION_TEMPLATE = "instruction_template"


FragmentKey = Tuple[FragmentKind, Optional[str]]


def make_key(kind: FragmentKind, category: Optional[str] = None) -> FragmentKey:
    """Normalise ``(kind, category)``; the system prompt never carries a category."""
    kind = FragmentKind(kind)
    if kind is FragmentKind.SYSTEM_PROMPT:
        return kind, None
    return kind, category


# --- Session state ---


class Fragment(BaseModel):
    """A named, immutable piece of outbound prompt text."""

    kind: FragmentKind
    category: Optional[str] = Field(
        default=None,
        description="Analysis label for instruction templates; always None for the system prompt.",
    )
    content: str = Field(default="", description="Literal text payload.")
    sent: bool = Field(
        default=False,
        description="True once the fragment has been included in an outbound payload this session.",
    )
    reuse_count: int = Field(
        default=0,
        description="Number of resolves that found the fragment already sent.",
    )

    @property
    def key(self) -> FragmentKey:
        return make_key(self.kind, self.category)


class Resolution(BaseModel):
    """Outcome of resolving one fragment for one chunk."""

    text: str
    already_sent: bool
    kind: FragmentKind
    category: Optional[str] = None
    template_mismatch: bool = Field(
        default=False,
        description="True when the caller offered different text for an already cached category.",
    )


# --- Metrics view ---


class CacheMetrics(BaseModel):
    """Read-only snapshot of a session's accounting counters."""

    chunks: int = 0
    tokens_without_caching: float = 0.0
    tokens_with_caching: float = 0.0
    system_prompt_reuses: int = 0
    instruction_template_reuses: int = 0
    template_mismatches: int = 0

    @property
    def saved_tokens(self) -> float:
        return self.tokens_without_caching - self.tokens_with_caching

    @property
    def saved_ratio(self) -> float:
        if self.tokens_without_caching == 0:
            return 0.0
        return self.saved_tokens / self.tokens_without_caching

    @property
    def average_saved_per_chunk(self) -> float:
        if self.chunks == 0:
            return 0.0
        return self.saved_tokens / self.chunks

    def as_dict(self) -> dict:
        data = self.model_dump()
        data["saved_tokens"] = self.saved_tokens
        data["saved_ratio"] = self.saved_ratio
        data["average_saved_per_chunk"] = self.average_saved_per_chunk
        return data
