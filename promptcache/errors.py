"""Exception hierarchy for promptcache."""


class PromptCacheError(Exception):
    """Base class for every error raised by promptcache."""


class InvalidArgumentError(PromptCacheError, ValueError):
    """Raised when a call is rejected by input validation; state is left untouched."""


class ConfigurationError(PromptCacheError):
    """Raised when provider settings or credentials are missing or unusable."""


class LLMCallError(PromptCacheError):
    """Raised when a generation request keeps failing after all retries."""


class ChunkProcessingError(PromptCacheError):
    """Raised when the analyzer fails on a specific chunk."""

    def __init__(self, chunk_number: int, message: str):
        super().__init__(f"Chunk {chunk_number}: {message}")
        self.chunk_number = chunk_number
