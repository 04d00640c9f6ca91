# Public surface of the prompt fragment cache and its orchestration helpers.
from .cache import PromptFragmentCache
from .config import CacheConfig, OptimizationLevel
from .errors import (
    ChunkProcessingError,
    ConfigurationError,
    InvalidArgumentError,
    LLMCallError,
    PromptCacheError,
)
from .fragments import CacheMetrics, Fragment, FragmentKind, Resolution
from .orchestrator import ChunkOrchestrator, OrchestratedResult

__all__ = [
    "PromptFragmentCache",
    "CacheConfig",
    "OptimizationLevel",
    "PromptCacheError",
    "InvalidArgumentError",
    "ConfigurationError",
    "LLMCallError",
    "ChunkProcessingError",
    "CacheMetrics",
    "Fragment",
    "FragmentKind",
    "Resolution",
    "ChunkOrchestrator",
    "OrchestratedResult",
]
