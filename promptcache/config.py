import logging
import math
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Union

from google import genai
from omegaconf import DictConfig, OmegaConf
from openai import OpenAI

from promptcache.errors import ConfigurationError
from promptcache.fragments import FragmentKind

logger = logging.getLogger(__name__)


class OptimizationLevel(str, Enum):
    CONSERVATIVE = "conservative"  # system prompt only
    BALANCED = "balanced"  # system prompt + instruction templates
    AGGRESSIVE = "aggressive"  # balanced + context preservation


_ELIGIBLE_KINDS: Dict[OptimizationLevel, FrozenSet[FragmentKind]] = {
    OptimizationLevel.CONSERVATIVE: frozenset({FragmentKind.SYSTEM_PROMPT}),
    OptimizationLevel.BALANCED: frozenset(
        {FragmentKind.SYSTEM_PROMPT, FragmentKind.INSTRUCTION_TEMPLATE}
    ),
    OptimizationLevel.AGGRESSIVE: frozenset(
        {FragmentKind.SYSTEM_PROMPT, FragmentKind.INSTRUCTION_TEMPLATE}
    ),
}


def eligible_kinds(level: Union[OptimizationLevel, str]) -> FrozenSet[FragmentKind]:
    """Return the fragment kinds that may be cached at ``level``."""
    return _ELIGIBLE_KINDS[OptimizationLevel(level)]


class CacheConfig:
    """Validated cache and orchestration settings, loadable from Hydra."""

    FIELD_META: Dict[str, Dict[str, Any]] = {
        "optimization_level": {
            "type": "level",
            "default": OptimizationLevel.BALANCED,
        },
        "preserve_context": {"type": "bool", "default": None, "nullable": True},
        "target_chunk_size": {"type": "int", "min": 1, "default": 15000},
        "max_chunk_tokens": {"type": "int", "min": 1, "default": 8000},
        "context_window": {"type": "int", "min": 1, "default": 128000},
        "max_output_tokens": {"type": "int", "min": 0, "default": 4000},
        "safety_margin": {"type": "int", "min": 0, "default": 500},
        "max_parallel_workers": {"type": "int", "min": 1, "default": 1},
        "price_per_million_tokens": {"type": "float", "min": 0.0, "default": 15.0},
        "relevant_fields": {"type": "list", "default": None, "nullable": True},
    }

    TYPE_LABELS = {
        "int": "an integer",
        "float": "a float",
        "bool": "a boolean",
        "list": "a list of field names",
        "level": "one of " + ", ".join(level.value for level in OptimizationLevel),
    }

    def __init__(self, **kwargs: Any):
        unknown = set(kwargs) - set(self.FIELD_META)
        if unknown:
            raise KeyError(
                "Unknown cache configuration parameters: " + ", ".join(sorted(unknown))
            )
        normalized = self._normalized_values(kwargs)
        for key, value in normalized.items():
            setattr(self, key, value)

    @classmethod
    def from_omegaconf(cls, config: Union[DictConfig, Mapping[str, Any], None]) -> "CacheConfig":
        """Create an instance from a DictConfig or a standard mapping."""
        if config is None:
            return cls()
        if isinstance(config, DictConfig):
            config = OmegaConf.to_container(config, resolve=True)
        if not isinstance(config, Mapping):
            raise TypeError(
                "Cache configuration must be a mapping or DictConfig-compatible object."
            )
        return cls(**config)

    def as_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.FIELD_META}

    def apply_overrides(self, **overrides: Any) -> None:
        """Apply validated overrides on top of the current instance."""
        unknown = set(overrides) - set(self.FIELD_META)
        if unknown:
            raise KeyError(
                "Unknown cache configuration parameters: " + ", ".join(sorted(unknown))
            )
        merged = self.as_dict()
        merged.update(overrides)
        normalized = self._normalized_values(merged)
        for key, value in normalized.items():
            setattr(self, key, value)

    @property
    def eligible_kinds(self) -> FrozenSet[FragmentKind]:
        return eligible_kinds(self.optimization_level)

    @property
    def context_preservation(self) -> bool:
        if self.preserve_context is not None:
            return self.preserve_context
        return self.optimization_level is OptimizationLevel.AGGRESSIVE

    @classmethod
    def _normalized_values(cls, overrides: Mapping[str, Any]) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        errors: List[str] = []

        for name, meta in cls.FIELD_META.items():
            raw_value = overrides.get(name, meta.get("default"))
            if raw_value is None and meta.get("nullable"):
                data[name] = None
                continue
            try:
                value = cls._cast_value(name, raw_value, meta)
                cls._validate_constraints(name, value, meta)
            except (TypeError, ValueError) as exc:
                errors.append(str(exc))
                continue
            data[name] = value

        if errors:
            raise ValueError("Invalid cache configuration: " + "; ".join(errors))
        return data

    @classmethod
    def _cast_value(cls, name: str, value: Any, meta: Dict[str, Any]) -> Any:
        if value is None:
            raise TypeError(f"Parameter '{name}' cannot be null.")

        type_name = meta["type"]
        label = cls.TYPE_LABELS[type_name]
        if type_name == "level":
            try:
                return OptimizationLevel(str(getattr(value, "value", value)).lower())
            except ValueError:
                raise TypeError(f"Parameter '{name}' must be {label}.") from None
        if type_name == "list":
            if isinstance(value, str) or not isinstance(value, (list, tuple)):
                raise TypeError(f"Parameter '{name}' must be {label}.")
            if not all(isinstance(item, str) and item for item in value):
                raise TypeError(f"Parameter '{name}' must be {label}.")
            return list(value)
        if type_name == "bool":
            if isinstance(value, bool):
                return value
            if isinstance(value, str) and value.lower() in {"true", "false"}:
                return value.lower() == "true"
            raise TypeError(f"Parameter '{name}' must be {label}.")
        if isinstance(value, bool):
            raise TypeError(f"Parameter '{name}' must be {label}.")
        if type_name == "int":
            if isinstance(value, float) and not value.is_integer():
                raise TypeError(f"Parameter '{name}' must be {label}.")
            try:
                return int(value)
            except (TypeError, ValueError):
                raise TypeError(f"Parameter '{name}' must be {label}.") from None
        if type_name == "float":
            try:
                numeric = float(value)
            except (TypeError, ValueError):
                raise TypeError(f"Parameter '{name}' must be {label}.") from None
            if not math.isfinite(numeric):
                raise TypeError(f"Parameter '{name}' must be a finite number.")
            return numeric
        raise TypeError(f"Unsupported type declaration for '{name}'.")

    @staticmethod
    def _validate_constraints(name: str, value: Any, meta: Dict[str, Any]) -> None:
        if "min" in meta and value < meta["min"]:
            raise ValueError(f"Parameter '{name}' must be >= {meta['min']} (received {value}).")


# --- Provider settings for the LLM analyzer ---


@dataclass
class GeminiSettings:
    model_name: str = "gemini-2.5-flash"


@dataclass
class OpenAISettings:
    model_name: str = "gpt-4o"
    base_url: Optional[str] = None


class ModelConfig:
    """Configuration for LLM model behavior supporting multiple providers."""

    def __init__(self) -> None:
        self.provider: str = os.getenv("MODEL_PROVIDER", "gemini").lower()
        self.temperature: float = float(os.getenv("MODEL_TEMPERATURE", "0.3"))
        self.gemini = GeminiSettings(
            model_name=os.getenv("GEMINI_MODEL", os.getenv("MODEL_NAME", "gemini-2.5-flash")),
        )
        self.openai = OpenAISettings(
            model_name=os.getenv("OPENAI_MODEL", os.getenv("MODEL_NAME", "gpt-4o")),
            base_url=os.getenv("OPENAI_BASE_URL"),
        )

    def _get_attr(self, cfg: Any, key: str, default: Any = None) -> Any:
        if cfg is None:
            return default
        if isinstance(cfg, dict):
            return cfg.get(key, default)
        return getattr(cfg, key, default)

    def update_from_config(self, cfg: Any) -> None:
        if cfg is None:
            return

        provider = self._get_attr(cfg, "provider", self.provider)
        if provider:
            self.provider = str(provider).lower()

        name = self._get_attr(cfg, "name", None)
        if name:
            if self.provider == "gemini":
                self.gemini.model_name = name
            elif self.provider == "openai":
                self.openai.model_name = name

        base_url = self._get_attr(cfg, "base_url", None)
        if base_url:
            self.openai.base_url = base_url

        temperature = self._get_attr(cfg, "temperature", None)
        if temperature is not None:
            self.temperature = float(temperature)

    @property
    def model_name(self) -> str:
        return self.openai.model_name if self.provider == "openai" else self.gemini.model_name


class AppConfig:
    """Holds provider credentials and lazily builds the matching API client."""

    def __init__(self, model_config: Optional[ModelConfig] = None) -> None:
        self.model_config = model_config or ModelConfig()
        self.gemini_client = None
        self.openai_client = None

    def configure_model(self, cfg: Any) -> None:
        self.model_config.update_from_config(cfg)

    def get_client(self, provider: Optional[str] = None):
        """Return a cached client for ``provider`` (defaults to the configured one)."""
        provider = (provider or self.model_config.provider).lower()
        if provider == "gemini":
            return self._get_gemini_client()
        if provider == "openai":
            return self._get_openai_client()
        raise ConfigurationError(f"Unknown provider: {provider}. Expected 'gemini' or 'openai'.")

    def _get_gemini_client(self):
        if self.gemini_client:
            return self.gemini_client

        api_key = os.getenv("GOOGLE_API_KEY")
        if not api_key:
            raise ConfigurationError("GOOGLE_API_KEY is not set.")
        self.gemini_client = genai.Client(api_key=api_key)
        logger.info("Gemini client configured.")
        return self.gemini_client

    def _get_openai_client(self):
        if self.openai_client:
            return self.openai_client

        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY is not set.")
        base_url = self.model_config.openai.base_url
        if base_url:
            self.openai_client = OpenAI(api_key=api_key, base_url=base_url)
        else:
            self.openai_client = OpenAI(api_key=api_key)
        logger.info("OpenAI client configured (base_url=%s).", base_url)
        return self.openai_client
