import pytest
from omegaconf import OmegaConf

from promptcache.config import (
    AppConfig,
    CacheConfig,
    ModelConfig,
    OptimizationLevel,
    eligible_kinds,
)
from promptcache.errors import ConfigurationError
from promptcache.fragments import FragmentKind


def test_defaults():
    config = CacheConfig()

    assert config.optimization_level is OptimizationLevel.BALANCED
    assert config.eligible_kinds == {FragmentKind.SYSTEM_PROMPT, FragmentKind.INSTRUCTION_TEMPLATE}
    assert config.context_preservation is False
    assert config.target_chunk_size == 15000
    assert config.price_per_million_tokens == 15.0


@pytest.mark.parametrize(
    "level,kinds,preserve",
    [
        ("conservative", {FragmentKind.SYSTEM_PROMPT}, False),
        ("balanced", {FragmentKind.SYSTEM_PROMPT, FragmentKind.INSTRUCTION_TEMPLATE}, False),
        ("AGGRESSIVE", {FragmentKind.SYSTEM_PROMPT, FragmentKind.INSTRUCTION_TEMPLATE}, True),
    ],
)
def test_levels_map_to_eligible_kinds(level, kinds, preserve):
    config = CacheConfig(optimization_level=level)

    assert config.eligible_kinds == kinds
    assert eligible_kinds(config.optimization_level) == kinds
    assert config.context_preservation is preserve


def test_explicit_preserve_context_overrides_level():
    config = CacheConfig(optimization_level="aggressive", preserve_context=False)

    assert config.context_preservation is False


def test_from_omegaconf_casts_values():
    cfg = OmegaConf.create(
        {
            "optimization_level": "conservative",
            "target_chunk_size": "2048",
            "preserve_context": "true",
            "price_per_million_tokens": 2,
        }
    )

    config = CacheConfig.from_omegaconf(cfg)

    assert config.optimization_level is OptimizationLevel.CONSERVATIVE
    assert config.target_chunk_size == 2048
    assert config.preserve_context is True
    assert config.price_per_million_tokens == 2.0


def test_from_omegaconf_none_gives_defaults():
    assert CacheConfig.from_omegaconf(None).as_dict() == CacheConfig().as_dict()


def test_invalid_values_are_all_reported():
    with pytest.raises(ValueError) as excinfo:
        CacheConfig(
            optimization_level="extreme",
            target_chunk_size=0,
            max_parallel_workers=1.5,
        )

    message = str(excinfo.value)
    assert "optimization_level" in message
    assert "target_chunk_size" in message
    assert "max_parallel_workers" in message


def test_unknown_keys_raise_key_error():
    with pytest.raises(KeyError):
        CacheConfig(cache_timeout_minutes=60)

    config = CacheConfig()
    with pytest.raises(KeyError):
        config.apply_overrides(unknown=1)


def test_apply_overrides_validates():
    config = CacheConfig()
    config.apply_overrides(max_parallel_workers=4)
    assert config.max_parallel_workers == 4

    with pytest.raises(ValueError):
        config.apply_overrides(safety_margin=-1)
    assert config.safety_margin == 500


def test_relevant_fields_accepts_field_names():
    cfg = OmegaConf.create({"relevant_fields": ["id", "priority"]})

    assert CacheConfig.from_omegaconf(cfg).relevant_fields == ["id", "priority"]
    assert CacheConfig().relevant_fields is None


@pytest.mark.parametrize("value", ["id", ["id", 3], ["id", ""], {"id": 1}])
def test_relevant_fields_rejects_invalid_values(value):
    with pytest.raises(ValueError, match="relevant_fields"):
        CacheConfig(relevant_fields=value)


def test_model_config_reads_environment(monkeypatch):
    monkeypatch.setenv("MODEL_PROVIDER", "OpenAI")
    monkeypatch.setenv("OPENAI_MODEL", "gpt-test")
    monkeypatch.setenv("MODEL_TEMPERATURE", "0.9")

    model_config = ModelConfig()

    assert model_config.provider == "openai"
    assert model_config.model_name == "gpt-test"
    assert model_config.temperature == 0.9


def test_model_config_update_from_config(monkeypatch):
    monkeypatch.delenv("MODEL_PROVIDER", raising=False)
    model_config = ModelConfig()

    model_config.update_from_config({"provider": "gemini", "name": "gemini-x", "temperature": 0.1})

    assert model_config.model_name == "gemini-x"
    assert model_config.temperature == 0.1


def test_missing_credentials_raise(monkeypatch):
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    app_config = AppConfig()

    with pytest.raises(ConfigurationError):
        app_config.get_client("gemini")
    with pytest.raises(ConfigurationError):
        app_config.get_client("openai")
    with pytest.raises(ConfigurationError):
        app_config.get_client("anthropic")
