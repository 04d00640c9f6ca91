from types import SimpleNamespace

import pytest

from promptcache import llm_utils
from promptcache.config import AppConfig, ModelConfig
from promptcache.errors import ConfigurationError, LLMCallError


class FakeGeminiModels:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(text=outcome)


class FakeCompletions:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def create(self, model, temperature, messages):
        self.calls.append({"model": model, "temperature": temperature, "messages": messages})
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_completion(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


@pytest.fixture(autouse=True)
def fake_types(monkeypatch):
    class FakeGenerateContentConfig:
        def __init__(self, **kwargs):
            self.kwargs = kwargs

    monkeypatch.setattr(
        llm_utils,
        "types",
        SimpleNamespace(GenerateContentConfig=FakeGenerateContentConfig),
    )


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    sleeps = []
    monkeypatch.setattr(llm_utils.time, "sleep", sleeps.append)
    return sleeps


def make_app_config(provider, client, model_name="test-model", temperature=0.3):
    model_config = ModelConfig()
    model_config.provider = provider
    model_config.temperature = temperature
    model_config.gemini.model_name = model_name
    model_config.openai.model_name = model_name
    app_config = AppConfig(model_config)
    if provider == "gemini":
        app_config.gemini_client = client
    else:
        app_config.openai_client = client
    return app_config


def test_gemini_happy_path():
    models = FakeGeminiModels(["analysis"])
    app_config = make_app_config("gemini", SimpleNamespace(models=models))

    result = llm_utils.query_text("chunk", "system", app_config, temperature=0.4)

    assert result == "analysis"
    call = models.calls[0]
    assert call["model"] == "models/test-model"
    assert call["contents"] == "chunk"
    assert call["config"].kwargs == {"temperature": 0.4, "system_instruction": "system"}


def test_gemini_uses_configured_temperature_by_default():
    models = FakeGeminiModels(["ok"])
    app_config = make_app_config("gemini", SimpleNamespace(models=models), temperature=0.7)

    llm_utils.query_text("chunk", "system", app_config)

    assert models.calls[0]["config"].kwargs["temperature"] == 0.7


def test_openai_happy_path():
    completions = FakeCompletions([make_completion("openai analysis")])
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    app_config = make_app_config("openai", client, model_name="gpt-test")

    result = llm_utils.query_text("chunk", "system", app_config)

    assert result == "openai analysis"
    call = completions.calls[0]
    assert call["model"] == "gpt-test"
    assert call["messages"] == [
        {"role": "system", "content": "system"},
        {"role": "user", "content": "chunk"},
    ]


def test_retries_with_backoff_then_succeeds(no_sleep):
    models = FakeGeminiModels([Exception("boom"), Exception("boom"), "recovered"])
    app_config = make_app_config("gemini", SimpleNamespace(models=models))

    result = llm_utils.query_text("chunk", "system", app_config, max_retries=3)

    assert result == "recovered"
    assert len(models.calls) == 3
    assert no_sleep == [1, 2]


def test_raises_after_exhausting_retries(no_sleep):
    completions = FakeCompletions([Exception("down"), SimpleNamespace(choices=[])])
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    app_config = make_app_config("openai", client)

    with pytest.raises(LLMCallError) as excinfo:
        llm_utils.query_text("chunk", "system", app_config, max_retries=2)

    assert "2 attempts" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, ValueError)
    assert no_sleep == [1]


def test_unknown_provider_fails_fast():
    app_config = make_app_config("gemini", SimpleNamespace(models=FakeGeminiModels([])))
    app_config.model_config.provider = "mystery"

    with pytest.raises(ConfigurationError):
        llm_utils.query_text("chunk", "system", app_config)
