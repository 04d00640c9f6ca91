# promptcache/llm_utils.py
from __future__ import annotations

import logging
import time
from typing import Optional

from google.genai import types

from promptcache.config import AppConfig
from promptcache.errors import ConfigurationError, LLMCallError

logger = logging.getLogger(__name__)


def _query_gemini(client, model_name: str, prompt: str, system_message: str, temperature: float) -> str:
    generation_config = types.GenerateContentConfig(
        temperature=temperature,
        system_instruction=system_message,
    )
    response = client.models.generate_content(
        model=f"models/{model_name}",
        contents=prompt,
        config=generation_config,
    )
    return response.text or ""


def _query_openai(client, model_name: str, prompt: str, system_message: str, temperature: float) -> str:
    response = client.chat.completions.create(
        model=model_name,
        temperature=temperature,
        messages=[
            {"role": "system", "content": system_message},
            {"role": "user", "content": prompt},
        ],
    )
    if not response.choices:
        raise ValueError("Completion response contained no choices.")
    return response.choices[0].message.content or ""


def query_text(
    prompt: str,
    system_message: str,
    app_config: AppConfig,
    temperature: Optional[float] = None,
    max_retries: int = 3,
) -> str:
    """Send one free-form generation request to the configured provider.

    Retries with exponential backoff and raises :class:`LLMCallError` once
    ``max_retries`` attempts have failed. Configuration problems are raised
    immediately.
    """
    model_cfg = app_config.model_config
    provider = model_cfg.provider
    if provider == "gemini":
        call = _query_gemini
    elif provider == "openai":
        call = _query_openai
    else:
        raise ConfigurationError(f"Unknown provider: {provider}. Expected 'gemini' or 'openai'.")

    client = app_config.get_client(provider)
    generation_temperature = temperature if temperature is not None else model_cfg.temperature

    last_exc: Optional[Exception] = None
    for attempt in range(max_retries):
        try:
            return call(client, model_cfg.model_name, prompt, system_message, generation_temperature)
        except Exception as exc:
            last_exc = exc
            logger.warning(
                "%s call failed (attempt %d/%d): %s",
                provider,
                attempt + 1,
                max_retries,
                exc,
            )
            if attempt < max_retries - 1:
                time.sleep(2 ** attempt)

    raise LLMCallError(
        f"{provider} request failed after {max_retries} attempts: {last_exc}"
    ) from last_exc
