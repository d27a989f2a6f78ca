"""LLM client utilities shared by the orchestration chains."""

import re
from functools import lru_cache

from openai import AsyncOpenAI

from artemis.core.config import get_settings


@lru_cache(maxsize=1)
def get_openai_client() -> AsyncOpenAI:
    """
    Get the shared async OpenAI client (cached singleton).

    Returns:
        AsyncOpenAI configured with the service API key
    """
    settings = get_settings()
    return AsyncOpenAI(api_key=settings.OPENAI_API_KEY)


@lru_cache(maxsize=1)
def get_ui_generator_client() -> AsyncOpenAI:
    """
    Get the async client for the generative-UI provider (OpenAI-compatible API).

    Returns:
        AsyncOpenAI pointed at UI_GENERATOR_BASE_URL
    """
    settings = get_settings()
    return AsyncOpenAI(
        api_key=settings.UI_GENERATOR_API_KEY or settings.OPENAI_API_KEY,
        base_url=settings.UI_GENERATOR_BASE_URL,
    )


def strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        return fence_match.group(1).strip()

    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()

