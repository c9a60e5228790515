"""
LLM client abstraction -- provider-agnostic wrapper.

Supported providers:
  mock      -- echo back the prompt (for tests / offline dev)
  openai    -- OpenAI ChatCompletion (gpt-4o-mini default)
  anthropic -- Anthropic Messages (claude-3-haiku default)

Configuration is read from Settings (env / .env).  Every provider failure,
including a missing key or SDK, surfaces as :class:`LLMUnavailable`.
"""
from __future__ import annotations

from typing import Any, Callable

from src.core.config import get_settings
from src.core.errors import LLMUnavailable
from src.core.logging import get_logger

logger = get_logger(__name__)


_OPENAI_DEFAULT_MODEL = "gpt-4o-mini"
_ANTHROPIC_DEFAULT_MODEL = "claude-3-haiku-20240307"

_SYSTEM_PROMPT = "You are a precise data analyst who writes single-table SQL queries."

# Sampling temperature for generation; >0 so repeated completions can disagree.
_TEMPERATURE = 0.7
_MAX_TOKENS = 512


def _call_mock(prompt: str) -> str:
    logger.info("LLM mock mode -- returning echo")
    return f"[MOCK] {prompt[:200]}"


def _call_openai(prompt: str) -> str:
    """Call OpenAI ChatCompletion API."""
    settings = get_settings()
    api_key = settings.openai_api_key
    if not api_key:
        raise LLMUnavailable(
            "openai_api_key is not set.  "
            "Set OPENAI_API_KEY in your .env file or environment."
        )

    try:
        import openai  # type: ignore[import-untyped]
    except ImportError as exc:
        raise LLMUnavailable(
            "The 'openai' package is not installed.  "
            "Run: pip install openai"
        ) from exc

    client = openai.OpenAI(api_key=api_key)
    try:
        response = client.chat.completions.create(
            model=_OPENAI_DEFAULT_MODEL,
            messages=[
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=_TEMPERATURE,
            max_tokens=_MAX_TOKENS,
        )
    except openai.OpenAIError as exc:
        raise LLMUnavailable(f"OpenAI request failed: {exc}") from exc
    text = response.choices[0].message.content or ""
    logger.info("OpenAI response (%d chars)", len(text))
    return text


def _call_anthropic(prompt: str) -> str:
    """Call Anthropic Messages API."""
    settings = get_settings()
    api_key = settings.anthropic_api_key
    if not api_key:
        raise LLMUnavailable(
            "anthropic_api_key is not set.  "
            "Set ANTHROPIC_API_KEY in your .env file or environment."
        )

    try:
        import anthropic  # type: ignore[import-untyped]
    except ImportError as exc:
        raise LLMUnavailable(
            "The 'anthropic' package is not installed.  "
            "Run: pip install anthropic"
        ) from exc

    client = anthropic.Anthropic(api_key=api_key)
    try:
        response = client.messages.create(
            model=_ANTHROPIC_DEFAULT_MODEL,
            max_tokens=_MAX_TOKENS,
            temperature=_TEMPERATURE,
            system=_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
        )
    except anthropic.AnthropicError as exc:
        raise LLMUnavailable(f"Anthropic request failed: {exc}") from exc
    text = response.content[0].text if response.content else ""
    logger.info("Anthropic response (%d chars)", len(text))
    return text


_PROVIDERS: dict[str, Any] = {
    "mock": _call_mock,
    "openai": _call_openai,
    "anthropic": _call_anthropic,
}


def call_llm(prompt: str, provider: str | None = None) -> str:
    """Send *prompt* to the configured (or overridden) LLM provider.

    Parameters
    ----------
    prompt : str
        The full prompt text.
    provider : str, optional
        Override the provider from settings.  One of: mock, openai, anthropic.

    Raises
    ------
    NotImplementedError
        For an unknown provider name.
    LLMUnavailable
        When the provider is not configured or the request fails.
    """
    if provider is None:
        provider = get_settings().llm_provider.lower()

    fn = _PROVIDERS.get(provider)
    if fn is None:
        raise NotImplementedError(
            f"LLM provider '{provider}' is not supported.  "
            f"Choose from: {', '.join(_PROVIDERS)}"
        )

    logger.info("Calling LLM provider=%s  prompt_len=%d", provider, len(prompt))
    return fn(prompt)


def completion_for(provider: str) -> Callable[[str], str]:
    """Bind :func:`call_llm` to *provider* as a ``complete(prompt)`` callable."""

    def complete(prompt: str) -> str:
        return call_llm(prompt, provider=provider)

    return complete
