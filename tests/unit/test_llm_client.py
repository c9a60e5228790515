"""
Unit tests -- LLM client: mock mode + dispatch.
"""
import pytest

from src.copilot.llm_client import call_llm, completion_for
from src.core.config import get_settings
from src.core.errors import LLMUnavailable


@pytest.fixture
def no_keys(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "openai_api_key", "")
    monkeypatch.setattr(settings, "anthropic_api_key", "")


def test_mock_returns_string():
    result = call_llm("Hello world", provider="mock")
    assert isinstance(result, str)


def test_mock_prefix():
    result = call_llm("Hello world", provider="mock")
    assert result.startswith("[MOCK]")


def test_mock_echoes_prompt():
    prompt = "What is the meaning of life?"
    result = call_llm(prompt, provider="mock")
    assert prompt[:20] in result


def test_unknown_provider_raises():
    with pytest.raises(NotImplementedError, match="not supported"):
        call_llm("hi", provider="banana")


def test_openai_missing_key_raises(no_keys):
    """Should raise RuntimeError when key is empty."""
    with pytest.raises(RuntimeError, match="openai_api_key"):
        call_llm("hi", provider="openai")


def test_anthropic_missing_key_raises(no_keys):
    """Should raise RuntimeError when key is empty."""
    with pytest.raises(RuntimeError, match="anthropic_api_key"):
        call_llm("hi", provider="anthropic")


def test_missing_key_is_llm_unavailable(no_keys):
    with pytest.raises(LLMUnavailable):
        call_llm("hi", provider="openai")


def test_default_provider_is_mock(monkeypatch):
    """Settings default to mock -- this should work without any keys."""
    monkeypatch.setattr(get_settings(), "llm_provider", "mock")
    result = call_llm("test")
    assert "[MOCK]" in result


def test_completion_for_binds_provider():
    complete = completion_for("mock")
    assert complete("abc") == "[MOCK] abc"
