"""
Pytest configuration and shared fixtures
"""
import pytest
import sys
import os

# Add backend to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'backend'))

# Set test environment
os.environ["TESTING"] = "true"

from llm_client import LLMResponse
from models import ChainStep
from shared_settings import ProviderCredentials


@pytest.fixture(autouse=True)
def clean_provider_env(monkeypatch):
    """Never let a developer's real keys leak into tests"""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("STEP_TIMEOUT_SECONDS", raising=False)


@pytest.fixture
def both_keys():
    return ProviderCredentials(openai_api_key="sk-test-openai", anthropic_api_key="sk-ant-test")


@pytest.fixture
def make_step():
    """Factory for chain steps"""
    def _make(step_id, prompt="Summarize the topic", model="gpt-4o", title=None, connects_to=None):
        return ChainStep(
            id=step_id,
            title=title or f"Step {step_id}",
            description="",
            prompt=prompt,
            expected_output="",
            connects_to=connects_to or [],
            model=model,
        )
    return _make


@pytest.fixture
def make_response():
    """Factory for provider responses"""
    def _make(output="ok", prompt_tokens=10, completion_tokens=5, provider="openai"):
        return LLMResponse(
            output=output,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            provider=provider,
        )
    return _make
