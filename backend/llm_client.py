"""
LLM client for PromptCraft
Features:
- One handler per provider kind (OpenAI chat completions, Anthropic messages)
- Provider errors normalised into a small exception hierarchy
- No retries: callers decide what a failure means
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from model_catalog import ProviderKind, resolve_model_name

logger = logging.getLogger(__name__)

MAX_OUTPUT_TOKENS = 1000
TEMPERATURE = 0.7
ANTHROPIC_API_VERSION = "2023-06-01"
NO_RESPONSE = "No response"


class ProviderError(Exception):
    """Base exception for failures while calling a model provider"""
    def __init__(self, message: str, provider: str, status_code: Optional[int] = None):
        self.message = message
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class ProviderTimeoutError(ProviderError):
    """Provider did not answer within the step timeout"""
    def __init__(self, provider: str, timeout_seconds: float):
        super().__init__(
            f"{provider} request timed out after {timeout_seconds:g}s",
            provider
        )
        self.timeout_seconds = timeout_seconds


class QuotaExceededError(ProviderError):
    """Account has no remaining quota"""


class ModelNotFoundError(ProviderError):
    """Model not available for this key"""
    def __init__(self, message: str, provider: str, model: str, status_code: Optional[int] = None):
        super().__init__(message, provider, status_code)
        self.model = model


@dataclass
class LLMResponse:
    """Standardized LLM response"""
    output: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    model: str = ""
    provider: str = ""
    latency_ms: int = 0


class LLMClient:
    """Unified completion client; SDK clients are created per call"""

    def __init__(self):
        self._handlers = {
            ProviderKind.OPENAI: self._call_openai,
            ProviderKind.ANTHROPIC: self._call_anthropic,
        }

    def _get_openai_client(self, api_key: str):
        from openai import AsyncOpenAI
        return AsyncOpenAI(api_key=api_key, max_retries=0)

    def _get_anthropic_client(self, api_key: str):
        from anthropic import AsyncAnthropic
        return AsyncAnthropic(
            api_key=api_key,
            max_retries=0,
            default_headers={"anthropic-version": ANTHROPIC_API_VERSION}
        )

    async def _call_openai(self, api_key: str, model: str, prompt: str,
                           system_prompt: Optional[str] = None,
                           max_tokens: int = MAX_OUTPUT_TOKENS) -> LLMResponse:
        """Call OpenAI chat completions"""
        import openai

        messages = [{"role": "user", "content": prompt}]
        if system_prompt:
            messages.insert(0, {"role": "system", "content": system_prompt})

        client = self._get_openai_client(api_key)
        try:
            completion = await client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=TEMPERATURE
            )
        except openai.APIStatusError as e:
            code = _error_code(e)
            if code == "insufficient_quota":
                raise QuotaExceededError(str(e), "openai", e.status_code) from e
            if code == "model_not_found":
                raise ModelNotFoundError(str(e), "openai", model, e.status_code) from e
            raise ProviderError(str(e), "openai", e.status_code) from e
        except openai.APIError as e:
            raise ProviderError(str(e), "openai") from e

        choice = completion.choices[0] if completion.choices else None
        usage = completion.usage
        return LLMResponse(
            output=(choice.message.content if choice else None) or NO_RESPONSE,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            total_tokens=usage.total_tokens if usage else 0,
            model=model,
            provider="openai"
        )

    async def _call_anthropic(self, api_key: str, model: str, prompt: str,
                              system_prompt: Optional[str] = None,
                              max_tokens: int = MAX_OUTPUT_TOKENS) -> LLMResponse:
        """Call the Anthropic messages API"""
        import anthropic

        extra = {"system": system_prompt} if system_prompt else {}
        client = self._get_anthropic_client(api_key)
        try:
            message = await client.messages.create(
                model=model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}],
                **extra
            )
        except anthropic.APIStatusError as e:
            error_msg = f"Anthropic API error: {e.status_code} - {e.response.text}"
            if e.status_code == 404:
                raise ModelNotFoundError(error_msg, "anthropic", model, e.status_code) from e
            raise ProviderError(error_msg, "anthropic", e.status_code) from e
        except anthropic.APIError as e:
            raise ProviderError(f"Anthropic API error: {e}", "anthropic") from e

        text = message.content[0].text if message.content else None
        usage = message.usage
        input_tokens = (usage.input_tokens or 0) if usage else 0
        output_tokens = (usage.output_tokens or 0) if usage else 0
        return LLMResponse(
            output=text or NO_RESPONSE,
            prompt_tokens=input_tokens,
            completion_tokens=output_tokens,
            total_tokens=input_tokens + output_tokens,
            model=model,
            provider="anthropic"
        )

    async def complete(
        self,
        provider: ProviderKind,
        api_key: str,
        model: str,
        prompt: str,
        timeout_seconds: Optional[float] = None,
        system_prompt: Optional[str] = None,
        max_tokens: int = MAX_OUTPUT_TOKENS
    ) -> LLMResponse:
        """
        Run one completion for a studio model id

        Raises ProviderError (or a subclass) on any failure, including
        ProviderTimeoutError when timeout_seconds elapses first
        """
        start_time = time.time()
        api_model = resolve_model_name(provider, model)
        handler = self._handlers[provider]

        try:
            response = await asyncio.wait_for(
                handler(api_key, api_model, prompt, system_prompt=system_prompt, max_tokens=max_tokens),
                timeout=timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeoutError(provider.value, timeout_seconds) from e
        except ProviderError:
            raise
        except (KeyError, IndexError, AttributeError, TypeError) as e:
            raise ProviderError(f"Malformed {provider.display_name} response: {e}", provider.value) from e

        response.latency_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"{provider.value} call for {api_model} took {response.latency_ms}ms")
        return response


def _error_code(error: Exception) -> Optional[str]:
    """Extract the provider error code (e.g. insufficient_quota) if there is one"""
    code = getattr(error, "code", None)
    if code:
        return code
    body = getattr(error, "body", None)
    if isinstance(body, dict):
        if isinstance(body.get("error"), dict):
            return body["error"].get("code")
        return body.get("code")
    return None


def get_llm_client() -> LLMClient:
    """Get LLM client instance"""
    return LLMClient()
