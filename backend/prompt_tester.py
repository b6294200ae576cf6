"""
Single prompt testing against one model
"""
import logging
import random
import time
from typing import Optional

from llm_client import LLMClient, ModelNotFoundError, ProviderError, QuotaExceededError, get_llm_client
from model_catalog import ProviderKind
from models import PromptTestRequest, PromptTestResult, TokenUsage
from security import sanitize_input
from shared_settings import DEFAULT_STEP_TIMEOUT_SECONDS, ProviderCredentials

logger = logging.getLogger(__name__)


class PromptTestError(Exception):
    """Provider failure during a prompt test; carries the result to return with a 500"""
    def __init__(self, result: PromptTestResult):
        self.result = result
        super().__init__(result.error)


def friendly_error_message(error: Exception) -> str:
    if isinstance(error, QuotaExceededError):
        return "API quota exceeded. Please check your billing."
    if isinstance(error, ModelNotFoundError):
        return "Model not found or not accessible."
    if isinstance(error, ProviderError) and error.provider == "anthropic":
        return "Anthropic API error. Check your API key and billing."
    return "Failed to test prompt"


class PromptTester:

    def __init__(self, llm_client: Optional[LLMClient] = None,
                 timeout_seconds: float = DEFAULT_STEP_TIMEOUT_SECONDS):
        self.llm_client = llm_client or get_llm_client()
        self.timeout_seconds = timeout_seconds

    def _demo_result(self, request: PromptTestRequest, provider: ProviderKind) -> PromptTestResult:
        prompt_tokens = len(request.prompt) // 4
        return PromptTestResult(
            model=request.model,
            prompt=request.prompt,
            test_input=request.test_input,
            response=(
                f"[DEMO TEST RESULT for {request.model}]\n\n"
                "This is a simulated response to demonstrate the testing functionality. "
                f"The actual response would come from {request.model} processing your prompt.\n\n"
                f"Your prompt: \"{request.prompt}\"\nTest input: \"{request.test_input}\"\n\n"
                f"Add your {provider.display_name} API key in Settings → API Keys to enable real testing with AI models."
            ),
            response_time=random.randint(500, 2499),
            success=True,
            usage=TokenUsage(prompt_tokens=prompt_tokens, completion_tokens=50, total_tokens=prompt_tokens + 50)
        )

    def _coming_soon_result(self, request: PromptTestRequest, response_time: int) -> PromptTestResult:
        prompt_tokens = len(request.prompt) // 4
        return PromptTestResult(
            model=request.model,
            prompt=request.prompt,
            test_input=request.test_input,
            response=(
                f"[COMING SOON for {request.model}]\n\n"
                "This model will be available in a future update. "
                "Currently supporting text generation models from OpenAI and Anthropic.\n\n"
                f"Prompt tested: \"{request.prompt[:100]}...\""
            ),
            response_time=response_time,
            success=True,
            usage=TokenUsage(prompt_tokens=prompt_tokens, completion_tokens=50, total_tokens=prompt_tokens + 50)
        )

    async def run(self, request: PromptTestRequest, credentials: ProviderCredentials) -> PromptTestResult:
        """
        Test one prompt. Raises PromptTestError when the provider call fails
        """
        start_time = time.time()
        provider = ProviderKind.for_text_model(request.model)

        if provider is None:
            return self._coming_soon_result(request, int((time.time() - start_time) * 1000))

        api_key = credentials.anthropic_api_key if provider is ProviderKind.ANTHROPIC else credentials.openai_api_key
        if not api_key:
            return self._demo_result(request, provider)

        full_prompt = f"{request.prompt}\n\n{request.test_input}" if request.test_input else request.prompt
        full_prompt = sanitize_input(full_prompt)

        try:
            result = await self.llm_client.complete(
                provider, api_key, request.model, full_prompt,
                timeout_seconds=self.timeout_seconds
            )
        except Exception as e:
            logger.error(f"Error testing prompt on {request.model}: {e}")
            message = friendly_error_message(e)
            raise PromptTestError(PromptTestResult(
                model=request.model,
                prompt=request.prompt,
                test_input=request.test_input,
                response=f"[ERROR] {message}: {e}\n\nCheck your API keys in Settings → API Keys.",
                response_time=0,
                success=False,
                error=message
            )) from e

        return PromptTestResult(
            model=request.model,
            prompt=request.prompt,
            test_input=request.test_input,
            response=result.output,
            response_time=int((time.time() - start_time) * 1000),
            success=True,
            usage=TokenUsage(
                prompt_tokens=result.prompt_tokens,
                completion_tokens=result.completion_tokens,
                total_tokens=result.total_tokens
            )
        )
