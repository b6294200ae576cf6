"""
Prompt chain executor

Runs chain steps strictly in the order they were submitted. Each step's prompt may
reference the previous step through an [OUTPUT FROM STEP N] marker; the first
failing step ends the run and everything completed so far is reported.
"""
import logging
import random
import re
import time
from dataclasses import dataclass
from typing import List, Optional, Sequence

from llm_client import LLMClient, get_llm_client
from logging_config import log_performance, log_with_context
from model_catalog import ProviderKind
from models import ChainReport, ChainStep, StepResult, TokenUsage
from security import mask_api_key, validate_api_key_format
from shared_settings import DEFAULT_STEP_TIMEOUT_SECONDS, ProviderCredentials

logger = logging.getLogger(__name__)

# Marker number is never checked against the predecessor's id
OUTPUT_PLACEHOLDER = re.compile(r"\[OUTPUT FROM STEP \d+\]")
PROMPT_EXCERPT_LENGTH = 100


class ChainError(Exception):
    """Request-level chain failure; no report is produced"""
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ChainValidationError(ChainError):
    status_code = 400


class ChainAuthenticationError(ChainError):
    status_code = 401


@dataclass
class StepOutcome:
    """Ok(response, usage) or Err(error) for one step"""
    response: str = ""
    usage: Optional[TokenUsage] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def substitute_previous_output(prompt: str, previous_output: str) -> str:
    """Replace every output marker with the previous step's raw response"""
    if not previous_output:
        return prompt
    return OUTPUT_PLACEHOLDER.sub(lambda _match: previous_output, prompt)


def build_demo_response(step: ChainStep, prompt: str, provider: ProviderKind) -> StepOutcome:
    """Simulated step output used when the selected provider has no API key"""
    excerpt = prompt[:PROMPT_EXCERPT_LENGTH]
    prompt_tokens = len(prompt) // 4

    if provider is ProviderKind.ANTHROPIC:
        response = (
            f"[DEMO CLAUDE RESPONSE for Step {step.id}]\n\n"
            f"This would be Claude's response for \"{step.title}\".\n\n"
            "Claude excels at thoughtful, step-by-step reasoning and would provide a detailed response here.\n\n"
            "To enable real Claude testing, integrate with Anthropic's API.\n\n"
            f"Step Input: \"{excerpt}...\""
        )
        completion_tokens = random.randint(100, 349)
    else:
        response = (
            f"[DEMO RESPONSE for Step {step.id}]\n\n"
            f"This is a simulated response for \"{step.title}\" using {step.model}.\n\n"
            f"Step Prompt: \"{excerpt}...\"\n\n"
            "Add your API key in Settings → API Keys to enable real testing.\n\n"
            "This would be the actual output that feeds into the next step."
        )
        completion_tokens = random.randint(50, 249)

    return StepOutcome(
        response=response,
        usage=TokenUsage(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens
        )
    )


class ChainExecutor:
    """Executes one chain per call; holds no state between runs"""

    def __init__(self, llm_client: Optional[LLMClient] = None,
                 step_timeout_seconds: float = DEFAULT_STEP_TIMEOUT_SECONDS):
        self.llm_client = llm_client or get_llm_client()
        self.step_timeout_seconds = step_timeout_seconds

    def _api_key_for(self, provider: ProviderKind, credentials: ProviderCredentials) -> Optional[str]:
        if provider is ProviderKind.ANTHROPIC:
            return credentials.anthropic_api_key
        return credentials.openai_api_key

    async def _invoke(self, step: ChainStep, prompt: str, credentials: ProviderCredentials) -> StepOutcome:
        provider = ProviderKind.for_model(step.model)
        api_key = self._api_key_for(provider, credentials)

        if not api_key:
            logger.info(f"No {provider.display_name} key for step {step.id}, using demo response")
            return build_demo_response(step, prompt, provider)

        result = await self.llm_client.complete(
            provider, api_key, step.model, prompt,
            timeout_seconds=self.step_timeout_seconds
        )

        return StepOutcome(
            response=result.output,
            usage=TokenUsage(
                prompt_tokens=result.prompt_tokens,
                completion_tokens=result.completion_tokens,
                total_tokens=result.total_tokens
            )
        )

    async def run_step(self, index: int, step: ChainStep, previous_output: str,
                       credentials: ProviderCredentials) -> StepResult:
        """Run a single step; provider failures are recorded, never raised"""
        start_time = time.time()

        try:
            prompt = step.prompt
            if index > 0:
                prompt = substitute_previous_output(prompt, previous_output)
            outcome = await self._invoke(step, prompt, credentials)
        except Exception as e:
            outcome = StepOutcome(error=str(e) or e.__class__.__name__)

        response_time = int((time.time() - start_time) * 1000)

        if outcome.ok:
            return StepResult(
                step_id=step.id,
                title=step.title,
                model=step.model,
                prompt=prompt,
                response=outcome.response,
                response_time=response_time,
                success=True,
                usage=outcome.usage or TokenUsage()
            )

        log_with_context(
            logger, "WARNING",
            f"Chain step {step.id} failed: {outcome.error}",
            step_id=step.id,
            model=step.model,
            duration_ms=response_time
        )
        return StepResult(
            step_id=step.id,
            title=step.title,
            model=step.model,
            prompt=step.prompt,
            response=f"[ERROR] {outcome.error}",
            response_time=response_time,
            success=False,
            usage=TokenUsage(),
            error=outcome.error
        )

    def _check_preconditions(self, steps: Sequence[ChainStep], credentials: ProviderCredentials):
        if not steps:
            raise ChainValidationError("Chain steps are required")

        if not credentials.has_any:
            raise ChainAuthenticationError(
                "No API key provided. Please add an API key in Settings → API Keys."
            )

        for provider, key in (("openai", credentials.openai_api_key),
                              ("anthropic", credentials.anthropic_api_key)):
            if key:
                valid, reason = validate_api_key_format(key, provider)
                if not valid:
                    logger.warning(f"{provider} key {mask_api_key(key)} looks malformed: {reason}")

    async def execute(self, steps: Sequence[ChainStep], credentials: ProviderCredentials,
                      chain_title: str = "Untitled Chain") -> ChainReport:
        """
        Execute a chain and return its report

        Raises:
            ChainValidationError: no steps were given
            ChainAuthenticationError: neither provider has an API key
        """
        self._check_preconditions(steps, credentials)
        return await self._run_steps(steps, credentials, chain_title)

    @log_performance(logger, "chain_execution")
    async def _run_steps(self, steps: Sequence[ChainStep], credentials: ProviderCredentials,
                         chain_title: str) -> ChainReport:
        results: List[StepResult] = []
        previous_output = ""

        for index, step in enumerate(steps):
            result = await self.run_step(index, step, previous_output, credentials)
            results.append(result)

            if not result.success:
                break

            previous_output = result.response

        report = ChainReport.from_results(chain_title, len(steps), results)
        log_with_context(
            logger, "INFO",
            f"Chain '{chain_title}' finished: {report.completed_steps}/{report.total_steps} steps",
            total_steps=report.total_steps,
            completed_steps=report.completed_steps,
            total_tokens=report.total_tokens,
            success=report.success
        )
        return report
