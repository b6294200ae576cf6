"""
Prompt chain generation

Asks OpenAI to break a goal into a short prompt chain that the chain builder can
run. Without a usable key, or when the model's reply cannot be used, a canned
chain built around the goal is returned instead.
"""
import json
import logging
import random
import re
import time
from typing import Any, Dict, List, Optional

from chain_executor import ChainError
from llm_client import (
    NO_RESPONSE,
    LLMClient,
    ModelNotFoundError,
    ProviderError,
    QuotaExceededError,
    get_llm_client,
)
from model_catalog import ProviderKind
from models import (
    EstimatedTokens,
    GeneratedChain,
    GeneratedChainStep,
    GenerationMetadata,
    TokenUsage,
)
from shared_settings import DEFAULT_STEP_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

GENERATOR_MODEL = "gpt-4o"
DEFAULT_TARGET_MODEL = "gpt-4o"
GENERATION_MAX_TOKENS = 2000

FENCED_JSON = re.compile(r"```(?:json)?\s*(\{[\s\S]*\})\s*```")

# Literal braces are doubled for str.format
GENERATION_SYSTEM_PROMPT = """You are an expert prompt engineer who specializes in creating chained prompts by breaking down complex tasks into sequential, smaller steps prompts.

CRITICAL INSTRUCTIONS:
1. Return ONLY a valid JSON object - no explanations, no markdown, no additional text
2. Do NOT wrap the JSON in code blocks or quotes
3. Use \\n for line breaks within JSON strings, never actual newlines
4. Keep all content on single lines within JSON string values

Your task: Analyze the user's goal and create a prompt chain of 2-4 connected prompts (MINIMUM 2 steps, MAXIMUM 4 steps) that work together to achieve the goal more effectively than a single prompt. Take into consideration the target model that will be used with the prompt chain.

User Goal: {goal}
Target Model: {target_model}

IMPORTANT: You MUST create at least 2 steps, but no more than 4 steps. Single-step chains are not allowed.

Guidelines for creating prompt chains:
1. Break the complex task into logical, sequential steps (2-4 steps)
2. Each prompt should build on the previous one's output
3. Use clear handoff instructions like "[OUTPUT FROM STEP 1]", "[OUTPUT FROM STEP 2]", etc.
4. Each step should have a specific, focused purpose
5. The chain should be more effective than a single monolithic prompt

Common effective prompt chaining patterns (pick one that fits):
- Analysis → Implementation → Refinement (3 steps)
- Planning → Execution → Review → Polish (4 steps)
- Research → Synthesis → Application (3 steps)
- Break Down → Build → Optimize (3 steps)
- Gather → Process → Deliver (3 steps)

Create a JSON response with this EXACT structure:
{{
  "title": "Descriptive title for this prompt chain",
  "description": "Brief description of what this chain accomplishes",
  "steps": [
    {{
      "id": 1,
      "title": "Step name",
      "description": "What this step does",
      "prompt": "The complete prompt text with clear instructions",
      "expectedOutput": "What output this step should produce",
      "connectsTo": [2]
    }},
    {{
      "id": 2,
      "title": "Step name",
      "description": "What this step does",
      "prompt": "The complete prompt text that uses [OUTPUT FROM STEP 1]",
      "expectedOutput": "What output this step should produce",
      "connectsTo": [3]
    }}
  ]
}}

CRITICAL: Always create 2-4 steps. Make each prompt detailed and optimized for {target_model}. Include clear placeholders like [OUTPUT FROM STEP X] for chaining."""


class ChainGenerationError(ChainError):
    """The generator model cannot be used with this key"""
    status_code = 400


def parse_chain_json(text: str) -> Dict[str, Any]:
    """
    Extract the chain object from a model reply

    Accepts a bare object, an object inside a ```json fence, or an object
    surrounded by prose. Raw newlines inside string values are tolerated.

    Raises:
        ValueError: no usable JSON object was found
    """
    text = (text or "").strip()
    fenced = FENCED_JSON.search(text)
    if fenced:
        text = fenced.group(1)

    try:
        data = json.loads(text, strict=False)
    except json.JSONDecodeError:
        data = _extract_outer_object(text)

    if not isinstance(data, dict) or not isinstance(data.get("steps"), list):
        raise ValueError("reply is not a chain object with a steps list")
    return data


def _extract_outer_object(text: str) -> Any:
    start = text.find("{")
    if start == -1:
        raise ValueError("no JSON object in reply")

    depth = 0
    for i, char in enumerate(text[start:], start):
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return json.loads(text[start:i + 1], strict=False)

    raise ValueError("unbalanced braces in reply")


def with_estimates(step: GeneratedChainStep) -> GeneratedChainStep:
    """Rough per-step time and token estimates shown in the chain builder"""
    return step.model_copy(update={
        "estimated_time": random.randint(2000, 4999),
        "estimated_tokens": EstimatedTokens(
            input=len(step.prompt) // 4,
            output=random.randint(100, 399)
        ),
    })


# ============= Canned chains =============

def demo_chain(goal: str, target_model: str) -> GeneratedChain:
    """Returned when no OpenAI key is configured"""
    return GeneratedChain(
        title=f"Prompt Chain for: {goal}",
        description=(
            "Demo prompt chain generated without OpenAI API. "
            "Add your OpenAI API key in Settings → API Keys to enable AI generation."
        ),
        metadata=GenerationMetadata(
            response_time=850,
            usage=TokenUsage(prompt_tokens=180, completion_tokens=420, total_tokens=600),
            model="demo-mode",
            target_model=target_model
        ),
        steps=[
            GeneratedChainStep(
                id=1,
                title="Step 1: Analysis & Planning",
                description="Break down the task and create a structured approach",
                prompt=(
                    "You are an expert analyst. Your task is to thoroughly analyze the following request "
                    f"and create a detailed plan:\n\nRequest: \"{goal}\"\n\n"
                    "Analyze this request and:\n"
                    "1. Identify the key components and requirements\n"
                    "2. Break down the task into logical steps\n"
                    "3. Identify potential challenges or considerations\n"
                    "4. Create a structured approach\n\n"
                    "Provide a clear, organized analysis that will guide the next steps."
                ),
                expected_output="Structured analysis and plan",
                connects_to=[2],
                estimated_time=3200,
                estimated_tokens=EstimatedTokens(input=85, output=180)
            ),
            GeneratedChainStep(
                id=2,
                title="Step 2: Implementation & Execution",
                description="Execute the plan with detailed implementation",
                prompt=(
                    "Based on the analysis and plan from the previous step, now implement the solution:\n\n"
                    "Previous Analysis: [OUTPUT FROM STEP 1]\n\n"
                    "Using the analysis above, create a comprehensive implementation that:\n"
                    "1. Follows the structured approach identified\n"
                    "2. Addresses all key components\n"
                    "3. Provides specific, actionable details\n"
                    "4. Considers the challenges mentioned\n\n"
                    "Deliver a complete, practical solution."
                ),
                expected_output="Detailed implementation",
                connects_to=[3],
                estimated_time=4100,
                estimated_tokens=EstimatedTokens(input=220, output=350)
            ),
            GeneratedChainStep(
                id=3,
                title="Step 3: Review & Optimization",
                description="Review and refine the implementation",
                prompt=(
                    "Review and optimize the implementation from the previous step:\n\n"
                    "Implementation: [OUTPUT FROM STEP 2]\n\n"
                    "Carefully review the implementation and:\n"
                    "1. Check for completeness and accuracy\n"
                    "2. Identify areas for improvement\n"
                    "3. Suggest optimizations or enhancements\n"
                    f"4. Ensure it fully addresses the original goal: \"{goal}\"\n\n"
                    "Provide the final, optimized version with your improvements."
                ),
                expected_output="Final optimized solution",
                connects_to=[],
                estimated_time=2800,
                estimated_tokens=EstimatedTokens(input=380, output=240)
            ),
        ]
    )


def unparsed_reply_chain(goal: str, metadata: GenerationMetadata) -> GeneratedChain:
    """Returned when the model answered but its reply is not a usable chain"""
    return GeneratedChain(
        title=f"Prompt Chain for: {goal}",
        description="Generated prompt chain (parsed from AI response)",
        metadata=metadata,
        steps=[
            GeneratedChainStep(
                id=1,
                title="Research & Planning",
                description="Analyze and plan the approach",
                prompt=(
                    f"Analyze the task: {goal}\n\n"
                    "Break down this task into key components:\n"
                    "1. Identify main objectives\n"
                    "2. Determine required resources\n"
                    "3. Plan the approach\n"
                    "4. Set success criteria\n\n"
                    "Provide a comprehensive analysis to guide implementation."
                ),
                expected_output="Analysis and plan",
                connects_to=[2],
                estimated_time=3000,
                estimated_tokens=EstimatedTokens(input=200, output=150)
            ),
            GeneratedChainStep(
                id=2,
                title="Implementation & Execution",
                description="Execute the plan and deliver results",
                prompt=(
                    "Based on the planning from the previous step:\n\n"
                    "[OUTPUT FROM STEP 1]\n\n"
                    f"Now implement the solution for: {goal}\n\n"
                    "Create a detailed implementation that:\n"
                    "1. Follows the planned approach\n"
                    "2. Addresses all requirements\n"
                    "3. Provides actionable steps\n"
                    "4. Delivers complete results\n\n"
                    "Ensure your solution is practical and comprehensive."
                ),
                expected_output="Complete implementation",
                connects_to=[],
                estimated_time=4000,
                estimated_tokens=EstimatedTokens(input=300, output=250)
            ),
        ]
    )


def quota_chain(goal: str) -> GeneratedChain:
    """Returned when the OpenAI account is out of quota"""
    return GeneratedChain(
        title=f"Smart Prompt Chain for: {goal}",
        description=(
            "Demo prompt chain generated due to OpenAI quota limits. "
            "Check your OpenAI billing or add a different API key in Settings."
        ),
        steps=[
            GeneratedChainStep(
                id=1,
                title="Analysis Phase",
                description="Understand and break down the task",
                prompt=(
                    f"You are an expert analyst focused on {goal}. "
                    "Begin by thoroughly understanding and analyzing this task:\n\n"
                    "1. Break down the core requirements\n"
                    "2. Identify key challenges and considerations\n"
                    "3. Plan a structured approach\n"
                    "4. Set clear success criteria\n\n"
                    "Provide a comprehensive analysis that will guide the implementation phase."
                ),
                expected_output="Detailed analysis and plan",
                connects_to=[2]
            ),
            GeneratedChainStep(
                id=2,
                title="Implementation Phase",
                description="Execute the plan with detailed steps",
                prompt=(
                    f"Based on the analysis from the previous step, now implement the solution for {goal}:\n\n"
                    "[Use output from Analysis Phase]\n\n"
                    "Create a detailed, step-by-step implementation that:\n"
                    "1. Follows the planned approach\n"
                    "2. Addresses all identified requirements\n"
                    "3. Provides specific, actionable guidance\n"
                    "4. Anticipates and handles potential challenges\n\n"
                    "Deliver a complete, practical solution."
                ),
                expected_output="Complete implementation",
                connects_to=[3]
            ),
            GeneratedChainStep(
                id=3,
                title="Refinement Phase",
                description="Review, optimize and finalize",
                prompt=(
                    f"Review and refine the implementation for {goal}:\n\n"
                    "[Use output from Implementation Phase]\n\n"
                    "Optimize the solution by:\n"
                    "1. Checking for completeness and accuracy\n"
                    "2. Identifying improvement opportunities\n"
                    "3. Adding enhancements or missing elements\n"
                    "4. Ensuring it fully meets the original goal\n\n"
                    "Provide the final, polished version of the solution."
                ),
                expected_output="Final optimized solution",
                connects_to=[]
            ),
        ]
    )


def fallback_chain(goal: str) -> GeneratedChain:
    """Returned for any other provider failure"""
    return GeneratedChain(
        title=f"Prompt Chain for: {goal}",
        description=(
            "Fallback prompt chain generated due to API limitations. "
            "Check your API key in Settings → API Keys."
        ),
        steps=[
            GeneratedChainStep(
                id=1,
                title="Planning & Analysis",
                description="Analyze the requirements and plan approach",
                prompt=(
                    f"You are a helpful AI assistant focused on {goal}. First, analyze this task thoroughly:\n\n"
                    "1. Break down the main components\n"
                    "2. Identify key requirements\n"
                    "3. Plan a step-by-step approach\n"
                    "4. Consider potential challenges\n\n"
                    "Provide a clear analysis and plan that will guide the implementation."
                ),
                expected_output="Analysis and plan",
                connects_to=[2],
                estimated_time=3000,
                estimated_tokens=EstimatedTokens(input=250, output=150)
            ),
            GeneratedChainStep(
                id=2,
                title="Implementation & Solution",
                description="Execute the plan and create the solution",
                prompt=(
                    "Based on the analysis from the previous step:\n\n"
                    "[OUTPUT FROM STEP 1]\n\n"
                    f"Now implement the solution for {goal}. "
                    "Create a comprehensive, actionable solution that:\n"
                    "1. Follows the planned approach\n"
                    "2. Addresses all requirements\n"
                    "3. Provides specific, practical steps\n"
                    "4. Delivers complete results\n\n"
                    "Ensure your solution is detailed and directly applicable."
                ),
                expected_output="Complete implementation",
                connects_to=[],
                estimated_time=4000,
                estimated_tokens=EstimatedTokens(input=350, output=250)
            ),
        ]
    )


class ChainGenerator:

    def __init__(self, llm_client: Optional[LLMClient] = None,
                 timeout_seconds: float = DEFAULT_STEP_TIMEOUT_SECONDS):
        self.llm_client = llm_client or get_llm_client()
        self.timeout_seconds = timeout_seconds

    async def generate(self, goal: str, target_model: str, api_key: Optional[str]) -> GeneratedChain:
        """
        Generate a prompt chain for a goal

        Provider failures fall back to a canned chain, except an inaccessible
        generator model, which raises ChainGenerationError
        """
        if not api_key:
            logger.info("No OpenAI key for chain generation, returning demo chain")
            return demo_chain(goal, target_model)

        start_time = time.time()
        try:
            result = await self.llm_client.complete(
                ProviderKind.OPENAI, api_key, GENERATOR_MODEL,
                f"Create a prompt chain for: {goal}",
                timeout_seconds=self.timeout_seconds,
                system_prompt=GENERATION_SYSTEM_PROMPT.format(goal=goal, target_model=target_model),
                max_tokens=GENERATION_MAX_TOKENS
            )
            if result.output == NO_RESPONSE:
                raise ProviderError("No response from OpenAI", "openai")
        except QuotaExceededError as e:
            logger.warning(f"OpenAI quota exceeded while generating chain: {e}")
            return quota_chain(goal)
        except ModelNotFoundError as e:
            raise ChainGenerationError("Model not accessible. Please check your OpenAI API access.") from e
        except Exception as e:
            logger.error(f"Error generating prompt chain: {e}")
            return fallback_chain(goal)

        metadata = GenerationMetadata(
            response_time=int((time.time() - start_time) * 1000),
            usage=TokenUsage(
                prompt_tokens=result.prompt_tokens,
                completion_tokens=result.completion_tokens,
                total_tokens=result.total_tokens
            ),
            model=GENERATOR_MODEL,
            target_model=target_model
        )

        try:
            chain = GeneratedChain.model_validate(parse_chain_json(result.output))
        except ValueError as e:
            logger.warning(f"Could not parse generated chain, using fallback: {e}")
            logger.debug(f"Raw generator reply: {result.output}")
            return unparsed_reply_chain(goal, metadata)

        steps: List[GeneratedChainStep] = [with_estimates(step) for step in chain.steps]
        logger.info(f"Generated {len(steps)}-step chain for target model {target_model}")
        return chain.model_copy(update={"metadata": metadata, "steps": steps})
