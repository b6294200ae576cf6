"""
Data models for prompt chain and prompt test requests
JSON field names are camelCase to match the studio frontend
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional
from datetime import datetime, timezone


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_response(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


# ============= Shared =============

class TokenUsage(CamelModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


# ============= Prompt Chains =============

class ChainStep(CamelModel):
    """One step of a prompt chain as authored in the chain builder"""
    id: int
    title: str = ""
    description: str = ""
    prompt: str
    expected_output: str = ""
    connects_to: List[int] = Field(default_factory=list)  # not used for ordering
    model: str = "gpt-4o"

    model_config = ConfigDict(frozen=True)


class ChainTestRequest(CamelModel):
    steps: List[ChainStep] = Field(default_factory=list)
    chain_title: Optional[str] = "Untitled Chain"
    user_api_key: Optional[str] = None  # OpenAI override
    anthropic_api_key: Optional[str] = None

    @field_validator("chain_title")
    @classmethod
    def default_title(cls, value: Optional[str]) -> str:
        return value or "Untitled Chain"


class StepResult(CamelModel):
    """Result of one attempted chain step"""
    step_id: int
    title: str
    model: str
    prompt: str
    response: str
    response_time: int
    success: bool
    timestamp: str = Field(default_factory=utc_timestamp)
    usage: TokenUsage = Field(default_factory=TokenUsage)
    error: Optional[str] = None


class ChainReport(CamelModel):
    """Aggregate report for a whole chain run"""
    chain_title: str
    total_steps: int
    completed_steps: int
    total_response_time: int
    total_tokens: int
    success: bool
    timestamp: str = Field(default_factory=utc_timestamp)
    steps: List[StepResult] = Field(default_factory=list)
    error: Optional[str] = None

    @classmethod
    def from_results(cls, chain_title: str, total_steps: int, results: List[StepResult]) -> "ChainReport":
        return cls(
            chain_title=chain_title,
            total_steps=total_steps,
            completed_steps=sum(1 for r in results if r.success),
            total_response_time=sum(r.response_time for r in results),
            total_tokens=sum(r.usage.total_tokens for r in results),
            success=len(results) == total_steps and all(r.success for r in results),
            steps=results,
        )

    @classmethod
    def failure_envelope(cls, error: str) -> "ChainReport":
        """Degenerate report returned with a 500 when the request could not be processed"""
        return cls(
            chain_title="Unknown Chain",
            total_steps=0,
            completed_steps=0,
            total_response_time=0,
            total_tokens=0,
            success=False,
            steps=[],
            error=error,
        )


# ============= Single Prompt Tests =============

class PromptTestRequest(CamelModel):
    prompt: str = ""
    model: str = "gpt-4o"
    test_input: str = ""
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None


class PromptTestResult(CamelModel):
    model: str
    prompt: str
    test_input: str
    response: str
    response_time: int
    success: bool
    timestamp: str = Field(default_factory=utc_timestamp)
    usage: TokenUsage = Field(default_factory=TokenUsage)
    error: Optional[str] = None


# ============= Prompt Chain Generation =============

class ChainGenerateRequest(CamelModel):
    goal: str = ""
    target_model: Optional[str] = None
    openai_api_key: Optional[str] = None


class EstimatedTokens(CamelModel):
    input: int = 0
    output: int = 0


class GeneratedChainStep(CamelModel):
    """A chain step proposed by the generator; same shape the chain builder submits"""
    id: int
    title: str = ""
    description: str = ""
    prompt: str
    expected_output: str = ""
    connects_to: List[int] = Field(default_factory=list)
    estimated_time: Optional[int] = None  # ms
    estimated_tokens: Optional[EstimatedTokens] = None


class GenerationMetadata(CamelModel):
    generated_at: str = Field(default_factory=utc_timestamp)
    response_time: int = 0
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str
    target_model: str


class GeneratedChain(CamelModel):
    title: str = ""
    description: str = ""
    metadata: Optional[GenerationMetadata] = None
    steps: List[GeneratedChainStep] = Field(default_factory=list)
