"""
Model catalog for PromptCraft
Maps the model identifiers used in the studio to concrete provider model names
"""
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Optional


class ProviderKind(Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"

    @classmethod
    def for_model(cls, model: str) -> "ProviderKind":
        """Pick the provider for a chain step. Anything that is not a Claude model goes to OpenAI."""
        if "claude" in (model or ""):
            return cls.ANTHROPIC
        return cls.OPENAI

    @classmethod
    def for_text_model(cls, model: str) -> Optional["ProviderKind"]:
        """Strict variant used by single prompt tests; None means the model is not supported yet"""
        model = model or ""
        if "claude" in model:
            return cls.ANTHROPIC
        if "gpt" in model or "o1" in model:
            return cls.OPENAI
        return None

    @property
    def display_name(self) -> str:
        return "Anthropic" if self is ProviderKind.ANTHROPIC else "OpenAI"


# Studio aliases -> API model names
MODEL_ALIASES = MappingProxyType({
    ProviderKind.OPENAI: MappingProxyType({
        "gpt-5": "gpt-4o",
        "gpt-4.1": "gpt-4",
        "gpt-4.5": "gpt-4",
        "gpt-4o": "gpt-4o",
        "o1": "o1-preview",
        "gpt-4": "gpt-4",
    }),
    ProviderKind.ANTHROPIC: MappingProxyType({
        "claude-sonnet-4": "claude-3-5-sonnet-20241022",
        "claude-3.7-sonnet": "claude-3-5-sonnet-20241022",
        "claude-3.5-sonnet": "claude-3-5-sonnet-20241022",
        "claude-opus-4": "claude-3-opus-20240229",
        "claude-3.5-haiku": "claude-3-haiku-20240307",
    }),
})

DEFAULT_MODELS = MappingProxyType({
    ProviderKind.OPENAI: "gpt-4o",
    ProviderKind.ANTHROPIC: "claude-3-5-sonnet-20241022",
})


def resolve_model_name(provider: ProviderKind, model: str) -> str:
    """Map a studio model id to the provider's model name, falling back to the provider default"""
    return MODEL_ALIASES[provider].get(model, DEFAULT_MODELS[provider])


def list_models() -> Dict[str, Dict[str, object]]:
    """Read-only view of the catalog for the /api/models endpoint"""
    catalog: Dict[str, Dict[str, object]] = {}
    for provider in ProviderKind:
        aliases: List[str] = list(MODEL_ALIASES[provider].keys())
        catalog[provider.value] = {
            "name": provider.display_name,
            "models": aliases,
            "aliases": dict(MODEL_ALIASES[provider]),
            "default": DEFAULT_MODELS[provider],
        }
    return catalog
