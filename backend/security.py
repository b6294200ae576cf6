"""
Security utilities for PromptCraft
- API key masking for logs
- Detection of unset/template API keys
- Input sanitising
"""
from typing import Optional, Tuple

# Values shipped in .env.example that mean "not configured"
PLACEHOLDER_KEYS = frozenset({
    "your_openai_api_key_here",
    "your_anthropic_api_key_here",
})


def is_configured_key(api_key: Optional[str]) -> bool:
    """True when the key is a usable value rather than blank or a template placeholder"""
    if not api_key:
        return False
    api_key = api_key.strip()
    return bool(api_key) and api_key not in PLACEHOLDER_KEYS


def validate_api_key_format(api_key: str, provider: str) -> Tuple[bool, str]:
    """
    Validate API key format for a given provider
    Returns (is_valid, error_message)
    """
    if not api_key:
        return False, "API key is required"

    api_key = api_key.strip()

    if provider == "openai":
        if not api_key.startswith("sk-"):
            return False, "OpenAI API keys should start with 'sk-'"

    elif provider == "anthropic":
        if not api_key.startswith("sk-ant-"):
            return False, "Anthropic API keys should start with 'sk-ant-'"

    return True, ""


def mask_api_key(api_key: Optional[str]) -> str:
    """Mask an API key for display (show first 8 and last 4 chars)"""
    if not api_key or len(api_key) < 12:
        return "***"
    return f"{api_key[:8]}...{api_key[-4:]}"


def sanitize_input(text: str, max_length: int = 100000) -> str:
    """
    Sanitize user input to prevent issues
    - Limit length
    - Remove null bytes
    """
    if not text:
        return ""

    # Remove null bytes
    text = text.replace("\x00", "")

    # Limit length
    if len(text) > max_length:
        text = text[:max_length]

    return text
