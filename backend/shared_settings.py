"""
Shared settings - environment configuration for the PromptCraft backend
Values are read from the environment on every call so requests never share mutable state
"""

import multiprocessing
import os
from dataclasses import dataclass
from typing import Optional

from security import is_configured_key

DEFAULT_STEP_TIMEOUT_SECONDS = 60.0


def get_settings():
    """Get current settings from environment variables"""
    return {
        "openai_api_key": os.getenv("OPENAI_API_KEY", ""),
        "anthropic_api_key": os.getenv("ANTHROPIC_API_KEY", ""),
        "step_timeout_seconds": float(os.getenv("STEP_TIMEOUT_SECONDS", DEFAULT_STEP_TIMEOUT_SECONDS)),
        "log_level": os.getenv("LOG_LEVEL", "INFO"),
        "log_format": os.getenv("LOG_FORMAT", "dev"),
        "log_file": os.getenv("LOG_FILE") or None,
        "cors_origins": os.getenv("CORS_ORIGINS", "http://localhost:3000").split(","),
        "host": os.getenv("HOST", "0.0.0.0"),
        "port": int(os.getenv("PORT", 8010)),
        # Default: number of CPU cores, max 4
        "workers": int(os.getenv("WORKERS", min(multiprocessing.cpu_count(), 4))),
        "reload": os.getenv("RELOAD", "false").lower() == "true",
    }


@dataclass(frozen=True)
class ProviderCredentials:
    """API keys resolved for a single request"""
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None

    @property
    def has_any(self) -> bool:
        return bool(self.openai_api_key or self.anthropic_api_key)


def resolve_credentials(openai_api_key: Optional[str] = None,
                        anthropic_api_key: Optional[str] = None) -> ProviderCredentials:
    """Request keys win; the environment is only consulted when the request has none"""
    settings = get_settings()

    # 1. OpenAI
    openai_key = openai_api_key if is_configured_key(openai_api_key) else settings["openai_api_key"]

    # 2. Anthropic
    anthropic_key = anthropic_api_key if is_configured_key(anthropic_api_key) else settings["anthropic_api_key"]

    return ProviderCredentials(
        openai_api_key=openai_key.strip() if is_configured_key(openai_key) else None,
        anthropic_api_key=anthropic_key.strip() if is_configured_key(anthropic_key) else None,
    )
