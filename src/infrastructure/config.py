"""
infrastructure.config - Typed, injectable configuration.

A frozen dataclass that can be constructed from the environment (.env
supported via python-dotenv) or passed explicitly in tests.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

SUPPORTED_PROVIDERS = ("gemini", "openai", "groq", "ollama", "anthropic")


@dataclass(frozen=True)
class Settings:
    """Centralized configuration for the agent workflow engine.

    No module-level globals: construct via from_env() or pass explicitly.
    """
    # Base directory for relative configuration paths
    config_dir: Path = Path(".")

    # ── LLM providers ───────────────────────────────────────────
    # Used when an agent config does not name its own provider.
    default_provider: str = "gemini"

    # Model names; the one matching the agent's provider is used.
    llm_model_gemini: str = "gemini-2.0-flash"
    llm_model_openai: str = "gpt-4.1-mini"
    llm_model_groq: str = "llama-3.3-70b-versatile"
    llm_model_ollama: str = "llama3.2"
    llm_model_anthropic: str = "claude-3-5-haiku-latest"

    gemini_api_key: str = ""
    openai_api_key: str = ""
    groq_api_key: str = ""
    anthropic_api_key: str = ""
    ollama_base_url: str = "http://localhost:11434/"

    # ── Agents ──────────────────────────────────────────────────
    tool_retry_attempts: int = 3
    tool_retry_delay: float = 1.0  # seconds
    max_history_length: int = 20

    log_level: str = "INFO"

    def model_for(self, provider: str) -> str:
        """Return the model name configured for a provider."""
        provider = provider.lower().strip()
        if provider not in SUPPORTED_PROVIDERS:
            raise ValueError(
                f"Unsupported provider '{provider}'. "
                f"Must be one of: {', '.join(SUPPORTED_PROVIDERS)}"
            )
        return getattr(self, f"llm_model_{provider}")

    def api_key_for(self, provider: str) -> str:
        return getattr(self, f"{provider.lower().strip()}_api_key", "")

    @classmethod
    def from_env(cls, config_dir: Optional[Path] = None) -> Settings:
        """Build Settings from environment variables (and a .env file)."""
        from dotenv import load_dotenv
        load_dotenv()

        return cls(
            config_dir=Path(config_dir or os.getenv("AGENCY_CONFIG_DIR", ".")).resolve(),
            default_provider=os.getenv("LLM_PROVIDER", "gemini"),
            llm_model_gemini=os.getenv("LLM_MODEL_GEMINI", "gemini-2.0-flash"),
            llm_model_openai=os.getenv("LLM_MODEL_OPENAI", "gpt-4.1-mini"),
            llm_model_groq=os.getenv("LLM_MODEL_GROQ", "llama-3.3-70b-versatile"),
            llm_model_ollama=os.getenv("LLM_MODEL_OLLAMA", "llama3.2"),
            llm_model_anthropic=os.getenv("LLM_MODEL_ANTHROPIC", "claude-3-5-haiku-latest"),
            gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
            openai_api_key=os.getenv("OPENAI_API_KEY", ""),
            groq_api_key=os.getenv("GROQ_API_KEY", ""),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/"),
            tool_retry_attempts=int(os.getenv("TOOL_RETRY_ATTEMPTS", "3")),
            tool_retry_delay=float(os.getenv("TOOL_RETRY_DELAY", "1.0")),
            max_history_length=int(os.getenv("MAX_HISTORY_LENGTH", "20")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
