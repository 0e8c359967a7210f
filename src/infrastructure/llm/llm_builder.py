"""
infrastructure.llm.llm_builder - Centralized chat-model construction.

Single source of truth for building LangChain chat models for agents.
Provider packages are imported lazily so only the ones in use need to
be installed.

Supported providers:
    - "gemini"    → langchain_google_genai.ChatGoogleGenerativeAI
    - "openai"    → langchain_openai.ChatOpenAI
    - "groq"      → langchain_groq.ChatGroq
    - "ollama"    → langchain_ollama.ChatOllama
    - "anthropic" → langchain_anthropic.ChatAnthropic
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from langchain_core.language_models import BaseChatModel

logger = logging.getLogger(__name__)


def build_llm(
    *,
    provider: str,
    model: str,
    temperature: float = 0.7,
    max_tokens: Optional[int] = None,
    api_key: str = "",
    ollama_base_url: str = "http://localhost:11434/",
    **extra: Any,
) -> BaseChatModel:
    """Build a chat model for the given provider.

    Args:
        provider: One of "gemini", "openai", "groq", "ollama", "anthropic".
        model: Model name for the selected provider.
        temperature: Sampling temperature.
        max_tokens: Maximum output tokens (provider default when None).
        api_key: API key for hosted providers (unused for Ollama).
        ollama_base_url: Ollama server URL (only used when provider="ollama").
        extra: Provider-specific constructor arguments (e.g. top_p).

    Returns:
        A configured LangChain chat model.

    Raises:
        ValueError: If the provider is unknown or required credentials are missing.
    """
    provider = provider.lower().strip()
    kwargs: Dict[str, Any] = {"model": model, "temperature": temperature, **extra}

    if provider == "gemini":
        from langchain_google_genai import ChatGoogleGenerativeAI

        if not api_key:
            raise ValueError("GEMINI_API_KEY is required for provider 'gemini'")
        kwargs["google_api_key"] = api_key
        if max_tokens is not None:
            kwargs["max_output_tokens"] = max_tokens
        logger.info("Building Gemini chat model (model=%s)", model)
        return ChatGoogleGenerativeAI(**kwargs)

    elif provider == "openai":
        from langchain_openai import ChatOpenAI

        if not api_key:
            raise ValueError("OPENAI_API_KEY is required for provider 'openai'")
        kwargs["openai_api_key"] = api_key
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        logger.info("Building OpenAI chat model (model=%s)", model)
        return ChatOpenAI(**kwargs)

    elif provider == "groq":
        from langchain_groq import ChatGroq

        if not api_key:
            raise ValueError("GROQ_API_KEY is required for provider 'groq'")
        kwargs["groq_api_key"] = api_key
        kwargs["max_tokens"] = max_tokens if max_tokens is not None else 512
        logger.info("Building Groq chat model (model=%s)", model)
        return ChatGroq(**kwargs)

    elif provider == "ollama":
        from langchain_ollama import ChatOllama

        kwargs["base_url"] = ollama_base_url
        if max_tokens is not None:
            kwargs["num_predict"] = max_tokens
        logger.info("Building ChatOllama (model=%s)", model)
        return ChatOllama(**kwargs)

    elif provider == "anthropic":
        from langchain_anthropic import ChatAnthropic

        if not api_key:
            raise ValueError("ANTHROPIC_API_KEY is required for provider 'anthropic'")
        kwargs["api_key"] = api_key
        kwargs["max_tokens"] = max_tokens if max_tokens is not None else 1024
        logger.info("Building Anthropic chat model (model=%s)", model)
        return ChatAnthropic(**kwargs)

    else:
        raise ValueError(
            f"Unsupported provider: '{provider}'. "
            "Must be 'gemini', 'openai', 'groq', 'ollama' or 'anthropic'."
        )
