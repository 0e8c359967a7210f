"""
Run the agent workflow engine CLI.

Usage:
    python run_cli.py [COMMAND] [OPTIONS]

Commands:
    agent      Run one agent on an input
    team       Run a team's own workflow
    workflow   Execute a named agency workflow
    validate   Build everything from the config without calling any model

Examples:
    python run_cli.py agent researcher "Latest advances in solid-state batteries"
    python run_cli.py team content-creation-team --config agency.json
    python run_cli.py workflow article --brief topic="solar power"

Environment variables (all optional):
    LLM_PROVIDER        "gemini", "openai", "groq", "ollama" or "anthropic" (default: gemini)
    LLM_MODEL_GEMINI    Model name for Gemini (default: gemini-2.0-flash)
    LLM_MODEL_OPENAI    Model name for OpenAI (default: gpt-4.1-mini)
    LLM_MODEL_GROQ      Model name for Groq (default: llama-3.3-70b-versatile)
    LLM_MODEL_OLLAMA    Model name for Ollama (default: llama3.2)
    GEMINI_API_KEY / OPENAI_API_KEY / GROQ_API_KEY / ANTHROPIC_API_KEY
    OLLAMA_BASE_URL     Ollama server URL (default: http://localhost:11434/)
    AGENCY_CONFIG_DIR   Base directory for relative --config paths
    TOOL_RETRY_ATTEMPTS, TOOL_RETRY_DELAY, MAX_HISTORY_LENGTH, LOG_LEVEL
"""

import sys
from pathlib import Path

# Ensure src/ is importable
sys.path.insert(0, str(Path(__file__).parent / "src"))

from adapters.cli.main import app

if __name__ == "__main__":
    app()
