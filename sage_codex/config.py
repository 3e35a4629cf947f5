"""Runtime settings read from the environment.

A `.env` file in the working directory is loaded first; variables already
set in the environment win.
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

from sage_codex.llm import DEFAULT_BASE_URL, DEFAULT_MAX_TOKENS, DEFAULT_MODEL
from sage_codex.serializer import DEFAULT_MAX_CHARACTERS


class Settings(BaseModel):
    anthropic_api_key: str = ""
    anthropic_base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    max_tokens: int = DEFAULT_MAX_TOKENS
    data_dir: Path = Path("data")
    max_context_chars: int = DEFAULT_MAX_CHARACTERS
    max_tool_rounds: int = 5
    llm_timeout: float = 120.0


def load_settings(env_file: Path | None = None) -> Settings:
    """Build Settings from environment variables (after loading `.env`)."""
    load_dotenv(env_file)
    defaults = Settings()
    return Settings(
        anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", ""),
        anthropic_base_url=os.getenv("ANTHROPIC_BASE_URL", defaults.anthropic_base_url),
        model=os.getenv("SAGE_MODEL", defaults.model),
        max_tokens=os.getenv("SAGE_MAX_TOKENS", str(defaults.max_tokens)),
        data_dir=os.getenv("DATA_DIR", str(defaults.data_dir)),
        max_context_chars=os.getenv("SAGE_MAX_CONTEXT_CHARS", str(defaults.max_context_chars)),
        max_tool_rounds=os.getenv("SAGE_MAX_TOOL_ROUNDS", str(defaults.max_tool_rounds)),
        llm_timeout=os.getenv("SAGE_LLM_TIMEOUT", str(defaults.llm_timeout)),
    )
