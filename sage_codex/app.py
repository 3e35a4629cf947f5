from __future__ import annotations

from fastapi import FastAPI

from sage_codex.config import Settings, load_settings
from sage_codex.llm import LLM, AnthropicLLM
from sage_codex.routes import SessionLocks, router
from sage_codex.storage import Storage


def create_app(
    settings: Settings | None = None,
    llm: LLM | None = None,
    storage: Storage | None = None,
) -> FastAPI:
    settings = settings or load_settings()

    app = FastAPI(title="Sage Codex")
    app.state.settings = settings
    app.state.storage = storage or Storage(settings.data_dir)
    app.state.llm = llm or AnthropicLLM(
        api_key=settings.anthropic_api_key,
        base_url=settings.anthropic_base_url,
        model=settings.model,
        max_tokens=settings.max_tokens,
        timeout=settings.llm_timeout,
    )
    app.state.locks = SessionLocks()
    app.include_router(router, prefix="/api")
    return app
