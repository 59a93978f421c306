"""FastAPI application factory with lifespan management."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .config import AppConfig, load_config
from .services.ai_service import AIService
from .services.chat_controller import ChatController
from .services.event_bus import EventBus
from .services.storage import ConversationStore
from .tools import ToolRegistry, register_default_tools

logger = logging.getLogger(__name__)


def build_controller(config: AppConfig, ai_service: AIService | None = None) -> ChatController:
    """Wire store, proxy client, tools and event bus from configuration."""
    store = ConversationStore(config.app.conversations_dir)
    registry = ToolRegistry()
    register_default_tools(
        registry,
        working_dir=config.tools.working_dir,
        bash_timeout=config.tools.bash_timeout,
        max_output_chars=config.tools.max_output_chars,
    )
    return ChatController(
        store=store,
        ai_service=ai_service or AIService(config.ai),
        tool_registry=registry,
        event_bus=EventBus(),
        max_turns=config.chat.max_turns,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    controller: ChatController = app.state.controller
    logger.info(
        "Alcove ready: proxy %s, %d tools, conversations in %s",
        controller.ai_service.config.base_url,
        len(controller.tool_registry.list_tools()),
        controller.store.root,
    )

    yield

    aborted = controller.abort()
    if aborted:
        logger.info("Aborted %d in-flight chat(s) on shutdown", aborted)
    await controller.ai_service.aclose()


def create_app(config: AppConfig | None = None, controller: ChatController | None = None) -> FastAPI:
    if config is None:
        config = load_config()

    app = FastAPI(title="Alcove", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.controller = controller or build_controller(config)

    origin = f"http://{config.app.host}:{config.app.port}"
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin, "http://127.0.0.1:" + str(config.app.port), "http://localhost:" + str(config.app.port)],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from .routers import chat, conversations, events

    app.include_router(conversations.router, prefix="/api")
    app.include_router(chat.router, prefix="/api")
    app.include_router(events.router, prefix="/api")

    return app
