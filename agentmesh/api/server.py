"""API layer — FastAPI application factory.

``create_app()`` is the single entry point for building the FastAPI app.
The ``AgentContext`` is built here (or injected by tests) and started and
stopped with the server, together with the Telegram bot when a token is
configured.
"""

from __future__ import annotations

from fastapi import FastAPI

from agentmesh import __version__
from agentmesh.agent.context import AgentContext
from agentmesh.api.middleware import (
    AccessLogMiddleware,
    RequestIDMiddleware,
    build_error_handler,
)
from agentmesh.api.routes import chat, health, io, system
from agentmesh.config import Settings, get_settings
from agentmesh.exceptions import (
    AgentMeshError,
    ConfigError,
    IOBackendError,
    UnknownActuatorError,
)
from agentmesh.logging import configure_logging, get_logger

log = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    context: AgentContext | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override (used in tests).
        context:  Prebuilt agent context (used in tests).  When given, the
                  settings are taken from it.

    Returns:
        A fully configured FastAPI application instance.
    """
    if context is not None:
        settings = context.settings
    elif settings is None:
        settings = get_settings()

    configure_logging(
        level=settings.logging.level,
        format=settings.logging.format,
        log_file=str(settings.logging.file) if settings.logging.file else None,
    )

    if context is None:
        context = AgentContext(settings)

    app = FastAPI(
        title="agentmesh",
        description="LLM-driven IoT agent with an MQTT device mesh.",
        version=__version__,
        docs_url="/docs",
        redoc_url=None,
        openapi_url="/openapi.json",
    )
    app.state.context = context
    app.state.telegram_bot = None

    # Middleware (order matters: outermost applied last)
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Exception handlers
    handler = build_error_handler()
    for exc_cls in (AgentMeshError, UnknownActuatorError, ConfigError, IOBackendError):
        app.add_exception_handler(exc_cls, handler)  # type: ignore[arg-type]

    # Routers
    app.include_router(health.router)
    app.include_router(chat.router)
    app.include_router(io.router)
    app.include_router(system.router)

    @app.on_event("startup")
    async def startup() -> None:
        log.info("agent_starting", version=__version__, device_id=context.device_id)
        await context.start()

        token = context.settings.telegram.token
        if token is not None and token.get_secret_value():
            from agentmesh.bot.telegram import TelegramBot

            bot = TelegramBot(context, context.settings.telegram)
            await bot.start()
            app.state.telegram_bot = bot

    @app.on_event("shutdown")
    async def shutdown() -> None:
        bot = app.state.telegram_bot
        if bot is not None:
            await bot.stop()
        await context.stop()
        log.info("agent_shutdown")

    return app
