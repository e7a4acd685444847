"""CLI — Run the agent and talk to it."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from agentmesh.config import Settings

if TYPE_CHECKING:
    from agentmesh.agent.context import ChatOutcome

console = Console()

ConfigOption = Annotated[
    Path | None, typer.Option("--config", "-c", help="Path to config.yaml.")
]


def start(
    config: ConfigOption = None,
    host: Annotated[str | None, typer.Option(help="Host to bind the HTTP API to.")] = None,
    port: Annotated[int | None, typer.Option(help="Port for the HTTP API.")] = None,
    log_level: Annotated[str | None, typer.Option(help="Log level.")] = None,
) -> None:
    """Start the agent: HTTP API, sensor sampling, mesh bridge and Telegram bot."""
    settings = Settings.load(config_file=config)
    if host is not None:
        settings.server.host = host
    if port is not None:
        settings.server.port = port
    if log_level is not None:
        settings.logging.level = log_level  # type: ignore[assignment]
        settings.server.log_level = log_level  # type: ignore[assignment]

    if not settings.server.enabled:
        console.print("[bold green]Starting agentmesh (headless)[/bold green]")
        asyncio.run(_run_headless(settings))
        return

    from agentmesh.api.server import create_app

    console.print(
        f"[bold green]Starting agentmesh on {settings.server.host}:{settings.server.port}[/bold green]"
    )
    app_instance = create_app(settings=settings)
    uvicorn.run(
        app_instance,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.server.log_level,
    )


async def _run_headless(settings: Settings) -> None:
    from agentmesh.agent.context import AgentContext
    from agentmesh.bot.telegram import TelegramBot
    from agentmesh.logging import configure_logging

    configure_logging(
        level=settings.logging.level,
        format=settings.logging.format,
        log_file=str(settings.logging.file) if settings.logging.file else None,
    )
    context = AgentContext(settings)
    await context.start()
    bot = None
    if settings.telegram.token is not None and settings.telegram.token.get_secret_value():
        bot = TelegramBot(context, settings.telegram)
        await bot.start()
    try:
        await asyncio.Event().wait()
    finally:
        if bot is not None:
            await bot.stop()
        await context.stop()


def status(
    host: str = typer.Option("127.0.0.1"),
    port: int = typer.Option(8080),
) -> None:
    """Check a running agent's health endpoint."""
    import httpx

    try:
        resp = httpx.get(f"http://{host}:{port}/health", timeout=5.0)
        data = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        console.print(f"[red]Agent unreachable: {exc}[/red]")
        raise typer.Exit(1)

    table = Table(title="agentmesh status")
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    for k, v in data.items():
        table.add_row(str(k), str(v))
    console.print(table)


def chat(
    message: Annotated[str, typer.Argument(help="Message to send to the agent.")],
    config: ConfigOption = None,
) -> None:
    """Send one message using the configured provider and apply any actions."""
    settings = Settings.load(config_file=config)
    outcome = asyncio.run(_chat_once(settings, message))

    console.print(outcome.reply)
    if outcome.actions:
        table = Table(title="Actions")
        table.add_column("Actuator", style="cyan")
        table.add_column("Status")
        table.add_column("Detail", style="dim")
        for result in outcome.actions:
            table.add_row(result.name, result.status.value, result.detail)
        console.print(table)


async def _chat_once(settings: Settings, message: str) -> ChatOutcome:
    from agentmesh.agent.context import AgentContext

    context = AgentContext(settings, persist=False)
    try:
        context.sensor_reader.read_all()
        return await context.handle_message(message)
    finally:
        await context.conversation.close()
        context.gpio.cleanup()
