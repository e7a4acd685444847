"""CLI — Inspect identity, slots and providers without starting the agent."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from agentmesh.cli.commands.agent import ConfigOption
from agentmesh.config import Settings
from agentmesh.llm.providers import available_providers
from agentmesh.mesh.identity import resolve_device_id

console = Console()


def device_id(config: ConfigOption = None) -> None:
    """Print this device's mesh id."""
    settings = Settings.load(config_file=config)
    console.print(resolve_device_id(settings.mesh.device_id))


def slots(config: ConfigOption = None) -> None:
    """List the configured sensor and actuator slots."""
    settings = Settings.load(config_file=config)

    table = Table(title="I/O slots")
    table.add_column("Type", style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Kind")
    table.add_column("Pin / Address")
    table.add_column("Enabled")

    for s in settings.slots.sensors:
        table.add_row("sensor", s.name, s.kind.value, _where(s.pin, s.i2c_address), _yes(s.enabled))
    for a in settings.slots.actuators:
        table.add_row("actuator", a.name, a.kind.value, _where(a.pin, a.i2c_address), _yes(a.enabled))

    if table.row_count == 0:
        console.print("[yellow]No slots configured.[/yellow]")
        return
    console.print(table)


def providers(config: ConfigOption = None) -> None:
    """List the supported LLM providers and their default endpoints."""
    settings = Settings.load(config_file=config)
    current = settings.llm.provider.lower()

    table = Table(title="LLM providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Default base URL")
    table.add_column("Active")
    for provider_id, adapter in available_providers().items():
        table.add_row(
            provider_id.value,
            adapter.default_base_url,
            "[green]yes[/green]" if provider_id.value == current else "",
        )
    console.print(table)


def _where(pin: int | None, address: int | None) -> str:
    if address is not None:
        return f"0x{address:02X}"
    return str(pin) if pin is not None else "-"


def _yes(flag: bool) -> str:
    return "[green]yes[/green]" if flag else "[red]no[/red]"
