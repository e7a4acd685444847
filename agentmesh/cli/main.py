"""agentmesh CLI — Entry point.

Usage:
    agentmesh start [--config FILE] [--host H] [--port P]
    agentmesh status
    agentmesh chat "Is it warm in here?"
    agentmesh device-id
    agentmesh slots
    agentmesh providers
"""

from __future__ import annotations

import typer

from agentmesh.cli.commands import agent, info

app = typer.Typer(
    name="agentmesh",
    help="agentmesh — LLM-driven IoT agent with an MQTT device mesh.",
    no_args_is_help=True,
    pretty_exceptions_enable=False,
)

app.command("start")(agent.start)
app.command("status")(agent.status)
app.command("chat")(agent.chat)
app.command("device-id")(info.device_id)
app.command("slots")(info.slots)
app.command("providers")(info.providers)


@app.callback()
def main_callback() -> None:
    pass


if __name__ == "__main__":
    app()
