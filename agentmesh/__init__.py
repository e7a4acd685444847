"""agentmesh — LLM-driven IoT agent with an MQTT device mesh."""

__version__ = "0.3.0"
