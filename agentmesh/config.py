"""agentmesh — Agent configuration.

Configuration is loaded from (later sources override earlier ones):
    1. Built-in defaults (this file)
    2. Environment variables prefixed with AGENTMESH_
    3. System config: /etc/agentmesh/config.yaml
    4. User config:   ~/.agentmesh/config.yaml
    5. An explicit ``--config`` file

``Settings.load()`` is called once at startup; the resulting object is handed
to :class:`~agentmesh.agent.context.AgentContext`.  Front ends update settings
by building a new copy and calling ``Settings.save()``; the conversation
manager reads a fresh ``ProviderConfig`` snapshot on every call.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from agentmesh.exceptions import ConfigError
from agentmesh.io.models import ActuatorSlotConfig, SensorSlotConfig

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful IoT assistant running on a small device. "
    "You can read sensors and control actuators. "
    "Be concise and helpful."
)

USER_CONFIG_PATH = Path.home() / ".agentmesh" / "config.yaml"
SYSTEM_CONFIG_PATH = Path("/etc/agentmesh/config.yaml")


# ---------------------------------------------------------------------------
# Sub-configuration blocks
# ---------------------------------------------------------------------------


class ProviderConfig(BaseModel):
    """Immutable snapshot of the LLM provider settings.

    ``provider`` stays a plain string: an unknown id must reach the
    conversation manager and be reported as reply text, not fail validation.
    """

    model_config = ConfigDict(frozen=True)

    provider: str = "openai"
    model: str = "gpt-4o-mini"
    api_key: SecretStr = SecretStr("")
    base_url: str | None = Field(
        default=None,
        description="Overrides the provider's default endpoint (self-hosted, proxies, Ollama).",
    )
    max_tokens: Annotated[int, Field(ge=1, le=32_768)] = 512
    temperature: Annotated[float, Field(ge=0.0, le=2.0)] = 0.7
    timeout_seconds: Annotated[float, Field(ge=5.0, le=120.0)] = 30.0

    @field_validator("base_url", mode="before")
    @classmethod
    def blank_base_url_is_none(cls, v: object) -> object:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class AgentConfig(BaseModel):
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, max_length=4096)
    history_size: Annotated[int, Field(ge=2, le=200)] = Field(
        default=10,
        description="Maximum number of turns kept in the rolling conversation history.",
    )


class MeshConfig(BaseModel):
    enabled: bool = Field(
        default=False,
        description="Start the MQTT mesh bridge. Requires 'host'.",
    )
    host: str = ""
    port: int = Field(default=1883, ge=1, le=65535)
    username: str | None = None
    password: SecretStr | None = None
    device_id: str | None = Field(
        default=None,
        description="Overrides the hardware-derived device id used as the topic namespace.",
    )
    topic_root: str = Field(default="mesh", min_length=1)
    publish_interval: Annotated[float, Field(gt=0, le=3600)] | None = Field(
        default=None,
        description="Seconds between sensor/heartbeat publishes. Defaults to io.read_interval.",
    )
    tick_interval: Annotated[float, Field(gt=0, le=10)] = 0.1
    keepalive: Annotated[int, Field(ge=5, le=3600)] = 60
    reconnect_max_delay: Annotated[float, Field(ge=1, le=600)] = 30.0

    @field_validator("topic_root")
    @classmethod
    def strip_topic_slashes(cls, v: str) -> str:
        v = v.strip("/")
        if not v or "+" in v or "#" in v:
            raise ValueError("topic_root must be a non-empty topic without wildcards")
        return v


class TelegramConfig(BaseModel):
    token: SecretStr | None = None
    allowed_chat_ids: list[str] = Field(
        default_factory=list,
        description="Chat ids allowed to talk to the bot. Empty = everyone.",
    )
    poll_interval: Annotated[float, Field(ge=0.5, le=300)] = 3.0
    timeout_seconds: Annotated[float, Field(ge=1, le=120)] = 10.0
    notify_on_start: bool = True

    @field_validator("allowed_chat_ids", mode="before")
    @classmethod
    def split_chat_ids(cls, v: object) -> object:
        if isinstance(v, (int, str)):
            return [p.strip() for p in str(v).split(",") if p.strip()]
        if isinstance(v, list):
            return [str(p).strip() for p in v if str(p).strip()]
        return v


class IOConfig(BaseModel):
    backend: Literal["mock", "rpi"] = "mock"
    read_interval: Annotated[float, Field(gt=0, le=3600)] = 5.0
    max_slots: Annotated[int, Field(ge=1, le=64)] = 8


class SlotsConfig(BaseModel):
    sensors: list[SensorSlotConfig] = Field(default_factory=list)
    actuators: list[ActuatorSlotConfig] = Field(default_factory=list)

    @field_validator("sensors", "actuators")
    @classmethod
    def unique_names(cls, v: list[Any]) -> list[Any]:
        seen: set[str] = set()
        for slot in v:
            key = slot.name.lower()
            if key in seen:
                raise ValueError(f"duplicate slot name '{slot.name}'")
            seen.add(key)
        return v


class ServerConfig(BaseModel):
    enabled: bool = True
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)
    api_token: str | None = Field(
        default=None,
        description="Token required in X-Agentmesh-Token on all /api requests. None = open.",
    )
    log_level: Literal["debug", "info", "warning", "error"] = "info"


class LoggingConfig(BaseModel):
    level: Literal["debug", "info", "warning", "error", "critical"] = "info"
    format: Literal["json", "console"] = "console"
    file: Path | None = None


# ---------------------------------------------------------------------------
# Root settings
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AGENTMESH_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    llm: ProviderConfig = Field(default_factory=ProviderConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    mesh: MeshConfig = Field(default_factory=MeshConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    io: IOConfig = Field(default_factory=IOConfig)
    slots: SlotsConfig = Field(default_factory=SlotsConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    _source_path: Path | None = PrivateAttr(default=None)

    @classmethod
    def load(cls, config_file: Path | None = None) -> "Settings":
        """Load settings from file + environment variables."""
        data: dict[str, Any] = {}

        candidates = [SYSTEM_CONFIG_PATH, USER_CONFIG_PATH]
        if config_file:
            candidates.append(config_file)

        source: Path | None = None
        for path in candidates:
            if path.exists():
                import yaml

                with path.open() as f:
                    loaded = yaml.safe_load(f) or {}
                if not isinstance(loaded, dict):
                    raise ConfigError(f"Config file {path} must contain a mapping")
                data.update(loaded)
                source = path

        settings = cls(**data)
        settings._source_path = config_file or source
        return settings

    @property
    def source_path(self) -> Path:
        """Where ``save()`` writes by default."""
        return self._source_path or USER_CONFIG_PATH

    def save(self, path: Path | None = None) -> Path:
        """Persist the settings as YAML, secrets included (the file is device-local)."""
        import yaml

        target = path or self.source_path
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("w") as f:
                yaml.safe_dump(to_builtins(self.model_dump()), f, sort_keys=False)
        except OSError as exc:
            raise ConfigError(f"Cannot write config file {target}: {exc}") from exc
        self._source_path = target
        return target

    def updated(self, changes: dict[str, Any]) -> "Settings":
        """Return a validated copy with *changes* merged in (one level deep per section)."""
        data = self.model_dump()
        for section, values in changes.items():
            if isinstance(values, dict) and isinstance(data.get(section), dict):
                data[section].update(values)
            else:
                data[section] = values
        try:
            new = type(self).model_validate(to_builtins(data))
        except ValueError as exc:
            raise ConfigError(f"Invalid settings: {exc}") from exc
        new._source_path = self._source_path
        return new


def to_builtins(value: Any) -> Any:
    """Convert a model_dump() tree into YAML-safe builtins, unwrapping secrets."""
    if isinstance(value, dict):
        return {k: to_builtins(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_builtins(v) for v in value]
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


# Module-level singleton, replaced by ``Settings.load()`` at startup.
_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def override_settings(settings: Settings) -> None:
    """Replace the module-level singleton. Used in tests and by the CLI."""
    global _settings
    _settings = settings
