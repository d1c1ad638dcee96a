"""Application configuration — environment settings + gateway config file.

Two layers:
- Settings (pydantic-settings): process-level knobs from CLAWGATE_* env vars
  (home directory, config file location, log level, bind host).
- GatewayConfig (pydantic models): the routing/agents/session/skills document
  loaded from a JSON file (default ~/.clawgate/clawgate.json).

Learn: The file uses camelCase keys (agentId, dmScope, maxConcurrent) while the
Python side stays snake_case — the alias generator bridges the two. Any
problem while loading is raised as ConfigError, and the CLI aborts before
serving traffic.
"""

import json
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings

DEFAULT_ADMIN_TOKEN = "clawgate-admin"
CONFIG_FILENAME = "clawgate.json"


class ConfigError(Exception):
    """Invalid or unreadable configuration. Fatal at startup."""


class Settings(BaseSettings):
    """Process configuration. Set via CLAWGATE_* env vars."""

    home: str = "~/.clawgate"
    config_path: str = ""  # empty → <home>/clawgate.json
    environment: str = "development"
    log_level: str = "INFO"
    host: str = "127.0.0.1"

    # Overrides gateway.adminToken from the config file when set
    admin_token: str = ""

    model_config = {"env_prefix": "CLAWGATE_"}

    @property
    def home_path(self) -> Path:
        return expand_path(self.home)

    @property
    def resolved_config_path(self) -> Path:
        if self.config_path:
            return expand_path(self.config_path)
        return self.home_path / CONFIG_FILENAME


# ─── Gateway config file ──────────────────────────────────


class _FileModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class GatewaySection(_FileModel):
    port: int = Field(8080, ge=1, le=65535)
    admin_token: str = DEFAULT_ADMIN_TOKEN
    agent_timeout_seconds: float = Field(60.0, gt=0)
    shutdown_timeout_seconds: float = Field(10.0, ge=0)


class AgentDef(_FileModel):
    id: str
    adapter: str = "claude_code"
    model: Optional[str] = None
    instruction: str = ""
    workspace: Optional[str] = None
    skills: tuple[str, ...] = ()

    @field_validator("id")
    @classmethod
    def _id_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("agent id must not be blank")
        return v


class AgentDefaults(_FileModel):
    max_concurrent: int = Field(4, ge=1)


class AgentsSection(_FileModel):
    default_agent: str = Field("assistant", alias="default")
    agents: tuple[AgentDef, ...] = Field((), alias="list")
    defaults: AgentDefaults = AgentDefaults()


class MatchCondition(_FileModel):
    """Optional match fields of a binding. Unset means "don't care"."""

    channel: Optional[str] = None
    account_id: Optional[str] = None
    peer_id: Optional[str] = None
    peer_kind: Optional[str] = None
    guild_id: Optional[str] = None
    team_id: Optional[str] = None
    roles: tuple[str, ...] = ()


class Binding(_FileModel):
    match: MatchCondition = MatchCondition()
    agent_id: str


class SessionSection(_FileModel):
    store: str = "~/.clawgate/sessions"
    dm_scope: Literal["main", "per-channel-peer"] = "main"
    persist_on_turn: bool = True


class SkillsSection(_FileModel):
    directory: str = Field("~/.clawgate/skills", alias="dir")
    watch: bool = True
    debounce_seconds: float = Field(0.5, ge=0)


class GatewayConfig(_FileModel):
    """Root of the gateway config document."""

    gateway: GatewaySection = GatewaySection()
    agents: AgentsSection = AgentsSection()
    bindings: tuple[Binding, ...] = ()
    session: SessionSection = SessionSection()
    skills: SkillsSection = SkillsSection()


# ─── Loading ──────────────────────────────────────────────


def expand_path(value: str | Path) -> Path:
    """Expand ~ in a configured path."""
    return Path(value).expanduser()


def parse_config(data: dict) -> GatewayConfig:
    """Validate an already-decoded config document."""
    try:
        return GatewayConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def load_config(path: str | Path, env: Optional[Settings] = None) -> GatewayConfig:
    """Read and validate the gateway config file.

    Raises ConfigError for missing files, malformed JSON, schema violations
    and the default admin token outside development.
    """
    env = env or settings
    path = expand_path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Config file {path} is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    config = parse_config(data)

    if env.admin_token:
        gateway = config.gateway.model_copy(update={"admin_token": env.admin_token})
        config = config.model_copy(update={"gateway": gateway})

    if env.environment != "development" and config.gateway.admin_token == DEFAULT_ADMIN_TOKEN:
        raise ConfigError(
            "gateway.adminToken must be changed (or CLAWGATE_ADMIN_TOKEN set) "
            "in non-development environments"
        )
    return config


def default_config_document(home: Path) -> dict:
    """The config written by `clawgate init`, with paths under `home`."""
    return {
        "gateway": {
            "port": 8080,
            "adminToken": DEFAULT_ADMIN_TOKEN,
            "agentTimeoutSeconds": 60,
            "shutdownTimeoutSeconds": 10,
        },
        "agents": {
            "default": "assistant",
            "list": [
                {
                    "id": "assistant",
                    "adapter": "claude_code",
                    "instruction": (
                        "You are a helpful AI assistant. You can read and write "
                        "files, and execute shell commands when needed."
                    ),
                    "workspace": str(home / "workspace" / "assistant"),
                    "skills": ["all"],
                }
            ],
            "defaults": {"maxConcurrent": 4},
        },
        "bindings": [
            {"match": {"channel": "webchat"}, "agentId": "assistant"},
        ],
        "session": {"store": str(home / "sessions"), "dmScope": "main"},
        "skills": {"dir": str(home / "skills")},
    }


def ensure_defaults(home: str | Path) -> Path:
    """Create the working directory layout and a default config file.

    Returns the config file path. An existing config is never overwritten.
    """
    home = expand_path(home)
    for directory in (home, home / "sessions", home / "skills"):
        directory.mkdir(parents=True, exist_ok=True)

    config_path = home / CONFIG_FILENAME
    if not config_path.exists():
        config_path.write_text(
            json.dumps(default_config_document(home), indent=2) + "\n",
            encoding="utf-8",
        )
    return config_path


# Singleton: import this everywhere
settings = Settings()
