"""clawgate CLI — run the gateway, inspect routing and skills, chat remotely.

Usage:
    clawgate init                                   # Create ~/.clawgate with a default config
    clawgate serve                                  # CLI + WebChat channels
    clawgate serve --webchat-only                   # HTTP only
    clawgate route --channel webchat --peer-id bob  # Which agent / session would answer?
    clawgate skills                                 # Discovered SKILL.md manifests
    clawgate agents                                 # Configured agents
    clawgate adapters                               # Show available adapters
    clawgate chat "hello"                           # Talk to a running gateway over HTTP
    clawgate status                                 # Health of a running gateway
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import signal
import sys
from typing import Optional

import click
import httpx
import structlog

from clawgate import __version__
from clawgate.agent.adapters import get_adapter, list_adapters
from clawgate.config import (
    ConfigError,
    GatewayConfig,
    ensure_defaults,
    expand_path,
    load_config,
    settings,
)
from clawgate.log import configure_logging
from clawgate.routing import MessageContext, RouteResolver
from clawgate.sessions import resolve_session_key
from clawgate.skills import SkillCatalog

logger = structlog.get_logger()

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_URL = "http://127.0.0.1:8080"


def _api_url() -> str:
    return os.environ.get("CLAWGATE_URL", DEFAULT_URL).rstrip("/")


def _client(url: Optional[str] = None) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at a running gateway's webchat."""
    return httpx.AsyncClient(base_url=(url or _api_url()).rstrip("/"), timeout=120.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _fail(message: str, code: int = 1):
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(code)


def _load(config_path: Optional[str]) -> GatewayConfig:
    """Load the gateway config or exit 1.

    Without --config the home layout is created first, so a fresh machine
    gets the default config instead of an error.
    """
    if config_path:
        path = expand_path(config_path)
    else:
        ensure_defaults(settings.home_path)
        path = settings.resolved_config_path
    try:
        config = load_config(path)
    except ConfigError as e:
        _fail(f"Failed to load config: {e}")
    click.echo(f"Loaded config from: {path}", err=True)
    return config


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False),
    help="Config file (default: $CLAWGATE_HOME/clawgate.json)",
)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="clawgate")
def main():
    """clawgate — route chat messages to agents, one ordered turn at a time."""


# ---------------------------------------------------------------------------
# clawgate serve
# ---------------------------------------------------------------------------


@main.command()
@config_option
@click.option("--cli-only", is_flag=True, help="Start only the terminal channel")
@click.option("--webchat-only", is_flag=True, help="Start only the WebChat channel")
def serve(config_path: Optional[str], cli_only: bool, webchat_only: bool):
    """Start the gateway and its channels (both by default)."""
    if cli_only and webchat_only:
        _fail("--cli-only and --webchat-only are mutually exclusive", code=2)

    configure_logging(settings.log_level)
    config = _load(config_path)
    try:
        _run(_serve_impl(config, cli=not webchat_only, webchat=not cli_only))
    except ConfigError as e:
        _fail(str(e))
    except KeyboardInterrupt:
        click.echo("\nInterrupted.")


STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def _install_signal_handlers(callback) -> list:
    """Route SIGINT/SIGTERM to `callback` on the running loop.

    Learn: SIGTERM's default action ends the process at once; routed here
    it becomes a normal stop, so serve() drains the scheduler. Handlers only
    install from the main thread (and never on Windows); others are skipped.
    """
    loop = asyncio.get_running_loop()
    installed = []
    for sig in STOP_SIGNALS:
        try:
            loop.add_signal_handler(sig, callback)
        except (NotImplementedError, RuntimeError) as e:
            logger.warning("cli.signal_handler_unavailable", signal=sig.name, error=str(e))
            continue
        installed.append(sig)
    return installed


def _remove_signal_handlers(signals: list) -> None:
    loop = asyncio.get_running_loop()
    for sig in signals:
        loop.remove_signal_handler(sig)


async def _serve_impl(config: GatewayConfig, cli: bool, webchat: bool):
    from clawgate.channels import CliChannel, WebChatChannel
    from clawgate.gateway import Gateway

    gateway = Gateway(config)
    channels = []
    if webchat:
        channels.append(
            WebChatChannel(
                host=settings.host,
                port=config.gateway.port,
                admin_token=config.gateway.admin_token,
                shutdown_hook=gateway.request_stop,
                status_provider=gateway.status,
            )
        )
        click.echo(f"WebChat on http://{settings.host}:{config.gateway.port}")
    if cli:
        channels.append(CliChannel())

    signals = _install_signal_handlers(gateway.request_stop)
    try:
        await gateway.serve(channels)
    finally:
        _remove_signal_handlers(signals)


# ---------------------------------------------------------------------------
# clawgate init
# ---------------------------------------------------------------------------


@main.command()
@click.option("--home", type=click.Path(file_okay=False), help="Home directory (default: ~/.clawgate)")
def init(home: Optional[str]):
    """Create the home layout and a default config (never overwrites)."""
    home_path = expand_path(home) if home else settings.home_path
    config_path = ensure_defaults(home_path)
    click.secho(f"Config: {config_path}", fg="green")


# ---------------------------------------------------------------------------
# clawgate route
# ---------------------------------------------------------------------------


@main.command()
@config_option
@click.option("--channel", "-c", required=True, help='Channel id (e.g. "webchat")')
@click.option("--account-id", default="default", show_default=True)
@click.option("--peer-id", "-p", help="Sender (direct) or group id")
@click.option("--peer-kind", type=click.Choice(["direct", "group"]), default="direct", show_default=True)
@click.option("--guild-id")
@click.option("--team-id")
@click.option("--role", "roles", multiple=True, help="Sender role (repeatable)")
def route(
    config_path: Optional[str],
    channel: str,
    account_id: str,
    peer_id: Optional[str],
    peer_kind: str,
    guild_id: Optional[str],
    team_id: Optional[str],
    roles: tuple[str, ...],
):
    """Show which agent and session a message would land in."""
    config = _load(config_path)
    ctx = MessageContext(
        channel=channel,
        account_id=account_id,
        peer_id=peer_id,
        peer_kind=peer_kind,
        guild_id=guild_id,
        team_id=team_id,
        roles=roles,
        sender_id=peer_id,
    )
    match = RouteResolver(config.bindings, config.agents.default_agent).explain(ctx)

    agent_id = match.agent_id
    known = {a.id for a in config.agents.agents}
    click.echo(f"Agent:       {agent_id}")
    if agent_id not in known:
        agent_id = config.agents.default_agent
        click.secho(f"             (unknown, falls back to '{agent_id}')", fg="yellow")
    binding = f" (binding #{match.binding_index})" if match.binding_index is not None else ""
    click.echo(f"Tier:        {match.tier}{binding}")
    session_key = resolve_session_key(
        agent_id, channel, peer_kind, peer_id, config.session.dm_scope
    )
    click.echo(f"Session key: {session_key}")


# ---------------------------------------------------------------------------
# clawgate skills
# ---------------------------------------------------------------------------


@main.command()
@config_option
@click.option("--agent", "-a", "agent_id", help="Only skills visible to this agent")
def skills(config_path: Optional[str], agent_id: Optional[str]):
    """List discovered skills."""
    config = _load(config_path)
    catalog = SkillCatalog(config.skills.directory)

    if agent_id:
        definition = next((a for a in config.agents.agents if a.id == agent_id), None)
        if definition is None:
            _fail(f"Unknown agent '{agent_id}'")
        found = catalog.resolve_skills(definition.skills)
    else:
        found = catalog.all()

    if not found:
        click.echo(f"No skills found in {catalog.root}")
        return

    click.secho(f"Skills ({len(found)}):", bold=True)
    click.echo()
    for skill in found:
        click.echo(f"  {skill.name:20s}  {skill.description}")


# ---------------------------------------------------------------------------
# clawgate agents
# ---------------------------------------------------------------------------


@main.command()
@config_option
def agents(config_path: Optional[str]):
    """List configured agents."""
    config = _load(config_path)
    default = config.agents.default_agent

    if not config.agents.agents:
        click.echo("No agents configured.")
        return

    click.secho(f"Agents ({len(config.agents.agents)}):", bold=True)
    click.echo()
    for a in config.agents.agents:
        marker = click.style(" (default)", fg="green") if a.id == default else ""
        selection = ", ".join(a.skills) if a.skills else "all"
        click.echo(
            f"  {a.id:20s}  adapter={a.adapter:12s}  "
            f"model={a.model or '—'}  skills={selection}{marker}"
        )


# ---------------------------------------------------------------------------
# clawgate adapters
# ---------------------------------------------------------------------------


@main.command()
def adapters():
    """List available agent adapters."""
    click.secho("Available adapters:", bold=True)
    click.echo()

    for name in list_adapters():
        adapter = get_adapter(name)
        ok, msg = adapter.validate_environment()
        if ok:
            status_str = click.style("ready", fg="green")
        else:
            status_str = click.style(f"not ready — {msg}", fg="red")
        click.echo(f"  {name:20s}  {status_str}")


# ---------------------------------------------------------------------------
# clawgate chat
# ---------------------------------------------------------------------------


@main.command()
@click.argument("message")
@click.option("--url", help=f"Gateway base URL (default: $CLAWGATE_URL or {DEFAULT_URL})")
@click.option("--sender", "-s", "sender_id", default="cli-remote", show_default=True)
def chat(message: str, url: Optional[str], sender_id: str):
    """Send MESSAGE to a running gateway and print the reply."""
    _run(_chat_impl(message, url, sender_id))


async def _chat_impl(message: str, url: Optional[str], sender_id: str):
    async with _client(url) as c:
        try:
            r = await c.post("/api/chat", json={"message": message, "senderId": sender_id})
        except httpx.HTTPError as e:
            _fail(f"Cannot reach gateway: {e}")
        data = r.json()
        if r.status_code != 200:
            _fail(data.get("error", f"HTTP {r.status_code}"))
        click.echo(data["reply"])


# ---------------------------------------------------------------------------
# clawgate status
# ---------------------------------------------------------------------------


@main.command()
@click.option("--url", help=f"Gateway base URL (default: $CLAWGATE_URL or {DEFAULT_URL})")
def status(url: Optional[str]):
    """Show a running gateway's health and scheduler stats."""
    _run(_status_impl(url))


async def _status_impl(url: Optional[str]):
    async with _client(url) as c:
        try:
            r = await c.get("/api/health")
            r.raise_for_status()
        except httpx.HTTPError as e:
            _fail(f"Cannot reach gateway: {e}")
        click.echo(_pretty_json(r.json()))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    main()
