"""Deterministic message routing — picks the agent for an inbound message.

Learn: Bindings are evaluated in six priority tiers. Each tier scans the
bindings in declaration order and the first match wins; resolution stops at
the first tier that produced a match:

  1. peer         exact peerId (+ peerKind if set)
  2. guild+roles  guildId and at least one shared role
  3. guild        guildId, binding has no roles
  4. team         teamId
  5. account      accountId == "*" or equal, no peer/guild/team on binding
  6. channel      channel only, nothing else on binding

Tiers 1–5 also require the binding's channel to be unset or equal.
Nothing matched → configured default agent. resolve() never raises.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from clawgate.config import Binding, MatchCondition


@dataclass(frozen=True)
class MessageContext:
    """Routing attributes of one inbound message. Never persisted."""

    channel: str
    account_id: str = "default"
    peer_id: Optional[str] = None
    peer_kind: str = "direct"
    guild_id: Optional[str] = None
    team_id: Optional[str] = None
    roles: tuple[str, ...] = ()
    sender_id: Optional[str] = None

    @classmethod
    def direct(cls, channel: str, sender_id: str, account_id: str = "default") -> "MessageContext":
        """Direct message: the sender is the peer."""
        return cls(
            channel=channel,
            account_id=account_id,
            peer_id=sender_id,
            peer_kind="direct",
            sender_id=sender_id,
        )

    @classmethod
    def group(cls, channel: str, group_id: str, sender_id: str, **kwargs) -> "MessageContext":
        """Group conversation: the group is the peer."""
        return cls(
            channel=channel,
            peer_id=group_id,
            peer_kind="group",
            sender_id=sender_id,
            **kwargs,
        )


@dataclass(frozen=True)
class RouteMatch:
    """Outcome of a routing decision."""

    agent_id: str
    tier: str
    binding_index: Optional[int] = None


def _channel_compatible(m: MatchCondition, ctx: MessageContext) -> bool:
    return m.channel is None or m.channel == ctx.channel


def _matches_peer(m: MatchCondition, ctx: MessageContext) -> bool:
    return (
        m.peer_id is not None
        and m.peer_id == ctx.peer_id
        and (m.peer_kind is None or m.peer_kind == ctx.peer_kind)
        and _channel_compatible(m, ctx)
    )


def _matches_guild_roles(m: MatchCondition, ctx: MessageContext) -> bool:
    return (
        m.guild_id is not None
        and m.guild_id == ctx.guild_id
        and bool(m.roles)
        and not set(m.roles).isdisjoint(ctx.roles or ())
        and _channel_compatible(m, ctx)
    )


def _matches_guild_only(m: MatchCondition, ctx: MessageContext) -> bool:
    return (
        m.guild_id is not None
        and m.guild_id == ctx.guild_id
        and not m.roles
        and _channel_compatible(m, ctx)
    )


def _matches_team(m: MatchCondition, ctx: MessageContext) -> bool:
    return (
        m.team_id is not None
        and m.team_id == ctx.team_id
        and _channel_compatible(m, ctx)
    )


def _matches_account(m: MatchCondition, ctx: MessageContext) -> bool:
    return (
        m.account_id is not None
        and m.account_id in ("*", ctx.account_id)
        and m.peer_id is None
        and m.guild_id is None
        and m.team_id is None
        and _channel_compatible(m, ctx)
    )


def _matches_channel(m: MatchCondition, ctx: MessageContext) -> bool:
    return (
        m.channel is not None
        and m.channel == ctx.channel
        and m.account_id is None
        and m.peer_id is None
        and m.guild_id is None
        and m.team_id is None
    )


# Highest priority first
TIERS: tuple[tuple[str, Callable[[MatchCondition, MessageContext], bool]], ...] = (
    ("peer", _matches_peer),
    ("guild+roles", _matches_guild_roles),
    ("guild", _matches_guild_only),
    ("team", _matches_team),
    ("account", _matches_account),
    ("channel", _matches_channel),
)


class RouteResolver:
    """Maps a MessageContext to an agent id using configured bindings."""

    def __init__(self, bindings: Sequence[Binding], default_agent_id: str):
        self.bindings: tuple[Binding, ...] = tuple(bindings or ())
        self.default_agent_id = default_agent_id

    def explain(self, ctx: MessageContext) -> RouteMatch:
        """Resolve and report which tier and binding decided."""
        for tier, matches in TIERS:
            for index, binding in enumerate(self.bindings):
                if matches(binding.match, ctx):
                    return RouteMatch(binding.agent_id, tier, index)
        return RouteMatch(self.default_agent_id, "default")

    def resolve(self, ctx: MessageContext) -> str:
        """Return the target agent id (default agent when nothing matches)."""
        return self.explain(ctx).agent_id
