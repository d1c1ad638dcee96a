"""Route resolver tests — tier priority, declaration order, fallback.

Learn: Tests cover:
1. Each of the six tiers on its own
2. Higher tiers beat lower ones regardless of binding order
3. Within a tier, the first declared binding wins
4. Channel compatibility for tiers 1–5
5. Default fallback (never raises)
"""

from clawgate.config import Binding, MatchCondition
from clawgate.routing import MessageContext, RouteResolver


def _b(agent_id: str, **match) -> Binding:
    return Binding(agent_id=agent_id, match=MatchCondition(**match))


def test_channel_binding_and_default():
    """Channel-only binding matches its channel; others fall back."""
    r = RouteResolver([_b("assistant", channel="webchat")], "fallback")
    assert r.resolve(MessageContext(channel="webchat")) == "assistant"
    assert r.resolve(MessageContext(channel="cli")) == "fallback"


def test_no_bindings_returns_default():
    r = RouteResolver([], "main-agent")
    match = r.explain(MessageContext.direct("cli", "u1"))
    assert match.agent_id == "main-agent"
    assert match.tier == "default"
    assert match.binding_index is None


def test_peer_beats_account_in_any_order():
    """Peer tier wins even when the account binding is declared first."""
    bindings = [
        _b("acct", account_id="*"),
        _b("vip", peer_id="alice"),
    ]
    r = RouteResolver(bindings, "d")
    match = r.explain(MessageContext.direct("webchat", "alice"))
    assert match.agent_id == "vip"
    assert match.tier == "peer"
    assert match.binding_index == 1

    # Someone else only matches the account wildcard
    assert r.resolve(MessageContext.direct("webchat", "bob")) == "acct"


def test_peer_kind_must_match_when_set():
    r = RouteResolver([_b("grp", peer_id="room1", peer_kind="group")], "d")
    assert r.resolve(MessageContext.group("chat", "room1", "u1")) == "grp"
    assert r.resolve(MessageContext.direct("chat", "room1")) == "d"


def test_guild_roles_beat_guild_only():
    bindings = [
        _b("guild-any", guild_id="g1"),
        _b("mods", guild_id="g1", roles=("mod", "admin")),
    ]
    r = RouteResolver(bindings, "d")

    mod_ctx = MessageContext(channel="discord", guild_id="g1", roles=("mod",))
    match = r.explain(mod_ctx)
    assert match.agent_id == "mods"
    assert match.tier == "guild+roles"

    member_ctx = MessageContext(channel="discord", guild_id="g1", roles=("member",))
    match = r.explain(member_ctx)
    assert match.agent_id == "guild-any"
    assert match.tier == "guild"


def test_guild_with_roles_requires_overlap():
    """A guild binding that lists roles never matches in the guild-only tier."""
    r = RouteResolver([_b("mods", guild_id="g1", roles=("mod",))], "d")
    assert r.resolve(MessageContext(channel="discord", guild_id="g1")) == "d"


def test_team_tier():
    r = RouteResolver([_b("slackers", team_id="T1"), _b("chan", channel="slack")], "d")
    match = r.explain(MessageContext(channel="slack", team_id="T1"))
    assert (match.agent_id, match.tier) == ("slackers", "team")
    assert r.resolve(MessageContext(channel="slack", team_id="T2")) == "chan"


def test_account_tier_skips_bindings_with_narrower_fields():
    """Account tier only considers bindings without peer/guild/team."""
    bindings = [
        _b("narrow", account_id="work", peer_id="someone-else"),
        _b("work", account_id="work"),
    ]
    r = RouteResolver(bindings, "d")
    match = r.explain(MessageContext(channel="telegram", account_id="work", peer_id="x"))
    assert (match.agent_id, match.tier, match.binding_index) == ("work", "account", 1)


def test_channel_tier_requires_bare_binding():
    """A binding with any other field set is not a channel-tier match."""
    r = RouteResolver([_b("acct", channel="webchat", account_id="other")], "d")
    assert r.resolve(MessageContext(channel="webchat")) == "d"


def test_channel_mismatch_blocks_higher_tiers():
    r = RouteResolver([_b("vip", channel="telegram", peer_id="alice")], "d")
    assert r.resolve(MessageContext.direct("webchat", "alice")) == "d"
    assert r.resolve(MessageContext.direct("telegram", "alice")) == "vip"


def test_first_declared_wins_within_tier():
    bindings = [_b("first", channel="webchat"), _b("second", channel="webchat")]
    match = RouteResolver(bindings, "d").explain(MessageContext(channel="webchat"))
    assert (match.agent_id, match.binding_index) == ("first", 0)


def test_resolution_is_deterministic():
    bindings = [_b("a", account_id="*"), _b("b", channel="cli")]
    r = RouteResolver(bindings, "d")
    ctx = MessageContext.direct("cli", "u")
    assert {r.resolve(ctx) for _ in range(20)} == {"a"}
