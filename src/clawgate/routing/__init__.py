"""Message routing — bindings → agent id."""

from clawgate.routing.resolver import MessageContext, RouteMatch, RouteResolver

__all__ = ["MessageContext", "RouteMatch", "RouteResolver"]
