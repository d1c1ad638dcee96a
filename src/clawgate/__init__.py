"""clawgate — message-dispatch gateway for conversational agents.

Accepts chat messages from front-end surfaces (terminal, webchat), routes
each one to a configured agent, keeps a transcript per conversation and
runs agent turns with per-conversation ordering and a global concurrency
ceiling.
"""

__version__ = "0.1.0"
