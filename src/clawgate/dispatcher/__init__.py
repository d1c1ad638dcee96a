"""Turn dispatch — per-session ordering with a global concurrency cap.

Learn: The scheduler is the only place turns are executed. Transports hand
messages to the gateway, the gateway routes them, and the scheduler decides
WHEN each turn runs:
1. Turns of one session run one at a time, in arrival order
2. At most max_concurrent turns run across all sessions
3. Each turn is bounded by the agent timeout
"""

from clawgate.dispatcher.turn_dispatcher import (
    NO_RESPONSE,
    AgentExecutionError,
    SchedulerClosedError,
    SchedulerConfig,
    TurnError,
    TurnResult,
    TurnScheduler,
    TurnTimeoutError,
    UnknownAgentError,
)

__all__ = [
    "NO_RESPONSE",
    "AgentExecutionError",
    "SchedulerClosedError",
    "SchedulerConfig",
    "TurnError",
    "TurnResult",
    "TurnScheduler",
    "TurnTimeoutError",
    "UnknownAgentError",
]
