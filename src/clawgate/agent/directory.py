"""Agent directory — agent definitions turned into runnable handles.

Learn: The directory bridges the config file (which says WHAT agents exist)
with the adapters (which know HOW to run a turn). For every configured agent
it builds an AgentHandle holding:
1. The resolved adapter instance
2. The effective instruction (agent instruction + Available Skills section)
3. The skills visible to that agent

Handles are rebuilt wholesale when the skill catalog version moves, so a
SKILL.md edited on disk shows up in the next turn's instruction. Readers
only ever see a complete old map or a complete new one.
"""

import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

import structlog

from clawgate.agent.adapters import AdapterConfig, AgentAdapter, get_adapter
from clawgate.config import AgentDef, ConfigError, GatewayConfig
from clawgate.sessions import SessionEntry
from clawgate.skills import SkillCatalog, SkillManifest

logger = structlog.get_logger()

DEFAULT_INSTRUCTION = "You are a helpful assistant."

SKILLS_HEADER = (
    "## Available Skills\n"
    "You have access to the following skills. When a task matches a skill, "
    "read its full instructions from the skill directory before proceeding."
)

# uuid5 namespace for runtime conversation ids
CONVERSATION_NAMESPACE = uuid.UUID("6f1d3c8e-2b7a-5d4e-9c1f-0a8b7e6d5c4b")


class AgentRuntimeError(Exception):
    """The agent runtime reported a failed turn."""

    def __init__(self, agent_id: str, message: str):
        self.agent_id = agent_id
        super().__init__(message)


def build_instruction(base: str, skills: Sequence[SkillManifest]) -> str:
    """Agent instruction with the skill listing appended (if any)."""
    instruction = base.strip() or DEFAULT_INSTRUCTION
    if not skills:
        return instruction
    lines = [f"- {s.name}: {s.description} ({s.directory})" for s in skills]
    return f"{instruction}\n\n{SKILLS_HEADER}\n" + "\n".join(lines)


def conversation_id(session_key: str, history: Sequence[SessionEntry]) -> str:
    """Stable runtime conversation id for a transcript.

    Derived from the session key and the first entry's timestamp, so it
    stays the same for the life of a transcript and changes after a clear.
    """
    anchor = history[0].timestamp.isoformat() if history else ""
    return str(uuid.uuid5(CONVERSATION_NAMESPACE, f"{session_key}|{anchor}"))


@dataclass
class AgentHandle:
    """A runnable agent: definition + adapter + effective instruction."""

    agent_id: str
    definition: AgentDef
    adapter: AgentAdapter
    instruction: str
    skills: tuple[SkillManifest, ...] = ()
    skill_version: int = 0
    timeout_seconds: float = 60.0

    async def run_turn(
        self,
        session_key: str,
        message: str,
        history: Sequence[SessionEntry] = (),
    ) -> str:
        """Run one turn through the adapter and return the reply text.

        `history` is the transcript including the current user entry.
        Raises AgentRuntimeError when the runtime reports failure.
        """
        config = AdapterConfig(
            agent_id=self.agent_id,
            session_key=session_key,
            instruction=self.instruction,
            model=self.definition.model,
            working_directory=self.definition.workspace,
            conversation_id=conversation_id(session_key, history),
            resume=any(e.role == "assistant" for e in history),
            timeout_seconds=self.timeout_seconds,
        )
        result = await self.adapter.run(message, config)
        if not result.ok:
            raise AgentRuntimeError(
                self.agent_id,
                result.error or f"runtime exited with code {result.exit_code}",
            )
        return result.text


class AgentDirectory:
    """Holds one AgentHandle per configured agent.

    Learn: Validation is fail-fast — a blank or duplicate id, or an adapter
    name nobody registered, raises ConfigError at construction so the
    gateway never starts half-configured. A missing runtime binary is only
    a warning: the echo adapter and tests don't need one.
    """

    def __init__(self, config: GatewayConfig, catalog: Optional[SkillCatalog] = None):
        self.config = config
        self.catalog = catalog
        self._definitions = self._validate(config.agents.agents)
        self._adapters: dict[str, AgentAdapter] = {}
        for definition in self._definitions.values():
            try:
                adapter = get_adapter(definition.adapter)
            except ValueError as e:
                raise ConfigError(f"Agent '{definition.id}': {e}") from e
            ok, msg = adapter.validate_environment()
            if not ok:
                logger.warning("agents.adapter_unavailable", agent_id=definition.id, detail=msg)
            self._adapters[definition.id] = adapter

        self._handles: dict[str, AgentHandle] = {}
        self._seen_version = -1
        self._rebuild()

    @staticmethod
    def _validate(definitions: Sequence[AgentDef]) -> dict[str, AgentDef]:
        by_id: dict[str, AgentDef] = {}
        for definition in definitions:
            agent_id = definition.id.strip()
            if not agent_id:
                raise ConfigError("Agent id must not be blank")
            if agent_id in by_id:
                raise ConfigError(f"Duplicate agent id '{agent_id}'")
            by_id[agent_id] = definition
        return by_id

    # ─── Handles ──────────────────────────────────────────

    def _rebuild(self) -> None:
        version = self.catalog.version if self.catalog is not None else 0
        timeout = self.config.gateway.agent_timeout_seconds
        handles = {}
        for agent_id, definition in self._definitions.items():
            skills = (
                tuple(self.catalog.resolve_skills(definition.skills))
                if self.catalog is not None
                else ()
            )
            handles[agent_id] = AgentHandle(
                agent_id=agent_id,
                definition=definition,
                adapter=self._adapters[agent_id],
                instruction=build_instruction(definition.instruction, skills),
                skills=skills,
                skill_version=version,
                timeout_seconds=timeout,
            )
        self._handles = handles
        self._seen_version = version
        logger.info("agents.built", count=len(handles), skill_version=version)

    def _check_skill_version(self) -> None:
        if self.catalog is not None and self.catalog.version != self._seen_version:
            self._rebuild()

    def has_agent(self, agent_id: str) -> bool:
        return agent_id in self._definitions

    def get_agent(self, agent_id: str) -> Optional[AgentHandle]:
        """Current handle for `agent_id` (rebuilt first if skills changed)."""
        self._check_skill_version()
        return self._handles.get(agent_id)

    def agent_ids(self) -> list[str]:
        return list(self._definitions)

    # ─── Skills ───────────────────────────────────────────

    def skills_for(self, agent_id: str) -> tuple[SkillManifest, ...]:
        handle = self.get_agent(agent_id)
        return handle.skills if handle else ()

    def activate_skill(self, agent_id: str, name: str) -> Optional[str]:
        """Load the full instructions of a skill available to `agent_id`.

        Returns None when the agent doesn't know the skill.
        """
        for skill in self.skills_for(agent_id):
            if skill.name == name:
                return self.catalog.load_body(skill)
        return None
