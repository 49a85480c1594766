"""
Agent snapshot records.

The core never owns live agent state. Callers hand it a snapshot of
every agent keyed by id once per scheduling tick; everything here is
read-only from the scheduler's point of view.
"""

import time
from enum import Enum
from typing import Iterable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def now_ms() -> int:
	"""Current time as Unix-epoch milliseconds."""
	return int(time.time() * 1000)


class Record(BaseModel):
	"""Base for persisted records: camelCase on the wire, snake_case in Python."""
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	def to_record(self) -> dict:
		"""Dump as a plain camelCase dict."""
		return self.model_dump(mode="json", by_alias=True)


class AgentStatus(str, Enum):
	"""Lifecycle status reported by the agent-state collaborator."""
	IDLE = "idle"
	WORKING = "working"
	WAITING = "waiting"
	WAITING_PERMISSION = "waiting_permission"
	ERROR = "error"
	OFFLINE = "offline"
	ORPHANED = "orphaned"


# Statuses that can receive a new task right away
AVAILABLE_STATUSES = frozenset({AgentStatus.IDLE, AgentStatus.WAITING})

# Statuses that turn an in-progress task into a failure signal
FAILURE_STATUSES = frozenset({AgentStatus.ERROR, AgentStatus.OFFLINE, AgentStatus.ORPHANED})

BUILTIN_CLASSES = ("scout", "builder", "debugger", "architect", "warrior", "support", "boss")


class Agent(Record):
	"""Read-only view of one agent at snapshot time."""
	id: str = Field(description="Unique agent identifier")
	name: str = Field(description="Display name")
	agent_class: str = Field(default="builder", alias="class", description="Role tag, open set")
	status: AgentStatus = Field(default=AgentStatus.IDLE)
	is_boss: bool = Field(default=False)
	boss_id: Optional[str] = Field(default=None, description="Boss this agent reports to")
	subordinate_ids: list[str] = Field(default_factory=list)
	current_task: Optional[str] = Field(default=None)
	last_assigned_task: Optional[str] = Field(default=None)
	last_activity: int = Field(default=0, description="Unix-epoch ms of last activity")
	context_used: int = Field(default=0)
	context_limit: int = Field(default=200_000)

	@property
	def manages_team(self) -> bool:
		"""True for boss agents, whether flagged or inferred from subordinates."""
		return self.is_boss or bool(self.subordinate_ids)

	@property
	def is_available(self) -> bool:
		return self.status in AVAILABLE_STATUSES

	@property
	def context_percent(self) -> int:
		if self.context_limit <= 0:
			return 0
		return round(self.context_used / self.context_limit * 100)


AgentSnapshot = Mapping[str, Agent]


def snapshot_of(agents: Iterable[Agent]) -> dict[str, Agent]:
	"""Key a list of agents by id."""
	return {agent.id: agent for agent in agents}


def subordinates_of(boss_id: str, agents: AgentSnapshot) -> list[Agent]:
	"""Agents reporting to a boss, in the boss's listed order when known."""
	boss = agents.get(boss_id)
	if boss and boss.subordinate_ids:
		return [agents[sid] for sid in boss.subordinate_ids if sid in agents]
	return [a for a in agents.values() if a.boss_id == boss_id]
