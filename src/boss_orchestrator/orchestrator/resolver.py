"""
Assignment Resolver - Picks a concrete subordinate for a task.

Resolution order:
1. The explicitly requested agent, when it can take the task
2. An available agent of the suggested class, then of any class
   (oldest last activity first, ties by agent id)
3. The decision's alternative agents, in order
4. Nothing: the caller keeps the task pending and retries next tick

The resolver only reads the snapshot. Busy and reserved sets come from
the caller so a single tick never hands two tasks to the same agent.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AbstractSet, Callable, Optional, Sequence, Union

from ..agents import FAILURE_STATUSES, Agent, AgentSnapshot, AgentStatus, subordinates_of
from .delegation import AlternativeAgent

logger = logging.getLogger(__name__)


class AssignmentReason(str, Enum):
	"""Which resolution step produced the assignment."""
	EXPLICIT = "explicit"
	CLASS_MATCH = "class_match"
	ANY_CLASS = "any_class"
	ALTERNATIVE = "alternative"


@dataclass(frozen=True)
class Assignment:
	agent_id: str
	agent_name: str
	reason: AssignmentReason
	rejected: tuple[str, ...] = ()


@dataclass(frozen=True)
class NoEligibleAgent:
	"""Not an error: the task waits for the next tick."""
	rejected: tuple[str, ...] = ()


ResolveResult = Union[Assignment, NoEligibleAgent]


@dataclass
class AssignmentRequest:
	"""What needs an agent."""
	task_text: str
	suggested_class: Optional[str] = None
	assigned_agent_id: Optional[str] = None
	alternatives: Sequence[AlternativeAgent] = field(default_factory=list)
	boss_id: Optional[str] = None


class AssignmentResolver:
	"""
	Resolves tasks to eligible agents.

	Usage:
		resolver = AssignmentResolver(health_check=supervisor.is_agent_healthy)
		result = resolver.resolve(request, agents, busy={"agent-2"})
		if isinstance(result, Assignment):
			...
	"""

	def __init__(self, health_check: Optional[Callable[[str, AgentStatus], bool]] = None):
		"""
		Initialize the resolver.

		Args:
			health_check: Optional "is this agent healthy enough for work" signal,
				called with the agent id and its current status
		"""
		self.health_check = health_check

	def _healthy(self, agent: Agent) -> bool:
		if self.health_check is None:
			return True
		try:
			return self.health_check(agent.id, agent.status)
		except Exception as e:
			logger.error(f"Health check failed for {agent.id}: {e}")
			return True

	def explicit_rejection(
		self,
		agent: Optional[Agent],
		agent_id: str,
		task_text: str,
		busy: AbstractSet[str],
	) -> Optional[str]:
		"""Why an explicitly requested agent cannot take the task, or None if it can."""
		if agent is None:
			return f"{agent_id}: unknown agent"
		if agent.manages_team:
			return f"{agent_id}: is a boss"
		if agent.status in FAILURE_STATUSES:
			return f"{agent_id}: {agent.status.value}"
		if agent.status == AgentStatus.WAITING_PERMISSION:
			return f"{agent_id}: waiting for permission"
		if agent_id in busy:
			return f"{agent_id}: already has a task"
		if (
			agent.status == AgentStatus.WORKING
			and agent.current_task
			and agent.current_task.strip() != task_text.strip()
		):
			return f"{agent_id}: working on another task"
		return None

	def available_rejection(self, agent: Optional[Agent], agent_id: str, busy: AbstractSet[str]) -> Optional[str]:
		"""Why an agent is not available for new work, or None if it is."""
		if agent is None:
			return f"{agent_id}: unknown agent"
		if agent.manages_team:
			return f"{agent_id}: is a boss"
		if not agent.is_available:
			return f"{agent_id}: {agent.status.value}"
		if agent_id in busy:
			return f"{agent_id}: already has a task"
		if not self._healthy(agent):
			return f"{agent_id}: flagged by supervisor"
		return None

	def candidates(
		self,
		agents: AgentSnapshot,
		suggested_class: Optional[str],
		busy: AbstractSet[str],
		boss_id: Optional[str] = None,
	) -> list[Agent]:
		"""Available agents of a class (any class when None), oldest activity first."""
		pool = subordinates_of(boss_id, agents) if boss_id else list(agents.values())
		matching = [
			agent for agent in pool
			if (suggested_class is None or agent.agent_class == suggested_class)
			and self.available_rejection(agent, agent.id, busy) is None
		]
		matching.sort(key=lambda a: (a.last_activity, a.id))
		return matching

	def resolve(
		self,
		request: AssignmentRequest,
		agents: AgentSnapshot,
		busy: AbstractSet[str] = frozenset(),
	) -> ResolveResult:
		"""
		Pick an agent for a task.

		Args:
			request: Task text, class hint, explicit target and alternatives
			agents: Current agent snapshot
			busy: Agent IDs already holding or reserved for a task this tick

		Returns:
			Assignment, or NoEligibleAgent when every step came up empty
		"""
		rejected: list[str] = []

		if request.assigned_agent_id:
			agent = agents.get(request.assigned_agent_id)
			reason = self.explicit_rejection(agent, request.assigned_agent_id, request.task_text, busy)
			if reason is None:
				return Assignment(agent.id, agent.name, AssignmentReason.EXPLICIT)
			rejected.append(reason)

		if request.suggested_class:
			found = self.candidates(agents, request.suggested_class, busy, request.boss_id)
			if found:
				return Assignment(found[0].id, found[0].name, AssignmentReason.CLASS_MATCH, tuple(rejected))

		found = self.candidates(agents, None, busy, request.boss_id)
		if found:
			return Assignment(found[0].id, found[0].name, AssignmentReason.ANY_CLASS, tuple(rejected))

		for alternative in request.alternatives:
			agent = agents.get(alternative.id)
			reason = self.available_rejection(agent, alternative.id, busy)
			if reason is None:
				return Assignment(agent.id, agent.name, AssignmentReason.ALTERNATIVE, tuple(rejected))
			rejected.append(reason)

		logger.debug(f"No eligible agent for task '{request.task_text[:50]}': {rejected}")
		return NoEligibleAgent(rejected=tuple(rejected))
