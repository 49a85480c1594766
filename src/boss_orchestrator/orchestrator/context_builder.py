"""
Context Builder - Builds and budgets the team digest sent to a boss.

Responsible for:
- Summarizing each subordinate (name, class, status, current task)
- Folding in the latest supervisor summary per agent when known
- Keeping the digest inside a character budget
- Wrapping digest and command into the boss message envelope
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from ..agents import Agent, AgentSnapshot, subordinates_of
from ..config import get_config
from .context_codec import encode

logger = logging.getLogger(__name__)


def truncate(text: str, limit: int) -> str:
	"""Cut text to limit characters, marking the cut with '...'."""
	text = " ".join(text.split())
	if len(text) <= limit:
		return text
	if limit <= 3:
		return text[:limit]
	return text[:limit - 3] + "..."


@dataclass
class TeamDigest:
	"""A rendered team digest."""
	text: str
	agent_count: int
	omitted: int = 0


class ContextBuilder:
	"""
	Builds bounded team digests for boss agents.

	Handles:
	- Per-agent lines in subordinate order
	- Task text truncation
	- Overall character budget (agents past the budget are counted, not listed)
	"""

	def __init__(self, max_chars: Optional[int] = None, task_chars: Optional[int] = None):
		"""Initialize the context builder."""
		config = get_config()
		self.max_chars = max_chars if max_chars is not None else config.context_max_chars
		self.task_chars = task_chars if task_chars is not None else config.context_task_chars

	def describe_agent(self, agent: Agent, summary: Optional[str] = None) -> str:
		"""Render one agent's digest entry."""
		lines = [f"## {agent.name} ({agent.agent_class})"]
		lines.append(f"- ID: {agent.id}")
		lines.append(f"- Status: {agent.status.value}")
		if agent.current_task:
			lines.append(f"- Current task: {truncate(agent.current_task, self.task_chars)}")
		elif agent.last_assigned_task:
			lines.append(f"- Last task: {truncate(agent.last_assigned_task, self.task_chars)}")
		if agent.context_used:
			lines.append(f"- Context: {agent.context_percent}% used")
		if summary:
			lines.append(f"- Supervisor: {truncate(summary, self.task_chars)}")
		return "\n".join(lines)

	def build_digest(
		self,
		boss_id: str,
		agents: AgentSnapshot,
		summaries: Optional[Mapping[str, str]] = None,
	) -> Optional[TeamDigest]:
		"""
		Build the digest of a boss's team.

		Args:
			boss_id: Boss agent ID
			agents: Current agent snapshot
			summaries: Latest supervisor summary per agent ID

		Returns:
			TeamDigest, or None when the boss has no subordinates
		"""
		team = subordinates_of(boss_id, agents)
		if not team:
			return None

		summaries = summaries or {}
		header = f"# YOUR TEAM ({len(team)} agents)"
		parts = [header]
		used = len(header)
		omitted = 0

		for agent in team:
			entry = self.describe_agent(agent, summaries.get(agent.id))
			if used + len(entry) + 2 > self.max_chars:
				omitted += 1
				continue
			parts.append(entry)
			used += len(entry) + 2

		if omitted:
			parts.append(f"_{omitted} more agents not shown_")
			logger.debug(f"Team digest for {boss_id} omitted {omitted} agents over budget")

		return TeamDigest(text="\n\n".join(parts), agent_count=len(team), omitted=omitted)

	def build_boss_message(
		self,
		boss_id: str,
		agents: AgentSnapshot,
		command: str,
		summaries: Optional[Mapping[str, str]] = None,
	) -> str:
		"""
		Build the full message for a boss: digest envelope plus user command.

		Raises:
			MarkerCollisionError: If the command contains a sentinel marker
		"""
		digest = self.build_digest(boss_id, agents, summaries)
		if digest is None:
			context = "# YOUR TEAM (0 agents)\n\nNo subordinates assigned yet."
		else:
			context = digest.text
		return encode(context, command)
