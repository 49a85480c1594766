"""Shared builders for boss-orchestrator tests."""

import json
from typing import Optional

from boss_orchestrator.agents import Agent, AgentStatus, snapshot_of
from boss_orchestrator.plans.models import (
	DraftPhase,
	DraftTask,
	PhaseExecution,
	TaskPriority,
	WorkPlanDraft,
)


def make_agent(
	agent_id: str,
	name: Optional[str] = None,
	agent_class: str = "builder",
	status: AgentStatus = AgentStatus.IDLE,
	last_activity: int = 1_000,
	**kwargs,
) -> Agent:
	"""Create an Agent snapshot entry."""
	return Agent(
		id=agent_id,
		name=name or agent_id.title(),
		agent_class=agent_class,
		status=status,
		last_activity=last_activity,
		**kwargs,
	)


def make_team(*members: Agent, boss_id: str = "boss-1") -> dict[str, Agent]:
	"""Snapshot with a boss managing every given member."""
	boss = Agent(
		id=boss_id,
		name="Boss",
		agent_class="boss",
		is_boss=True,
		subordinate_ids=[m.id for m in members],
	)
	team = [m.model_copy(update={"boss_id": boss_id}) for m in members]
	return snapshot_of([boss, *team])


def draft_task(
	task_id: str,
	description: Optional[str] = None,
	blocked_by: Optional[list[str]] = None,
	priority: TaskPriority = TaskPriority.MEDIUM,
	suggested_class: str = "builder",
	assign_to_agent: Optional[str] = None,
) -> DraftTask:
	return DraftTask(
		id=task_id,
		description=description or f"Do {task_id}",
		blocked_by=blocked_by or [],
		priority=priority,
		suggested_class=suggested_class,
		assign_to_agent=assign_to_agent,
	)


def draft_phase(
	phase_id: str,
	tasks: list[DraftTask],
	execution: PhaseExecution = PhaseExecution.SEQUENTIAL,
	depends_on: Optional[list[str]] = None,
) -> DraftPhase:
	return DraftPhase(
		id=phase_id,
		name=phase_id.replace("-", " ").title(),
		execution=execution,
		depends_on=depends_on or [],
		tasks=tasks,
	)


def make_draft(*phases: DraftPhase, name: str = "Test Plan") -> WorkPlanDraft:
	return WorkPlanDraft(name=name, phases=list(phases))


def fenced(tag: str, payload, before: str = "", after: str = "") -> str:
	"""A boss reply with one fenced JSON block."""
	body = payload if isinstance(payload, str) else json.dumps(payload, indent=2)
	return f"{before}\n```{tag}\n{body}\n```\n{after}".strip()
