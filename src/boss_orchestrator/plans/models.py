"""
Plan Models - Pydantic schemas for boss work plans.

A work plan is a named, phased decomposition of a goal into
dependency-ordered tasks. Phases run their tasks sequentially or in
parallel and may depend on other phases; tasks may be blocked by any
other task in the plan.
"""

from enum import Enum
from typing import Iterator, Optional

from pydantic import Field

from ..agents import Record, now_ms


class PlanStatus(str, Enum):
	"""Status of a plan."""
	DRAFT = "draft"
	APPROVED = "approved"
	EXECUTING = "executing"
	PAUSED = "paused"
	COMPLETED = "completed"
	CANCELLED = "cancelled"


class TaskStatus(str, Enum):
	"""Status of a task (and derived status of a phase)."""
	PENDING = "pending"
	IN_PROGRESS = "in_progress"
	COMPLETED = "completed"
	BLOCKED = "blocked"
	CANCELLED = "cancelled"


TERMINAL_TASK_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED})


class TaskPriority(str, Enum):
	"""Scheduling priority of a task."""
	HIGH = "high"
	MEDIUM = "medium"
	LOW = "low"


PRIORITY_RANK = {
	TaskPriority.HIGH: 0,
	TaskPriority.MEDIUM: 1,
	TaskPriority.LOW: 2,
}


class PhaseExecution(str, Enum):
	"""How the tasks inside a phase run."""
	SEQUENTIAL = "sequential"
	PARALLEL = "parallel"


class Task(Record):
	"""A single task within a phase."""
	id: str = Field(description="Unique task identifier")
	description: str = Field(description="What needs to be done")
	suggested_class: str = Field(default="builder", description="Agent class best suited")
	assigned_agent_id: Optional[str] = Field(default=None, description="None means auto-assign at run time")
	assigned_agent_name: Optional[str] = Field(default=None)
	priority: TaskPriority = Field(default=TaskPriority.MEDIUM)
	blocked_by: list[str] = Field(default_factory=list, description="Task IDs that must complete first")
	status: TaskStatus = Field(default=TaskStatus.PENDING)
	result: Optional[str] = Field(default=None, description="Outcome summary")
	started_at: Optional[int] = Field(default=None)
	completed_at: Optional[int] = Field(default=None)

	@property
	def is_terminal(self) -> bool:
		return self.status in TERMINAL_TASK_STATUSES


class Phase(Record):
	"""A group of tasks sharing an execution mode."""
	id: str = Field(description="Phase identifier (e.g., 'phase-1')")
	name: str = Field(description="Phase name")
	description: str = Field(default="")
	execution: PhaseExecution = Field(default=PhaseExecution.SEQUENTIAL)
	depends_on: list[str] = Field(default_factory=list, description="Phase IDs this depends on")
	tasks: list[Task] = Field(default_factory=list)
	status: TaskStatus = Field(default=TaskStatus.PENDING)
	started_at: Optional[int] = Field(default=None)
	completed_at: Optional[int] = Field(default=None)


class WorkPlan(Record):
	"""
	A materialized work plan.

	Only the scheduler builds these, after the draft's dependency graph
	has been validated. Aggregate counts are kept in sync by the
	scheduler on every status change.
	"""
	id: str = Field(description="Unique plan identifier")
	name: str
	description: str = Field(default="")
	phases: list[Phase] = Field(default_factory=list)
	created_by: str = Field(description="Boss agent ID")
	created_at: int = Field(default_factory=now_ms)
	updated_at: int = Field(default_factory=now_ms)
	status: PlanStatus = Field(default=PlanStatus.DRAFT)

	total_tasks: int = Field(default=0)
	completed_tasks: int = Field(default=0)
	parallelizable_tasks: list[str] = Field(default_factory=list, description="Task IDs in parallel phases")

	def iter_tasks(self) -> Iterator[tuple[Phase, Task]]:
		"""Yield (phase, task) in plan order."""
		for phase in self.phases:
			for task in phase.tasks:
				yield phase, task

	def get_phase(self, phase_id: str) -> Optional[Phase]:
		for phase in self.phases:
			if phase.id == phase_id:
				return phase
		return None

	def find_task(self, task_id: str) -> Optional[tuple[Phase, Task]]:
		for phase, task in self.iter_tasks():
			if task.id == task_id:
				return phase, task
		return None

	def tasks_for_agent(self, agent_id: str, status: Optional[TaskStatus] = None) -> list[Task]:
		return [
			task for _, task in self.iter_tasks()
			if task.assigned_agent_id == agent_id and (status is None or task.status == status)
		]

	def get_progress(self) -> dict:
		"""Calculate overall progress."""
		total_tasks = sum(len(p.tasks) for p in self.phases)
		completed_tasks = sum(
			len([t for t in p.tasks if t.status == TaskStatus.COMPLETED])
			for p in self.phases
		)
		completed_phases = len([p for p in self.phases if p.status == TaskStatus.COMPLETED])

		return {
			"total_phases": len(self.phases),
			"completed_phases": completed_phases,
			"total_tasks": total_tasks,
			"completed_tasks": completed_tasks,
			"percent_complete": round(completed_tasks / total_tasks * 100, 1) if total_tasks > 0 else 0,
		}

	def to_markdown(self) -> str:
		"""Convert plan to markdown for human review."""
		lines = [
			f"# {self.name}",
			"",
			f"**Status:** {self.status.value}",
			f"**Created by:** {self.created_by}",
			f"**Progress:** {self.completed_tasks}/{self.total_tasks} tasks",
			"",
		]
		if self.description:
			lines.extend([self.description, ""])

		lines.append("## Phases")
		for phase in self.phases:
			status_icon = {
				TaskStatus.PENDING: "⬜",
				TaskStatus.IN_PROGRESS: "🔄",
				TaskStatus.COMPLETED: "✅",
				TaskStatus.BLOCKED: "🚫",
				TaskStatus.CANCELLED: "⏭️",
			}.get(phase.status, "⬜")

			lines.append(f"### {status_icon} {phase.name} ({phase.execution.value})")
			if phase.depends_on:
				lines.append(f"_Depends on: {', '.join(phase.depends_on)}_")
			lines.append("")

			for task in phase.tasks:
				task_icon = {
					TaskStatus.PENDING: "[ ]",
					TaskStatus.IN_PROGRESS: "[~]",
					TaskStatus.COMPLETED: "[x]",
					TaskStatus.BLOCKED: "[!]",
					TaskStatus.CANCELLED: "[-]",
				}.get(task.status, "[ ]")

				assignee = task.assigned_agent_name or task.assigned_agent_id or "auto"
				line = f"- {task_icon} {task.description} ({task.suggested_class}, {task.priority.value}, {assignee})"
				if task.blocked_by:
					line += f" blocked by {', '.join(task.blocked_by)}"
				lines.append(line)
			lines.append("")

		return "\n".join(lines)


class DraftTask(Record):
	"""Task as written by the boss in a work-plan block."""
	id: str = ""
	description: str = ""
	suggested_class: str = "builder"
	assign_to_agent: Optional[str] = None
	assign_to_agent_name: Optional[str] = None
	priority: TaskPriority = TaskPriority.MEDIUM
	blocked_by: list[str] = Field(default_factory=list)


class DraftPhase(Record):
	"""Phase as written by the boss in a work-plan block."""
	id: str = ""
	name: str = ""
	description: str = ""
	execution: PhaseExecution = PhaseExecution.SEQUENTIAL
	depends_on: list[str] = Field(default_factory=list)
	tasks: list[DraftTask] = Field(default_factory=list)


class WorkPlanDraft(Record):
	"""Unvalidated plan proposal parsed from boss output."""
	name: str = "Unnamed Plan"
	description: str = ""
	phases: list[DraftPhase] = Field(default_factory=list)


class AnalysisRequest(Record):
	"""A boss asking a scout to explore part of the codebase."""
	target_agent: str = Field(description="Agent ID expected to run the analysis")
	query: str
	focus: list[str] = Field(default_factory=list)

	def to_instruction(self) -> str:
		"""Instruction text sent to the scout."""
		if not self.focus:
			return self.query
		return f"{self.query}\n\nFocus areas: {', '.join(self.focus)}"
