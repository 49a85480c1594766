"""
Work Plan Scheduler - Dependency-aware task scheduling for work plans.

Responsibilities:
- Validate a draft's phase and task graphs into a DAG (once, at materialization)
- Drive the plan state machine: draft -> approved -> executing <-> paused -> completed | cancelled
- Compute the tasks that may start right now
- Advance task status and recompute phase status and plan counts

The scheduler operates on plan objects handed to it by the caller. It
never touches agent state and holds no locks: callers run it from a
single-writer scheduling loop.
"""

import logging
import uuid
from dataclasses import dataclass
from graphlib import CycleError, TopologicalSorter
from typing import Optional

from ..agents import now_ms
from .models import (
	PRIORITY_RANK,
	TERMINAL_TASK_STATUSES,
	Phase,
	PhaseExecution,
	PlanStatus,
	Task,
	TaskStatus,
	WorkPlan,
	WorkPlanDraft,
)

logger = logging.getLogger(__name__)


class PlanValidationError(Exception):
	"""Raised when a draft's dependency graph is unusable (cycles, unknown or duplicate ids)."""

	def __init__(self, errors: list[str]):
		self.errors = errors
		super().__init__("; ".join(errors))


class InvalidPlanTransitionError(Exception):
	"""Raised on a plan status change the state machine does not allow."""
	pass


class InvalidTaskTransitionError(Exception):
	"""Raised on a task status change from an incompatible status."""
	pass


class TaskNotRunnableError(Exception):
	"""Raised when a task is dispatched but is no longer runnable."""
	pass


class UnknownTaskError(LookupError):
	"""Raised when a task id is not part of the plan."""
	pass


PLAN_TRANSITIONS: dict[PlanStatus, frozenset[PlanStatus]] = {
	PlanStatus.DRAFT: frozenset({PlanStatus.APPROVED, PlanStatus.CANCELLED}),
	PlanStatus.APPROVED: frozenset({PlanStatus.EXECUTING, PlanStatus.CANCELLED}),
	PlanStatus.EXECUTING: frozenset({PlanStatus.PAUSED, PlanStatus.COMPLETED, PlanStatus.CANCELLED}),
	PlanStatus.PAUSED: frozenset({PlanStatus.EXECUTING, PlanStatus.COMPLETED, PlanStatus.CANCELLED}),
	PlanStatus.COMPLETED: frozenset(),
	PlanStatus.CANCELLED: frozenset(),
}


@dataclass(frozen=True)
class PlanGraph:
	"""Validated dependency structure of a plan."""
	order: tuple[str, ...]
	# blocked_by plus every task of every phase this task's phase depends on
	requires_completed: dict[str, frozenset[str]]
	# previous task in a sequential phase; must be terminal, not necessarily completed
	sequential_prev: dict[str, Optional[str]]


@dataclass(frozen=True)
class RunnableTask:
	"""A task eligible to start now."""
	plan_id: str
	phase_id: str
	task: Task

	@property
	def task_id(self) -> str:
		return self.task.id


def _find_cycle(graph: dict[str, set[str]]) -> Optional[list[str]]:
	try:
		tuple(TopologicalSorter(graph).static_order())
	except CycleError as e:
		return list(e.args[1])
	return None


def build_plan_graph(phases: list) -> PlanGraph:
	"""
	Validate phases (draft or materialized) into a PlanGraph.

	Checks duplicate and unknown ids, phase-level dependsOn cycles,
	task-level blockedBy cycles, and deadlocks that only appear when both
	levels are combined (e.g. a task blocked by a task of a later phase).

	Raises:
		PlanValidationError: With every problem found
	"""
	errors: list[str] = []

	phase_ids: list[str] = [p.id for p in phases]
	task_phase: dict[str, object] = {}
	for phase in phases:
		for task in phase.tasks:
			if task.id in task_phase:
				errors.append(f"Duplicate task id '{task.id}'")
			task_phase[task.id] = phase

	seen_phases: set[str] = set()
	for pid in phase_ids:
		if pid in seen_phases:
			errors.append(f"Duplicate phase id '{pid}'")
		seen_phases.add(pid)

	if not task_phase:
		errors.append("Work plan has no tasks")

	for phase in phases:
		for dep in phase.depends_on:
			if dep not in seen_phases:
				errors.append(f"Phase '{phase.id}' depends on unknown phase '{dep}'")
		for task in phase.tasks:
			for blocker in task.blocked_by:
				if blocker not in task_phase:
					errors.append(f"Task '{task.id}' is blocked by unknown task '{blocker}'")

	if errors:
		raise PlanValidationError(errors)

	phase_graph = {p.id: set(p.depends_on) for p in phases}
	cycle = _find_cycle(phase_graph)
	if cycle:
		errors.append(f"Phase dependency cycle: {' -> '.join(cycle)}")

	task_graph = {tid: set() for tid in task_phase}
	for phase in phases:
		for task in phase.tasks:
			task_graph[task.id] = set(task.blocked_by)
	cycle = _find_cycle(task_graph)
	if cycle:
		errors.append(f"Task dependency cycle: {' -> '.join(cycle)}")

	if errors:
		raise PlanValidationError(errors)

	phase_tasks = {p.id: [t.id for t in p.tasks] for p in phases}
	requires_completed: dict[str, frozenset[str]] = {}
	sequential_prev: dict[str, Optional[str]] = {}
	combined: dict[str, set[str]] = {}

	for phase in phases:
		upstream = {tid for dep in phase.depends_on for tid in phase_tasks[dep]}
		prev: Optional[str] = None
		for task in phase.tasks:
			requires = frozenset(set(task.blocked_by) | upstream)
			requires_completed[task.id] = requires
			sequential_prev[task.id] = prev if phase.execution == PhaseExecution.SEQUENTIAL else None
			combined[task.id] = set(requires)
			if sequential_prev[task.id]:
				combined[task.id].add(sequential_prev[task.id])
			prev = task.id

	try:
		order = tuple(TopologicalSorter(combined).static_order())
	except CycleError as e:
		raise PlanValidationError([
			f"Cross-phase dependency deadlock: {' -> '.join(e.args[1])}"
		]) from e

	return PlanGraph(
		order=order,
		requires_completed=requires_completed,
		sequential_prev=sequential_prev,
	)


def format_rejection(draft_name: str, error: PlanValidationError) -> str:
	"""Render a validation failure as a message the boss can act on."""
	lines = [f'Work plan "{draft_name}" was rejected and not created:']
	for problem in error.errors:
		lines.append(f"- {problem}")
	lines.append("Fix the dependencies and send the corrected work-plan block.")
	return "\n".join(lines)


class WorkPlanScheduler:
	"""
	Owns the dependency logic for work plans.

	Usage:
		scheduler = WorkPlanScheduler()
		plan = scheduler.materialize(draft, created_by="boss-1")
		scheduler.approve(plan)
		scheduler.start(plan)

		for runnable in scheduler.compute_runnable(plan):
			...
			scheduler.start_task(plan, runnable.task_id, agent_id)
	"""

	def __init__(self):
		"""Initialize the scheduler."""
		self._graphs: dict[str, PlanGraph] = {}

	# ------------------------------------------------------------------
	# Materialization
	# ------------------------------------------------------------------

	def validate_draft(self, draft: WorkPlanDraft) -> list[str]:
		"""Return every validation problem in a draft (empty when valid)."""
		try:
			build_plan_graph(draft.phases)
		except PlanValidationError as e:
			return e.errors
		return []

	def materialize(
		self,
		draft: WorkPlanDraft,
		created_by: str,
		plan_id: Optional[str] = None,
	) -> WorkPlan:
		"""
		Validate a draft and build a WorkPlan in `draft` status.

		Args:
			draft: Parsed work-plan draft
			created_by: Boss agent ID
			plan_id: Optional fixed plan ID

		Returns:
			The materialized WorkPlan

		Raises:
			PlanValidationError: If the graph is cyclic or references unknown ids
		"""
		graph = build_plan_graph(draft.phases)

		phases = []
		parallelizable = []
		for draft_phase in draft.phases:
			tasks = [
				Task(
					id=t.id,
					description=t.description,
					suggested_class=t.suggested_class,
					assigned_agent_id=t.assign_to_agent,
					assigned_agent_name=t.assign_to_agent_name,
					priority=t.priority,
					blocked_by=list(t.blocked_by),
				)
				for t in draft_phase.tasks
			]
			if draft_phase.execution == PhaseExecution.PARALLEL:
				parallelizable.extend(t.id for t in tasks)
			phases.append(Phase(
				id=draft_phase.id,
				name=draft_phase.name,
				description=draft_phase.description,
				execution=draft_phase.execution,
				depends_on=list(draft_phase.depends_on),
				tasks=tasks,
			))

		plan = WorkPlan(
			id=plan_id or f"plan-{str(uuid.uuid4())[:12]}",
			name=draft.name,
			description=draft.description,
			phases=phases,
			created_by=created_by,
			status=PlanStatus.DRAFT,
			parallelizable_tasks=parallelizable,
		)
		self._graphs[plan.id] = graph
		self.recompute(plan)

		logger.info(f"Materialized plan {plan.id} '{plan.name}': {len(phases)} phases, {plan.total_tasks} tasks")
		return plan

	def adopt(self, plan: WorkPlan) -> WorkPlan:
		"""
		Register an existing plan (e.g. reloaded from storage).

		Raises:
			PlanValidationError: If the stored graph is invalid
		"""
		self._graphs[plan.id] = build_plan_graph(plan.phases)
		self.recompute(plan)
		return plan

	def forget(self, plan_id: str) -> None:
		"""Drop cached graph data for a plan."""
		self._graphs.pop(plan_id, None)

	def _graph(self, plan: WorkPlan) -> PlanGraph:
		graph = self._graphs.get(plan.id)
		if graph is None:
			graph = build_plan_graph(plan.phases)
			self._graphs[plan.id] = graph
		return graph

	# ------------------------------------------------------------------
	# Plan state machine
	# ------------------------------------------------------------------

	def _transition(self, plan: WorkPlan, target: PlanStatus) -> WorkPlan:
		if target not in PLAN_TRANSITIONS[plan.status]:
			raise InvalidPlanTransitionError(
				f"Plan {plan.id} cannot move from {plan.status.value} to {target.value}"
			)
		logger.info(f"Plan {plan.id}: {plan.status.value} -> {target.value}")
		plan.status = target
		plan.updated_at = now_ms()
		return plan

	def approve(self, plan: WorkPlan) -> WorkPlan:
		return self._transition(plan, PlanStatus.APPROVED)

	def start(self, plan: WorkPlan) -> WorkPlan:
		"""Begin executing an approved plan."""
		self._transition(plan, PlanStatus.EXECUTING)
		self.recompute(plan)
		return plan

	def pause(self, plan: WorkPlan) -> WorkPlan:
		"""Stop handing out new tasks. In-progress tasks keep running."""
		return self._transition(plan, PlanStatus.PAUSED)

	def resume(self, plan: WorkPlan) -> WorkPlan:
		return self._transition(plan, PlanStatus.EXECUTING)

	def cancel(self, plan: WorkPlan) -> list[Task]:
		"""
		Cancel a plan and every task that has not finished.

		Returns:
			Tasks that were cancelled while in progress (their agents may need stopping)
		"""
		self._transition(plan, PlanStatus.CANCELLED)
		interrupted = []
		now = now_ms()
		for _, task in plan.iter_tasks():
			if task.is_terminal:
				continue
			if task.status == TaskStatus.IN_PROGRESS:
				interrupted.append(task)
			task.status = TaskStatus.CANCELLED
			task.completed_at = now
		self.recompute(plan)
		return interrupted

	# ------------------------------------------------------------------
	# Runnable computation
	# ------------------------------------------------------------------

	def compute_runnable(self, plan: WorkPlan) -> list[RunnableTask]:
		"""
		Tasks that may start right now, highest priority first.

		A task qualifies when it is pending, everything it is blocked by is
		completed, every phase its phase depends on is completed, and (in a
		sequential phase) it is the first task that has not finished. Ties
		keep plan order. Nothing is runnable unless the plan is executing.
		"""
		if plan.status != PlanStatus.EXECUTING:
			return []

		graph = self._graph(plan)
		status = {task.id: task.status for _, task in plan.iter_tasks()}

		candidates: list[tuple[int, int, RunnableTask]] = []
		for index, (phase, task) in enumerate(plan.iter_tasks()):
			if task.status != TaskStatus.PENDING:
				continue
			if any(status[req] != TaskStatus.COMPLETED for req in graph.requires_completed[task.id]):
				continue
			if phase.execution == PhaseExecution.SEQUENTIAL:
				first_open = next((t for t in phase.tasks if not t.is_terminal), None)
				if first_open is None or first_open.id != task.id:
					continue
			candidates.append((PRIORITY_RANK[task.priority], index, RunnableTask(plan.id, phase.id, task)))

		candidates.sort(key=lambda c: (c[0], c[1]))
		return [c[2] for c in candidates]

	# ------------------------------------------------------------------
	# Task transitions
	# ------------------------------------------------------------------

	def _lookup(self, plan: WorkPlan, task_id: str) -> tuple[Phase, Task]:
		found = plan.find_task(task_id)
		if found is None:
			raise UnknownTaskError(f"Task {task_id} not found in plan {plan.id}")
		return found

	def start_task(
		self,
		plan: WorkPlan,
		task_id: str,
		agent_id: str,
		agent_name: Optional[str] = None,
	) -> Task:
		"""
		Mark a task in progress on an agent, re-validating runnability.

		Raises:
			TaskNotRunnableError: If the task is no longer runnable or the agent already
				holds an in-progress task in this plan
		"""
		phase, task = self._lookup(plan, task_id)

		runnable_ids = {r.task_id for r in self.compute_runnable(plan)}
		if task_id not in runnable_ids:
			raise TaskNotRunnableError(f"Task {task_id} is not runnable (status {task.status.value})")

		busy = plan.tasks_for_agent(agent_id, TaskStatus.IN_PROGRESS)
		if busy:
			raise TaskNotRunnableError(f"Agent {agent_id} is already working on task {busy[0].id}")

		now = now_ms()
		task.status = TaskStatus.IN_PROGRESS
		task.assigned_agent_id = agent_id
		if agent_name:
			task.assigned_agent_name = agent_name
		task.started_at = now
		if phase.started_at is None:
			phase.started_at = now

		self.recompute(plan)
		logger.info(f"Task {task_id} started on agent {agent_id}")
		return task

	def complete_task(self, plan: WorkPlan, task_id: str, result: Optional[str] = None) -> Task:
		"""Mark an in-progress (or blocked) task completed."""
		_, task = self._lookup(plan, task_id)
		if task.status not in (TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED):
			raise InvalidTaskTransitionError(f"Task {task_id} cannot complete from {task.status.value}")

		task.status = TaskStatus.COMPLETED
		task.completed_at = now_ms()
		if result is not None:
			task.result = result

		self.recompute(plan)
		logger.info(f"Task {task_id} completed ({plan.completed_tasks}/{plan.total_tasks})")
		return task

	def block_task(self, plan: WorkPlan, task_id: str, reason: str = "") -> Task:
		"""Mark a task blocked. Dependents become unreachable until it is retried."""
		_, task = self._lookup(plan, task_id)
		if task.status not in (TaskStatus.PENDING, TaskStatus.IN_PROGRESS):
			raise InvalidTaskTransitionError(f"Task {task_id} cannot be blocked from {task.status.value}")

		task.status = TaskStatus.BLOCKED
		if reason:
			task.result = reason

		self.recompute(plan)
		logger.warning(f"Task {task_id} blocked: {reason or 'no reason given'}")
		return task

	def cancel_task(self, plan: WorkPlan, task_id: str) -> Task:
		"""Cancel one task. Other tasks are untouched but may become unreachable."""
		_, task = self._lookup(plan, task_id)
		if task.is_terminal:
			raise InvalidTaskTransitionError(f"Task {task_id} is already {task.status.value}")

		task.status = TaskStatus.CANCELLED
		task.completed_at = now_ms()

		self.recompute(plan)
		logger.info(f"Task {task_id} cancelled")
		return task

	def retry_task(self, plan: WorkPlan, task_id: str) -> Task:
		"""Move a blocked task back to pending so it can be dispatched again."""
		_, task = self._lookup(plan, task_id)
		if task.status != TaskStatus.BLOCKED:
			raise InvalidTaskTransitionError(f"Only blocked tasks can be retried, {task_id} is {task.status.value}")

		task.status = TaskStatus.PENDING
		task.started_at = None
		task.result = None

		self.recompute(plan)
		return task

	def fail_agent_tasks(self, plan: WorkPlan, agent_id: str, reason: str) -> list[Task]:
		"""Block every in-progress task held by an agent that errored or vanished."""
		blocked = []
		for task in plan.tasks_for_agent(agent_id, TaskStatus.IN_PROGRESS):
			blocked.append(self.block_task(plan, task.id, reason))
		return blocked

	# ------------------------------------------------------------------
	# Status recomputation
	# ------------------------------------------------------------------

	def unreachable_tasks(self, plan: WorkPlan) -> set[str]:
		"""
		Task ids that can never reach completed with the plan as it stands.

		Blocked and cancelled tasks are unreachable; a pending task is too
		when anything it requires is unreachable, or when its sequential
		predecessor is stuck. Cancelled predecessors are skipped over, so the
		nearest earlier task that is not cancelled decides.
		"""
		graph = self._graph(plan)
		tasks = {task.id: task for _, task in plan.iter_tasks()}

		stuck: set[str] = set()
		for tid in graph.order:
			task = tasks[tid]
			if task.status in (TaskStatus.BLOCKED, TaskStatus.CANCELLED):
				stuck.add(tid)
			elif task.status == TaskStatus.PENDING:
				if any(req in stuck for req in graph.requires_completed[tid]):
					stuck.add(tid)
					continue
				prev = graph.sequential_prev[tid]
				while prev and tasks[prev].status == TaskStatus.CANCELLED:
					prev = graph.sequential_prev[prev]
				if prev and prev in stuck:
					stuck.add(tid)
		return stuck

	def _derive_phase_status(self, phase: Phase, stuck: set[str]) -> TaskStatus:
		if all(t.status == TaskStatus.COMPLETED for t in phase.tasks):
			return TaskStatus.COMPLETED
		if all(t.is_terminal for t in phase.tasks):
			return TaskStatus.CANCELLED

		remaining = [t for t in phase.tasks if not t.is_terminal]
		if all(t.id in stuck for t in remaining):
			return TaskStatus.BLOCKED

		started = any(
			t.status in (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED) or t.started_at is not None
			for t in phase.tasks
		)
		return TaskStatus.IN_PROGRESS if started else TaskStatus.PENDING

	def recompute(self, plan: WorkPlan) -> list[tuple[str, TaskStatus]]:
		"""
		Re-derive phase statuses and plan aggregates.

		Returns:
			(phase_id, new_status) for every phase whose status changed
		"""
		stuck = self.unreachable_tasks(plan)
		now = now_ms()
		changed = []

		for phase in plan.phases:
			new_status = self._derive_phase_status(phase, stuck)
			if new_status != phase.status:
				logger.debug(f"Phase {phase.id}: {phase.status.value} -> {new_status.value}")
				phase.status = new_status
				changed.append((phase.id, new_status))
			if new_status in TERMINAL_TASK_STATUSES and phase.completed_at is None:
				phase.completed_at = now

		plan.total_tasks = sum(len(p.tasks) for p in plan.phases)
		plan.completed_tasks = sum(
			1 for _, t in plan.iter_tasks() if t.status == TaskStatus.COMPLETED
		)
		plan.updated_at = now

		if (
			plan.status in (PlanStatus.EXECUTING, PlanStatus.PAUSED)
			and plan.total_tasks > 0
			and plan.completed_tasks == plan.total_tasks
		):
			self._transition(plan, PlanStatus.COMPLETED)

		return changed
