"""
Boss Coordinator - The single-writer scheduling loop.

Ties the pieces together:
- Boss replies are parsed into analysis requests, a plan draft,
  delegations and spawn requests
- Delegations are resolved to agents and tracked
- Executing plans hand out their runnable tasks every tick
- Agent failures block the tasks they held

The coordinator never touches agents. It returns DispatchIntents and
the caller delivers them, then reports outcomes back.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..agents import FAILURE_STATUSES, AgentSnapshot
from ..plans.models import AnalysisRequest, PlanStatus, Task, TaskStatus, WorkPlan
from ..plans.scheduler import (
	PlanValidationError,
	TaskNotRunnableError,
	WorkPlanScheduler,
	format_rejection,
)
from .context_builder import ContextBuilder
from .delegation import (
	Confidence,
	DelegationDecision,
	SpawnRequest,
	parse_boss_response,
)
from .resolver import Assignment, AssignmentRequest, AssignmentResolver
from .supervisor import SupervisorAggregator, SupervisorReport
from .tracker import DelegationTracker

logger = logging.getLogger(__name__)


class UnknownPlanError(LookupError):
	pass


@dataclass(frozen=True)
class DispatchIntent:
	"""Send task_text to agent_id. The caller performs the delivery."""
	agent_id: str
	task_text: str
	plan_id: Optional[str] = None
	decision_id: Optional[str] = None
	task_id: Optional[str] = None


@dataclass
class BossTurn:
	"""Everything that came out of one boss reply."""
	display_text: str
	intents: list[DispatchIntent] = field(default_factory=list)
	decisions: list[DelegationDecision] = field(default_factory=list)
	plan: Optional[WorkPlan] = None
	plan_errors: list[str] = field(default_factory=list)
	rejection_message: Optional[str] = None
	analysis_requests: list[AnalysisRequest] = field(default_factory=list)
	spawn_requests: list[SpawnRequest] = field(default_factory=list)


class BossCoordinator:
	"""
	Coordinates bosses, plans and delegations.

	Usage:
		coordinator = BossCoordinator()
		turn = coordinator.handle_boss_response("boss-1", command, reply, agents)
		deliver(turn.intents)

		while running:
			deliver(coordinator.tick(agents))
			...
			coordinator.report_task_result(agent_id, success=True)
	"""

	def __init__(
		self,
		scheduler: Optional[WorkPlanScheduler] = None,
		resolver: Optional[AssignmentResolver] = None,
		tracker: Optional[DelegationTracker] = None,
		supervisor: Optional[SupervisorAggregator] = None,
		context_builder: Optional[ContextBuilder] = None,
	):
		"""Initialize the coordinator."""
		self.scheduler = scheduler or WorkPlanScheduler()
		self.supervisor = supervisor
		health_check = supervisor.is_agent_healthy if supervisor else None
		self.resolver = resolver or AssignmentResolver(health_check=health_check)
		self.tracker = tracker or DelegationTracker()
		self.context_builder = context_builder or ContextBuilder()
		self.plans: dict[str, WorkPlan] = {}

	# ------------------------------------------------------------------
	# Boss messages
	# ------------------------------------------------------------------

	def build_boss_message(self, boss_id: str, agents: AgentSnapshot, command: str) -> str:
		"""Wrap a user command with the boss's team digest."""
		summaries = self.supervisor.summaries_for_context() if self.supervisor else None
		return self.context_builder.build_boss_message(boss_id, agents, command, summaries)

	def handle_boss_response(
		self,
		boss_id: str,
		user_command: str,
		text: str,
		agents: AgentSnapshot,
	) -> BossTurn:
		"""
		Act on a boss reply.

		Args:
			boss_id: Boss that produced the reply
			user_command: Command the boss was answering
			text: Raw boss output
			agents: Current agent snapshot

		Returns:
			BossTurn with display text and the intents to deliver now
		"""
		parsed = parse_boss_response(text, fallback_command=user_command)
		turn = BossTurn(
			display_text=parsed.display_text,
			analysis_requests=parsed.analysis_requests,
			spawn_requests=parsed.spawn_requests,
		)
		busy = self.busy_agents()

		for request in parsed.analysis_requests:
			decision = DelegationDecision(
				boss_id=boss_id,
				user_command=user_command,
				selected_agent_id=request.target_agent,
				selected_agent_name=agents[request.target_agent].name if request.target_agent in agents else "Unknown",
				task_command=request.to_instruction(),
				reasoning="Analysis request",
				confidence=Confidence.HIGH,
			)
			self._accept_decision(decision, agents, busy, turn, suggested_class="scout")

		if parsed.work_plan is not None:
			try:
				plan = self.scheduler.materialize(parsed.work_plan, created_by=boss_id)
			except PlanValidationError as e:
				logger.warning(f"Rejected work plan '{parsed.work_plan.name}' from {boss_id}: {e}")
				turn.plan_errors = e.errors
				turn.rejection_message = format_rejection(parsed.work_plan.name, e)
			else:
				self.plans[plan.id] = plan
				turn.plan = plan

		for delegation in parsed.delegations:
			decision = DelegationDecision.from_parsed(delegation, boss_id, user_command)
			selected = agents.get(delegation.selected_agent_id)
			self._accept_decision(decision, agents, busy, turn, selected.agent_class if selected else None)

		return turn

	def _accept_decision(
		self,
		decision: DelegationDecision,
		agents: AgentSnapshot,
		busy: set[str],
		turn: BossTurn,
		suggested_class: Optional[str] = None,
	) -> None:
		if not self.tracker.record(decision):
			return
		turn.decisions.append(decision)
		intent = self._dispatch_decision(decision, agents, busy, suggested_class)
		if intent:
			turn.intents.append(intent)

	def _dispatch_decision(
		self,
		decision: DelegationDecision,
		agents: AgentSnapshot,
		busy: set[str],
		suggested_class: Optional[str] = None,
	) -> Optional[DispatchIntent]:
		request = AssignmentRequest(
			task_text=decision.task_command,
			suggested_class=suggested_class,
			assigned_agent_id=decision.selected_agent_id,
			alternatives=decision.alternative_agents,
			boss_id=decision.boss_id if decision.boss_id in agents else None,
		)
		result = self.resolver.resolve(request, agents, busy)
		if not isinstance(result, Assignment):
			logger.info(f"Delegation {decision.id} left pending: no eligible agent")
			return None

		if result.agent_id != decision.selected_agent_id:
			logger.info(
				f"Delegation {decision.id} rerouted from {decision.selected_agent_id} "
				f"to {result.agent_id} ({result.reason.value})"
			)
			self.tracker.retarget(decision.id, result.agent_id, result.agent_name)
		self.tracker.mark_sent(decision.id)
		busy.add(result.agent_id)

		return DispatchIntent(
			agent_id=result.agent_id,
			task_text=decision.task_command,
			plan_id=decision.plan_id,
			decision_id=decision.id,
			task_id=decision.task_id,
		)

	# ------------------------------------------------------------------
	# Plans
	# ------------------------------------------------------------------

	def get_plan(self, plan_id: str) -> WorkPlan:
		plan = self.plans.get(plan_id)
		if plan is None:
			raise UnknownPlanError(f"Plan {plan_id} not found")
		return plan

	def add_plan(self, plan: WorkPlan) -> WorkPlan:
		"""Track a plan built elsewhere (e.g. reloaded from storage)."""
		self.scheduler.adopt(plan)
		self.plans[plan.id] = plan
		return plan

	def approve_plan(self, plan_id: str) -> WorkPlan:
		return self.scheduler.approve(self.get_plan(plan_id))

	def start_plan(self, plan_id: str) -> WorkPlan:
		"""Approve (if still a draft) and start executing a plan."""
		plan = self.get_plan(plan_id)
		if plan.status == PlanStatus.DRAFT:
			self.scheduler.approve(plan)
		return self.scheduler.start(plan)

	def pause_plan(self, plan_id: str) -> WorkPlan:
		return self.scheduler.pause(self.get_plan(plan_id))

	def resume_plan(self, plan_id: str) -> WorkPlan:
		return self.scheduler.resume(self.get_plan(plan_id))

	def cancel_plan(self, plan_id: str) -> list[str]:
		"""
		Cancel a plan.

		Returns:
			Agent IDs that were working on one of its tasks
		"""
		interrupted = self.scheduler.cancel(self.get_plan(plan_id))
		return [t.assigned_agent_id for t in interrupted if t.assigned_agent_id]

	def cancel_task(self, plan_id: str, task_id: str) -> Task:
		"""Cancel one task; nothing else is cancelled, statuses are recomputed."""
		return self.scheduler.cancel_task(self.get_plan(plan_id), task_id)

	def retry_task(self, plan_id: str, task_id: str) -> Task:
		return self.scheduler.retry_task(self.get_plan(plan_id), task_id)

	def _live_plans(self) -> list[WorkPlan]:
		return [
			plan for plan in self.plans.values()
			if plan.status in (PlanStatus.EXECUTING, PlanStatus.PAUSED)
		]

	# ------------------------------------------------------------------
	# Scheduling loop
	# ------------------------------------------------------------------

	def busy_agents(self) -> set[str]:
		"""Agents holding an in-progress plan task or a sent delegation."""
		busy = {
			task.assigned_agent_id
			for plan in self._live_plans()
			for _, task in plan.iter_tasks()
			if task.status == TaskStatus.IN_PROGRESS and task.assigned_agent_id
		}
		busy.update(decision.selected_agent_id for decision in self.tracker.sent())
		return busy

	def reconcile_failures(self, agents: AgentSnapshot) -> list[Task]:
		"""
		Block tasks held by agents that errored, went offline, were orphaned
		or disappeared from the snapshot. Nothing is reassigned.
		"""
		blocked = []
		for plan in self._live_plans():
			for _, task in list(plan.iter_tasks()):
				if task.status != TaskStatus.IN_PROGRESS or not task.assigned_agent_id:
					continue
				agent = agents.get(task.assigned_agent_id)
				if agent is None:
					reason = f"Agent {task.assigned_agent_id} disappeared"
				elif agent.status in FAILURE_STATUSES:
					reason = f"Agent {agent.name} is {agent.status.value}"
				else:
					continue
				blocked.append(self.scheduler.block_task(plan, task.id, reason))

		for decision in self.tracker.sent():
			agent = agents.get(decision.selected_agent_id)
			if agent is None or agent.status in FAILURE_STATUSES:
				self.tracker.resolve(decision.id, success=False)
		return blocked

	def tick(self, agents: AgentSnapshot) -> list[DispatchIntent]:
		"""
		Run one scheduling pass over a fresh snapshot.

		Order: reconcile failures, retry pending delegations, then hand out
		runnable plan tasks. At most one task per agent.
		"""
		self.reconcile_failures(agents)
		busy = self.busy_agents()
		intents: list[DispatchIntent] = []

		for decision in self.tracker.pending():
			selected = agents.get(decision.selected_agent_id)
			intent = self._dispatch_decision(decision, agents, busy, selected.agent_class if selected else None)
			if intent:
				intents.append(intent)

		for plan in self._live_plans():
			for runnable in self.scheduler.compute_runnable(plan):
				task = runnable.task
				request = AssignmentRequest(
					task_text=task.description,
					suggested_class=task.suggested_class,
					assigned_agent_id=task.assigned_agent_id,
					boss_id=plan.created_by if plan.created_by in agents else None,
				)
				result = self.resolver.resolve(request, agents, busy)
				if not isinstance(result, Assignment):
					continue
				try:
					self.scheduler.start_task(plan, task.id, result.agent_id, result.agent_name)
				except TaskNotRunnableError as e:
					logger.warning(f"Dispatch of {task.id} dropped: {e}")
					continue
				busy.add(result.agent_id)
				intents.append(DispatchIntent(
					agent_id=result.agent_id,
					task_text=task.description,
					plan_id=plan.id,
					task_id=task.id,
				))

		if intents:
			logger.info(f"Tick dispatched {len(intents)} tasks")
		return intents

	def report_task_result(self, agent_id: str, success: bool, result: Optional[str] = None) -> list[Task]:
		"""
		Record that an agent finished its task.

		Resolves the agent's sent delegation and completes (or blocks) the
		plan task it held.
		"""
		self.tracker.on_task_terminal(agent_id, success)
		finished = []
		for plan in self._live_plans():
			for task in plan.tasks_for_agent(agent_id, TaskStatus.IN_PROGRESS):
				if success:
					finished.append(self.scheduler.complete_task(plan, task.id, result))
				else:
					finished.append(self.scheduler.block_task(plan, task.id, result or "Agent reported failure"))
		return finished

	async def on_agent_task_finished(
		self,
		agent_id: str,
		success: bool,
		result: Optional[str] = None,
	) -> Optional[SupervisorReport]:
		"""report_task_result plus a supervisor report trigger."""
		self.report_task_result(agent_id, success, result)
		if self.supervisor is None:
			return None
		return await self.supervisor.notify_task_terminal(agent_id)
