"""
Delegation Tracker - Records routing decisions and their outcomes.

Every decision is appended to its boss's bounded history. A decision
moves pending -> sent when dispatched, then sent -> completed | failed
when the delegated task resolves. Lookups by receiving agent label
incoming work as a delegated hand-off rather than a direct user command.
"""

import logging
from typing import Iterable, Optional

from ..agents import now_ms
from ..config import get_config
from .delegation import DelegationDecision, DelegationStatus

logger = logging.getLogger(__name__)

DUPLICATE_WINDOW_MS = 10_000


class UnknownDecisionError(LookupError):
	pass


class DelegationTracker:
	"""
	Tracks delegation decisions per boss.

	Usage:
		tracker = DelegationTracker()
		tracker.record(decision)
		tracker.mark_sent(decision.id)
		...
		tracker.on_task_terminal(agent_id, success=True)
	"""

	def __init__(self, max_history: Optional[int] = None):
		"""Initialize the tracker."""
		self.max_history = max_history if max_history is not None else get_config().max_delegation_history
		self._histories: dict[str, list[DelegationDecision]] = {}
		self._by_id: dict[str, DelegationDecision] = {}

	def _append(self, decision: DelegationDecision) -> None:
		history = self._histories.setdefault(decision.boss_id, [])
		history.append(decision)
		self._by_id[decision.id] = decision
		while len(history) > self.max_history:
			dropped = history.pop(0)
			self._by_id.pop(dropped.id, None)

	def is_duplicate(self, decision: DelegationDecision, now: Optional[int] = None) -> bool:
		"""Same boss, target and command within the duplicate window."""
		now = now if now is not None else now_ms()
		for previous in reversed(self._histories.get(decision.boss_id, [])):
			if now - previous.timestamp > DUPLICATE_WINDOW_MS:
				break
			if (
				previous.selected_agent_id == decision.selected_agent_id
				and previous.task_command == decision.task_command
			):
				return True
		return False

	def record(self, decision: DelegationDecision) -> bool:
		"""
		Append a decision to its boss's history.

		Returns:
			False if it was skipped as a duplicate of a recent decision
		"""
		if self.is_duplicate(decision, decision.timestamp):
			logger.info(f"Skipping duplicate delegation to {decision.selected_agent_id} from boss {decision.boss_id}")
			return False
		self._append(decision)
		logger.info(
			f"Delegation {decision.id}: boss {decision.boss_id} -> {decision.selected_agent_name} "
			f"({decision.confidence.value})"
		)
		return True

	def get(self, decision_id: str) -> DelegationDecision:
		decision = self._by_id.get(decision_id)
		if decision is None:
			raise UnknownDecisionError(f"Delegation {decision_id} not found")
		return decision

	def retarget(self, decision_id: str, agent_id: str, agent_name: str) -> DelegationDecision:
		"""Point a pending decision at the agent it was actually resolved to."""
		decision = self.get(decision_id)
		decision.selected_agent_id = agent_id
		decision.selected_agent_name = agent_name
		return decision

	def mark_sent(self, decision_id: str) -> DelegationDecision:
		decision = self.get(decision_id)
		if decision.status != DelegationStatus.PENDING:
			logger.warning(f"Delegation {decision_id} already {decision.status.value}")
			return decision
		decision.status = DelegationStatus.SENT
		return decision

	def resolve(self, decision_id: str, success: bool) -> DelegationDecision:
		"""Move a sent decision to completed or failed. Other statuses are left alone."""
		decision = self.get(decision_id)
		if decision.status != DelegationStatus.SENT:
			logger.debug(f"Delegation {decision_id} is {decision.status.value}, not resolving")
			return decision
		decision.status = DelegationStatus.COMPLETED if success else DelegationStatus.FAILED
		decision.resolved_at = now_ms()
		logger.info(f"Delegation {decision_id} {decision.status.value}")
		return decision

	def on_task_terminal(self, agent_id: str, success: bool) -> Optional[DelegationDecision]:
		"""Resolve the sent decision an agent was working on, if any."""
		decision = self.last_received(agent_id, DelegationStatus.SENT)
		if decision is None:
			return None
		return self.resolve(decision.id, success)

	def last_received(
		self,
		agent_id: str,
		status: Optional[DelegationStatus] = None,
	) -> Optional[DelegationDecision]:
		"""Most recent decision routed to an agent, across all bosses."""
		latest = None
		for decision in self._by_id.values():
			if decision.selected_agent_id != agent_id:
				continue
			if status is not None and decision.status != status:
				continue
			if latest is None or decision.timestamp >= latest.timestamp:
				latest = decision
		return latest

	def is_delegated_handoff(self, agent_id: str, command: str) -> bool:
		"""True when a command reaching an agent came from a boss delegation."""
		decision = self.last_received(agent_id)
		return decision is not None and decision.task_command.strip() == command.strip()

	def history(self, boss_id: str) -> list[DelegationDecision]:
		"""Decisions of a boss, oldest first."""
		return list(self._histories.get(boss_id, []))

	def pending(self) -> list[DelegationDecision]:
		return [d for d in self._by_id.values() if d.status == DelegationStatus.PENDING]

	def sent(self) -> list[DelegationDecision]:
		"""Decisions dispatched and still awaiting an outcome."""
		return [d for d in self._by_id.values() if d.status == DelegationStatus.SENT]

	def forget_boss(self, boss_id: str) -> int:
		"""Delete a boss's history (boss torn down). Returns how many were removed."""
		history = self._histories.pop(boss_id, [])
		for decision in history:
			self._by_id.pop(decision.id, None)
		if history:
			logger.info(f"Deleted delegation history for boss {boss_id}")
		return len(history)

	def export_records(self) -> dict[str, list[dict]]:
		"""All histories as plain camelCase records keyed by boss ID."""
		return {
			boss_id: [d.to_record() for d in history]
			for boss_id, history in self._histories.items()
		}

	def load_records(self, records: dict[str, Iterable[dict]]) -> int:
		"""Replace tracked histories with previously exported records."""
		self._histories.clear()
		self._by_id.clear()
		count = 0
		for items in records.values():
			for item in items:
				self._append(DelegationDecision.model_validate(item))
				count += 1
		return count
