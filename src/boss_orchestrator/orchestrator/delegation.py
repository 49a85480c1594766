"""
Delegation parsing - Structured routing decisions from boss output.

A boss reply may embed one ```delegation block holding a JSON object or
an array of objects; each object names the subordinate that should
receive a task. The parsers here are pure: they never raise and never
drop user-visible text. An unreadable block, or one with no usable entry,
means "nothing found" and the original text comes back unchanged.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from pydantic import Field, ValidationError

from ..agents import Record, now_ms
from ..blocks import as_object_list, find_block, load_block_json
from ..plans.models import AnalysisRequest, WorkPlanDraft
from ..plans.parser import (
	AnalysisRequestsFound,
	WorkPlanFound,
	parse_analysis_request_block,
	parse_work_plan_block,
)

logger = logging.getLogger(__name__)

DELEGATION_TAG = "delegation"
SPAWN_TAG = "spawn"


class Confidence(str, Enum):
	"""How sure the boss is about a routing choice."""
	HIGH = "high"
	MEDIUM = "medium"
	LOW = "low"


class DelegationStatus(str, Enum):
	"""Lifecycle of a delegation decision."""
	PENDING = "pending"
	SENT = "sent"
	COMPLETED = "completed"
	FAILED = "failed"


class AlternativeAgent(Record):
	"""A fallback candidate, in the boss's order of preference."""
	id: str
	name: str = ""
	reason: Optional[str] = Field(default=None, description="Why it was not the first choice")


class ParsedDelegation(Record):
	"""One decision as written by the boss, before it is tracked."""
	selected_agent_id: str
	selected_agent_name: str = "Unknown"
	task_command: str
	reasoning: str = ""
	alternative_agents: list[AlternativeAgent] = Field(default_factory=list)
	confidence: Confidence = Confidence.MEDIUM


class DelegationDecision(Record):
	"""A tracked routing decision."""
	id: str = Field(default_factory=lambda: f"del-{str(uuid.uuid4())[:12]}")
	timestamp: int = Field(default_factory=now_ms)
	boss_id: str
	user_command: str = Field(default="", description="Original user command the boss answered")
	selected_agent_id: str
	selected_agent_name: str = "Unknown"
	task_command: str = ""
	reasoning: str = ""
	alternative_agents: list[AlternativeAgent] = Field(default_factory=list)
	confidence: Confidence = Confidence.MEDIUM
	status: DelegationStatus = DelegationStatus.PENDING
	plan_id: Optional[str] = None
	task_id: Optional[str] = None
	resolved_at: Optional[int] = None

	@classmethod
	def from_parsed(cls, parsed: ParsedDelegation, boss_id: str, user_command: str = "") -> "DelegationDecision":
		return cls(
			boss_id=boss_id,
			user_command=user_command,
			selected_agent_id=parsed.selected_agent_id,
			selected_agent_name=parsed.selected_agent_name,
			task_command=parsed.task_command,
			reasoning=parsed.reasoning,
			alternative_agents=list(parsed.alternative_agents),
			confidence=parsed.confidence,
		)


@dataclass(frozen=True)
class DelegationFound:
	"""Decisions in array order; content_without_block is for display."""
	delegations: list[ParsedDelegation]
	content_without_block: str


@dataclass(frozen=True)
class NoDelegation:
	original_text: str


DelegationParseResult = Union[DelegationFound, NoDelegation]


class SpawnRequest(Record):
	"""A boss asking for a new subordinate. Spawning is done by the caller."""
	name: str
	agent_class: str = Field(default="builder", alias="class")
	cwd: Optional[str] = None


def _text(value: Any) -> str:
	if value is None:
		return ""
	return str(value).strip()


def _parse_confidence(value: Any) -> Confidence:
	if isinstance(value, str):
		try:
			return Confidence(value.strip().lower())
		except ValueError:
			pass
	return Confidence.MEDIUM


def _parse_alternatives(value: Any) -> list[AlternativeAgent]:
	if not isinstance(value, list):
		return []
	alternatives = []
	for item in value:
		if isinstance(item, str) and item.strip():
			alternatives.append(AlternativeAgent(id=item.strip(), name=item.strip()))
		elif isinstance(item, dict) and _text(item.get("id")):
			alternatives.append(AlternativeAgent(
				id=_text(item.get("id")),
				name=_text(item.get("name")) or _text(item.get("id")),
				reason=_text(item.get("reason")) or None,
			))
	return alternatives


def _parse_delegation_object(raw: Any, fallback_command: str = "") -> Optional[ParsedDelegation]:
	"""One decision, or None when the object names no usable target or command."""
	if not isinstance(raw, dict):
		logger.warning(f"Skipping delegation entry of type {type(raw).__name__}")
		return None
	agent_id = _text(raw.get("selectedAgentId"))
	command = _text(raw.get("taskCommand")) or _text(fallback_command)
	if not agent_id:
		logger.warning("Skipping delegation without selectedAgentId")
		return None
	if not command:
		logger.warning(f"Skipping delegation to {agent_id} without taskCommand")
		return None

	return ParsedDelegation(
		selected_agent_id=agent_id,
		selected_agent_name=_text(raw.get("selectedAgentName")) or "Unknown",
		task_command=command,
		reasoning=_text(raw.get("reasoning")),
		alternative_agents=_parse_alternatives(raw.get("alternativeAgents")),
		confidence=_parse_confidence(raw.get("confidence")),
	)


def parse_delegation_response(text: str, fallback_command: str = "") -> DelegationParseResult:
	"""
	Extract delegation decisions from a boss response.

	Objects are taken one at a time: an entry without a target is skipped,
	and one without a taskCommand gets fallback_command (the user command
	the boss was answering) or is skipped when that is empty too.

	Args:
		text: Raw boss output
		fallback_command: Command used for entries that omit taskCommand

	Returns:
		DelegationFound with decisions in array order, or NoDelegation with
		the untouched text when the block is absent or has no usable entry
	"""
	block = find_block(text, DELEGATION_TAG)
	if block is None:
		return NoDelegation(original_text=text)

	try:
		data = load_block_json(block)
		items = data if isinstance(data, list) else [data]
		delegations = [
			parsed for parsed in (_parse_delegation_object(item, fallback_command) for item in items)
			if parsed is not None
		]
	except (json.JSONDecodeError, ValidationError, ValueError, TypeError) as e:
		logger.warning(f"Malformed delegation block ignored: {e}")
		return NoDelegation(original_text=text)

	if not delegations:
		logger.warning("Delegation block held no usable decisions")
		return NoDelegation(original_text=text)

	return DelegationFound(delegations=delegations, content_without_block=block.remove_from(text))


def parse_spawn_block(text: str) -> tuple[list[SpawnRequest], str]:
	"""
	Extract spawn requests from a ```spawn block.

	Returns:
		(requests, text without the block); ([], text) when nothing usable
	"""
	block = find_block(text, SPAWN_TAG)
	if block is None:
		return [], text

	try:
		requests = []
		for item in as_object_list(load_block_json(block)):
			name = _text(item.get("name"))
			if not name:
				continue
			requests.append(SpawnRequest(
				name=name,
				agent_class=_text(item.get("class")) or "builder",
				cwd=_text(item.get("cwd")) or None,
			))
	except (json.JSONDecodeError, ValidationError, ValueError, TypeError) as e:
		logger.warning(f"Malformed spawn block ignored: {e}")
		return [], text

	if not requests:
		return [], text
	return requests, block.remove_from(text)


@dataclass
class BossResponse:
	"""Everything recognized in one boss reply."""
	display_text: str
	analysis_requests: list[AnalysisRequest] = field(default_factory=list)
	work_plan: Optional[WorkPlanDraft] = None
	delegations: list[ParsedDelegation] = field(default_factory=list)
	spawn_requests: list[SpawnRequest] = field(default_factory=list)

	@property
	def has_actions(self) -> bool:
		return bool(self.analysis_requests or self.work_plan or self.delegations or self.spawn_requests)


def parse_boss_response(text: str, fallback_command: str = "") -> BossResponse:
	"""
	Run every block parser over a boss reply.

	Blocks are looked for in a fixed order (analysis-request, work-plan,
	delegation, spawn); each recognized block is cut from the display text
	before the next parser runs.
	"""
	remaining = text

	analysis = parse_analysis_request_block(remaining)
	requests: list[AnalysisRequest] = []
	if isinstance(analysis, AnalysisRequestsFound):
		requests = analysis.requests
		remaining = analysis.content_without_block

	plan = parse_work_plan_block(remaining)
	draft: Optional[WorkPlanDraft] = None
	if isinstance(plan, WorkPlanFound):
		draft = plan.draft
		remaining = plan.content_without_block

	delegation = parse_delegation_response(remaining, fallback_command)
	delegations: list[ParsedDelegation] = []
	if isinstance(delegation, DelegationFound):
		delegations = delegation.delegations
		remaining = delegation.content_without_block

	spawns, remaining = parse_spawn_block(remaining)

	return BossResponse(
		display_text=remaining,
		analysis_requests=requests,
		work_plan=draft,
		delegations=delegations,
		spawn_requests=spawns,
	)
