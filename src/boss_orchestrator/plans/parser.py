"""
Work-plan and analysis-request block parsing.

Boss replies carry plans inside ```work-plan fences and scout requests
inside ```analysis-request fences. Both parsers fail open: a missing or
malformed block yields a "nothing found" result carrying the original
text, never an exception.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Union

from pydantic import ValidationError

from ..blocks import as_object_list, find_block, load_block_json
from .models import AnalysisRequest, PhaseExecution, TaskPriority, WorkPlanDraft

logger = logging.getLogger(__name__)

WORK_PLAN_TAG = "work-plan"
ANALYSIS_REQUEST_TAG = "analysis-request"


@dataclass(frozen=True)
class WorkPlanFound:
	"""A draft was extracted; content_without_block is for display."""
	draft: WorkPlanDraft
	content_without_block: str


@dataclass(frozen=True)
class NoWorkPlan:
	"""No usable work-plan block; original_text is untouched."""
	original_text: str


WorkPlanParseResult = Union[WorkPlanFound, NoWorkPlan]


@dataclass(frozen=True)
class AnalysisRequestsFound:
	requests: list[AnalysisRequest] = field(default_factory=list)
	content_without_block: str = ""


@dataclass(frozen=True)
class NoAnalysisRequest:
	original_text: str


AnalysisParseResult = Union[AnalysisRequestsFound, NoAnalysisRequest]


def _enum_or_default(value: Any, enum_cls, default):
	"""Map a raw value onto a closed enum, falling back to default."""
	if isinstance(value, str):
		try:
			return enum_cls(value.strip().lower())
		except ValueError:
			logger.warning(f"Unrecognized {enum_cls.__name__} '{value}', using '{default.value}'")
	return default


def _str_list(value: Any) -> list[str]:
	if not isinstance(value, list):
		return []
	return [str(v) for v in value if v is not None and str(v)]


def _normalize_task(raw: dict) -> dict:
	return {
		"id": str(raw.get("id") or ""),
		"description": str(raw.get("description") or ""),
		"suggestedClass": str(raw.get("suggestedClass") or "builder"),
		"assignToAgent": raw.get("assignToAgent") or None,
		"assignToAgentName": raw.get("assignToAgentName") or None,
		"priority": _enum_or_default(raw.get("priority"), TaskPriority, TaskPriority.MEDIUM),
		"blockedBy": _str_list(raw.get("blockedBy")),
	}


def _normalize_phase(raw: dict) -> dict:
	tasks = raw.get("tasks") or []
	if not isinstance(tasks, list):
		raise ValueError("phase tasks must be an array")
	return {
		"id": str(raw.get("id") or ""),
		"name": str(raw.get("name") or ""),
		"description": str(raw.get("description") or ""),
		"execution": _enum_or_default(raw.get("execution"), PhaseExecution, PhaseExecution.SEQUENTIAL),
		"dependsOn": _str_list(raw.get("dependsOn")),
		"tasks": [_normalize_task(t) for t in as_object_list(tasks)] if tasks else [],
	}


def draft_from_dict(data: Any) -> WorkPlanDraft:
	"""
	Build a WorkPlanDraft from decoded JSON, applying field defaults.

	Missing phase and task ids are generated from their position
	(phase-N, phase-N-task-M).

	Raises:
		ValueError / ValidationError: If the payload is structurally wrong
	"""
	if not isinstance(data, dict):
		raise ValueError("work plan must be a JSON object")

	phases_raw = data.get("phases") or []
	if not isinstance(phases_raw, list):
		raise ValueError("phases must be an array")

	phases = [_normalize_phase(p) for p in as_object_list(phases_raw)] if phases_raw else []
	for i, phase in enumerate(phases):
		if not phase["id"]:
			phase["id"] = f"phase-{i + 1}"
		if not phase["name"]:
			phase["name"] = f"Phase {i + 1}"
		for j, task in enumerate(phase["tasks"]):
			if not task["id"]:
				task["id"] = f"{phase['id']}-task-{j + 1}"

	return WorkPlanDraft.model_validate({
		"name": str(data.get("name") or "Unnamed Plan"),
		"description": str(data.get("description") or ""),
		"phases": phases,
	})


def parse_work_plan_block(text: str) -> WorkPlanParseResult:
	"""Extract a WorkPlanDraft from a ```work-plan block in boss output."""
	block = find_block(text, WORK_PLAN_TAG)
	if block is None:
		return NoWorkPlan(original_text=text)

	try:
		draft = draft_from_dict(load_block_json(block))
	except (json.JSONDecodeError, ValidationError, ValueError, TypeError) as e:
		logger.warning(f"Malformed work-plan block ignored: {e}")
		return NoWorkPlan(original_text=text)

	return WorkPlanFound(draft=draft, content_without_block=block.remove_from(text))


def parse_analysis_request_block(text: str) -> AnalysisParseResult:
	"""Extract scout analysis requests from a ```analysis-request block."""
	block = find_block(text, ANALYSIS_REQUEST_TAG)
	if block is None:
		return NoAnalysisRequest(original_text=text)

	try:
		requests = []
		for item in as_object_list(load_block_json(block)):
			requests.append(AnalysisRequest(
				target_agent=str(item.get("targetAgent") or ""),
				query=str(item.get("query") or ""),
				focus=_str_list(item.get("focus")),
			))
		requests = [r for r in requests if r.target_agent and r.query]
		if not requests:
			raise ValueError("no request has both targetAgent and query")
	except (json.JSONDecodeError, ValidationError, ValueError, TypeError) as e:
		logger.warning(f"Malformed analysis-request block ignored: {e}")
		return NoAnalysisRequest(original_text=text)

	return AnalysisRequestsFound(requests=requests, content_without_block=block.remove_from(text))
