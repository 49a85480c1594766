"""
Supervisor - Folds agent activity into team-wide health reports.

Responsibilities:
- Keep a bounded, newest-first narrative of what each agent is doing
- Analyze every agent from its snapshot and narrative
- Derive the overall team status deterministically from those analyses
- Run on an interval and on terminal task transitions, with at most one
  report computation in flight
- Feed an "is this agent healthy" signal back to task assignment
"""

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, Optional

from pydantic import Field, ValidationError

from ..agents import AgentSnapshot, AgentStatus, Record, now_ms
from ..config import get_config
from .context_builder import truncate

logger = logging.getLogger(__name__)


class NarrativeType(str, Enum):
	TOOL_USE = "tool_use"
	TASK_START = "task_start"
	TASK_COMPLETE = "task_complete"
	ERROR = "error"
	THINKING = "thinking"
	OUTPUT = "output"


class AgentProgress(str, Enum):
	"""Per-agent progress classification."""
	ON_TRACK = "on_track"
	STALLED = "stalled"
	BLOCKED = "blocked"
	COMPLETED = "completed"
	IDLE = "idle"


class OverallStatus(str, Enum):
	"""Team-wide health classification."""
	HEALTHY = "healthy"
	ATTENTION_NEEDED = "attention_needed"
	CRITICAL = "critical"


class ActivityNarrative(Record):
	"""One human-readable line about something an agent did."""
	id: str = Field(default_factory=lambda: str(uuid.uuid4())[:12])
	agent_id: str
	timestamp: int = Field(default_factory=now_ms)
	type: NarrativeType = NarrativeType.OUTPUT
	narrative: str
	tool_name: Optional[str] = None


class AgentStatusSummary(Record):
	"""What the supervisor knows about one agent when a report starts."""
	id: str
	name: str
	agent_class: str = Field(default="builder", alias="class")
	status: AgentStatus
	current_task: Optional[str] = None
	last_assigned_task: Optional[str] = None
	last_activity: int = 0
	recent_narratives: list[ActivityNarrative] = Field(default_factory=list)


class AgentAnalysis(Record):
	"""Supervisor's view of one agent."""
	agent_id: str
	agent_name: str
	status_description: str
	progress: AgentProgress = AgentProgress.IDLE
	recent_work_summary: str = "No recent activity"
	current_focus: Optional[str] = None
	blockers: list[str] = Field(default_factory=list)
	suggestions: list[str] = Field(default_factory=list)
	files_modified: list[str] = Field(default_factory=list)
	concerns: list[str] = Field(default_factory=list)


class SupervisorReport(Record):
	"""A team-wide report."""
	id: str = Field(default_factory=lambda: f"report-{str(uuid.uuid4())[:12]}")
	timestamp: int = Field(default_factory=now_ms)
	agent_summaries: list[AgentAnalysis] = Field(default_factory=list)
	overall_status: OverallStatus = OverallStatus.HEALTHY
	insights: list[str] = Field(default_factory=list)
	recommendations: list[str] = Field(default_factory=list)
	raw_response: Optional[str] = None


class AgentHistoryEntry(Record):
	timestamp: int
	report_id: str
	analysis: AgentAnalysis
	agent_status: Optional[AgentStatus] = Field(default=None, description="Agent status when the report was taken")


# ----------------------------------------------------------------------
# Narratives
# ----------------------------------------------------------------------

def _file_name(path: Any) -> str:
	if not path:
		return "unknown"
	return str(path).replace("\\", "/").rsplit("/", 1)[-1]


def format_tool_narrative(tool_name: Optional[str], tool_input: Optional[Mapping[str, Any]] = None) -> str:
	"""Describe a tool call in plain words."""
	if not tool_name:
		return "Using unknown tool"
	tool_input = tool_input or {}

	if tool_name == "Read":
		return f'Reading file "{_file_name(tool_input.get("file_path"))}" to understand its contents'
	if tool_name == "Write":
		return f'Writing new content to "{_file_name(tool_input.get("file_path"))}"'
	if tool_name == "Edit":
		return f'Making targeted edits to "{_file_name(tool_input.get("file_path"))}"'
	if tool_name == "Bash":
		return f"Running command: {truncate(str(tool_input.get('command') or ''), 60)}"
	if tool_name == "Grep":
		return f'Searching for pattern "{truncate(str(tool_input.get("pattern") or ""), 40)}" in codebase'
	if tool_name == "Glob":
		return f'Finding files matching "{truncate(str(tool_input.get("pattern") or ""), 40)}"'
	if tool_name == "WebSearch":
		return f'Searching the web for "{truncate(str(tool_input.get("query") or ""), 50)}"'
	if tool_name == "WebFetch":
		return f"Fetching content from {truncate(str(tool_input.get('url') or ''), 50)}"
	if tool_name == "Task":
		return f'Starting sub-task: "{truncate(str(tool_input.get("description") or ""), 60)}"'
	return f"Using {tool_name}"


def narrative_from_event(agent_id: str, event: Mapping[str, Any]) -> Optional[ActivityNarrative]:
	"""
	Turn a raw agent event into a narrative.

	Recognized event types: tool_start, text, thinking, error, step_complete.
	Short text output and unknown events produce nothing.
	"""
	event_type = event.get("type")

	if event_type == "tool_start":
		return ActivityNarrative(
			agent_id=agent_id,
			type=NarrativeType.TOOL_USE,
			tool_name=event.get("toolName"),
			narrative=format_tool_narrative(event.get("toolName"), event.get("toolInput")),
		)
	if event_type == "text":
		text = event.get("text") or ""
		if len(text) > 10:
			return ActivityNarrative(
				agent_id=agent_id,
				type=NarrativeType.OUTPUT,
				narrative=f'Responding: "{truncate(text, 100)}"',
			)
		return None
	if event_type == "thinking":
		text = event.get("text") or ""
		if text:
			return ActivityNarrative(
				agent_id=agent_id,
				type=NarrativeType.THINKING,
				narrative=f'Thinking: "{truncate(text, 80)}"',
			)
		return None
	if event_type == "error":
		return ActivityNarrative(
			agent_id=agent_id,
			type=NarrativeType.ERROR,
			narrative=f"Error occurred: {event.get('errorMessage') or 'Unknown error'}",
		)
	if event_type == "step_complete":
		tokens = event.get("tokens") or {}
		return ActivityNarrative(
			agent_id=agent_id,
			type=NarrativeType.TASK_COMPLETE,
			narrative=(
				f"Completed processing step ({tokens.get('input', 0)} input, "
				f"{tokens.get('output', 0)} output tokens)"
			),
		)
	return None


# ----------------------------------------------------------------------
# Analysis
# ----------------------------------------------------------------------

_BLOCKED_DETAILS = {
	AgentStatus.ERROR: ("Agent reported an error", None),
	AgentStatus.OFFLINE: ("Agent is offline", None),
	AgentStatus.ORPHANED: ("Agent process is orphaned", "Restart the agent process"),
	AgentStatus.WAITING_PERMISSION: ("Waiting for permission approval", "Approve or deny the pending permission request"),
}


def analyze_agent(summary: AgentStatusSummary, now: int, stall_after_ms: int) -> AgentAnalysis:
	"""Deterministic per-agent analysis from status, activity age and narrative."""
	latest = summary.recent_narratives[0] if summary.recent_narratives else None
	analysis = AgentAnalysis(
		agent_id=summary.id,
		agent_name=summary.name,
		status_description=f"{summary.status.value} - {summary.current_task or 'No current task'}",
		recent_work_summary=latest.narrative if latest else "No recent activity",
		current_focus=summary.current_task,
	)

	if summary.status in _BLOCKED_DETAILS:
		blocker, suggestion = _BLOCKED_DETAILS[summary.status]
		analysis.progress = AgentProgress.BLOCKED
		analysis.blockers = [blocker]
		if suggestion:
			analysis.suggestions = [suggestion]
		return analysis

	if summary.status == AgentStatus.WORKING:
		idle_for = now - summary.last_activity if summary.last_activity else 0
		if idle_for > stall_after_ms:
			analysis.progress = AgentProgress.STALLED
			analysis.concerns = [f"No activity for {idle_for // 60_000} min"]
		else:
			analysis.progress = AgentProgress.ON_TRACK
		return analysis

	if latest and latest.type == NarrativeType.TASK_COMPLETE:
		analysis.progress = AgentProgress.COMPLETED
	else:
		analysis.progress = AgentProgress.IDLE
	return analysis


def derive_overall_status(
	analyses: list[AgentAnalysis],
	blocked_since: Mapping[str, int],
	now: int,
	staleness_ms: int,
) -> OverallStatus:
	"""
	Team status from the worst per-agent progress.

	critical: an agent has been blocked, with no suggestion on record, for
	longer than the staleness window. attention_needed: any agent is
	stalled, or blocked within the window. Otherwise healthy.
	"""
	status = OverallStatus.HEALTHY
	for analysis in analyses:
		if analysis.progress == AgentProgress.BLOCKED:
			since = blocked_since.get(analysis.agent_id, now)
			if not analysis.suggestions and now - since > staleness_ms:
				return OverallStatus.CRITICAL
			status = OverallStatus.ATTENTION_NEEDED
		elif analysis.progress == AgentProgress.STALLED:
			status = OverallStatus.ATTENTION_NEEDED
	return status


@dataclass
class ParsedAnalysis:
	"""Analyses read from a model-written report."""
	analyses: list[AgentAnalysis] = field(default_factory=list)
	insights: list[str] = field(default_factory=list)
	recommendations: list[str] = field(default_factory=list)


def _strip_fence(text: str) -> str:
	text = text.strip()
	if text.startswith("```json"):
		text = text[7:]
	elif text.startswith("```"):
		text = text[3:]
	if text.endswith("```"):
		text = text[:-3]
	return text.strip()


def parse_analysis_response(response: str, summaries: list[AgentStatusSummary]) -> Optional[ParsedAnalysis]:
	"""
	Read a JSON report produced by an external analyzer.

	Analyses without an agentId are matched to an agent by name. Any
	overallStatus in the payload is ignored; it is always derived.

	Returns:
		ParsedAnalysis, or None when the response is unusable
	"""
	try:
		data = json.loads(_strip_fence(response))
		if not isinstance(data, dict):
			raise ValueError("analysis response must be a JSON object")

		by_name = {s.name: s.id for s in summaries}
		analyses = []
		for raw in data.get("agentAnalyses") or []:
			if not isinstance(raw, dict):
				continue
			agent_id = raw.get("agentId") or by_name.get(raw.get("agentName") or "")
			if not agent_id:
				continue
			try:
				progress = AgentProgress(raw.get("progress") or "idle")
			except ValueError:
				progress = AgentProgress.IDLE
			analyses.append(AgentAnalysis(
				agent_id=agent_id,
				agent_name=raw.get("agentName") or "",
				status_description=raw.get("statusDescription") or "Unknown status",
				progress=progress,
				recent_work_summary=raw.get("recentWorkSummary") or "No recent activity",
				current_focus=raw.get("currentFocus"),
				blockers=list(raw.get("blockers") or []),
				suggestions=list(raw.get("suggestions") or []),
				files_modified=list(raw.get("filesModified") or []),
				concerns=list(raw.get("concerns") or []),
			))

		return ParsedAnalysis(
			analyses=analyses,
			insights=[str(i) for i in data.get("insights") or []],
			recommendations=[str(r) for r in data.get("recommendations") or []],
		)
	except (json.JSONDecodeError, ValidationError, ValueError, TypeError, RecursionError) as e:
		logger.error(f"Failed to parse analysis response: {e}")
		return None


# ----------------------------------------------------------------------
# Aggregator
# ----------------------------------------------------------------------

class SupervisorAggregator:
	"""
	Produces SupervisorReports for the whole team.

	Report generation is read-only over the snapshot it is given. Triggers
	that arrive while a computation is running share its result instead of
	starting another one.

	Usage:
		supervisor = SupervisorAggregator(snapshot_provider=lambda: agents)
		supervisor.start()
		...
		report = await supervisor.notify_task_terminal("agent-1")
		...
		await supervisor.stop()
	"""

	def __init__(
		self,
		snapshot_provider: Optional[Callable[[], AgentSnapshot]] = None,
		analyzer: Optional[Callable[[list[AgentStatusSummary]], Awaitable[str]]] = None,
		on_report: Optional[Callable[[SupervisorReport], Awaitable[None]]] = None,
		interval_seconds: Optional[float] = None,
		staleness_ms: Optional[int] = None,
		stall_after_ms: Optional[int] = None,
	):
		"""
		Initialize the aggregator.

		Args:
			snapshot_provider: Returns the current agent snapshot
			analyzer: Optional external analyzer returning a JSON report
			on_report: Callback(report) after each report
			interval_seconds: Periodic report interval
			staleness_ms: How long an unsuggested block lasts before it is critical
			stall_after_ms: Inactivity after which a working agent counts as stalled
		"""
		config = get_config()
		self.snapshot_provider = snapshot_provider
		self.analyzer = analyzer
		self.on_report = on_report
		self.interval_seconds = interval_seconds if interval_seconds is not None else config.supervisor_interval_seconds
		self.staleness_ms = staleness_ms if staleness_ms is not None else config.supervisor_staleness_ms
		self.stall_after_ms = stall_after_ms if stall_after_ms is not None else config.supervisor_stall_after_ms
		self.max_narratives = config.max_narratives_per_agent
		self.max_history = config.max_agent_history
		self.auto_report_on_complete = config.auto_report_on_complete

		self.enabled = True
		self.reports_generated = 0
		self.latest_report: Optional[SupervisorReport] = None

		self._narratives: dict[str, list[ActivityNarrative]] = {}
		self._history: dict[str, list[AgentHistoryEntry]] = {}
		self._blocked_since: dict[str, int] = {}
		self._in_flight: Optional[asyncio.Task] = None
		self._loop_task: Optional[asyncio.Task] = None

	# -- narratives ---------------------------------------------------

	def record_narrative(self, narrative: ActivityNarrative) -> None:
		"""Store a narrative, newest first, bounded per agent."""
		items = self._narratives.setdefault(narrative.agent_id, [])
		items.insert(0, narrative)
		del items[self.max_narratives:]

	def narrate_event(self, agent_id: str, event: Mapping[str, Any]) -> Optional[ActivityNarrative]:
		narrative = narrative_from_event(agent_id, event)
		if narrative:
			self.record_narrative(narrative)
		return narrative

	async def handle_event(self, agent_id: str, event: Mapping[str, Any]) -> Optional[ActivityNarrative]:
		"""Narrate an event; a completed step also triggers a report."""
		narrative = self.narrate_event(agent_id, event)
		if narrative and narrative.type == NarrativeType.TASK_COMPLETE:
			await self.notify_task_terminal(agent_id)
		return narrative

	def get_narratives(self, agent_id: str) -> list[ActivityNarrative]:
		return list(self._narratives.get(agent_id, []))

	def forget_agent(self, agent_id: str) -> None:
		self._narratives.pop(agent_id, None)
		self._history.pop(agent_id, None)
		self._blocked_since.pop(agent_id, None)

	# -- analysis -----------------------------------------------------

	def summarize(self, agents: AgentSnapshot) -> list[AgentStatusSummary]:
		"""Status summaries for every non-boss agent in the snapshot."""
		return [
			AgentStatusSummary(
				id=agent.id,
				name=agent.name,
				agent_class=agent.agent_class,
				status=agent.status,
				current_task=agent.current_task,
				last_assigned_task=agent.last_assigned_task,
				last_activity=agent.last_activity,
				recent_narratives=self.get_narratives(agent.id),
			)
			for agent in agents.values()
			if not agent.manages_team
		]

	async def _analyze(
		self,
		summaries: list[AgentStatusSummary],
		now: int,
	) -> tuple[list[AgentAnalysis], list[str], list[str], Optional[str]]:
		defaults = [analyze_agent(s, now, self.stall_after_ms) for s in summaries]
		if self.analyzer is None or not summaries:
			return defaults, [], [], None

		try:
			response = await self.analyzer(summaries)
		except Exception as e:
			logger.error(f"Supervisor analyzer failed: {e}")
			return defaults, ["Unable to generate detailed analysis - using basic status"], [], None

		parsed = parse_analysis_response(response, summaries)
		if parsed is None:
			return defaults, ["Unable to generate detailed analysis - using basic status"], [], response

		by_id = {a.agent_id: a for a in parsed.analyses}
		analyses = [by_id.get(d.agent_id, d) for d in defaults]
		return analyses, parsed.insights, parsed.recommendations, response

	def _track_blocked(self, analyses: list[AgentAnalysis], now: int) -> None:
		blocked = {a.agent_id for a in analyses if a.progress == AgentProgress.BLOCKED}
		for agent_id in list(self._blocked_since):
			if agent_id not in blocked:
				del self._blocked_since[agent_id]
		for agent_id in blocked:
			self._blocked_since.setdefault(agent_id, now)

	def _save_history(self, report: SupervisorReport, summaries: list[AgentStatusSummary]) -> None:
		statuses = {s.id: s.status for s in summaries}
		for analysis in report.agent_summaries:
			entries = self._history.setdefault(analysis.agent_id, [])
			entries.insert(0, AgentHistoryEntry(
				timestamp=report.timestamp,
				report_id=report.id,
				analysis=analysis,
				agent_status=statuses.get(analysis.agent_id),
			))
			del entries[self.max_history:]

	async def _compute(self, agents: AgentSnapshot) -> SupervisorReport:
		now = now_ms()
		summaries = self.summarize(agents)
		analyses, insights, recommendations, raw = await self._analyze(summaries, now)

		self._track_blocked(analyses, now)
		report = SupervisorReport(
			timestamp=now,
			agent_summaries=analyses,
			overall_status=derive_overall_status(analyses, self._blocked_since, now, self.staleness_ms),
			insights=insights,
			recommendations=recommendations,
			raw_response=raw,
		)

		self.reports_generated += 1
		self.latest_report = report
		self._save_history(report, summaries)
		logger.info(f"Supervisor report {report.id}: {report.overall_status.value} ({len(analyses)} agents)")

		if self.on_report:
			try:
				await self.on_report(report)
			except Exception as e:
				logger.error(f"Report callback failed: {e}")

		return report

	async def generate_report(self, agents: Optional[AgentSnapshot] = None) -> SupervisorReport:
		"""
		Generate a report, joining the one in flight if there is one.

		Args:
			agents: Snapshot to analyze; defaults to the snapshot provider
		"""
		if self._in_flight is not None and not self._in_flight.done():
			logger.debug("Report already in flight, coalescing trigger")
			return await asyncio.shield(self._in_flight)

		if agents is None:
			agents = self.snapshot_provider() if self.snapshot_provider else {}
		self._in_flight = asyncio.create_task(self._compute(agents))
		return await asyncio.shield(self._in_flight)

	async def notify_task_terminal(self, agent_id: str) -> Optional[SupervisorReport]:
		"""Trigger a report because an agent's task finished."""
		if not self.enabled or not self.auto_report_on_complete:
			return None
		logger.debug(f"Task terminal on {agent_id}, triggering report")
		return await self.generate_report()

	# -- feedback -----------------------------------------------------

	def get_agent_history(self, agent_id: str) -> list[AgentHistoryEntry]:
		return list(self._history.get(agent_id, []))

	def latest_analysis(self, agent_id: str) -> Optional[AgentAnalysis]:
		entries = self._history.get(agent_id)
		return entries[0].analysis if entries else None

	def is_agent_healthy(self, agent_id: str, current_status: Optional[AgentStatus] = None) -> bool:
		"""
		False while the latest analysis says the agent is stalled or blocked.

		When current_status is given and differs from the status the analysis
		was taken at, the analysis is out of date and the agent counts as healthy.
		"""
		entries = self._history.get(agent_id)
		if not entries:
			return True
		latest = entries[0]
		if current_status is not None and latest.agent_status is not None and current_status != latest.agent_status:
			return True
		return latest.analysis.progress not in (AgentProgress.STALLED, AgentProgress.BLOCKED)

	def summaries_for_context(self) -> dict[str, str]:
		"""Latest one-line summary per agent, for the boss's team digest."""
		return {
			agent_id: entries[0].analysis.recent_work_summary
			for agent_id, entries in self._history.items()
			if entries
		}

	# -- interval loop ------------------------------------------------

	def start(self) -> None:
		"""Start periodic reporting on the running event loop."""
		if self._loop_task is None or self._loop_task.done():
			self._loop_task = asyncio.create_task(self._run())
			logger.info(f"Supervisor started (every {self.interval_seconds}s)")

	async def stop(self) -> None:
		if self._loop_task is None:
			return
		self._loop_task.cancel()
		try:
			await self._loop_task
		except asyncio.CancelledError:
			pass
		self._loop_task = None
		logger.info("Supervisor stopped")

	@property
	def is_running(self) -> bool:
		return self._loop_task is not None and not self._loop_task.done()

	async def _run(self) -> None:
		while True:
			try:
				await asyncio.sleep(self.interval_seconds)
				if self.enabled:
					await self.generate_report()
			except asyncio.CancelledError:
				break
			except Exception as e:
				logger.error(f"Supervisor loop error: {e}")
