"""
Tests for the SupervisorAggregator.

Tests:
- Narrative formatting and bounded storage
- Per-agent analysis and overall status derivation
- Report coalescing and triggers
- External analyzer parsing and fallback
"""

import asyncio
import json

import pytest

from boss_orchestrator.agents import AgentStatus, snapshot_of
from boss_orchestrator.orchestrator import supervisor as supervisor_module
from boss_orchestrator.orchestrator.resolver import Assignment, AssignmentRequest, AssignmentResolver
from boss_orchestrator.orchestrator.supervisor import (
	ActivityNarrative,
	AgentAnalysis,
	AgentProgress,
	AgentStatusSummary,
	NarrativeType,
	OverallStatus,
	SupervisorAggregator,
	analyze_agent,
	derive_overall_status,
	format_tool_narrative,
	narrative_from_event,
	parse_analysis_response,
)

from .helpers import make_agent, make_team

NOW = 10_000_000


def _summary(agent_id="a1", status=AgentStatus.IDLE, last_activity=NOW, narratives=None, **kwargs):
	return AgentStatusSummary(
		id=agent_id,
		name=agent_id.upper(),
		status=status,
		last_activity=last_activity,
		recent_narratives=narratives or [],
		**kwargs,
	)


def _analysis(agent_id, progress, suggestions=None):
	return AgentAnalysis(
		agent_id=agent_id,
		agent_name=agent_id,
		status_description="x",
		progress=progress,
		suggestions=suggestions or [],
	)


class TestNarratives:
	"""Tests for narrative creation and storage."""

	def test_tool_narratives(self):
		assert format_tool_narrative("Read", {"file_path": "/repo/src/app.py"}) == (
			'Reading file "app.py" to understand its contents'
		)
		assert format_tool_narrative("Bash", {"command": "pytest -q"}) == "Running command: pytest -q"
		assert format_tool_narrative("Grep", {"pattern": "TODO"}) == 'Searching for pattern "TODO" in codebase'
		assert format_tool_narrative("Mystery") == "Using Mystery"
		assert format_tool_narrative(None) == "Using unknown tool"

	def test_event_types(self):
		tool = narrative_from_event("a1", {"type": "tool_start", "toolName": "Edit", "toolInput": {"file_path": "x/y.ts"}})
		assert tool.type == NarrativeType.TOOL_USE
		assert tool.tool_name == "Edit"
		assert tool.narrative == 'Making targeted edits to "y.ts"'

		error = narrative_from_event("a1", {"type": "error", "errorMessage": "boom"})
		assert error.type == NarrativeType.ERROR
		assert error.narrative == "Error occurred: boom"

		step = narrative_from_event("a1", {"type": "step_complete", "tokens": {"input": 5, "output": 7}})
		assert step.type == NarrativeType.TASK_COMPLETE
		assert "5 input, 7 output" in step.narrative

	def test_short_text_and_unknown_events_ignored(self):
		assert narrative_from_event("a1", {"type": "text", "text": "ok"}) is None
		assert narrative_from_event("a1", {"type": "heartbeat"}) is None
		assert narrative_from_event("a1", {"type": "text", "text": "A longer piece of output"}).type == NarrativeType.OUTPUT

	def test_bounded_newest_first(self):
		supervisor = SupervisorAggregator()
		for i in range(25):
			supervisor.record_narrative(ActivityNarrative(agent_id="a1", narrative=f"step {i}"))

		items = supervisor.get_narratives("a1")

		assert len(items) == 20
		assert items[0].narrative == "step 24"
		assert items[-1].narrative == "step 5"

	def test_forget_agent(self):
		supervisor = SupervisorAggregator()
		supervisor.narrate_event("a1", {"type": "error", "errorMessage": "x"})
		supervisor.forget_agent("a1")
		assert supervisor.get_narratives("a1") == []


class TestAnalysis:
	"""Tests for deterministic per-agent analysis."""

	def test_working_recently_is_on_track(self):
		analysis = analyze_agent(_summary(status=AgentStatus.WORKING, current_task="Build"), NOW, 60_000)
		assert analysis.progress == AgentProgress.ON_TRACK
		assert analysis.current_focus == "Build"

	def test_working_without_activity_is_stalled(self):
		analysis = analyze_agent(
			_summary(status=AgentStatus.WORKING, last_activity=NOW - 5 * 60_000), NOW, 60_000,
		)
		assert analysis.progress == AgentProgress.STALLED
		assert analysis.concerns == ["No activity for 5 min"]

	def test_error_is_blocked_without_suggestion(self):
		analysis = analyze_agent(_summary(status=AgentStatus.ERROR), NOW, 60_000)
		assert analysis.progress == AgentProgress.BLOCKED
		assert analysis.blockers == ["Agent reported an error"]
		assert analysis.suggestions == []

	def test_waiting_permission_has_suggestion(self):
		analysis = analyze_agent(_summary(status=AgentStatus.WAITING_PERMISSION), NOW, 60_000)
		assert analysis.progress == AgentProgress.BLOCKED
		assert analysis.suggestions

	def test_idle_after_completion(self):
		done = ActivityNarrative(agent_id="a1", type=NarrativeType.TASK_COMPLETE, narrative="Completed")
		analysis = analyze_agent(_summary(narratives=[done]), NOW, 60_000)
		assert analysis.progress == AgentProgress.COMPLETED
		assert analysis.recent_work_summary == "Completed"

	def test_idle(self):
		assert analyze_agent(_summary(), NOW, 60_000).progress == AgentProgress.IDLE


class TestOverallStatus:
	"""Tests for team-wide status derivation."""

	def test_blocked_and_on_track_needs_attention(self):
		analyses = [_analysis("a1", AgentProgress.BLOCKED), _analysis("a2", AgentProgress.ON_TRACK)]
		assert derive_overall_status(analyses, {"a1": NOW}, NOW, 300_000) == OverallStatus.ATTENTION_NEEDED

	def test_stale_unsuggested_block_is_critical(self):
		analyses = [_analysis("a1", AgentProgress.BLOCKED), _analysis("a2", AgentProgress.ON_TRACK)]
		blocked_since = {"a1": NOW - 300_001}
		assert derive_overall_status(analyses, blocked_since, NOW, 300_000) == OverallStatus.CRITICAL

	def test_stale_block_with_suggestion_is_not_critical(self):
		analyses = [_analysis("a1", AgentProgress.BLOCKED, suggestions=["Approve it"])]
		blocked_since = {"a1": NOW - 900_000}
		assert derive_overall_status(analyses, blocked_since, NOW, 300_000) == OverallStatus.ATTENTION_NEEDED

	def test_stalled_needs_attention(self):
		analyses = [_analysis("a1", AgentProgress.STALLED)]
		assert derive_overall_status(analyses, {}, NOW, 300_000) == OverallStatus.ATTENTION_NEEDED

	def test_healthy(self):
		analyses = [_analysis("a1", AgentProgress.ON_TRACK), _analysis("a2", AgentProgress.IDLE)]
		assert derive_overall_status(analyses, {}, NOW, 300_000) == OverallStatus.HEALTHY


class TestReports:
	"""Tests for report generation."""

	@pytest.mark.asyncio
	async def test_report_covers_non_boss_agents(self):
		agents = make_team(
			make_agent("a1", status=AgentStatus.ERROR),
			make_agent("a2", status=AgentStatus.WORKING),
		)
		supervisor = SupervisorAggregator(snapshot_provider=lambda: agents)

		report = await supervisor.generate_report()

		assert [a.agent_id for a in report.agent_summaries] == ["a1", "a2"]
		assert report.overall_status == OverallStatus.ATTENTION_NEEDED
		assert report.id.startswith("report-")
		assert supervisor.latest_report is report
		assert supervisor.reports_generated == 1

	@pytest.mark.asyncio
	async def test_report_skips_agents_with_subordinates(self):
		"""An agent managing a team is left out even without the boss flag."""
		agents = snapshot_of([
			make_agent("lead", subordinate_ids=["a1"]),
			make_agent("a1", boss_id="lead"),
		])
		supervisor = SupervisorAggregator(snapshot_provider=lambda: agents)

		report = await supervisor.generate_report()

		assert [a.agent_id for a in report.agent_summaries] == ["a1"]

	@pytest.mark.asyncio
	async def test_concurrent_triggers_share_one_report(self):
		"""Two triggers at once produce a single computation."""
		release = asyncio.Event()
		calls = []

		async def slow_analyzer(summaries):
			calls.append(len(summaries))
			await release.wait()
			return json.dumps({"agentAnalyses": [], "insights": ["all quiet"]})

		agents = snapshot_of([make_agent("a1")])
		supervisor = SupervisorAggregator(snapshot_provider=lambda: agents, analyzer=slow_analyzer)

		first = asyncio.create_task(supervisor.generate_report())
		second = asyncio.create_task(supervisor.notify_task_terminal("a1"))
		await asyncio.sleep(0)
		await asyncio.sleep(0)
		release.set()
		reports = await asyncio.gather(first, second)

		assert supervisor.reports_generated == 1
		assert calls == [1]
		assert reports[0] is reports[1]
		assert reports[0].insights == ["all quiet"]

	@pytest.mark.asyncio
	async def test_block_becomes_critical_after_staleness(self, monkeypatch):
		clock = iter([NOW, NOW + 2_000])
		monkeypatch.setattr(supervisor_module, "now_ms", lambda: next(clock))
		agents = snapshot_of([make_agent("a1", status=AgentStatus.OFFLINE)])
		supervisor = SupervisorAggregator(snapshot_provider=lambda: agents, staleness_ms=1_000)

		first = await supervisor.generate_report()
		second = await supervisor.generate_report()

		assert first.overall_status == OverallStatus.ATTENTION_NEEDED
		assert second.overall_status == OverallStatus.CRITICAL

	@pytest.mark.asyncio
	async def test_recovered_agent_resets_block_clock(self, monkeypatch):
		clock = iter([NOW, NOW + 2_000, NOW + 4_000])
		monkeypatch.setattr(supervisor_module, "now_ms", lambda: next(clock))
		agents = {"a1": make_agent("a1", status=AgentStatus.OFFLINE)}
		supervisor = SupervisorAggregator(snapshot_provider=lambda: agents, staleness_ms=1_000)

		await supervisor.generate_report()
		agents["a1"] = make_agent("a1", status=AgentStatus.IDLE)
		await supervisor.generate_report()
		agents["a1"] = make_agent("a1", status=AgentStatus.OFFLINE)
		third = await supervisor.generate_report()

		assert third.overall_status == OverallStatus.ATTENTION_NEEDED

	@pytest.mark.asyncio
	async def test_on_report_callback_errors_are_contained(self):
		seen = []

		async def on_report(report):
			seen.append(report.id)
			raise RuntimeError("listener broke")

		supervisor = SupervisorAggregator(snapshot_provider=lambda: {}, on_report=on_report)

		report = await supervisor.generate_report()

		assert seen == [report.id]

	@pytest.mark.asyncio
	async def test_step_complete_event_triggers_report(self):
		agents = snapshot_of([make_agent("a1")])
		supervisor = SupervisorAggregator(snapshot_provider=lambda: agents)

		await supervisor.handle_event("a1", {"type": "step_complete", "tokens": {}})

		assert supervisor.reports_generated == 1
		assert supervisor.latest_report.agent_summaries[0].progress == AgentProgress.COMPLETED

	@pytest.mark.asyncio
	async def test_disabled_supervisor_ignores_triggers(self):
		supervisor = SupervisorAggregator(snapshot_provider=lambda: {})
		supervisor.enabled = False
		assert await supervisor.notify_task_terminal("a1") is None
		assert supervisor.reports_generated == 0

	@pytest.mark.asyncio
	async def test_history_and_health(self):
		agents = snapshot_of([
			make_agent("ok", status=AgentStatus.WORKING, last_activity=supervisor_module.now_ms()),
			make_agent("bad", status=AgentStatus.ERROR),
		])
		supervisor = SupervisorAggregator(snapshot_provider=lambda: agents)

		report = await supervisor.generate_report()

		assert supervisor.is_agent_healthy("ok")
		assert not supervisor.is_agent_healthy("bad")
		assert supervisor.is_agent_healthy("never-seen")
		history = supervisor.get_agent_history("bad")
		assert [h.report_id for h in history] == [report.id]
		assert set(supervisor.summaries_for_context()) == {"ok", "bad"}

	@pytest.mark.asyncio
	async def test_recovered_agent_healthy_before_next_report(self):
		agents = snapshot_of([make_agent("a1", status=AgentStatus.ERROR)])
		supervisor = SupervisorAggregator(snapshot_provider=lambda: agents)
		await supervisor.generate_report()

		assert supervisor.get_agent_history("a1")[0].agent_status == AgentStatus.ERROR
		assert not supervisor.is_agent_healthy("a1", AgentStatus.ERROR)
		assert supervisor.is_agent_healthy("a1", AgentStatus.IDLE)

	@pytest.mark.asyncio
	async def test_resolver_accepts_recovered_agent(self):
		agents = snapshot_of([make_agent("a1", status=AgentStatus.ERROR)])
		supervisor = SupervisorAggregator(snapshot_provider=lambda: agents)
		await supervisor.generate_report()
		resolver = AssignmentResolver(health_check=supervisor.is_agent_healthy)

		agents["a1"] = make_agent("a1", status=AgentStatus.IDLE)
		result = resolver.resolve(AssignmentRequest(task_text="x", suggested_class="builder"), agents)

		assert isinstance(result, Assignment)
		assert result.agent_id == "a1"

	@pytest.mark.asyncio
	async def test_interval_loop_start_stop(self):
		supervisor = SupervisorAggregator(snapshot_provider=lambda: {}, interval_seconds=0.01)

		supervisor.start()
		assert supervisor.is_running
		for _ in range(100):
			if supervisor.reports_generated:
				break
			await asyncio.sleep(0.01)
		await supervisor.stop()

		assert supervisor.reports_generated >= 1
		assert not supervisor.is_running


class TestExternalAnalyzer:
	"""Tests for analyzer responses."""

	def test_parse_matches_by_name(self):
		summaries = [_summary("a1"), _summary("a2")]
		response = "```json\n" + json.dumps({
			"agentAnalyses": [
				{"agentName": "A2", "statusDescription": "busy", "progress": "stalled"},
				{"agentName": "nobody", "progress": "on_track"},
			],
			"overallStatus": "critical",
			"insights": ["one"],
			"recommendations": ["two"],
		}) + "\n```"

		parsed = parse_analysis_response(response, summaries)

		assert [a.agent_id for a in parsed.analyses] == ["a2"]
		assert parsed.analyses[0].progress == AgentProgress.STALLED
		assert parsed.insights == ["one"]
		assert parsed.recommendations == ["two"]

	def test_unknown_progress_is_idle(self):
		parsed = parse_analysis_response(
			json.dumps({"agentAnalyses": [{"agentId": "a1", "progress": "confused"}]}),
			[_summary("a1")],
		)
		assert parsed.analyses[0].progress == AgentProgress.IDLE

	def test_garbage_returns_none(self):
		assert parse_analysis_response("not json", []) is None
		assert parse_analysis_response("[1, 2]", []) is None

	def test_deeply_nested_json_returns_none(self):
		assert parse_analysis_response("[" * 100_000 + "]" * 100_000, []) is None

	@pytest.mark.asyncio
	async def test_overall_status_always_derived(self):
		"""The analyzer cannot override the team status."""
		async def analyzer(summaries):
			return json.dumps({
				"agentAnalyses": [{"agentId": "a1", "statusDescription": "fine", "progress": "on_track"}],
				"overallStatus": "critical",
			})

		agents = snapshot_of([make_agent("a1"), make_agent("a2", status=AgentStatus.ERROR)])
		supervisor = SupervisorAggregator(snapshot_provider=lambda: agents, analyzer=analyzer)

		report = await supervisor.generate_report()

		assert report.overall_status == OverallStatus.ATTENTION_NEEDED
		assert report.agent_summaries[0].status_description == "fine"
		assert report.agent_summaries[1].progress == AgentProgress.BLOCKED

	@pytest.mark.asyncio
	async def test_analyzer_failure_falls_back(self):
		async def analyzer(summaries):
			raise TimeoutError("model unavailable")

		agents = snapshot_of([make_agent("a1", status=AgentStatus.WORKING, last_activity=supervisor_module.now_ms())])
		supervisor = SupervisorAggregator(snapshot_provider=lambda: agents, analyzer=analyzer)

		report = await supervisor.generate_report()

		assert report.agent_summaries[0].progress == AgentProgress.ON_TRACK
		assert report.insights == ["Unable to generate detailed analysis - using basic status"]
