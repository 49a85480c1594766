"""Tests for the CLI module."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from boss_orchestrator.cli import build_parser, main
from boss_orchestrator.orchestrator.context_codec import encode
from boss_orchestrator.plans.models import TaskStatus
from boss_orchestrator.plans.scheduler import WorkPlanScheduler

from .helpers import draft_phase, draft_task, fenced, make_agent, make_draft, make_team

PLAN = {
	"name": "Auth rewrite",
	"phases": [
		{"id": "p1", "name": "Groundwork", "execution": "parallel", "tasks": [
			{"id": "t1", "description": "Map the auth module", "priority": "high"},
			{"id": "t2", "description": "List login flows"},
		]},
		{"id": "p2", "name": "Build", "dependsOn": ["p1"], "tasks": [
			{"id": "t3", "description": "Replace the session store"},
		]},
	],
}


def _run(*argv: str) -> None:
	with patch("sys.argv", ["boss-orchestrator", *argv]):
		main()


def _write(tmp_path: Path, name: str, content) -> str:
	path = tmp_path / name
	path.write_text(content if isinstance(content, str) else json.dumps(content))
	return str(path)


def test_no_command_prints_help(capsys):
	with pytest.raises(SystemExit) as exc:
		_run()
	assert exc.value.code == 1
	assert "boss-orchestrator" in capsys.readouterr().out


@pytest.mark.parametrize("argv", [
	["parse", "--help"],
	["plan", "validate", "--help"],
	["plan", "show", "--help"],
	["plan", "runnable", "--help"],
	["context", "decode", "--help"],
	["report", "--help"],
	["dashboard", "--help"],
	["doctor", "--help"],
])
def test_subparsers_registered(argv):
	"""Every subcommand is registered and --help exits cleanly."""
	with pytest.raises(SystemExit) as exc:
		build_parser().parse_args(argv)
	assert exc.value.code == 0


def test_parse_command(tmp_path: Path, capsys):
	reply = fenced("delegation", {"selectedAgentId": "a1", "taskCommand": "Fix it"}, before="On it.")
	path = _write(tmp_path, "reply.txt", reply)

	_run("parse", path)

	result = json.loads(capsys.readouterr().out)
	assert result["displayText"] == "On it."
	assert result["delegations"][0]["selectedAgentId"] == "a1"
	assert result["workPlan"] is None
	assert result["analysisRequests"] == []
	assert result["spawnRequests"] == []


def test_plan_validate_ok(tmp_path: Path, capsys):
	_run("plan", "validate", _write(tmp_path, "plan.json", PLAN))
	assert "OK: 'Auth rewrite' has 2 phases and 3 tasks" in capsys.readouterr().out


def test_plan_validate_from_boss_reply(tmp_path: Path, capsys):
	path = _write(tmp_path, "reply.md", fenced("work-plan", PLAN, before="Proposed plan:"))
	_run("plan", "validate", path)
	assert "has 2 phases and 3 tasks" in capsys.readouterr().out


def test_plan_validate_cycle(tmp_path: Path, capsys):
	cyclic = {
		"name": "Loop",
		"phases": [
			{"id": "p1", "dependsOn": ["p2"], "tasks": [{"description": "a"}]},
			{"id": "p2", "dependsOn": ["p1"], "tasks": [{"description": "b"}]},
		],
	}
	with pytest.raises(SystemExit) as exc:
		_run("plan", "validate", _write(tmp_path, "plan.json", cyclic))

	assert exc.value.code == 1
	output = capsys.readouterr().out
	assert 'Work plan "Loop" was rejected' in output
	assert "Phase dependency cycle" in output


def test_plan_missing_file(tmp_path: Path, capsys):
	with pytest.raises(SystemExit) as exc:
		_run("plan", "validate", str(tmp_path / "nope.json"))
	assert exc.value.code == 1
	assert "Cannot read" in capsys.readouterr().err


def test_plan_no_block(tmp_path: Path, capsys):
	with pytest.raises(SystemExit):
		_run("plan", "validate", _write(tmp_path, "reply.txt", "Just text, no plan."))
	assert "No work plan found" in capsys.readouterr().err


def test_plan_array_payload_rejected(tmp_path: Path, capsys):
	with pytest.raises(SystemExit) as exc:
		_run("plan", "show", _write(tmp_path, "plan.json", [PLAN]))
	assert exc.value.code == 1
	assert "Invalid plan" in capsys.readouterr().err


def test_plan_show_markdown(tmp_path: Path, capsys):
	_run("plan", "show", _write(tmp_path, "plan.json", PLAN), "--markdown")
	output = capsys.readouterr().out
	assert "# Auth rewrite" in output
	assert "Replace the session store" in output


def test_plan_show_tree(tmp_path: Path, capsys):
	_run("plan", "show", _write(tmp_path, "plan.json", PLAN))
	output = capsys.readouterr().out
	assert "Auth rewrite" in output
	assert "Groundwork" in output


def test_plan_runnable(tmp_path: Path, capsys):
	_run("plan", "runnable", _write(tmp_path, "plan.json", PLAN))
	lines = [line for line in capsys.readouterr().out.splitlines() if line.strip()]
	assert lines[0].startswith("1. t1")
	assert lines[1].startswith("2. t2")
	assert len(lines) == 2


def test_plan_runnable_stored_record(tmp_path: Path, capsys):
	"""A stored plan record keeps its task statuses."""
	scheduler = WorkPlanScheduler()
	plan = scheduler.materialize(make_draft(
		draft_phase("p1", [draft_task("t1"), draft_task("t2")]),
	), created_by="boss-1")
	scheduler.approve(plan)
	scheduler.start(plan)
	scheduler.start_task(plan, "t1", "a1")
	scheduler.complete_task(plan, "t1")
	assert plan.find_task("t1")[1].status == TaskStatus.COMPLETED

	_run("plan", "runnable", _write(tmp_path, "stored.json", plan.to_record()))

	assert capsys.readouterr().out.strip().startswith("1. t2")


def test_context_decode_json(tmp_path: Path, capsys):
	message = encode("# YOUR TEAM (1 agents)", "Ship it")
	_run("context", "decode", _write(tmp_path, "msg.txt", message), "--json")

	result = json.loads(capsys.readouterr().out)
	assert result == {"context": "# YOUR TEAM (1 agents)", "instruction": "Ship it"}


def test_context_decode_plain_message(tmp_path: Path, capsys):
	_run("context", "decode", _write(tmp_path, "msg.txt", "No envelope here"))
	assert capsys.readouterr().out.strip() == "No envelope here"


def test_report_command(tmp_path: Path, capsys):
	report = {
		"agentSummaries": [{
			"agentId": "a1",
			"agentName": "Alpha",
			"statusDescription": "working",
			"progress": "stalled",
		}],
		"overallStatus": "attention_needed",
		"insights": ["Alpha is slow"],
	}
	_run("report", _write(tmp_path, "report.json", report))

	output = capsys.readouterr().out
	assert "ATTENTION NEEDED" in output
	assert "Alpha is slow" in output


def test_report_invalid(tmp_path: Path, capsys):
	with pytest.raises(SystemExit) as exc:
		_run("report", _write(tmp_path, "report.json", {"overallStatus": "on_fire"}))
	assert exc.value.code == 1
	assert "Invalid report" in capsys.readouterr().err


def test_dashboard_command(tmp_path: Path, capsys):
	team = make_team(make_agent("a1", name="Alpha"), make_agent("a2", name="Beta"))
	agents_path = _write(tmp_path, "agents.json", {k: v.to_record() for k, v in team.items()})

	_run("dashboard", "--agents", agents_path, "--plan", _write(tmp_path, "plan.json", PLAN))

	output = capsys.readouterr().out
	assert "Boss Orchestrator Dashboard" in output
	assert "Alpha" in output
	assert "Auth rewrite" in output


def test_doctor(capsys):
	_run("doctor")
	output = capsys.readouterr().out
	assert "boss-orchestrator doctor" in output
	assert "All checks passed." in output
	assert "not found (using defaults)" in output
