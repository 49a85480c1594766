"""CLI for boss-orchestrator: parse, plan, context, report, dashboard, and doctor commands."""

import argparse
import json
import platform
import sys
from pathlib import Path

from importlib.metadata import version as pkg_version

from pydantic import ValidationError
from rich.console import Console

from .agents import Agent, snapshot_of
from .config import load_config
from .logging_config import setup_logging
from .orchestrator.context_codec import decode
from .orchestrator.delegation import parse_boss_response
from .orchestrator.supervisor import SupervisorReport
from .plans.models import PlanStatus, WorkPlan
from .plans.parser import WorkPlanFound, draft_from_dict, parse_work_plan_block
from .plans.scheduler import InvalidPlanTransitionError, PlanValidationError, WorkPlanScheduler, format_rejection


def _read_input(path: str) -> str:
	"""Read a file argument; '-' means stdin."""
	if path == "-":
		return sys.stdin.read()
	return Path(path).read_text()


def _read_json(path: str):
	try:
		return json.loads(_read_input(path))
	except (OSError, json.JSONDecodeError, RecursionError) as e:
		print(f"Cannot read {path}: {e}", file=sys.stderr)
		sys.exit(1)


def _load_plan_payload(text: str):
	"""
	Decode a plan file: raw JSON, or a boss reply holding a work-plan block.

	Raises:
		ValueError: If the JSON is not an object
	"""
	try:
		payload = json.loads(text)
	except json.JSONDecodeError:
		found = parse_work_plan_block(text)
		if isinstance(found, WorkPlanFound):
			return found.draft
		return None
	except RecursionError:
		raise ValueError("plan JSON is nested too deeply") from None
	if not isinstance(payload, dict):
		raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
	return payload


def _load_plan(path: str, scheduler: WorkPlanScheduler) -> WorkPlan:
	"""
	Load a plan for display.

	Accepts a stored WorkPlan record (adopted as-is) or a draft
	(materialized on the spot). Exits with the rejection text when the
	draft's graph is invalid.
	"""
	try:
		payload = _load_plan_payload(_read_input(path))
	except OSError as e:
		print(f"Cannot read {path}: {e}", file=sys.stderr)
		sys.exit(1)
	except ValueError as e:
		print(f"Invalid plan in {path}: {e}", file=sys.stderr)
		sys.exit(1)
	if payload is None:
		print(f"No work plan found in {path}", file=sys.stderr)
		sys.exit(1)

	try:
		if isinstance(payload, dict) and "createdBy" in payload:
			return scheduler.adopt(WorkPlan.model_validate(payload))
		draft = payload if not isinstance(payload, dict) else draft_from_dict(payload)
		return scheduler.materialize(draft, created_by="cli")
	except PlanValidationError as e:
		name = payload.get("name") if isinstance(payload, dict) else payload.name
		print(format_rejection(name or "Unnamed Plan", e))
		sys.exit(1)
	except (ValidationError, ValueError) as e:
		print(f"Invalid plan in {path}: {e}", file=sys.stderr)
		sys.exit(1)


def cmd_parse(args: argparse.Namespace) -> None:
	"""Parse a boss reply and print everything recognized in it."""
	response = parse_boss_response(_read_input(args.file))
	result = {
		"displayText": response.display_text,
		"analysisRequests": [r.to_record() for r in response.analysis_requests],
		"workPlan": response.work_plan.to_record() if response.work_plan else None,
		"delegations": [d.to_record() for d in response.delegations],
		"spawnRequests": [s.to_record() for s in response.spawn_requests],
	}
	print(json.dumps(result, indent=2))


def cmd_plan(args: argparse.Namespace) -> None:
	"""Plan subcommand - validate, show, and inspect work plans."""
	from .visualizer.plan_progress import render_plan_progress, render_plan_summary, render_runnable

	scheduler = WorkPlanScheduler()
	plan_target = getattr(args, "plan_target", None)

	if plan_target == "validate":
		plan = _load_plan(args.file, scheduler)
		print(f"OK: '{plan.name}' has {len(plan.phases)} phases and {plan.total_tasks} tasks")

	elif plan_target == "show":
		plan = _load_plan(args.file, scheduler)
		if getattr(args, "markdown", False):
			print(plan.to_markdown())
		elif getattr(args, "summary", False):
			render_plan_summary(plan)
		else:
			render_plan_progress(plan)

	elif plan_target == "runnable":
		plan = _load_plan(args.file, scheduler)
		try:
			if plan.status == PlanStatus.DRAFT:
				scheduler.approve(plan)
			if plan.status == PlanStatus.APPROVED:
				scheduler.start(plan)
		except InvalidPlanTransitionError as e:
			print(str(e), file=sys.stderr)
			sys.exit(1)
		render_runnable(scheduler.compute_runnable(plan))

	else:
		print("Usage: boss-orchestrator plan {validate|show|runnable} FILE")
		sys.exit(1)


def cmd_context(args: argparse.Namespace) -> None:
	"""Context subcommand - inspect boss message envelopes."""
	if getattr(args, "context_target", None) != "decode":
		print("Usage: boss-orchestrator context decode FILE")
		sys.exit(1)

	decoded = decode(_read_input(args.file))
	if getattr(args, "json", False):
		print(json.dumps({"context": decoded.context, "instruction": decoded.instruction}, indent=2))
		return
	if decoded.has_context:
		print("--- context ---")
		print(decoded.context)
		print("--- instruction ---")
	print(decoded.instruction)


def cmd_report(args: argparse.Namespace) -> None:
	"""Render a stored supervisor report."""
	from .visualizer.report import render_report

	try:
		report = SupervisorReport.model_validate(_read_json(args.file))
	except ValidationError as e:
		print(f"Invalid report in {args.file}: {e}", file=sys.stderr)
		sys.exit(1)
	render_report(report, console=Console())


def cmd_dashboard(args: argparse.Namespace) -> None:
	"""Render the team, the latest report, and plan progress together."""
	from .visualizer.dashboard import render_dashboard

	data = _read_json(args.agents)
	items = data if isinstance(data, list) else list(data.values())
	try:
		agents = snapshot_of(Agent.model_validate(item) for item in items)
		report = SupervisorReport.model_validate(_read_json(args.report)) if args.report else None
	except ValidationError as e:
		print(f"Invalid input: {e}", file=sys.stderr)
		sys.exit(1)
	plan = _load_plan(args.plan, WorkPlanScheduler()) if args.plan else None
	render_dashboard(agents, plan=plan, report=report)


def cmd_doctor(args: argparse.Namespace) -> None:
	"""Health check - verify installation and configuration."""
	print("boss-orchestrator doctor")
	print(f"{'=' * 40}")

	config = load_config()
	issues: list[str] = []

	py_ver = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
	print(f"  Python:       {py_ver}")
	print(f"  Platform:     {platform.system()} {platform.machine()}")
	print()

	print("  Core deps:")
	for dep in ["pydantic", "platformdirs", "rich"]:
		try:
			dep_ver = pkg_version(dep)
			print(f"    {dep:22s} {dep_ver}")
		except Exception:
			print(f"    {dep:22s} NOT INSTALLED")
			issues.append(f"{dep} package not installed")
	print()

	print("  Paths:")
	print(f"    Config:  {config.config_dir}")
	print(f"    Data:    {config.data_dir}")
	print(f"    Logs:    {config.log_dir}")
	toml_path = config.config_dir / "config.toml"
	print(f"    config.toml: {'found' if toml_path.exists() else 'not found (using defaults)'}")
	print()

	if issues:
		print(f"  {len(issues)} issue(s) found:")
		for issue in issues:
			print(f"    - {issue}")
		sys.exit(1)
	else:
		print("  All checks passed.")


def build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(
		prog="boss-orchestrator",
		description="Boss/subordinate agent coordination: delegation parsing, work plans, and supervision",
	)
	parser.add_argument("--log-level", type=str, default=None, help="Override the configured log level")
	subparsers = parser.add_subparsers(dest="command")

	# parse
	parse_parser = subparsers.add_parser("parse", help="Parse a boss reply ('-' for stdin)")
	parse_parser.add_argument("file", help="File holding the raw boss output")
	parse_parser.set_defaults(func=cmd_parse)

	# plan
	plan_parser = subparsers.add_parser("plan", help="Validate and inspect work plans")
	plan_subparsers = plan_parser.add_subparsers(dest="plan_target")

	plan_validate = plan_subparsers.add_parser("validate", help="Check a draft's dependency graph")
	plan_validate.add_argument("file", help="Work plan JSON or boss reply")
	plan_validate.set_defaults(func=cmd_plan)

	plan_show = plan_subparsers.add_parser("show", help="Plan progress")
	plan_show.add_argument("file", help="Work plan JSON or boss reply")
	plan_show.add_argument("--summary", action="store_true", help="Show summary panel instead of tree")
	plan_show.add_argument("--markdown", action="store_true", help="Print markdown for review")
	plan_show.set_defaults(func=cmd_plan)

	plan_runnable = plan_subparsers.add_parser("runnable", help="Tasks that may start now")
	plan_runnable.add_argument("file", help="Work plan JSON or boss reply")
	plan_runnable.set_defaults(func=cmd_plan)

	plan_parser.set_defaults(func=cmd_plan)

	# context
	context_parser = subparsers.add_parser("context", help="Inspect boss message envelopes")
	context_subparsers = context_parser.add_subparsers(dest="context_target")
	context_decode = context_subparsers.add_parser("decode", help="Split a message into context and instruction")
	context_decode.add_argument("file", help="File holding the message ('-' for stdin)")
	context_decode.add_argument("--json", action="store_true", help="Print JSON")
	context_decode.set_defaults(func=cmd_context)
	context_parser.set_defaults(func=cmd_context)

	# report
	report_parser = subparsers.add_parser("report", help="Render a supervisor report JSON")
	report_parser.add_argument("file", help="Report JSON file")
	report_parser.set_defaults(func=cmd_report)

	# dashboard
	dashboard_parser = subparsers.add_parser("dashboard", help="Combined team dashboard")
	dashboard_parser.add_argument("--agents", required=True, help="Agent snapshot JSON (list or id-keyed object)")
	dashboard_parser.add_argument("--plan", default=None, help="Work plan JSON")
	dashboard_parser.add_argument("--report", default=None, help="Supervisor report JSON")
	dashboard_parser.set_defaults(func=cmd_dashboard)

	# doctor
	doctor_parser = subparsers.add_parser("doctor", help="Health check")
	doctor_parser.set_defaults(func=cmd_doctor)

	return parser


def main() -> None:
	"""CLI entry point."""
	parser = build_parser()
	args = parser.parse_args()

	if not args.command:
		parser.print_help()
		sys.exit(1)

	setup_logging(level=args.log_level)
	args.func(args)
