"""Combined dashboard view."""

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..agents import AgentSnapshot
from ..orchestrator.supervisor import SupervisorReport
from ..plans.models import WorkPlan
from .plan_progress import render_plan_progress
from .report import render_report
from .utils import format_timestamp, truncate_text

AGENT_STATUS_STYLES = {
	"idle": "dim",
	"working": "green",
	"waiting": "cyan",
	"waiting_permission": "yellow",
	"error": "red",
	"offline": "red",
	"orphaned": "red",
}


def render_dashboard(
	agents: AgentSnapshot,
	plan: Optional[WorkPlan] = None,
	report: Optional[SupervisorReport] = None,
	console: Optional[Console] = None,
) -> None:
	"""Render a combined dashboard with the team, the latest report, and plan progress."""
	console = console or Console()

	console.print()
	console.rule("[bold cyan]Boss Orchestrator Dashboard[/bold cyan]")
	console.print()

	if not agents:
		console.print("[dim]No agents in snapshot.[/dim]")
		console.print()
	else:
		bosses = [a for a in agents.values() if a.manages_team]
		working = [a for a in agents.values() if a.status.value == "working"]
		summary = (
			f"[bold]Agents:[/bold] {len(agents)}  |  "
			f"[bold]Bosses:[/bold] {len(bosses)}  |  "
			f"[bold]Working:[/bold] {len(working)}"
		)
		console.print(Panel(summary, title="Team", border_style="green"))
		console.print()

		table = Table(title="Agents")
		table.add_column("Name", style="cyan")
		table.add_column("Class")
		table.add_column("Status", justify="center")
		table.add_column("Current Task")
		table.add_column("Last Activity", justify="right")

		for agent in sorted(agents.values(), key=lambda a: (not a.manages_team, a.name)):
			style = AGENT_STATUS_STYLES.get(agent.status.value, "white")
			name = f"{agent.name} [dim](boss)[/dim]" if agent.manages_team else agent.name
			table.add_row(
				name,
				agent.agent_class,
				f"[{style}]{agent.status.value}[/{style}]",
				truncate_text(agent.current_task, 40),
				format_timestamp(agent.last_activity),
			)
		console.print(table)
		console.print()

	if report:
		render_report(report, console=console)
		console.print()

	if plan:
		render_plan_progress(plan, console=console)
		console.print()
	else:
		console.print("[dim]No active plan.[/dim]")
		console.print()
