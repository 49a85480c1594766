"""Rich views for supervisor reports."""

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..orchestrator.supervisor import SupervisorReport
from .utils import format_timestamp, overall_style, progress_style, truncate_text


def render_report(report: SupervisorReport, console: Optional[Console] = None) -> None:
	"""Render a supervisor report: status panel, per-agent table, insights."""
	console = console or Console()

	status = report.overall_status.value
	style = overall_style(status)
	console.print(Panel(
		f"[{style}]{status.replace('_', ' ').upper()}[/{style}]  "
		f"[dim]{len(report.agent_summaries)} agents, {format_timestamp(report.timestamp)}[/dim]",
		title=f"Supervisor Report {report.id}",
		border_style=style,
	))

	if report.agent_summaries:
		table = Table(title="Agents")
		table.add_column("Agent", style="cyan")
		table.add_column("Progress", justify="center")
		table.add_column("Status")
		table.add_column("Recent Work")
		table.add_column("Notes")

		for analysis in report.agent_summaries:
			pstyle = progress_style(analysis.progress.value)
			notes = analysis.blockers + analysis.concerns + analysis.suggestions
			table.add_row(
				analysis.agent_name or analysis.agent_id,
				f"[{pstyle}]{analysis.progress.value}[/{pstyle}]",
				truncate_text(analysis.status_description, 40),
				truncate_text(analysis.recent_work_summary, 50),
				truncate_text("; ".join(notes), 50),
			)
		console.print(table)

	for title, items in (("Insights", report.insights), ("Recommendations", report.recommendations)):
		if items:
			console.print(f"[bold]{title}:[/bold]")
			for item in items:
				console.print(f"  - {item}")
