"""Rich views for work plan progress visualization."""

from typing import Optional

from rich.console import Console
from rich.panel import Panel
from rich.tree import Tree

from ..plans.models import TaskStatus, WorkPlan
from ..plans.scheduler import RunnableTask

STATUS_ICONS = {
	TaskStatus.PENDING: "[dim][ ][/dim]",
	TaskStatus.IN_PROGRESS: "[yellow][~][/yellow]",
	TaskStatus.COMPLETED: "[green]\\[x][/green]",
	TaskStatus.BLOCKED: "[red][!][/red]",
	TaskStatus.CANCELLED: "[dim][-][/dim]",
}


def render_plan_progress(plan: WorkPlan, console: Optional[Console] = None) -> None:
	"""Render a plan as a Rich Tree with phases and tasks."""
	console = console or Console()

	progress = plan.get_progress()
	pct = progress["percent_complete"]

	tree = Tree(
		f"[bold]{plan.name}[/bold]  "
		f"[dim]({progress['completed_tasks']}/{progress['total_tasks']} tasks, {pct:.0f}%)[/dim]"
	)

	for phase in plan.phases:
		icon = STATUS_ICONS.get(phase.status, "[ ]")
		label = f"{icon} [bold]{phase.name}[/bold] [dim]({phase.execution.value})[/dim]"
		if phase.depends_on:
			label += f" [dim]after {', '.join(phase.depends_on)}[/dim]"
		phase_branch = tree.add(label)

		for task in phase.tasks:
			task_icon = STATUS_ICONS.get(task.status, "[ ]")
			assignee = task.assigned_agent_name or task.assigned_agent_id
			suffix = f" [cyan]@{assignee}[/cyan]" if assignee else ""
			phase_branch.add(f"{task_icon} [dim]{task.id}[/dim] {task.description}{suffix}")

	console.print(tree)


def render_plan_summary(plan: WorkPlan, console: Optional[Console] = None) -> None:
	"""Render a summary panel for a plan."""
	console = console or Console()

	progress = plan.get_progress()
	pct = progress["percent_complete"]

	lines = []
	lines.append(f"[bold]Name:[/bold] {plan.name}")
	lines.append(f"[bold]Created by:[/bold] {plan.created_by}")
	lines.append(f"[bold]Status:[/bold] {plan.status.value}")
	lines.append("")
	lines.append(f"[bold]Progress:[/bold] {progress['completed_tasks']}/{progress['total_tasks']} tasks ({pct:.0f}%)")
	lines.append(
		f"[bold]Phases:[/bold] {progress['completed_phases']}/{progress['total_phases']} complete"
	)
	if plan.parallelizable_tasks:
		lines.append(f"[bold]Parallelizable:[/bold] {len(plan.parallelizable_tasks)} tasks")

	if plan.description:
		lines.append("")
		lines.append(plan.description)

	console.print(Panel("\n".join(lines), title=f"Plan: {plan.id}", border_style="cyan"))


def render_runnable(runnable: list[RunnableTask], console: Optional[Console] = None) -> None:
	"""List the tasks that may start now, in dispatch order."""
	console = console or Console()
	if not runnable:
		console.print("[dim]No runnable tasks.[/dim]")
		return
	for index, item in enumerate(runnable, 1):
		task = item.task
		console.print(
			f"{index}. [bold]{task.id}[/bold] [dim]({item.phase_id}, {task.priority.value}, "
			f"{task.suggested_class})[/dim] {task.description}"
		)
