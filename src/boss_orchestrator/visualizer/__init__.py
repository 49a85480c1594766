"""Visualizer package - Rich terminal views for plans, teams, and supervisor reports."""

from .dashboard import render_dashboard
from .plan_progress import render_plan_progress, render_plan_summary, render_runnable
from .report import render_report

__all__ = [
	"render_dashboard",
	"render_plan_progress",
	"render_plan_summary",
	"render_runnable",
	"render_report",
]
