"""Shared utilities for visualizer views."""

from datetime import datetime
from typing import Optional

from ..agents import now_ms


def format_timestamp(epoch_ms: Optional[int], now: Optional[int] = None) -> str:
	"""Format an epoch-ms timestamp as relative time (e.g. '2m ago') or absolute."""
	if not epoch_ms:
		return "-"
	now = now if now is not None else now_ms()
	total_secs = (now - epoch_ms) // 1000

	if total_secs < 0:
		return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")
	if total_secs < 60:
		return f"{total_secs}s ago"
	if total_secs < 3600:
		return f"{total_secs // 60}m ago"
	if total_secs < 86400:
		return f"{total_secs // 3600}h ago"
	return f"{total_secs // 86400}d ago"


def truncate_text(text: Optional[str], max_len: int = 60) -> str:
	"""Shorten text for table display."""
	if not text:
		return ""
	text = " ".join(text.split())
	if len(text) <= max_len:
		return text
	return text[:max_len - 3] + "..."


PROGRESS_STYLES = {
	"on_track": "green",
	"completed": "cyan",
	"idle": "dim",
	"stalled": "yellow",
	"blocked": "red",
}

OVERALL_STYLES = {
	"healthy": "green",
	"attention_needed": "yellow",
	"critical": "red",
}


def progress_style(progress: str) -> str:
	"""Return a Rich style string for an agent progress value."""
	return PROGRESS_STYLES.get(progress, "white")


def overall_style(status: str) -> str:
	"""Return a Rich style string for an overall team status."""
	return OVERALL_STYLES.get(status, "white")
