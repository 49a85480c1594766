"""Plans module - Work plan models, parsing, and scheduling."""

from .models import Phase, PlanStatus, Task, TaskStatus, WorkPlan, WorkPlanDraft
from .parser import NoWorkPlan, WorkPlanFound, draft_from_dict, parse_work_plan_block
from .scheduler import (
	InvalidPlanTransitionError,
	InvalidTaskTransitionError,
	PlanValidationError,
	TaskNotRunnableError,
	UnknownTaskError,
	WorkPlanScheduler,
)

__all__ = [
	"WorkPlan",
	"Phase",
	"Task",
	"PlanStatus",
	"TaskStatus",
	"WorkPlanDraft",
	"WorkPlanFound",
	"NoWorkPlan",
	"draft_from_dict",
	"parse_work_plan_block",
	"WorkPlanScheduler",
	"PlanValidationError",
	"InvalidPlanTransitionError",
	"InvalidTaskTransitionError",
	"TaskNotRunnableError",
	"UnknownTaskError",
]
