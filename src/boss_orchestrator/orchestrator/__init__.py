"""Orchestrator module - Delegation, assignment, tracking, and supervision."""

from .context_builder import ContextBuilder
from .context_codec import BOSS_CONTEXT_END, BOSS_CONTEXT_START, MarkerCollisionError, decode, encode
from .coordinator import BossCoordinator, BossTurn, DispatchIntent, UnknownPlanError
from .delegation import (
	DelegationDecision,
	DelegationFound,
	NoDelegation,
	parse_boss_response,
	parse_delegation_response,
)
from .resolver import Assignment, AssignmentRequest, AssignmentResolver, NoEligibleAgent
from .supervisor import SupervisorAggregator, SupervisorReport
from .tracker import DelegationTracker

__all__ = [
	"BOSS_CONTEXT_START",
	"BOSS_CONTEXT_END",
	"MarkerCollisionError",
	"encode",
	"decode",
	"ContextBuilder",
	"DelegationDecision",
	"DelegationFound",
	"NoDelegation",
	"parse_delegation_response",
	"parse_boss_response",
	"Assignment",
	"AssignmentRequest",
	"AssignmentResolver",
	"NoEligibleAgent",
	"DelegationTracker",
	"SupervisorAggregator",
	"SupervisorReport",
	"BossCoordinator",
	"BossTurn",
	"DispatchIntent",
	"UnknownPlanError",
]
