"""
Context Codec - Hidden team-status preamble for boss messages.

Outgoing boss messages carry a digest of the team between two sentinel
markers, followed by the actual instruction:

	<<<BOSS_CONTEXT_START>>>
	...digest...
	<<<BOSS_CONTEXT_END>>>

	instruction

The markers must never appear in the context or the instruction.
Decoding fails open: anything that does not look like a well-formed
envelope is returned as a plain instruction, byte for byte.
"""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

BOSS_CONTEXT_START = "<<<BOSS_CONTEXT_START>>>"
BOSS_CONTEXT_END = "<<<BOSS_CONTEXT_END>>>"


class MarkerCollisionError(ValueError):
	"""Raised when text to be encoded already contains a sentinel marker."""
	pass


@dataclass(frozen=True)
class DecodedMessage:
	"""A boss message split into its hidden context and visible instruction."""
	context: Optional[str]
	instruction: str

	@property
	def has_context(self) -> bool:
		return self.context is not None


def _check_markers(label: str, text: str) -> None:
	for marker in (BOSS_CONTEXT_START, BOSS_CONTEXT_END):
		if marker in text:
			raise MarkerCollisionError(f"{label} contains reserved marker {marker}")


def encode(context: str, instruction: str) -> str:
	"""
	Wrap an instruction with a context preamble.

	Raises:
		MarkerCollisionError: If either part contains a sentinel marker
	"""
	_check_markers("context", context)
	_check_markers("instruction", instruction)
	return f"{BOSS_CONTEXT_START}\n{context}\n{BOSS_CONTEXT_END}\n\n{instruction}"


def decode(message: str) -> DecodedMessage:
	"""
	Split a message into (context, instruction).

	A message without a leading start marker, without an end marker, or
	with the end marker before the start marker has no context; the whole
	text is the instruction.
	"""
	stripped = message.lstrip()
	if not stripped.startswith(BOSS_CONTEXT_START):
		return DecodedMessage(context=None, instruction=message)

	end = stripped.rfind(BOSS_CONTEXT_END)
	if end < len(BOSS_CONTEXT_START):
		logger.debug("Context start marker without a matching end marker")
		return DecodedMessage(context=None, instruction=message)

	context = stripped[len(BOSS_CONTEXT_START):end]
	if context.startswith("\n"):
		context = context[1:]
	if context.endswith("\n"):
		context = context[:-1]

	instruction = stripped[end + len(BOSS_CONTEXT_END):]
	if instruction.startswith("\n\n"):
		instruction = instruction[2:]

	return DecodedMessage(context=context, instruction=instruction)


def strip_context(message: str) -> str:
	"""Return only the instruction part of a message."""
	return decode(message).instruction
