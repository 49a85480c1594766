"""Fenced-block extraction for structured payloads embedded in boss replies."""

import json
import re
from dataclasses import dataclass
from typing import Any, Optional


def _block_pattern(tag: str) -> re.Pattern:
	return re.compile(r"```" + re.escape(tag) + r"\s*\n([\s\S]*?)\n```")


@dataclass(frozen=True)
class FencedBlock:
	"""A located ```<tag> block."""
	tag: str
	body: str
	start: int
	end: int

	def remove_from(self, text: str) -> str:
		"""Return text with this block cut out, trimmed for display."""
		return (text[:self.start] + text[self.end:]).strip()


def find_block(text: str, tag: str) -> Optional[FencedBlock]:
	"""Find the first ```<tag> fenced block, or None."""
	if not text:
		return None
	match = _block_pattern(tag).search(text)
	if not match:
		return None
	return FencedBlock(tag=tag, body=match.group(1).strip(), start=match.start(), end=match.end())


def load_block_json(block: FencedBlock) -> Any:
	"""Decode a block body as JSON. Raises ValueError on bad or too deeply nested input."""
	try:
		return json.loads(block.body)
	except RecursionError:
		raise ValueError(f"```{block.tag} block is nested too deeply") from None


def as_object_list(data: Any) -> list[dict]:
	"""Normalize a JSON payload that may be one object or an array of objects."""
	items = data if isinstance(data, list) else [data]
	for item in items:
		if not isinstance(item, dict):
			raise ValueError(f"expected JSON object, got {type(item).__name__}")
	return items
