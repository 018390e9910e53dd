"""
Load recorded access logs into AccessEntry lists.

Two layouts are accepted: a JSON array of log objects, or newline-delimited
JSON (one object per line).
"""

import json
import logging
from pathlib import Path
from typing import Any, Iterable, List, Tuple

from logreplay.entry import AccessEntry
from logreplay.errors import MalformedEntry

logger = logging.getLogger(__name__)


def _iter_objects(text: str) -> Iterable[Tuple[int, Any]]:
    stripped = text.lstrip()
    if stripped.startswith("["):
        try:
            objs = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise MalformedEntry(f"log is not valid JSON: {e}") from None
        yield from enumerate(objs)
        return

    position = 0
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError as e:
            raise MalformedEntry(f"line {lineno} is not valid JSON: {e}") from None
        yield position, obj
        position += 1


def load_log_text(text: str, skip_invalid: bool = False) -> List[AccessEntry]:
    """
    Parse log text into entries, keeping the order they were written in.

    Args:
        text: JSON array or NDJSON text
        skip_invalid: drop entries that fail validation instead of raising

    Returns:
        List of AccessEntry
    """
    entries = []
    for position, obj in _iter_objects(text):
        try:
            entries.append(AccessEntry.from_json(obj))
        except MalformedEntry as e:
            if not skip_invalid:
                raise MalformedEntry(f"entry {position}: {e}") from None
            logger.warning("Skipping entry %d: %s", position, e)
    logger.info("Loaded %d entries", len(entries))
    return entries


def load_log_file(path, skip_invalid: bool = False) -> List[AccessEntry]:
    """Read a log file from disk. See load_log_text."""
    text = Path(path).read_text(encoding="utf-8")
    return load_log_text(text, skip_invalid=skip_invalid)
