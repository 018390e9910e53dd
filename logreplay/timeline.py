"""
Timeline normalizer - turns absolute access times into offsets from the
earliest entry, optionally translated by a constant shift.
"""

import re
from dataclasses import dataclass
from datetime import timedelta
from itertools import groupby
from typing import Iterator, List, Optional, Sequence, Tuple

from logreplay.entry import AccessEntry
from logreplay.errors import EmptyOrInvalidInput


SHIFT_UNITS = {
    "s": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "d": timedelta(days=1),
    "w": timedelta(weeks=1),
}

_SHIFT_RE = re.compile(r"^(-?)(\d+)([a-z])$")


def parse_shift(text: str) -> timedelta:
    """
    Parse a shift such as "2s", "5m", "5h", "1d" or "2w".

    A leading "-" gives a negative shift.

    Raises:
        ValueError: on empty text, a missing or unknown unit, or a non-integer amount
    """
    match = _SHIFT_RE.match(text.strip()) if text else None
    if not match:
        raise ValueError(f"invalid shift time: {text!r}")
    sign, amount, unit = match.groups()
    if unit not in SHIFT_UNITS:
        raise ValueError(f"invalid shift unit {unit!r} (use one of s, m, h, d, w)")
    delta = SHIFT_UNITS[unit] * int(amount)
    return -delta if sign else delta


@dataclass(frozen=True)
class ScheduledEntry:
    """An entry placed on the timeline. `index` is its position in the loaded log."""

    index: int
    entry: AccessEntry
    offset: timedelta


@dataclass(frozen=True)
class Timeline:
    items: Tuple[ScheduledEntry, ...] = ()

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator[ScheduledEntry]:
        return iter(self.items)

    def __getitem__(self, position: int) -> ScheduledEntry:
        return self.items[position]

    @property
    def offsets(self) -> List[timedelta]:
        return [item.offset for item in self.items]

    @property
    def duration(self) -> timedelta:
        """Time between the first and the last scheduled moment."""
        if not self.items:
            return timedelta(0)
        return self.items[-1].offset - self.items[0].offset

    def shifted(self, delta: timedelta) -> "Timeline":
        """Return a copy with every offset moved by `delta`. Spacing is unchanged."""
        return Timeline(
            tuple(ScheduledEntry(i.index, i.entry, i.offset + delta) for i in self.items)
        )

    def groups(self) -> Iterator[Tuple[timedelta, List[Tuple[int, ScheduledEntry]]]]:
        """
        Yield (offset, [(position, item), ...]) for each run of identical offsets,
        in playback order. `position` is the item's place on the timeline.
        """
        for offset, run in groupby(enumerate(self.items), key=lambda p: p[1].offset):
            yield offset, list(run)


def build_timeline(entries: Sequence[AccessEntry], shift: Optional[timedelta] = None) -> Timeline:
    """
    Order entries by access time and compute offsets from the earliest one.

    The sort is stable: entries recorded at the same instant keep their log
    order. `shift` is added to every offset.

    Args:
        entries: validated entries, in log order
        shift: constant translation applied to all offsets

    Returns:
        Timeline (empty when there are no entries)

    Raises:
        EmptyOrInvalidInput: if an element is not an AccessEntry
    """
    for position, entry in enumerate(entries):
        if not isinstance(entry, AccessEntry):
            raise EmptyOrInvalidInput(
                f"entry {position} is {type(entry).__name__}, not AccessEntry"
            )
    if not entries:
        return Timeline()

    ordered = sorted(enumerate(entries), key=lambda p: p[1].accessed_at)
    earliest = ordered[0][1].accessed_at
    timeline = Timeline(
        tuple(ScheduledEntry(index, entry, entry.accessed_at - earliest) for index, entry in ordered)
    )
    if shift:
        timeline = timeline.shifted(shift)
    return timeline
