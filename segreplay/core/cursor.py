# segreplay/core/cursor.py
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any


@dataclass(slots=True)
class ChannelCursor:
    """
    Cross-cycle resampling state of one channel.

    The cursor indexes into the SegmentStore but owns no samples.
    `last_segment` is the segment `consumed` counts into, and a forward-only
    search hint: time never moves backward between cycles, so segment
    lookups resume from it.
    `last_value` / `last_time` describe the last real sample delivered
    (filler samples never touch them).
    """
    last_segment: int = 0
    consumed: int = 0
    last_value: Any = None
    last_time: float | None = None
    exhausted: bool = False

    @property
    def has_value(self) -> bool:
        return self.last_value is not None

    def copy(self) -> "ChannelCursor":
        return replace(self)

    def advance_to(self, segment: int) -> None:
        """Move the search hint forward; it never regresses."""
        if segment > self.last_segment:
            self.last_segment = segment
            self.consumed = 0

    def deliver(self, segment: int, consumed: int, value: Any, t: float) -> None:
        """Record the last real sample handed to the consumer."""
        self.advance_to(segment)
        self.consumed = consumed
        self.last_value = value
        self.last_time = t

    def reset(self) -> None:
        self.last_segment = 0
        self.consumed = 0
        self.last_value = None
        self.last_time = None
        self.exhausted = False
