# segreplay/core/segment.py
from __future__ import annotations

import math
from dataclasses import dataclass

from .exceptions import InvalidSegment


@dataclass(frozen=True, slots=True)
class Segment:
    """
    Time-range view of one stored segment of a node.

    A segment is a contiguous run of uniformly spaced samples. The view
    only records where it sits in time; samples are fetched separately
    from the SegmentStore.

    - index: position of the segment within its node (0-based)
    - t_start: time of the first sample
    - t_last: time of the last sample
    - n_samples: number of stored samples (>= 1)
    """
    index: int
    t_start: float
    t_last: float
    n_samples: int

    def __post_init__(self) -> None:
        if not isinstance(self.index, int) or self.index < 0:
            raise InvalidSegment("Segment.index must be a non-negative integer.")
        if not isinstance(self.n_samples, int) or self.n_samples < 1:
            raise InvalidSegment("Segment.n_samples must be a positive integer.")
        if not (math.isfinite(self.t_start) and math.isfinite(self.t_last)):
            raise InvalidSegment("Segment times must be finite.")
        if self.t_last < self.t_start:
            raise InvalidSegment(
                f"Segment {self.index} ends ({self.t_last}) before it starts ({self.t_start})."
            )
        if self.n_samples == 1 and self.t_last != self.t_start:
            raise InvalidSegment("A single-sample segment must start and end at the same time.")

    @property
    def duration(self) -> float:
        return self.t_last - self.t_start

    def end_time(self, nominal_period: float) -> float:
        """Exclusive end of the segment: one nominal period past its last sample."""
        return self.t_last + nominal_period

    def offset_of(self, t: float, nominal_period: float) -> int:
        """Index of the stored sample at (or just before) time `t`, clamped to the segment."""
        if t <= self.t_start:
            return 0
        # Small epsilon absorbs float error when t lands on a sample instant.
        k = int(math.floor((t - self.t_start) / nominal_period + 1e-9))
        return min(k, self.n_samples - 1)

    def gap_to(self, following: "Segment") -> float:
        """Time between this segment's last sample and `following`'s first sample."""
        return following.t_start - self.t_last
