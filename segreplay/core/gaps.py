# segreplay/core/gaps.py
"""
Segment location and discontinuity analysis for one storage node.

Two consecutive segments are *contiguous* when the time between the last
sample of the first and the first sample of the second is at most
`tolerance * nominal_period`; otherwise the boundary is a *discontinuity*
(a hole in storage). The default tolerance of 1.5 absorbs timing jitter
while still catching a single missing sample.

Time coverage of segment i is closed-open:
- up to the start of segment i+1 when that boundary is contiguous,
- up to `t_last + nominal_period` otherwise (hole or end of data).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .cursor import ChannelCursor
from .exceptions import ConfigurationError
from .segment import Segment
from .store import SegmentStore

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 1.5

# Relative slack (in nominal periods) when comparing a time against a boundary.
_BOUNDARY_EPS = 1e-6


class Lookup(Enum):
    FOUND = "found"
    NOT_YET_STORED = "not_yet_stored"
    END_OF_DATA = "end_of_data"


@dataclass(frozen=True, slots=True)
class SegmentLocation:
    """
    Result of FindSegment.

    FOUND: `index` is the segment covering the time.
    NOT_YET_STORED: the time is in a hole; `index` is the first segment after it.
    END_OF_DATA: the time is past the node's last segment; `index` is None.
    """
    status: Lookup
    index: int | None = None


@dataclass(frozen=True, slots=True)
class Discontinuity:
    """
    Next hole after a segment.

    `start` is the exclusive end of the last segment before the hole
    (its last sample + one nominal period) and `end` is the start time
    of the first segment after it. `segment` is the index of the segment
    preceding the hole.
    """
    found: bool
    start: float | None = None
    end: float | None = None
    segment: int | None = None


def derive_nominal_period(store: SegmentStore, node: str) -> float:
    """
    Sampling period of a node, from the first two samples of its first segment.

    A single-sample first segment is assumed to have no hole between it and
    the second segment, so the segments' start times are used instead.
    """
    count = store.segment_count(node)
    if count < 1:
        raise ConfigurationError(f"Node '{node}' has no segments.")
    first = store.segment_range(node, 0)
    if first.n_samples >= 2:
        head = store.fetch_samples(node, 0, 0, 2)
        period = float(head.time[1] - head.time[0])
    elif count >= 2:
        period = store.segment_range(node, 1).t_start - first.t_start
    else:
        raise ConfigurationError(
            f"Node '{node}' holds a single sample; its sampling period is undefined."
        )
    if not period > 0:
        raise ConfigurationError(f"Node '{node}' has a non-positive sampling period ({period}).")
    return period


class GapAnalyzer:
    """Locates times and holes within the segments of one node."""

    def __init__(
        self,
        store: SegmentStore,
        node: str,
        nominal_period: float,
        tolerance: float = DEFAULT_TOLERANCE,
    ):
        if not nominal_period > 0:
            raise ConfigurationError("nominal_period must be positive.")
        if not tolerance > 1.0:
            raise ConfigurationError(f"Discontinuity tolerance must be > 1, got {tolerance}.")
        self.store = store
        self.node = node
        self.nominal_period = float(nominal_period)
        self.tolerance = float(tolerance)
        self.eps = self.nominal_period * _BOUNDARY_EPS
        self.count = store.segment_count(node)
        self._segments: dict[int, Segment] = {}

    # ------------------------------------------------------------------
    # Segment views
    # ------------------------------------------------------------------
    def segment(self, index: int) -> Segment:
        seg = self._segments.get(index)
        if seg is None:
            seg = self.store.segment_range(self.node, index)
            self._segments[index] = seg
        return seg

    def is_discontinuity(self, index: int) -> bool:
        """True when the boundary between segment `index` and `index + 1` is a hole."""
        if index + 1 >= self.count:
            return False
        gap = self.segment(index).gap_to(self.segment(index + 1))
        return gap > self.tolerance * self.nominal_period

    def coverage_stop(self, index: int) -> float:
        """Exclusive end of the time span segment `index` answers for."""
        if index + 1 < self.count and not self.is_discontinuity(index):
            return self.segment(index + 1).t_start
        return self.segment(index).end_time(self.nominal_period)

    @property
    def data_end(self) -> float:
        return self.segment(self.count - 1).end_time(self.nominal_period)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def find_segment(self, cursor: ChannelCursor, t: float) -> SegmentLocation:
        """
        Locate time `t`, scanning forward from the cursor's last segment.

        Only valid while requested times never decrease between calls.
        On FOUND the cursor's hint moves to the found segment.
        """
        for index in range(cursor.last_segment, self.count):
            seg = self.segment(index)
            if t < seg.t_start - self.eps:
                return SegmentLocation(Lookup.NOT_YET_STORED, index)
            if t < self.coverage_stop(index) - self.eps:
                cursor.advance_to(index)
                return SegmentLocation(Lookup.FOUND, index)
        return SegmentLocation(Lookup.END_OF_DATA)

    def count_discontinuities(self, first: int, last: int) -> int:
        """Number of holes between consecutive segments in [first, last]."""
        last = min(last, self.count - 1)
        return sum(1 for index in range(first, last) if self.is_discontinuity(index))

    def count_window_discontinuities(self, first: int, t_start: float, t_end: float) -> int:
        """Number of holes after segment `first` overlapping [t_start, t_end)."""
        holes = 0
        for index in range(first, self.count - 1):
            if self.segment(index).end_time(self.nominal_period) >= t_end - self.eps:
                break
            if self.is_discontinuity(index) and self.segment(index + 1).t_start > t_start + self.eps:
                holes += 1
        return holes

    def find_next_discontinuity(self, first: int) -> Discontinuity:
        """First hole after segment `first` (inclusive), if any."""
        for index in range(first, self.count - 1):
            if self.is_discontinuity(index):
                return Discontinuity(
                    found=True,
                    start=self.segment(index).end_time(self.nominal_period),
                    end=self.segment(index + 1).t_start,
                    segment=index,
                )
        return Discontinuity(found=False)

    def hole_end(self, location: SegmentLocation) -> float:
        """End of the hole a NOT_YET_STORED lookup landed in."""
        index = location.index
        if index is None:
            raise ValueError("hole_end() needs a NOT_YET_STORED location.")
        # the hole (leading or between segments) ends where segment `index` starts
        return self.segment(index).t_start
