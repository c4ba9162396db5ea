# segreplay/core/engine.py
"""
Cycle driver: replays segmented storage as a fixed-rate, gap-free stream.

Every call to `SegmentedReader.run_cycle()` covers the window
`[current_time, current_time + period)` and writes exactly
`elements` samples per channel into caller-owned buffers. Per channel the
window is walked once to build a run list of `DataRun` (copy stored
samples of one segment) and `FillRun` (write the hole filler) pieces,
which is then executed in order.

The engine is synchronous and keeps no locks; callers sharing an instance
between threads must serialise calls themselves.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping

import numpy as np

from .channel import ChannelSpec, TimeSignalSpec
from .cursor import ChannelCursor
from .exceptions import ChannelNotFound, ConfigurationError, CycleError, StorageError
from .gaps import DEFAULT_TOLERANCE, GapAnalyzer, Lookup, derive_nominal_period
from .policies import HolePolicy, ResamplingPolicy
from .resampler import Resampler
from .store import SegmentStore

logger = logging.getLogger(__name__)

# Relative tolerance when checking that a raw channel's rates match.
_RAW_RATE_RTOL = 1e-6


@dataclass(frozen=True, slots=True)
class DataRun:
    segment: int
    count: int


@dataclass(frozen=True, slots=True)
class FillRun:
    count: int


@dataclass(frozen=True, slots=True)
class ChannelReport:
    """
    What one channel delivered during one cycle.

    - produced: real samples resampled from storage
    - filled: filler samples written (holes and end of data)
    - discontinuities: storage holes overlapping the cycle window
    - exhausted: the channel has no more data
    - failed: the channel raised a StorageError; its buffer is undefined
    """
    produced: int
    filled: int
    discontinuities: int = 0
    exhausted: bool = False
    failed: bool = False


@dataclass(frozen=True, slots=True)
class CycleResult:
    """Outcome of one cycle across all channels."""
    cycle: int
    time: float
    more_data: bool
    channels: dict[str, ChannelReport] = field(default_factory=dict, repr=False)
    time_value: int | None = None

    @property
    def sample_counts(self) -> dict[str, int]:
        return {name: report.produced for name, report in self.channels.items()}


def plan_window(
    analyzer: GapAnalyzer,
    cursor: ChannelCursor,
    times: np.ndarray,
) -> list[DataRun | FillRun]:
    """
    Split the requested sample instants into data and filler runs.

    Each run ends where the segment (or hole) holding its first instant
    ends, so a window starting or ending in data or in a hole is handled
    by the same walk. Reaching the end of data marks the cursor exhausted
    and fills the rest of the window.
    """
    runs: list[DataRun | FillRun] = []
    n = int(times.size)
    k = 0
    while k < n:
        location = analyzer.find_segment(cursor, float(times[k]))
        if location.status is Lookup.END_OF_DATA:
            cursor.exhausted = True
            runs.append(FillRun(n - k))
            break
        if location.status is Lookup.NOT_YET_STORED:
            boundary = analyzer.hole_end(location)
        else:
            boundary = analyzer.coverage_stop(location.index)
        stop = int(np.searchsorted(times, boundary - analyzer.eps, side="left"))
        count = max(stop - k, 1)
        if location.status is Lookup.FOUND:
            runs.append(DataRun(segment=location.index, count=count))
        else:
            runs.append(FillRun(count))
        k += count
    return runs


@dataclass(frozen=True, slots=True)
class _BoundChannel:
    spec: ChannelSpec
    analyzer: GapAnalyzer
    resampler: Resampler
    step: float


class SegmentedReader:
    """
    Multi-channel, fixed-rate reader over a SegmentStore.

    Typical use:
        reader = SegmentedReader(store, frequency=1000.0)
        reader.configure([ChannelSpec("ip", elements=10)])
        buffers = reader.allocate_buffers()
        while reader.run_cycle(buffers).more_data:
            consume(buffers)
    """

    def __init__(
        self,
        store: SegmentStore,
        frequency: float,
        *,
        start_time: float = 0.0,
        tolerance: float = DEFAULT_TOLERANCE,
    ):
        if isinstance(frequency, bool) or not isinstance(frequency, (int, float)):
            raise ConfigurationError(f"frequency must be a number, got {frequency!r}.")
        if not (math.isfinite(frequency) and frequency > 0):
            raise ConfigurationError(f"frequency must be positive, got {frequency}.")
        if not math.isfinite(start_time):
            raise ConfigurationError("start_time must be finite.")
        if not tolerance > 1.0:
            raise ConfigurationError(f"Discontinuity tolerance must be > 1, got {tolerance}.")

        self.store = store
        self.frequency = float(frequency)
        self.period = 1.0 / self.frequency
        self.start_time = float(start_time)
        self.tolerance = float(tolerance)

        self._channels: dict[str, _BoundChannel] = {}
        self._cursors: dict[str, ChannelCursor] = {}
        self._time_signal: TimeSignalSpec | None = None
        self._cycles = 0

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def configure(
        self,
        channels: Iterable[ChannelSpec],
        time_signal: TimeSignalSpec | None = None,
    ) -> None:
        """Validate and bind channels against the store; resets the clock."""
        bound: dict[str, _BoundChannel] = {}
        for spec in channels:
            if not isinstance(spec, ChannelSpec):
                raise ConfigurationError("configure() expects ChannelSpec instances.")
            if spec.name in bound:
                raise ConfigurationError(f"Channel '{spec.name}' is configured twice.")
            bound[spec.name] = self._bind(spec)
        if not bound:
            raise ConfigurationError("At least one channel must be configured.")

        if time_signal is not None:
            if not isinstance(time_signal, TimeSignalSpec):
                raise ConfigurationError("time_signal must be a TimeSignalSpec.")
            if time_signal.name in bound:
                raise ConfigurationError(
                    f"Time signal name '{time_signal.name}' clashes with a channel."
                )
            if self.start_time < 0 and not np.issubdtype(time_signal.kind.dtype, np.signedinteger):
                raise ConfigurationError("A negative start_time needs a signed time signal type.")

        self._channels = bound
        self._time_signal = time_signal
        self.reset()

        for ch in bound.values():
            logger.info(
                "Channel %s <- node %s: %s x%d, %s, %s, nominal period %g s",
                ch.spec.name,
                ch.spec.node,
                ch.spec.kind.value,
                ch.spec.elements,
                ch.spec.resampling.name.lower(),
                ch.spec.holes.name.lower(),
                ch.analyzer.nominal_period,
            )
        logger.info("Configured %d channel(s) at %g Hz", len(bound), self.frequency)

    def _bind(self, spec: ChannelSpec) -> _BoundChannel:
        node = spec.node
        try:
            count = self.store.segment_count(node)
        except ChannelNotFound as e:
            raise ConfigurationError(f"Channel '{spec.name}': node '{node}' not found.") from e
        if count < 1:
            raise ConfigurationError(f"Channel '{spec.name}': node '{node}' has no segments.")

        stored = self.store.node_kind(node)
        if spec.kind is None:
            spec = spec.with_kind(stored)
        elif spec.kind is not stored:
            raise ConfigurationError(
                f"Channel '{spec.name}': configured type {spec.kind.value} does not match "
                f"node '{node}' type {stored.value}."
            )

        nominal = derive_nominal_period(self.store, node)
        step = self.period / spec.elements
        if spec.resampling is ResamplingPolicy.RAW and not math.isclose(
            nominal, step, rel_tol=_RAW_RATE_RTOL
        ):
            raise ConfigurationError(
                f"Channel '{spec.name}': raw copy needs the node period ({nominal:g} s) to equal "
                f"period / elements ({step:g} s)."
            )

        analyzer = GapAnalyzer(self.store, node, nominal, self.tolerance)
        return _BoundChannel(spec=spec, analyzer=analyzer, resampler=Resampler(spec, analyzer), step=step)

    def reset(self) -> None:
        """Rewind every cursor and the clock to the start of data (between runs only)."""
        self._cursors = {name: ChannelCursor() for name in self._channels}
        self._cycles = 0

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def configured(self) -> bool:
        return bool(self._channels)

    @property
    def channels(self) -> dict[str, ChannelSpec]:
        return {name: ch.spec for name, ch in self._channels.items()}

    @property
    def time_signal(self) -> TimeSignalSpec | None:
        return self._time_signal

    @property
    def cycles(self) -> int:
        return self._cycles

    @property
    def current_time(self) -> float:
        # Derived from the cycle count so the clock never drifts.
        return self.start_time + self._cycles * self.period

    @property
    def more_data(self) -> bool:
        return not all(cursor.exhausted for cursor in self._cursors.values())

    def cursor(self, name: str) -> ChannelCursor:
        try:
            return self._cursors[name].copy()
        except KeyError as e:
            raise ChannelNotFound(name) from e

    def nominal_period(self, name: str) -> float:
        try:
            return self._channels[name].analyzer.nominal_period
        except KeyError as e:
            raise ChannelNotFound(name) from e

    def allocate_buffers(self) -> dict[str, np.ndarray]:
        """Fresh zeroed output buffers; the caller owns them from then on."""
        self._require_configured()
        buffers = {
            name: np.zeros(ch.spec.elements, dtype=ch.spec.kind.dtype)
            for name, ch in self._channels.items()
        }
        if self._time_signal is not None:
            ts = self._time_signal
            buffers[ts.name] = np.zeros(ts.elements, dtype=ts.kind.dtype)
        return buffers

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------
    def run_cycle(self, buffers: Mapping[str, np.ndarray]) -> CycleResult:
        """
        Fill every channel buffer for the current window and advance the clock.

        Channels are processed independently: a StorageError on one channel
        leaves its cursor untouched and its buffer undefined, the others are
        delivered normally, and a CycleError is raised once the cycle is done.
        """
        self._require_configured()
        self._check_buffers(buffers)

        t0 = self.current_time
        reports: dict[str, ChannelReport] = {}
        failures: dict[str, StorageError] = {}

        for name, ch in self._channels.items():
            previous = self._cursors[name]
            try:
                cursor, report = self._process(ch, previous, t0, buffers[name])
            except StorageError as e:
                logger.error("Channel %s failed at t=%g: %s", name, t0, e)
                failures[name] = e
                reports[name] = ChannelReport(
                    produced=0, filled=0, exhausted=previous.exhausted, failed=True
                )
                continue
            if cursor.exhausted and not previous.exhausted:
                logger.info("Channel %s reached the end of node %s at t=%g", name, ch.spec.node, t0)
            self._cursors[name] = cursor
            reports[name] = report

        time_value = self._publish_time(t0, buffers)
        self._cycles += 1

        result = CycleResult(
            cycle=self._cycles,
            time=t0,
            more_data=self.more_data,
            channels=reports,
            time_value=time_value,
        )
        if not result.more_data:
            logger.info("All channels exhausted after %d cycle(s)", self._cycles)
        if failures:
            raise CycleError(result, failures)
        return result

    def iter_cycles(
        self,
        buffers: Mapping[str, np.ndarray],
        max_cycles: int | None = None,
    ) -> Iterator[CycleResult]:
        """Run cycles until every channel is exhausted (the final cycle included)."""
        done = 0
        while max_cycles is None or done < max_cycles:
            result = self.run_cycle(buffers)
            done += 1
            yield result
            if not result.more_data:
                return

    def _require_configured(self) -> None:
        if not self._channels:
            raise ConfigurationError("The reader has no configured channels.")

    def _check_buffers(self, buffers: Mapping[str, np.ndarray]) -> None:
        expected = {name: (ch.spec.elements, ch.spec.kind.dtype) for name, ch in self._channels.items()}
        if self._time_signal is not None:
            ts = self._time_signal
            expected[ts.name] = (ts.elements, ts.kind.dtype)
        for name, (elements, dtype) in expected.items():
            buf = buffers.get(name)
            if not isinstance(buf, np.ndarray):
                raise ConfigurationError(f"No output buffer for signal '{name}'.")
            if buf.shape != (elements,) or buf.dtype != dtype:
                raise ConfigurationError(
                    f"Buffer for '{name}' must be {dtype} with shape ({elements},), "
                    f"got {buf.dtype} {buf.shape}."
                )

    def _publish_time(self, t0: float, buffers: Mapping[str, np.ndarray]) -> int | None:
        if self._time_signal is None:
            return None
        ts = self._time_signal
        micros = int(round(t0 * 1e6))
        # Wraps like an integer cast when the counter overflows the type.
        value = np.array([micros], dtype=np.int64).astype(ts.kind.dtype)
        buffers[ts.name][:] = value
        return int(value[0])

    # ------------------------------------------------------------------
    # Per-channel processing
    # ------------------------------------------------------------------
    def _process(
        self,
        ch: _BoundChannel,
        previous: ChannelCursor,
        t0: float,
        out: np.ndarray,
    ) -> tuple[ChannelCursor, ChannelReport]:
        cursor = previous.copy()
        elements = ch.spec.elements

        if cursor.exhausted:
            out[:] = self._fill_value(ch, cursor)
            return cursor, ChannelReport(produced=0, filled=elements, exhausted=True)

        times = t0 + ch.step * np.arange(elements, dtype=np.float64)
        first = cursor.last_segment
        # planning walks a scratch copy; only delivered samples move the cursor
        scan = cursor.copy()
        runs = plan_window(ch.analyzer, scan, times)
        cursor.exhausted = scan.exhausted

        holes = ch.analyzer.count_window_discontinuities(first, t0, t0 + self.period)
        logger.debug(
            "Channel %s t=%g: %d discontinuit%s, runs=%s",
            ch.spec.name,
            t0,
            holes,
            "y" if holes == 1 else "ies",
            runs,
        )

        produced, filled = self._execute(ch, cursor, times, runs, out)
        return cursor, ChannelReport(
            produced=produced,
            filled=filled,
            discontinuities=holes,
            exhausted=cursor.exhausted,
        )

    def _execute(
        self,
        ch: _BoundChannel,
        cursor: ChannelCursor,
        times: np.ndarray,
        runs: list[DataRun | FillRun],
        out: np.ndarray,
    ) -> tuple[int, int]:
        offset = 0
        produced = 0
        filled = 0
        for run in runs:
            end = offset + run.count
            if isinstance(run, FillRun):
                out[offset:end] = self._fill_value(ch, cursor)
                filled += run.count
            else:
                position = None
                if cursor.has_value and cursor.last_segment == run.segment:
                    position = cursor.consumed
                result = ch.resampler.copy(run.segment, times[offset:end], out, offset, position)
                if result.produced:
                    cursor.deliver(result.segment, result.consumed, result.last_value, result.last_time)
                short = run.count - result.produced
                if short:
                    out[offset + result.produced:end] = self._fill_value(ch, cursor)
                    filled += short
                produced += result.produced
            offset = end
        return produced, filled

    @staticmethod
    def _fill_value(ch: _BoundChannel, cursor: ChannelCursor):
        if ch.spec.holes is HolePolicy.HOLD_LAST and cursor.has_value:
            return cursor.last_value
        return ch.spec.kind.zero
