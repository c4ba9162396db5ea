# segreplay/core/resampler.py
"""
Copy strategies turning stored samples into the consumer's samples.

Every strategy works on one segment at a time and never reads past its
end, except that interpolation and nearest-hold may peek at the first
sample of the following segment when the boundary between them is
contiguous, and raw copy carries on into that segment when it runs out.
The kind (and so the numpy dtype) is fixed once per channel, so the
per-sample loops are plain vectorised numpy.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

import numpy as np

from .channel import ChannelSpec
from .gaps import GapAnalyzer
from .numeric import NumericKind, lerp
from .policies import ResamplingPolicy


@dataclass(frozen=True, slots=True)
class CopyResult:
    """
    Outcome of one strategy call.

    - produced: samples written to the output buffer
    - segment: segment the last stored sample was read from
    - consumed: stored samples of that segment used up (offset for the next read)
    - last_value / last_time: the last real sample delivered, if any
    """
    produced: int
    consumed: int
    last_value: Any = None
    last_time: float | None = None
    segment: int | None = None


# ----------------------------------------------------------------------
# Pure kernels: times in, values out
# ----------------------------------------------------------------------
def _brackets(sample_t: np.ndarray, times: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Indices of the stored samples at/before and after every requested time."""
    last = sample_t.size - 1
    left = np.clip(np.searchsorted(sample_t, times, side="right") - 1, 0, last)
    right = np.minimum(left + 1, last)
    return left, right


def interpolate(
    times: np.ndarray,
    sample_t: np.ndarray,
    sample_v: np.ndarray,
    kind: NumericKind,
) -> np.ndarray:
    """
    Linear interpolation between the two stored samples bracketing each time.

    d = d1 + (d2 - d1) * (t - t1) / (t2 - t1); a zero-length bracket
    (t2 == t1) yields d1. Up- and down-sampling both go through here.
    Times outside the stored samples hold the nearest end value.
    """
    left, right = _brackets(sample_t, times)
    t1 = sample_t[left]
    t2 = sample_t[right]
    span = t2 - t1
    frac = np.divide(times - t1, span, out=np.zeros_like(times, dtype=np.float64), where=span > 0)
    return lerp(sample_v[left], sample_v[right], np.clip(frac, 0.0, 1.0), kind)


def nearest(
    times: np.ndarray,
    sample_t: np.ndarray,
    sample_v: np.ndarray,
    kind: NumericKind,
) -> np.ndarray:
    """Value of the closer bracketing sample; a tie goes to the earlier one."""
    left, right = _brackets(sample_t, times)
    take_right = (sample_t[right] - times) < (times - sample_t[left])
    picked = np.where(take_right, right, left)
    return sample_v[picked].astype(kind.dtype, copy=False)


def raw(sample_v: np.ndarray, count: int, kind: NumericKind) -> np.ndarray:
    """Verbatim element-for-element copy of the first `count` stored samples."""
    return sample_v[:count].astype(kind.dtype, copy=False)


# ----------------------------------------------------------------------
# Segment-bound copy
# ----------------------------------------------------------------------
class Resampler:
    """
    Applies a channel's resampling policy to one segment at a time.

    copy() writes into `out[offset:offset + len(times)]` and returns how many
    samples it actually produced; the caller fills whatever is left.
    """

    def __init__(self, spec: ChannelSpec, analyzer: GapAnalyzer):
        if spec.kind is None:
            raise ValueError(f"Channel '{spec.name}' has no resolved numeric kind.")
        self.spec = spec
        self.kind = spec.kind
        self.analyzer = analyzer
        self.store = analyzer.store
        self.node = analyzer.node
        strategies: dict[ResamplingPolicy, Callable[..., CopyResult]] = {
            ResamplingPolicy.RAW: self._copy_raw,
            ResamplingPolicy.INTERPOLATE: self._copy_interpolated,
            ResamplingPolicy.NEAREST_HOLD: self._copy_nearest,
        }
        self._strategy = strategies[spec.resampling]

    def copy(
        self,
        segment: int,
        times: np.ndarray,
        out: np.ndarray,
        offset: int,
        position: int | None = None,
    ) -> CopyResult:
        """
        `position` is the next unread sample of `segment` when the channel is
        already reading it. Raw copy continues from there; the time-based
        strategies locate their samples from `times` alone.
        """
        if times.size == 0:
            return CopyResult(produced=0, consumed=0, segment=segment)
        return self._strategy(segment, times, out, offset, position)

    # ---- raw ----
    def _copy_raw(
        self,
        segment: int,
        times: np.ndarray,
        out: np.ndarray,
        offset: int,
        position: int | None,
    ) -> CopyResult:
        seg = self.analyzer.segment(segment)
        if position is None:
            # floor, the same mapping coverage_stop() uses
            start = seg.offset_of(float(times[0]), self.analyzer.nominal_period)
        else:
            start = position

        produced = 0
        last_value = None
        last_time = None
        while produced < times.size:
            if start >= seg.n_samples:
                # a contiguous segment continues the same stream
                if self.analyzer.is_discontinuity(segment) or segment + 1 >= self.analyzer.count:
                    break
                segment += 1
                seg = self.analyzer.segment(segment)
                start = 0
                continue
            count = min(times.size - produced, seg.n_samples - start)
            run = self.store.fetch_samples(self.node, segment, start, count)
            values = raw(run.values, count, self.kind)
            out[offset + produced:offset + produced + count] = values
            produced += count
            start += count
            last_value = values[-1]
            last_time = float(run.time[count - 1])

        return CopyResult(
            produced=produced,
            consumed=start,
            last_value=last_value,
            last_time=last_time,
            segment=segment,
        )

    # ---- interpolate / nearest ----
    def _window(self, segment: int, times: np.ndarray) -> tuple[np.ndarray, np.ndarray, int]:
        """Stored samples bracketing `times`, plus the next segment's head when contiguous."""
        seg = self.analyzer.segment(segment)
        period = self.analyzer.nominal_period
        # One sample of slack on the left absorbs float error at sample instants.
        first = max(seg.offset_of(float(times[0]), period) - 1, 0)
        last = seg.offset_of(float(times[-1]), period)
        stop = min(seg.n_samples, last + 2)

        run = self.store.fetch_samples(self.node, segment, first, stop - first)
        sample_t, sample_v = run.time, run.values
        if last + 1 >= seg.n_samples and not self.analyzer.is_discontinuity(segment) \
                and segment + 1 < self.analyzer.count:
            head = self.store.fetch_samples(self.node, segment + 1, 0, 1)
            sample_t = np.concatenate([sample_t, head.time])
            sample_v = np.concatenate([sample_v, head.values])
        return sample_t, sample_v, first

    def _finish(
        self,
        values: np.ndarray,
        times: np.ndarray,
        sample_t: np.ndarray,
        first: int,
        segment: int,
        out: np.ndarray,
        offset: int,
    ) -> CopyResult:
        produced = int(values.size)
        out[offset:offset + produced] = values
        seg = self.analyzer.segment(segment)
        left = int(np.searchsorted(sample_t, times[-1], side="right")) - 1
        consumed = min(seg.n_samples, first + max(left, 0) + 1)
        return CopyResult(
            produced=produced,
            consumed=consumed,
            last_value=values[-1],
            last_time=float(times[-1]),
            segment=segment,
        )

    def _copy_interpolated(
        self, segment: int, times: np.ndarray, out: np.ndarray, offset: int, position: int | None
    ) -> CopyResult:
        sample_t, sample_v, first = self._window(segment, times)
        values = interpolate(times, sample_t, sample_v, self.kind)
        return self._finish(values, times, sample_t, first, segment, out, offset)

    def _copy_nearest(
        self, segment: int, times: np.ndarray, out: np.ndarray, offset: int, position: int | None
    ) -> CopyResult:
        sample_t, sample_v, first = self._window(segment, times)
        values = nearest(times, sample_t, sample_v, self.kind)
        return self._finish(values, times, sample_t, first, segment, out, offset)
