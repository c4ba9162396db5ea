# segreplay/core/timeseries.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Protocol, runtime_checkable

import numpy as np

from .exceptions import InvalidTimeSeries


def _validate(t: np.ndarray, v: np.ndarray) -> None:
    if t.ndim != 1:
        raise InvalidTimeSeries(f"`time` must be 1D, got shape {t.shape}")
    if v.ndim != 1:
        raise InvalidTimeSeries(f"`values` must be 1D, got shape {v.shape}")
    if t.size != v.size:
        raise InvalidTimeSeries(
            f"`time` and `values` must have same length, got {t.size} vs {v.size}"
        )
    if t.size == 0:
        raise InvalidTimeSeries("A segment must hold at least one sample.")
    if not np.isfinite(t).all():
        raise InvalidTimeSeries("`time` contains non-finite values (NaN/Inf).")
    if np.any(np.diff(t) <= 0):
        raise InvalidTimeSeries("`time` must be strictly increasing.")


@runtime_checkable
class TimeSeriesLike(Protocol):
    """Samples and time base of one stored segment, eager or lazy."""

    @property
    def time(self) -> np.ndarray: ...

    @property
    def values(self) -> np.ndarray: ...

    attrs: dict[str, Any]

    @property
    def n(self) -> int: ...

    @property
    def t_start(self) -> float: ...

    @property
    def t_last(self) -> float: ...

    @property
    def dtype(self) -> np.dtype: ...

    def take(self, offset: int, count: int) -> "TimeSeries": ...


def _take_stop(offset: int, count: int, n: int) -> int:
    if offset < 0 or count < 1:
        raise InvalidTimeSeries("`offset` must be non-negative and `count` positive.")
    if offset >= n:
        raise InvalidTimeSeries(f"`offset` {offset} is past the end of a {n}-sample run.")
    return min(n, offset + count)


@dataclass(frozen=True, slots=True)
class TimeSeries:
    """Immutable run of stored samples: 1D time vector + 1D values vector."""

    time: np.ndarray = field(repr=False)
    values: np.ndarray = field(repr=False)
    attrs: dict[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        t = np.asarray(self.time, dtype=np.float64)
        v = np.asarray(self.values)
        _validate(t, v)

        if self.attrs is None:
            object.__setattr__(self, "attrs", {})
        elif not isinstance(self.attrs, dict):
            raise InvalidTimeSeries("`attrs` must be a dict.")

        object.__setattr__(self, "time", t)
        object.__setattr__(self, "values", v)

    @classmethod
    def uniform(cls, t_start: float, period: float, values, **attrs: Any) -> "TimeSeries":
        """Build a uniformly spaced run starting at `t_start`."""
        v = np.asarray(values)
        if period <= 0:
            raise InvalidTimeSeries("`period` must be positive.")
        t = t_start + period * np.arange(v.size, dtype=np.float64)
        return cls(time=t, values=v, attrs=dict(attrs))

    @property
    def n(self) -> int:
        return int(self.time.size)

    @property
    def t_start(self) -> float:
        return float(self.time[0])

    @property
    def t_last(self) -> float:
        return float(self.time[-1])

    @property
    def dtype(self) -> np.dtype:
        return self.values.dtype

    def take(self, offset: int, count: int) -> "TimeSeries":
        """Return `count` samples starting at `offset` (clamped to the run)."""
        stop = _take_stop(offset, count, self.n)
        return TimeSeries(
            time=self.time[offset:stop],
            values=self.values[offset:stop],
            attrs=self.attrs.copy(),
        )

    def to_numpy(self, *, copy: bool = False) -> tuple[np.ndarray, np.ndarray]:
        if copy:
            return self.time.copy(), self.values.copy()
        return self.time, self.values


@dataclass(slots=True)
class LazyTimeSeries:
    """Lazy run of stored samples: loads arrays on first access and caches them."""

    loader: Callable[[], tuple[np.ndarray, np.ndarray]] = field(repr=False)
    attrs: dict[str, Any] = field(default_factory=dict, repr=False)

    _time: np.ndarray | None = field(default=None, init=False, repr=False)
    _values: np.ndarray | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if not callable(self.loader):
            raise InvalidTimeSeries("LazyTimeSeries.loader must be callable.")
        if self.attrs is None:
            self.attrs = {}
        elif not isinstance(self.attrs, dict):
            raise InvalidTimeSeries("`attrs` must be a dict.")

    @property
    def loaded(self) -> bool:
        return self._time is not None

    def _ensure_loaded(self) -> None:
        if self._time is not None and self._values is not None:
            return

        t, v = self.loader()
        t = np.asarray(t, dtype=np.float64)
        v = np.asarray(v)
        _validate(t, v)

        self._time = t
        self._values = v

    @property
    def time(self) -> np.ndarray:
        self._ensure_loaded()
        return self._time  # type: ignore[return-value]

    @property
    def values(self) -> np.ndarray:
        self._ensure_loaded()
        return self._values  # type: ignore[return-value]

    @property
    def n(self) -> int:
        return int(self.time.size)

    @property
    def t_start(self) -> float:
        return float(self.time[0])

    @property
    def t_last(self) -> float:
        return float(self.time[-1])

    @property
    def dtype(self) -> np.dtype:
        return self.values.dtype

    def take(self, offset: int, count: int) -> TimeSeries:
        # Only the slice is wrapped (and validated), not the whole cached run.
        stop = _take_stop(offset, count, self.n)
        return TimeSeries(
            time=self.time[offset:stop],
            values=self.values[offset:stop],
            attrs=self.attrs.copy(),
        )

    def to_numpy(self, *, copy: bool = False) -> tuple[np.ndarray, np.ndarray]:
        self._ensure_loaded()
        if copy:
            return self.time.copy(), self.values.copy()
        return self.time, self.values
