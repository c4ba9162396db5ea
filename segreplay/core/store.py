# segreplay/core/store.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Mapping, Protocol, Sequence

import numpy as np

from .exceptions import ChannelNotFound, InvalidTimeSeries, SegmentNotFound
from .numeric import NumericKind
from .segment import Segment
from .timeseries import LazyTimeSeries, TimeSeries, TimeSeriesLike


class SegmentStore(Protocol):
    """
    Read-only access to segmented historical data.

    The engine talks to storage only through these calls. Implementations
    report failures by raising StorageError (or one of its subclasses).
    """

    def segment_count(self, node: str) -> int:
        ...

    def segment_range(self, node: str, index: int) -> Segment:
        ...

    def fetch_samples(self, node: str, index: int, offset: int, count: int) -> TimeSeries:
        ...

    def node_kind(self, node: str) -> NumericKind:
        ...


def check_ordered(node: str, runs: Sequence[TimeSeriesLike]) -> None:
    """Segments of a node must not overlap and must be stored in time order."""
    for prev, cur in zip(runs, runs[1:]):
        if cur.t_start <= prev.t_last:
            raise InvalidTimeSeries(
                f"Node '{node}': segment starting at {cur.t_start} overlaps the previous one "
                f"(last sample at {prev.t_last})."
            )


@dataclass(frozen=True, slots=True)
class MemorySegmentStore:
    """
    In-memory SegmentStore: node name -> ordered list of segments.

    Design goals:
    - dict-like access: store["S_int16"]
    - safe: segments validated once, time ordered, one dtype per node
    - predictable: immutable; with_node returns a new store
    """
    nodes: Mapping[str, Sequence[TimeSeriesLike]] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.nodes, Mapping):
            raise InvalidTimeSeries("MemorySegmentStore.nodes must be a mapping (e.g., dict).")

        normalized: dict[str, tuple[TimeSeriesLike, ...]] = {}
        for key, runs in self.nodes.items():
            if not isinstance(key, str) or not key.strip():
                raise InvalidTimeSeries("Node names must be non-empty strings.")
            runs = tuple(runs)
            if not runs:
                raise InvalidTimeSeries(f"Node '{key}' has no segments.")
            for run in runs:
                if not isinstance(run, (TimeSeries, LazyTimeSeries)):
                    raise InvalidTimeSeries(f"Node '{key}': segments must be TimeSeries instances.")
            dtypes = {run.dtype for run in runs}
            if len(dtypes) != 1:
                raise InvalidTimeSeries(f"Node '{key}' mixes dtypes across segments: {dtypes}.")
            check_ordered(key, runs)
            normalized[key] = runs

        object.__setattr__(self, "nodes", normalized)

    # ---- dict-like API ----
    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[str]:
        return iter(self.nodes)

    def __contains__(self, name: object) -> bool:
        return name in self.nodes

    def keys(self) -> Iterable[str]:
        return self.nodes.keys()

    def __getitem__(self, name: str) -> Sequence[TimeSeriesLike]:
        try:
            return self.nodes[name]
        except KeyError as e:
            raise ChannelNotFound(name) from e

    def with_node(self, name: str, runs: Iterable[TimeSeriesLike]) -> "MemorySegmentStore":
        """Return a new store with `name` added (or replaced)."""
        new_nodes = dict(self.nodes)
        new_nodes[name] = tuple(runs)
        return MemorySegmentStore(nodes=new_nodes)

    # ---- SegmentStore protocol ----
    def _run(self, node: str, index: int) -> TimeSeriesLike:
        runs = self[node]
        if not 0 <= index < len(runs):
            raise SegmentNotFound(
                f"Node '{node}' has {len(runs)} segments, index {index} requested.",
                node=node,
                segment=index,
            )
        return runs[index]

    def segment_count(self, node: str) -> int:
        return len(self[node])

    def segment_range(self, node: str, index: int) -> Segment:
        run = self._run(node, index)
        return Segment(index=index, t_start=run.t_start, t_last=run.t_last, n_samples=run.n)

    def fetch_samples(self, node: str, index: int, offset: int, count: int) -> TimeSeries:
        try:
            return self._run(node, index).take(offset, count)
        except InvalidTimeSeries as e:
            raise SegmentNotFound(str(e), node=node, segment=index) from e

    def node_kind(self, node: str) -> NumericKind:
        return NumericKind.from_dtype(self[node][0].dtype)


def uniform_node(
    starts: Iterable[float],
    counts: Iterable[int],
    period: float,
    dtype="float64",
    values: Iterable[np.ndarray] | None = None,
) -> list[TimeSeries]:
    """
    Build the segments of a uniformly sampled node.

    Without `values`, samples count up from 0 across the whole node so every
    stored value is unique (handy when checking which sample was delivered).
    """
    starts = list(starts)
    counts = list(counts)
    if len(starts) != len(counts):
        raise InvalidTimeSeries("`starts` and `counts` must have the same length.")
    if values is None:
        total = np.arange(sum(counts))
        bounds = np.cumsum([0] + counts)
        values = [total[a:b] for a, b in zip(bounds[:-1], bounds[1:])]
    return [
        TimeSeries.uniform(t0, period, np.asarray(v).astype(dtype))
        for t0, v in zip(starts, values)
    ]
