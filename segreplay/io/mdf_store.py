# segreplay/io/mdf_store.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from asammdf import MDF
from asammdf.blocks.utils import MdfException
import numpy as np

from segreplay.core.exceptions import ChannelNotFound, InvalidTimeSeries, SegmentNotFound, StorageError
from segreplay.core.numeric import NumericKind
from segreplay.core.segment import Segment
from segreplay.core.timeseries import LazyTimeSeries, TimeSeries

logger = logging.getLogger(__name__)


@dataclass
class RawSegmentInfo:
    """
    Where one segment of a node lives inside the MDF file.

    Every data group that carries a channel named like the node contributes
    one segment; the samples themselves are read lazily.
    """

    node: str
    group_index: int           # group id inside the MDF
    channel_index: int         # channel id inside the group
    series: LazyTimeSeries     # loads (timestamps, samples) on first access


@dataclass
class RawNodeInfo:
    """Logical node view: the ordered segments sharing one channel name."""

    name: str
    segments: list[RawSegmentInfo]


class MdfSegmentStore:
    """
    SegmentStore backed by an MDF file (asammdf.MDF).

    Data groups are taken to be recorded in time order: the segments of a
    node are ordered by group index.
    """

    def __init__(self, path: str):
        self.path = str(path)
        try:
            self._mdf = MDF(self.path)
        except (OSError, MdfException) as e:
            raise StorageError(f"Cannot open MDF file {self.path}: {e}") from e
        # node name -> RawNodeInfo
        self._nodes: dict[str, RawNodeInfo] = {}
        self._build_index()
        logger.info("Opened %s: %d node(s)", self.path, len(self._nodes))

    # ------------------------------------------------------------------
    # Index construction
    # ------------------------------------------------------------------
    def _build_index(self) -> None:
        masters = self._mdf.masters_db

        for name, occurrences in self._mdf.channels_db.items():
            segments: list[RawSegmentInfo] = []
            for group_index, channel_index in sorted(occurrences):
                # Skip the time base itself.
                if masters.get(group_index) == channel_index:
                    continue
                segments.append(
                    RawSegmentInfo(
                        node=name,
                        group_index=group_index,
                        channel_index=channel_index,
                        series=LazyTimeSeries(
                            loader=self._make_loader(name, group_index, channel_index),
                            attrs={"group": group_index, "index": channel_index},
                        ),
                    )
                )
            if segments:
                self._nodes[name] = RawNodeInfo(name=name, segments=segments)

    def _make_loader(self, name: str, g_i: int, c_i: int):
        def _loader() -> tuple[np.ndarray, np.ndarray]:
            try:
                sig = self._mdf.get(name, group=g_i, index=c_i)
            except MdfException as e:
                raise StorageError(
                    f"Cannot read '{name}' (group {g_i}, index {c_i}) from {self.path}: {e}",
                    node=name,
                ) from e
            # asammdf Signal interface: timestamps & samples
            return sig.timestamps, sig.samples

        return _loader

    # ------------------------------------------------------------------
    # Node access
    # ------------------------------------------------------------------
    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def keys(self) -> Iterable[str]:
        return self._nodes.keys()

    def node(self, name: str) -> RawNodeInfo:
        try:
            return self._nodes[name]
        except KeyError as e:
            raise ChannelNotFound(name) from e

    def _series(self, name: str, index: int) -> LazyTimeSeries:
        segments = self.node(name).segments
        if not 0 <= index < len(segments):
            raise SegmentNotFound(
                f"Node '{name}' has {len(segments)} segments, index {index} requested.",
                node=name,
                segment=index,
            )
        series = segments[index].series
        try:
            series.to_numpy()
        except InvalidTimeSeries as e:
            raise StorageError(f"Node '{name}' segment {index}: {e}", node=name, segment=index) from e
        return series

    # ------------------------------------------------------------------
    # SegmentStore protocol implementation
    # ------------------------------------------------------------------
    def segment_count(self, node: str) -> int:
        return len(self.node(node).segments)

    def segment_range(self, node: str, index: int) -> Segment:
        series = self._series(node, index)
        return Segment(index=index, t_start=series.t_start, t_last=series.t_last, n_samples=series.n)

    def fetch_samples(self, node: str, index: int, offset: int, count: int) -> TimeSeries:
        try:
            return self._series(node, index).take(offset, count)
        except InvalidTimeSeries as e:
            raise SegmentNotFound(str(e), node=node, segment=index) from e

    def node_kind(self, node: str) -> NumericKind:
        return NumericKind.from_dtype(self._series(node, 0).dtype)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def close(self) -> None:
        self._mdf.close()

    def __enter__(self) -> "MdfSegmentStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
