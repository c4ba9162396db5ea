"""
Core domain objects for segreplay.

This module defines the storage-agnostic replay model:
- TimeSeries / LazyTimeSeries: samples and time base of one stored segment
- Segment: time-range view of a segment
- SegmentStore / MemorySegmentStore: read-only access to segmented storage
- ChannelSpec / TimeSignalSpec: validated output signal configuration
- GapAnalyzer: segment lookup and discontinuity analysis
- Resampler: raw, interpolate/decimate and nearest-hold copy strategies
- SegmentedReader: the per-cycle driver

The core layer is independent from storage formats.
"""

from .timeseries import TimeSeries, LazyTimeSeries, TimeSeriesLike
from .segment import Segment
from .numeric import NumericKind, TIME_KINDS
from .policies import ResamplingPolicy, HolePolicy
from .channel import ChannelSpec, TimeSignalSpec
from .cursor import ChannelCursor
from .store import SegmentStore, MemorySegmentStore, uniform_node
from .gaps import GapAnalyzer, Lookup, SegmentLocation, Discontinuity, derive_nominal_period
from .resampler import Resampler, CopyResult
from .engine import SegmentedReader, CycleResult, ChannelReport, DataRun, FillRun, plan_window
from .config import ChannelConfig, EngineConfig, load_config, save_config
from .exceptions import (
    CoreError,
    ConfigurationError,
    InvalidTimeSeries,
    InvalidSegment,
    InvalidChannel,
    StorageError,
    CycleError,
    ChannelNotFound,
    SegmentNotFound,
)


__all__ = [
    # segment data
    "TimeSeries",
    "LazyTimeSeries",
    "TimeSeriesLike",
    "Segment",

    # configuration
    "NumericKind",
    "TIME_KINDS",
    "ResamplingPolicy",
    "HolePolicy",
    "ChannelSpec",
    "TimeSignalSpec",
    "ChannelConfig",
    "EngineConfig",
    "load_config",
    "save_config",

    # storage
    "SegmentStore",
    "MemorySegmentStore",
    "uniform_node",

    # engine
    "ChannelCursor",
    "GapAnalyzer",
    "Lookup",
    "SegmentLocation",
    "Discontinuity",
    "derive_nominal_period",
    "Resampler",
    "CopyResult",
    "SegmentedReader",
    "CycleResult",
    "ChannelReport",
    "DataRun",
    "FillRun",
    "plan_window",

    # exceptions
    "CoreError",
    "ConfigurationError",
    "InvalidTimeSeries",
    "InvalidSegment",
    "InvalidChannel",
    "StorageError",
    "CycleError",
    "ChannelNotFound",
    "SegmentNotFound",
]
