# segreplay/core/exceptions.py
from __future__ import annotations

from typing import Any, Mapping


class CoreError(Exception):
    """Base error for all segreplay exceptions."""


# ---- Validation / construction errors ----
class ConfigurationError(CoreError):
    """Raised when the engine or a channel is configured with invalid inputs."""


class InvalidTimeSeries(CoreError):
    """Raised when segment samples are constructed with invalid inputs."""


class InvalidSegment(CoreError):
    """Raised when a Segment view is constructed with invalid inputs."""


class InvalidChannel(ConfigurationError):
    """Raised when a ChannelSpec is constructed with invalid inputs."""


# ---- Storage errors ----
class StorageError(CoreError):
    """Raised when the storage backend cannot deliver a segment."""

    def __init__(self, message: str, *, node: str | None = None, segment: int | None = None):
        super().__init__(message)
        self.node = node
        self.segment = segment


class CycleError(StorageError):
    """
    Raised after a cycle in which one or more channels failed.

    The cycle itself completed: `result` holds the reports of every channel
    and `failures` maps the failing channel names to their StorageError.
    Buffer contents of the failing channels are undefined.
    """

    def __init__(self, result: Any, failures: Mapping[str, StorageError]):
        names = ", ".join(sorted(failures))
        super().__init__(f"Cycle at t={result.time:g} failed for channel(s): {names}")
        self.result = result
        self.failures = dict(failures)


# ---- Lookup errors (also behave like KeyError for dict-like APIs) ----
class ChannelNotFound(CoreError, KeyError):
    """Raised when a requested channel or storage node is not present."""


class SegmentNotFound(StorageError, KeyError):
    """Raised when a segment index is out of range for a node."""
