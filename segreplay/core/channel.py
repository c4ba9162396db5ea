# segreplay/core/channel.py

from __future__ import annotations

from dataclasses import dataclass

from .exceptions import InvalidChannel
from .numeric import NumericKind, TIME_KINDS
from .policies import HolePolicy, ResamplingPolicy

import numpy as np


@dataclass(slots=True, frozen=True)
class ChannelSpec:
    """
    Configuration of one output signal.

    `node` is the storage node the samples come from (defaults to `name`).
    `kind` may be left as None; the engine then adopts the storage type of
    the node. Policies accept their names or their legacy integer codes.
    """
    name: str
    elements: int
    kind: NumericKind | None = None
    resampling: ResamplingPolicy = ResamplingPolicy.INTERPOLATE
    holes: HolePolicy = HolePolicy.ZERO_FILL
    node: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise InvalidChannel("ChannelSpec.name must be a non-empty string.")

        if isinstance(self.elements, bool) or not isinstance(self.elements, (int, np.integer)):
            raise InvalidChannel(f"Channel '{self.name}': elements must be an integer.")
        if self.elements < 1:
            raise InvalidChannel(
                f"Channel '{self.name}': elements must be positive, got {self.elements}."
            )
        object.__setattr__(self, "elements", int(self.elements))

        if self.kind is not None:
            object.__setattr__(self, "kind", NumericKind.parse(self.kind))
        object.__setattr__(self, "resampling", ResamplingPolicy.parse(self.resampling))
        object.__setattr__(self, "holes", HolePolicy.parse(self.holes))

        if self.node is None:
            object.__setattr__(self, "node", self.name)
        elif not isinstance(self.node, str) or not self.node.strip():
            raise InvalidChannel(f"Channel '{self.name}': node must be a non-empty string.")

    def with_kind(self, kind: NumericKind) -> "ChannelSpec":
        return ChannelSpec(
            name=self.name,
            elements=self.elements,
            kind=kind,
            resampling=self.resampling,
            holes=self.holes,
            node=self.node,
        )


@dataclass(slots=True, frozen=True)
class TimeSignalSpec:
    """Optional output signal carrying the cycle start time in microseconds."""
    name: str = "Time"
    kind: NumericKind = NumericKind.UINT32
    elements: int = 1

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise InvalidChannel("TimeSignalSpec.name must be a non-empty string.")
        kind = NumericKind.parse(self.kind)
        if kind not in TIME_KINDS:
            allowed = ", ".join(sorted(k.value for k in TIME_KINDS))
            raise InvalidChannel(f"Time signal type must be one of {allowed}, got {kind.value}.")
        object.__setattr__(self, "kind", kind)
        if self.elements != 1:
            raise InvalidChannel(f"Time signal must have exactly 1 element, got {self.elements}.")
