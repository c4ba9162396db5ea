# segreplay/core/config.py
"""Engine configuration records and their YAML form."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from .channel import ChannelSpec, TimeSignalSpec
from .exceptions import ConfigurationError
from .gaps import DEFAULT_TOLERANCE
from .numeric import NumericKind
from .policies import HolePolicy, ResamplingPolicy

logger = logging.getLogger(__name__)


def _number(raw: Mapping[str, Any], key: str, default: Optional[float] = None) -> float:
    value = raw.get(key, default)
    if value is None:
        raise ConfigurationError(f"Missing required key '{key}'.")
    if isinstance(value, bool):
        raise ConfigurationError(f"'{key}' must be a number, got {value!r}.")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"'{key}' must be a number, got {value!r}.") from None
    if not math.isfinite(number):
        raise ConfigurationError(f"'{key}' must be finite, got {value!r}.")
    return number


@dataclass
class ChannelConfig:
    """One entry of the ``signals`` block."""

    name: str
    elements: int
    node: Optional[str] = None
    type: Optional[str] = None
    resampling: Any = "interpolate"
    holes: Any = "zero_fill"

    def __post_init__(self) -> None:
        # Normalise to canonical names so the mapping round-trips through YAML.
        if self.type is not None:
            self.type = NumericKind.parse(self.type).value
        self.resampling = ResamplingPolicy.parse(self.resampling).name.lower()
        self.holes = HolePolicy.parse(self.holes).name.lower()
        self.to_spec()

    @classmethod
    def from_mapping(cls, name: str, raw: Mapping[str, Any]) -> "ChannelConfig":
        if not isinstance(raw, Mapping):
            raise ConfigurationError(f"Signal '{name}' must be a mapping, got {type(raw).__name__}.")
        unknown = set(raw) - {"node", "type", "elements", "resampling", "holes"}
        if unknown:
            raise ConfigurationError(f"Signal '{name}': unknown key(s) {sorted(unknown)}.")
        if "elements" not in raw:
            raise ConfigurationError(f"Signal '{name}': missing required key 'elements'.")
        return cls(
            name=str(name),
            elements=raw["elements"],
            node=raw.get("node"),
            type=raw.get("type"),
            resampling=raw.get("resampling", "interpolate"),
            holes=raw.get("holes", "zero_fill"),
        )

    def to_mapping(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"elements": self.elements}
        if self.node is not None:
            data["node"] = self.node
        if self.type is not None:
            data["type"] = self.type
        data["resampling"] = self.resampling
        data["holes"] = self.holes
        return data

    def to_spec(self) -> ChannelSpec:
        return ChannelSpec(
            name=self.name,
            elements=self.elements,
            kind=None if self.type is None else NumericKind.parse(self.type),
            resampling=self.resampling,
            holes=self.holes,
            node=self.node,
        )


@dataclass
class EngineConfig:
    """
    Everything needed to build a SegmentedReader.

    ``source`` is the storage location (an MDF file for the bundled
    backend) and may be relative to the configuration file.
    """

    frequency: float
    signals: List[ChannelConfig] = field(default_factory=list)
    source: Optional[str] = None
    start_time: float = 0.0
    discontinuity_tolerance: float = DEFAULT_TOLERANCE
    time: Optional[TimeSignalSpec] = None

    def __post_init__(self) -> None:
        if not self.frequency > 0:
            raise ConfigurationError(f"frequency must be positive, got {self.frequency}.")
        if not self.discontinuity_tolerance > 1.0:
            raise ConfigurationError(
                f"discontinuity_tolerance must be > 1, got {self.discontinuity_tolerance}."
            )
        if not self.signals:
            raise ConfigurationError("At least one signal must be configured.")

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "EngineConfig":
        if not isinstance(raw, Mapping):
            raise ConfigurationError("Configuration root must be a mapping.")

        signals_block = raw.get("signals")
        if not isinstance(signals_block, Mapping) or not signals_block:
            raise ConfigurationError("'signals' must be a non-empty mapping of name -> settings.")
        signals = [ChannelConfig.from_mapping(name, cfg) for name, cfg in signals_block.items()]

        time_block = raw.get("time")
        time_signal = None
        if time_block is not None:
            if not isinstance(time_block, Mapping):
                raise ConfigurationError("'time' must be a mapping.")
            time_signal = TimeSignalSpec(
                name=str(time_block.get("name", "Time")),
                kind=time_block.get("type", "uint32"),
                elements=time_block.get("elements", 1),
            )

        source = raw.get("source")
        return cls(
            frequency=_number(raw, "frequency"),
            signals=signals,
            source=None if source is None else str(source),
            start_time=_number(raw, "start_time", 0.0),
            discontinuity_tolerance=_number(raw, "discontinuity_tolerance", DEFAULT_TOLERANCE),
            time=time_signal,
        )

    def to_mapping(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.source is not None:
            data["source"] = self.source
        data["frequency"] = self.frequency
        data["start_time"] = self.start_time
        data["discontinuity_tolerance"] = self.discontinuity_tolerance
        data["signals"] = {sig.name: sig.to_mapping() for sig in self.signals}
        if self.time is not None:
            data["time"] = {
                "name": self.time.name,
                "type": self.time.kind.value,
                "elements": self.time.elements,
            }
        return data

    def channel_specs(self) -> List[ChannelSpec]:
        return [sig.to_spec() for sig in self.signals]


def load_config(path: Path) -> EngineConfig:
    """Load an EngineConfig from a YAML file; a relative ``source`` is resolved next to it."""
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    config = EngineConfig.from_mapping(raw)
    if config.source is not None and not Path(config.source).is_absolute():
        config.source = str((path.parent / config.source).resolve())
    logger.debug("Loaded configuration %s with %d signal(s)", path, len(config.signals))
    return config


def save_config(path: Path, config: EngineConfig) -> None:
    path = Path(path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(config.to_mapping(), fh, default_flow_style=False, sort_keys=False)
