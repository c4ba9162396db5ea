from __future__ import annotations

from pathlib import Path

from segreplay.io.mdf_store import MdfSegmentStore
from segreplay.core import ConfigurationError, EngineConfig, SegmentedReader, load_config


def build_reader(store, config: EngineConfig) -> SegmentedReader:
    reader = SegmentedReader(
        store,
        config.frequency,
        start_time=config.start_time,
        tolerance=config.discontinuity_tolerance,
    )
    reader.configure(config.channel_specs(), time_signal=config.time)
    return reader


def load_engine(path: str) -> SegmentedReader:
    """Read a YAML configuration and return a reader replaying its MDF source."""
    config = load_config(Path(path))
    if config.source is None:
        raise ConfigurationError(f"{path}: 'source' (MDF file) is required.")
    store = MdfSegmentStore(config.source)
    return build_reader(store, config)
