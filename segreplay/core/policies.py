# segreplay/core/policies.py
from __future__ import annotations

from enum import IntEnum

from .exceptions import ConfigurationError


class _Policy(IntEnum):
    """IntEnum parsed from either its name or its legacy integer code."""

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        # bool is an int subclass; reject it explicitly
        if isinstance(value, int) and not isinstance(value, bool):
            try:
                return cls(value)
            except ValueError:
                pass
        elif isinstance(value, str):
            key = value.strip().upper().replace("-", "_")
            if key in cls.__members__:
                return cls.__members__[key]
            if key.isdigit():
                return cls.parse(int(key))
        allowed = ", ".join(f"{m.name.lower()} ({m.value})" for m in cls)
        raise ConfigurationError(f"Invalid {cls.__name__} {value!r} (allowed: {allowed}).")


class ResamplingPolicy(_Policy):
    """How stored samples are turned into the consumer's samples."""

    RAW = 0
    INTERPOLATE = 1
    NEAREST_HOLD = 2


class HolePolicy(_Policy):
    """What is written where storage has no data."""

    ZERO_FILL = 0
    HOLD_LAST = 1
