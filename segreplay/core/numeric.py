# segreplay/core/numeric.py
from __future__ import annotations

from enum import Enum

import numpy as np

from .exceptions import ConfigurationError


class NumericKind(str, Enum):
    """
    Closed set of element types a channel may carry.

    The value is the canonical configuration name; `dtype` is the numpy
    type every buffer and every strategy of the channel is specialised on.
    """

    UINT8 = "uint8"
    INT8 = "int8"
    UINT16 = "uint16"
    INT16 = "int16"
    UINT32 = "uint32"
    INT32 = "int32"
    UINT64 = "uint64"
    INT64 = "int64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(self.value)

    @property
    def is_integer(self) -> bool:
        return np.issubdtype(self.dtype, np.integer)

    @property
    def zero(self):
        return self.dtype.type(0)

    @classmethod
    def parse(cls, value: "str | NumericKind") -> "NumericKind":
        if isinstance(value, NumericKind):
            return value
        if not isinstance(value, str):
            raise ConfigurationError(f"Numeric type must be a string, got {value!r}.")
        try:
            return cls(value.strip().lower())
        except ValueError:
            supported = ", ".join(k.value for k in cls)
            raise ConfigurationError(
                f"Unsupported numeric type {value!r} (supported: {supported})."
            ) from None

    @classmethod
    def from_dtype(cls, dtype: "np.dtype | type") -> "NumericKind":
        dt = np.dtype(dtype)
        try:
            return cls(dt.name)
        except ValueError:
            raise ConfigurationError(f"Storage dtype {dt} is not a supported numeric type.") from None


# Kinds accepted for the published cycle time (integer microseconds).
TIME_KINDS = frozenset({NumericKind.UINT32, NumericKind.INT32, NumericKind.UINT64, NumericKind.INT64})

# Largest float64 below 2**64; converts to uint64 without overflow.
_UINT64_CEILING = float(np.nextafter(2.0 ** 64, 0.0))


def lerp(d1: np.ndarray, d2: np.ndarray, frac: np.ndarray, kind: NumericKind) -> np.ndarray:
    """
    d1 + (d2 - d1) * frac, returned as `kind`, with `frac` in [0, 1].

    Float kinds are blended in float64. Integer kinds keep d1 in its own
    integer type and add the rounded step towards d2, so results stay
    inside [d1, d2] and are exact at frac == 0 even for 64-bit values
    float64 cannot represent.
    """
    if not kind.is_integer:
        a = d1.astype(np.float64)
        return (a + (d2.astype(np.float64) - a) * frac).astype(kind.dtype, copy=False)

    wide = np.int64 if np.issubdtype(kind.dtype, np.signedinteger) else np.uint64
    a = d1.astype(wide)
    b = d2.astype(wide)
    au = a.view(np.uint64)
    bu = b.view(np.uint64)
    up = b >= a
    # modular uint64 arithmetic: |b - a| and a +/- step are exact
    dist = np.where(up, bu - au, au - bu)
    step = np.minimum(np.rint(dist.astype(np.float64) * frac), _UINT64_CEILING).astype(np.uint64)
    step = np.minimum(step, dist)
    blended = np.where(up, au + step, au - step).view(wide)
    return blended.astype(kind.dtype)
