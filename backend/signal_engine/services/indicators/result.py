"""
Indicator Result Type

Every registered indicator evaluation yields an IndicatorResult: either a value
or the IndicatorError explaining why there is none.
"""

import math
from dataclasses import dataclass
from typing import Any, Optional

import numpy as np

from signal_engine.services.base import FailureKind, IndicatorError


@dataclass(frozen=True)
class IndicatorResult:
    """Outcome of one indicator computation."""

    name: str
    value: Any = None
    error: Optional[IndicatorError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_absent(self) -> bool:
        return self.error is not None

    def unwrap(self) -> Any:
        """Return the value or raise the carried IndicatorError."""
        if self.error is not None:
            raise self.error
        return self.value

    def value_or(self, default: Any = None) -> Any:
        return default if self.error is not None else self.value

    @classmethod
    def success(cls, name: str, value: Any) -> "IndicatorResult":
        return cls(name=name, value=value)

    @classmethod
    def failure(
        cls, name: str, kind: FailureKind, message: str
    ) -> "IndicatorResult":
        return cls(name=name, error=IndicatorError(name, kind, message))


def to_builtin(value: Any) -> Any:
    """Convert numpy scalars and arrays inside a value to plain Python types."""
    if isinstance(value, dict):
        return {key: to_builtin(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_builtin(item) for item in value]
    if isinstance(value, np.ndarray):
        return [to_builtin(item) for item in value.tolist()]
    if isinstance(value, np.bool_):
        return bool(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, np.floating):
        return float(value)
    return value


def find_non_finite(value: Any, path: str = "") -> Optional[str]:
    """Return the path of the first NaN/Infinity inside value, if any."""
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        return None if math.isfinite(value) else (path or "value")
    if isinstance(value, dict):
        for key, item in value.items():
            found = find_non_finite(item, f"{path}.{key}" if path else str(key))
            if found:
                return found
    elif isinstance(value, list):
        for index, item in enumerate(value):
            found = find_non_finite(item, f"{path}[{index}]")
            if found:
                return found
    return None
