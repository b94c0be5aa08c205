"""Base model and normalization helpers for store payloads.

Every wire model inherits from :class:`PresenceBaseModel` which provides:

* ``alias_generator=to_camel`` so camelCase store keys map
  automatically to snake_case fields.
* A ``model_validator(mode="before")`` that strips sentinel values
  (``""``, ``"--"``, NaN) so the field default is used.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic.alias_generators import to_camel

_SENTINELS = frozenset({"", "--", "NaN", "nan"})

# Values at or above this are already milliseconds.
_MS_THRESHOLD = 1e11


def safe_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str) and value.strip() in _SENTINELS:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def normalize_epoch_millis(value: Any) -> int | None:
    """Normalize an epoch timestamp (seconds **or** milliseconds) to milliseconds.

    - Empty/missing -> None
    - <= 0 -> None
    - Seconds (< 1e11) -> milliseconds
    """
    ts = safe_float(value)
    if ts is None or ts <= 0:
        return None
    if ts < _MS_THRESHOLD:
        ts *= 1000.0
    return int(ts)


class PresenceBaseModel(BaseModel):
    """Base for models exchanged through the realtime store."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @model_validator(mode="before")
    @classmethod
    def _strip_sentinels(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        cleaned: dict[str, Any] = {}
        for key, value in values.items():
            if value is None:
                continue
            if isinstance(value, str) and value.strip() in _SENTINELS:
                continue
            if isinstance(value, float) and math.isnan(value):
                continue
            cleaned[key] = value
        return cleaned
