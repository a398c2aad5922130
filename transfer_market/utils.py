from __future__ import annotations

import json
import math
import uuid
from typing import Any, Dict, Mapping


def safe_int(x: Any, default: int = 0) -> int:
    try:
        if x is None:
            return int(default)
        return int(x)
    except Exception:
        return int(default)


def safe_float(x: Any, default: float = 0.0) -> float:
    try:
        if x is None:
            return float(default)
        v = float(x)
        if math.isnan(v) or math.isinf(v):
            return float(default)
        return float(v)
    except Exception:
        return float(default)


def new_id() -> str:
    return str(uuid.uuid4())


def int_mapping(value: Any) -> Dict[str, int]:
    """Coerce an attribute mapping (or its JSON text) to ``{name: int}``.

    Unknown shapes yield an empty dict; non-numeric values are dropped.
    """
    if isinstance(value, (str, bytes)):
        try:
            value = json.loads(value)
        except (json.JSONDecodeError, TypeError):
            return {}
    if not isinstance(value, Mapping):
        return {}
    out: Dict[str, int] = {}
    for k, v in value.items():
        fv = safe_float(v, float("nan"))
        if math.isnan(fv):
            continue
        out[str(k)] = int(round(fv))
    return out
