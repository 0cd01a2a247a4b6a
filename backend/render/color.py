from __future__ import annotations

import math
from typing import Any

from engine.types import FilterRange

CLASS_MIN = 1
CLASS_MAX = 25
FILL_ALPHA = 180
LINE_COLOR = [0, 0, 0, 80]


def _as_float(v: Any) -> float | None:
    try:
        if v is None:
            return None
        f = float(v)
    except Exception:
        return None
    return None if math.isnan(f) else f


def class_gray(value: Any) -> int:
    """
    Linear grayscale ramp: class 1 -> 0 (black), class 25 -> 255 (white).

    Missing or non-numeric values are treated as class 1; halves round up.
    """
    c = _as_float(value)
    c = float(CLASS_MIN) if c is None else max(float(CLASS_MIN), min(float(CLASS_MAX), c))
    return int(math.floor((c - CLASS_MIN) / (CLASS_MAX - CLASS_MIN) * 255 + 0.5))


def fill_color(feature: dict[str, Any]) -> list[int]:
    props = feature.get("properties") or {}
    v = class_gray(props.get("class_val"))
    return [v, v, v, FILL_ALPHA]


def rgba_css(color: list[int]) -> str:
    r, g, b, a = (list(color) + [255])[:4]
    return f"rgba({int(r)}, {int(g)}, {int(b)}, {round(int(a) / 255.0, 3)})"


def update_triggers(frange: FilterRange) -> dict[str, list[int]]:
    # Colors only need recomputing when the filter bounds change.
    return {"getFillColor": [int(frange.min), int(frange.max)]}
