"""Confidence classifier — maps raw citation scores to percentages and tiers."""

from __future__ import annotations

import math
from typing import Any

HIGH_THRESHOLD = 80
MEDIUM_THRESHOLD = 50


def normalize_percent(raw: Any) -> float | None:
    """Interpret a raw confidence as a percentage in [0, 100].

    Values above 1 are taken as percentages, anything else as a fraction.
    A genuine sub-1% score is therefore read as a fraction; callers that
    need to tell the two apart must send fractions.
    """
    if raw is None or isinstance(raw, bool):
        return None
    try:
        num = float(raw.strip() if isinstance(raw, str) else raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(num):
        return None

    if num > 1:
        return max(0.0, min(100.0, num))
    return max(0.0, min(1.0, num)) * 100


def classify(percent: float | None) -> str:
    if percent is None:
        return "unknown"
    if percent >= HIGH_THRESHOLD:
        return "high"
    if percent >= MEDIUM_THRESHOLD:
        return "medium"
    return "low"


def confidence_label(raw: Any) -> str:
    """Badge text shown next to a source, e.g. ``Pertinenza: 87%``."""
    percent = normalize_percent(raw)
    if percent is None:
        return "Pertinenza: N/D"
    # Round half up
    return f"Pertinenza: {math.floor(percent + 0.5)}%"
