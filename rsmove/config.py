"""
Shared parameters for region statistics and background sampling.

Thresholds and method keywords live here so scripts and notebooks can read
the same values the library uses.
"""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass

import pandas as pd

from rsmove.errors import InvalidInput

# =====================================================================
# Region statistics
# =====================================================================

# Consecutive observations further apart than this start a new segment
SEGMENT_GAP = pd.Timedelta(days=1)

AREA_METHODS = ("metric", "degrees")

# Short keywords accepted by the original hotMoveStats tool
AREA_METHOD_ALIASES = {
    "m": "metric",
    "deg": "degrees",
}

# CRS assumed for polygons given in geographic degrees
GEOGRAPHIC_CRS = "EPSG:4326"

# =====================================================================
# Background sampling
# =====================================================================

SAMPLING_METHODS = ("random", "pca")

# Kaiser rule: keep components whose eigenvalue exceeds this value
KAISER_THRESHOLD = 1.0


def normalize_area_method(method: str) -> str:
    """Map an area keyword (or its alias) to one of ``AREA_METHODS``."""
    key = AREA_METHOD_ALIASES.get(method, method) if isinstance(method, str) else method
    if key not in AREA_METHODS:
        raise InvalidInput(
            f"Invalid area method: {method!r}. Must be one of: {list(AREA_METHODS)}"
        )
    return key


@dataclass(frozen=True)
class SamplingConfig:
    """
    Parameters controlling :func:`rsmove.background.back_sample`.

    ``n_samples=None`` keeps every unoccupied cell as a candidate; otherwise
    that many candidates are drawn with replacement using ``random_state``.
    """

    method: str = "random"
    n_samples: int | None = None
    random_state: int | None = None
    kaiser_threshold: float = KAISER_THRESHOLD

    def validate(self) -> "SamplingConfig":
        if self.method not in SAMPLING_METHODS:
            raise InvalidInput(
                f"Invalid sampling method: {self.method!r}. Must be one of: {list(SAMPLING_METHODS)}"
            )

        if self.n_samples is not None:
            n = self.n_samples
            if isinstance(n, bool) or not isinstance(n, numbers.Real):
                raise InvalidInput(f"n_samples must be a positive number, got {n!r}")
            if not math.isfinite(n) or n <= 0 or float(n) != int(n):
                raise InvalidInput(f"n_samples must be a positive whole number, got {n!r}")

        if isinstance(self.kaiser_threshold, bool) or not isinstance(self.kaiser_threshold, numbers.Real):
            raise InvalidInput(f"kaiser_threshold must be numeric, got {self.kaiser_threshold!r}")
        return self
