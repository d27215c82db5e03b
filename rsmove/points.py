"""
Input containers for presence samples and their region labels.

Region labels come from an external clustering step (``hotMove`` in the
original tooling). :class:`RegionAssignment` mirrors that output: a label per
sample under ``indices`` and, optionally, a polygon per label under
``polygons``.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd
from pyproj import CRS

from rsmove.errors import InvalidInput


@dataclass(frozen=True)
class SamplePoints:
    """
    Presence coordinates in a known CRS, with an optional per-point attribute table.
    """

    xy: np.ndarray
    crs: CRS | None = None
    attributes: pd.DataFrame | None = None

    def __post_init__(self):
        xy_arr = np.asarray(self.xy, dtype=float)
        if xy_arr.size == 0:
            xy_arr = np.empty((0, 2), dtype=float)
        if xy_arr.ndim != 2 or xy_arr.shape[1] != 2:
            raise InvalidInput("Point coordinates must have shape (n_points, 2) = [x, y].")
        object.__setattr__(self, "xy", xy_arr)
        if self.crs is not None:
            object.__setattr__(self, "crs", CRS.from_user_input(self.crs))
        if self.attributes is not None and len(self.attributes) != len(xy_arr):
            raise InvalidInput(
                f"Attribute table has {len(self.attributes)} rows but there are {len(xy_arr)} points."
            )

    def __len__(self) -> int:
        return len(self.xy)

    @classmethod
    def from_xy(cls, x, y, crs=None) -> "SamplePoints":
        x = np.asarray(x, dtype=float).reshape(-1)
        y = np.asarray(y, dtype=float).reshape(-1)
        if len(x) != len(y):
            raise InvalidInput(f"x and y have different lengths ({len(x)} vs {len(y)}).")
        return cls(np.column_stack([x, y]), crs=crs)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame, x: str = "x", y: str = "y", crs=None) -> "SamplePoints":
        """Use two columns as coordinates and keep the remaining columns as attributes."""
        missing = [col for col in (x, y) if col not in df.columns]
        if missing:
            raise InvalidInput(f"Input dataframe is missing coordinate columns: {missing}")
        attributes = df.drop(columns=[x, y]).reset_index(drop=True)
        return cls(
            df[[x, y]].to_numpy(dtype=float),
            crs=crs,
            attributes=attributes if len(attributes.columns) else None,
        )


@dataclass
class RegionAssignment:
    """Clustering output: one region label per sample plus optional region polygons."""

    indices: Sequence[Any]
    polygons: Mapping[Any, Any] | None = field(default=None)

    def __post_init__(self):
        if self.indices is None:
            raise InvalidInput('Region assignment is not valid ("indices" missing).')
        self.indices = np.asarray(self.indices, dtype=object).reshape(-1)

    def __len__(self) -> int:
        return len(self.indices)

    @classmethod
    def single_region(cls, n_samples: int, label: Any = 1) -> "RegionAssignment":
        """Every sample belongs to one region, the default when no labels are supplied."""
        return cls(indices=[label] * int(n_samples))

    @classmethod
    def coerce(cls, value) -> "RegionAssignment":
        """
        Accept a :class:`RegionAssignment`, a mapping with ``indices`` (and
        optionally ``polygons``) keys, or a plain sequence of labels.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            if "indices" not in value:
                raise InvalidInput('Region assignment is not valid ("indices" keyword missing).')
            return cls(indices=value["indices"], polygons=value.get("polygons"))
        if isinstance(value, (str, bytes)) or not isinstance(value, (Sequence, np.ndarray, pd.Series, pd.Index)):
            raise InvalidInput(f"Cannot interpret {type(value).__name__} as region labels.")
        return cls(indices=value)

    def unique_labels(self) -> list[Any]:
        """Labels in order of first appearance, missing labels excluded."""
        return list(pd.unique(pd.Series(self.indices).dropna()))
