"""
Raster grid adapters.

Background sampling only needs a handful of capabilities from a raster:
- map coordinates to integer cell indices and back
- report the number of cells and the coordinate reference system
- extract band values at coordinates

:class:`ArrayRaster` serves a single layer or a band stack held in memory,
:class:`RasterioRaster` serves any dataset rasterio can open. Both expose the
same accessors so callers never branch on the concrete source type.

Cell indices are 0-based and row-major (``row * width + col``). Coordinates
outside the grid map to ``-1``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence

import numpy as np
import pandas as pd
import rasterio
from pyproj import CRS
from rasterio.transform import from_origin, rowcol, xy

logger = logging.getLogger(__name__)

OUTSIDE = -1


def _as_xy(coordinates) -> np.ndarray:
    xy_arr = np.asarray(coordinates, dtype=float)
    if xy_arr.ndim == 1 and xy_arr.size == 2:
        xy_arr = xy_arr.reshape(1, 2)
    if xy_arr.size == 0:
        return np.empty((0, 2), dtype=float)
    if xy_arr.ndim != 2 or xy_arr.shape[1] != 2:
        raise ValueError("Expected coordinates with shape (n_points, 2) = [x, y].")
    return xy_arr


def _default_band_names(count: int) -> list[str]:
    return [f"band_{i}" for i in range(1, count + 1)]


def _band_positions(names: Sequence[str], bands) -> list[int]:
    """
    0-based positions of the requested bands.

    Bands are given by name or by 1-based index, as rasterio numbers them.
    """
    if bands is None:
        return list(range(len(names)))
    if isinstance(bands, (str, int, np.integer)):
        bands = [bands]
    positions = []
    for band in bands:
        if isinstance(band, (int, np.integer)) and not isinstance(band, bool):
            if not 1 <= band <= len(names):
                raise ValueError(f"Band index {band} is outside 1..{len(names)}.")
            positions.append(int(band) - 1)
        elif band in names:
            positions.append(list(names).index(band))
        else:
            raise ValueError(f"Unknown band {band!r}; available bands are {list(names)}.")
    return positions


class RasterGrid(ABC):
    """
    Common cell arithmetic for adapters that expose ``transform``, ``height`` and ``width``.

    Subclasses provide ``crs``, ``band_names`` and ``extract``.
    """

    transform = None
    height: int = 0
    width: int = 0

    @property
    @abstractmethod
    def crs(self) -> CRS:
        """Coordinate reference system of the grid."""

    @property
    @abstractmethod
    def band_names(self) -> list[str]:
        """Column names used by :meth:`extract`, one per band."""

    @property
    def cell_count(self) -> int:
        return int(self.height * self.width)

    def _rowcol(self, coordinates) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        pts = _as_xy(coordinates)
        if len(pts) == 0:
            empty = np.empty(0, dtype=int)
            return empty, empty, np.empty(0, dtype=bool)
        finite = np.isfinite(pts).all(axis=1)
        rows = np.full(len(pts), OUTSIDE, dtype=int)
        cols = np.full(len(pts), OUTSIDE, dtype=int)
        if finite.any():
            r, c = rowcol(self.transform, pts[finite, 0], pts[finite, 1])
            rows[finite] = np.asarray(r, dtype=int).reshape(-1)
            cols[finite] = np.asarray(c, dtype=int).reshape(-1)
        inside = (
            finite
            & (rows >= 0)
            & (rows < self.height)
            & (cols >= 0)
            & (cols < self.width)
        )
        return rows, cols, inside

    def cell_index(self, coordinates) -> np.ndarray:
        """Integer cell index for each coordinate, ``-1`` when it falls outside the grid."""
        rows, cols, inside = self._rowcol(coordinates)
        cells = np.full(len(rows), OUTSIDE, dtype=np.int64)
        cells[inside] = rows[inside] * self.width + cols[inside]
        return cells

    def cell_coordinates(self, cells) -> np.ndarray:
        """Cell-centre coordinates for each cell index."""
        cells = np.asarray(cells, dtype=np.int64).reshape(-1)
        if cells.size == 0:
            return np.empty((0, 2), dtype=float)
        if np.any((cells < 0) | (cells >= self.cell_count)):
            raise ValueError(f"Cell indices must lie within [0, {self.cell_count}).")
        rows, cols = np.divmod(cells, self.width)
        xs, ys = xy(self.transform, rows, cols, offset="center")
        return np.column_stack(
            [np.asarray(xs, dtype=float).reshape(-1), np.asarray(ys, dtype=float).reshape(-1)]
        )

    @abstractmethod
    def extract(self, coordinates, bands=None) -> pd.DataFrame:
        """
        Band values at each coordinate, one row per point and one column per band.

        ``bands`` restricts the columns to the given band names or 1-based
        indexes. Points outside the grid or on nodata cells are ``NaN``.
        """


class ArrayRaster(RasterGrid):
    """
    In-memory raster layer or stack.

    Parameters
    ----------
    data:
        2-D array ``(rows, cols)`` for a single layer, or 3-D ``(bands, rows, cols)``.
    transform:
        Affine transform mapping (col, row) to (x, y).
    crs:
        Anything :meth:`pyproj.CRS.from_user_input` understands.
    nodata:
        Optional sentinel that is read back as ``NaN``.
    band_names:
        Optional column names for extracted values.
    """

    def __init__(self, data, transform, crs, nodata=None, band_names: Sequence[str] | None = None):
        arr = np.asarray(data, dtype=float)
        if arr.ndim == 2:
            arr = arr[np.newaxis, ...]
        if arr.ndim != 3:
            raise ValueError("Raster data must be 2-D (rows, cols) or 3-D (bands, rows, cols).")
        if nodata is not None:
            arr = np.where(arr == nodata, np.nan, arr)

        self.data = arr
        self.transform = transform
        self.height = arr.shape[1]
        self.width = arr.shape[2]
        self._crs = CRS.from_user_input(crs)

        names = list(band_names) if band_names is not None else _default_band_names(arr.shape[0])
        if len(names) != arr.shape[0]:
            raise ValueError(f"Expected {arr.shape[0]} band names, got {len(names)}.")
        self._band_names = names

    @classmethod
    def from_origin(cls, data, west: float, north: float, xsize: float, ysize: float, crs, **kwargs):
        """Build a north-up raster from its upper-left corner and cell size."""
        return cls(data, from_origin(west, north, xsize, ysize), crs, **kwargs)

    @property
    def crs(self) -> CRS:
        return self._crs

    @property
    def band_names(self) -> list[str]:
        return list(self._band_names)

    def extract(self, coordinates, bands=None) -> pd.DataFrame:
        positions = _band_positions(self._band_names, bands)
        rows, cols, inside = self._rowcol(coordinates)
        values = np.full((len(rows), len(positions)), np.nan)
        if inside.any():
            values[inside] = self.data[positions][:, rows[inside], cols[inside]].T
        return pd.DataFrame(values, columns=[self._band_names[i] for i in positions])


class RasterioRaster(RasterGrid):
    """
    File-backed raster read through rasterio.

    Values are sampled lazily with ``dataset.sample``; masked (nodata) pixels
    come back as ``NaN``. Use :meth:`open` to own the dataset handle::

        with RasterioRaster.open("ndvi.tif") as raster:
            samples = back_sample(points, raster, method="pca")
    """

    def __init__(self, dataset, owns_dataset: bool = False):
        self.dataset = dataset
        self.transform = dataset.transform
        self.height = dataset.height
        self.width = dataset.width
        self._owns_dataset = owns_dataset
        if dataset.crs is None:
            raise ValueError(f"Raster {dataset.name} has no coordinate reference system.")
        self._crs = CRS.from_user_input(dataset.crs.to_wkt())

    @classmethod
    def open(cls, path: Path | str) -> "RasterioRaster":
        path = Path(path)
        logger.debug("Opening raster %s", path)
        return cls(rasterio.open(path), owns_dataset=True)

    def close(self) -> None:
        if self._owns_dataset and not self.dataset.closed:
            self.dataset.close()

    def __enter__(self) -> "RasterioRaster":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def crs(self) -> CRS:
        return self._crs

    @property
    def band_names(self) -> list[str]:
        descriptions = list(self.dataset.descriptions or [])
        if descriptions and all(descriptions):
            return descriptions
        return _default_band_names(self.dataset.count)

    def extract(self, coordinates, bands=None) -> pd.DataFrame:
        names = self.band_names
        positions = _band_positions(names, bands)
        pts = _as_xy(coordinates)
        _rows, _cols, inside = self._rowcol(pts)
        values = np.full((len(pts), len(positions)), np.nan)
        if inside.any() and positions:
            indexes = [i + 1 for i in positions]
            sampled = self.dataset.sample([tuple(p) for p in pts[inside]], indexes=indexes, masked=True)
            block = np.ma.vstack([np.ma.asarray(v, dtype=float) for v in sampled])
            values[inside] = np.ma.filled(block, np.nan)
        return pd.DataFrame(values, columns=[names[i] for i in positions])
