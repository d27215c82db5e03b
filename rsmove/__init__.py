"""
rsmove - Link animal movement data to remote sensing imagery.

Main functionality:
    region_stats: Per-region sample, individual, temporal segment and area summary
    back_sample: Background (pseudo-absence) sample selection, random or PCA-filtered

Inputs:
    SamplePoints: Presence coordinates with a CRS
    RegionAssignment: Region label per sample (clustering output), optional polygons
    ArrayRaster, RasterioRaster: Raster grid adapters

Basic usage:
    >>> from rsmove import ArrayRaster, SamplePoints, back_sample
    >>> raster = ArrayRaster.from_origin(ndvi, west, north, 30, 30, crs="EPSG:32633")
    >>> points = SamplePoints.from_xy(x, y, crs="EPSG:32633")
    >>> samples = back_sample(points, raster, regions=labels, method="pca")
"""

from .background import (
    BackgroundSamples,
    back_sample,
    background_candidates,
    consensus_mask,
    dedupe_presences,
    kaiser_scores,
)
from .config import SamplingConfig
from .errors import CRSMismatch, EmptySelection, InvalidInput
from .geodesy import dominant_utm_zone, polygon_area, reproject_polygon, utm_crs, utm_zone
from .points import RegionAssignment, SamplePoints
from .raster import ArrayRaster, RasterGrid, RasterioRaster
from .stats import region_stats, temporal_segments

__all__ = [
    # Core API
    "back_sample",
    "region_stats",
    "BackgroundSamples",
    # Inputs
    "SamplePoints",
    "RegionAssignment",
    "RasterGrid",
    "ArrayRaster",
    "RasterioRaster",
    "SamplingConfig",
    # Building blocks
    "background_candidates",
    "consensus_mask",
    "dedupe_presences",
    "kaiser_scores",
    "temporal_segments",
    # Geodesy
    "dominant_utm_zone",
    "polygon_area",
    "reproject_polygon",
    "utm_crs",
    "utm_zone",
    # Errors
    "CRSMismatch",
    "EmptySelection",
    "InvalidInput",
]

__version__ = "0.1.0"
