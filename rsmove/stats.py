"""
Summary statistics for clustered sample regions.

One row per region label with the number of samples, the number of distinct
individuals, the span of its temporal segments and the area of its polygon.
"""

from __future__ import annotations

import logging

import numpy as np
import pandas as pd

from rsmove.config import GEOGRAPHIC_CRS, SEGMENT_GAP, normalize_area_method
from rsmove.errors import InvalidInput
from rsmove.geodesy import polygon_area
from rsmove.points import RegionAssignment

module_logger = logging.getLogger(__name__)

STAT_COLUMNS = [
    "area",
    "sample_count",
    "individual_count",
    "min_segment_days",
    "mean_segment_days",
    "max_segment_days",
]

ONE_DAY = pd.Timedelta(days=1)


def _as_timestamps(timestamps) -> pd.Series:
    try:
        series = pd.Series(timestamps)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(f"timestamps could not be read: {exc}") from exc
    if series.empty:
        return pd.Series([], dtype="datetime64[ns]")
    if not pd.api.types.is_datetime64_any_dtype(series):
        raise InvalidInput('"timestamps" must contain datetime values (datetime, numpy.datetime64 or pandas.Timestamp).')
    return series.reset_index(drop=True)


def temporal_segments(timestamps, gap: pd.Timedelta = SEGMENT_GAP) -> list[float]:
    """
    Split observation times into segments and return each segment's duration in days.

    Times are sorted first, so every gap is measured as later minus earlier. A
    gap strictly greater than ``gap`` closes the running segment at the
    preceding observation. The last segment ends at the final observation.
    """
    times = _as_timestamps(timestamps).dropna().sort_values().reset_index(drop=True)
    if times.empty:
        return []

    durations = []
    start = times.iloc[0]
    for previous, current in zip(times.iloc[:-1], times.iloc[1:]):
        if abs(current - previous) > gap:
            durations.append(abs(previous - start) / ONE_DAY)
            start = current
    durations.append(abs(times.iloc[-1] - start) / ONE_DAY)
    return durations


def region_stats(
    assignment,
    timestamps=None,
    individual_ids=None,
    area_method: str = "metric",
    polygon_crs=GEOGRAPHIC_CRS,
    logger: logging.Logger | None = None,
) -> pd.DataFrame:
    """
    Summarize each region found in a clustering output.

    Parameters
    ----------
    assignment:
        :class:`RegionAssignment` or a mapping with an ``indices`` key (one
        label per sample) and optional ``polygons`` (label -> polygon).
    timestamps:
        Optional observation time per sample.
    individual_ids:
        Optional animal id per sample.
    area_method:
        ``"metric"`` or ``"degrees"`` (``"m"``/``"deg"`` also accepted). Only
        checked when polygons are present.
    polygon_crs:
        CRS of degree polygons, WGS84 geographic by default.

    Returns
    -------
    pd.DataFrame
        Indexed by region label (first-appearance order) with columns
        ``area, sample_count, individual_count, min_segment_days,
        mean_segment_days, max_segment_days``.
    """
    logger = logger or module_logger
    assignment = RegionAssignment.coerce(assignment)
    labels = pd.Series(assignment.indices, dtype=object)
    n = len(labels)

    # Validate everything before computing anything
    ids = None
    if individual_ids is not None:
        ids = pd.Series(list(individual_ids), dtype=object)
        if len(ids) != n:
            raise InvalidInput(f'"individual_ids" has {len(ids)} entries but there are {n} samples.')

    times = None
    if timestamps is not None:
        times = _as_timestamps(timestamps)
        if len(times) != n:
            raise InvalidInput(f'"timestamps" has {len(times)} entries but there are {n} samples.')

    polygons = assignment.polygons
    has_polygons = polygons is not None and len(polygons) > 0
    if has_polygons:
        try:
            area_method = normalize_area_method(area_method)
        except InvalidInput as exc:
            raise InvalidInput(
                f'Polygons provided but area method {area_method!r} is not valid (choose "metric" or "degrees").'
            ) from exc

    regions = assignment.unique_labels()
    logger.info("Summarizing %d samples across %d regions", n, len(regions))

    rows = []
    for region in regions:
        mask = (labels == region).to_numpy()
        row = {
            "area": np.nan,
            "sample_count": int(mask.sum()),
            "individual_count": pd.NA,
            "min_segment_days": np.nan,
            "mean_segment_days": np.nan,
            "max_segment_days": np.nan,
        }

        if ids is not None:
            row["individual_count"] = int(ids[mask].nunique(dropna=True))

        if times is not None:
            durations = temporal_segments(times[mask])
            if durations:
                row["min_segment_days"] = float(np.min(durations))
                row["mean_segment_days"] = float(np.mean(durations))
                row["max_segment_days"] = float(np.max(durations))
            logger.debug("Region %s: %d temporal segments", region, len(durations))

        if has_polygons and region in polygons and polygons[region] is not None:
            row["area"] = polygon_area(polygons[region], area_method, polygon_crs)

        rows.append(row)

    result = pd.DataFrame(rows, columns=STAT_COLUMNS, index=pd.Index(regions, name="region"))
    result["sample_count"] = result["sample_count"].astype("int64")
    result["individual_count"] = result["individual_count"].astype("Int64")
    return result
