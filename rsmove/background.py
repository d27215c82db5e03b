"""
Background (pseudo-absence) sample selection.

Presence samples are first reduced to one per raster cell. Every other cell is
a background candidate. In ``random`` mode the candidates are returned as they
are. In ``pca`` mode the raster values of presences and candidates go through a
standardized PCA; for each retained component (Kaiser rule) a candidate is kept
only when every presence region considers it an outlier, i.e. its score is
further from the region median than the region's median absolute deviation.
The final set is the union of the candidates kept by each component.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np
import pandas as pd
from pyproj import CRS
from sklearn.decomposition import PCA

from rsmove.config import KAISER_THRESHOLD, SamplingConfig
from rsmove.errors import CRSMismatch, EmptySelection, InvalidInput
from rsmove.points import RegionAssignment, SamplePoints
from rsmove.raster import OUTSIDE, RasterGrid

module_logger = logging.getLogger(__name__)


@dataclass
class BackgroundSamples:
    """Selected background points, optionally with the raster values at each point."""

    coordinates: np.ndarray
    cells: np.ndarray
    crs: CRS
    method: str
    values: pd.DataFrame | None = None
    components: list[int] = field(default_factory=list)
    reason: str | None = None

    def __len__(self) -> int:
        return len(self.coordinates)

    @property
    def empty(self) -> bool:
        return len(self.coordinates) == 0

    def raise_if_empty(self) -> "BackgroundSamples":
        if self.empty:
            raise EmptySelection(self.reason or "No background samples were selected.")
        return self

    def to_dataframe(self) -> pd.DataFrame:
        df = pd.DataFrame(
            {
                "cell": self.cells,
                "x": self.coordinates[:, 0],
                "y": self.coordinates[:, 1],
            }
        )
        if self.values is not None:
            df = pd.concat([df, self.values.reset_index(drop=True)], axis=1)
        return df


def dedupe_presences(cells: np.ndarray, labels: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Keep the first presence in each occupied cell together with its region label.

    Cells outside the raster (``-1``) and missing labels are dropped.
    """
    cells = np.asarray(cells, dtype=np.int64)
    labels = np.asarray(labels, dtype=object)
    valid = (cells != OUTSIDE) & ~pd.isna(labels)
    cells, labels = cells[valid], labels[valid]
    _, first = np.unique(cells, return_index=True)
    keep = np.sort(first)
    return cells[keep], labels[keep]


def background_candidates(
    cell_count: int,
    occupied: np.ndarray,
    n_samples: int | None = None,
    rng: np.random.Generator | None = None,
) -> np.ndarray:
    """
    Cell indices not occupied by a presence.

    With ``n_samples`` set, that many cells are drawn with replacement from the
    unoccupied pool.
    """
    pool = np.setdiff1d(np.arange(cell_count, dtype=np.int64), np.asarray(occupied, dtype=np.int64))
    if n_samples is None or len(pool) == 0:
        return pool
    rng = rng if rng is not None else np.random.default_rng()
    return rng.choice(pool, size=int(n_samples), replace=True)


def kaiser_scores(values: pd.DataFrame, threshold: float = KAISER_THRESHOLD) -> tuple[np.ndarray, list[int]]:
    """
    Standardized PCA scores for the components whose eigenvalue exceeds ``threshold``.

    Columns are centred and scaled by their sample standard deviation, so each
    eigenvalue is the sample variance of the matching component scores.

    Returns
    -------
    scores:
        Array of shape (n_rows, n_retained).
    retained:
        0-based indices of the retained components.
    """
    std = values.std(ddof=1)
    standardized = (values - values.mean()) / std
    pca = PCA(svd_solver="full")
    all_scores = pca.fit_transform(standardized.to_numpy(dtype=float))
    # A single standardized band has eigenvalue 1 up to rounding; it must not pass a threshold of 1
    tolerance = np.sqrt(np.finfo(float).eps) * max(1.0, abs(threshold))
    retained = [int(i) for i in np.flatnonzero(pca.explained_variance_ > threshold + tolerance)]
    return all_scores[:, retained], retained


def consensus_mask(
    presence_scores: np.ndarray,
    presence_labels: np.ndarray,
    candidate_scores: np.ndarray,
) -> np.ndarray:
    """
    Candidates selected by at least one component with every region agreeing.

    For component ``p`` and region ``r`` a candidate is flagged when
    ``|score - median_r| > MAD_r``. Flags are combined with AND over regions and
    then OR over components.
    """
    presence_scores = np.asarray(presence_scores, dtype=float)
    candidate_scores = np.asarray(candidate_scores, dtype=float)
    presence_labels = np.asarray(presence_labels, dtype=object)
    if presence_scores.ndim == 1:
        presence_scores = presence_scores[:, np.newaxis]
    if candidate_scores.ndim == 1:
        candidate_scores = candidate_scores[:, np.newaxis]

    n_candidates, n_components = candidate_scores.shape
    regions = list(pd.unique(pd.Series(presence_labels)))
    if n_components == 0 or not regions:
        return np.zeros(n_candidates, dtype=bool)

    # flags[p, r, c]: candidate c is an outlier for region r on component p
    flags = np.empty((n_components, len(regions), n_candidates), dtype=bool)
    for j, region in enumerate(regions):
        region_scores = presence_scores[presence_labels == region]
        medians = np.median(region_scores, axis=0)
        mads = np.median(np.abs(region_scores - medians), axis=0)
        flags[:, j, :] = (np.abs(candidate_scores - medians) > mads).T

    return flags.all(axis=1).any(axis=0)


def _check_crs(points: SamplePoints, raster: RasterGrid) -> None:
    if points.crs is None:
        raise InvalidInput("Presence points are missing a valid projection.")
    if CRS.from_user_input(points.crs) != CRS.from_user_input(raster.crs):
        raise CRSMismatch(
            f"Presence points ({points.crs.to_string()}) and raster ({raster.crs.to_string()}) "
            "have different projections."
        )


def back_sample(
    points,
    raster: RasterGrid,
    regions=None,
    method: str = "random",
    n_samples: int | None = None,
    random_state: int | None = None,
    kaiser_threshold: float = KAISER_THRESHOLD,
    crs=None,
    logger: logging.Logger | None = None,
) -> BackgroundSamples:
    """
    Select background samples for a set of presence points.

    Parameters
    ----------
    points:
        :class:`SamplePoints`, or an (n, 2) coordinate array together with ``crs``.
    raster:
        Raster adapter in the same CRS as the points.
    regions:
        Region label per presence, a :class:`RegionAssignment`, or ``None`` to
        treat all presences as one region.
    method:
        ``"random"`` returns the unoccupied cells, ``"pca"`` filters them by
        environmental dissimilarity to every presence region.
    n_samples:
        Optional number of candidates drawn (with replacement) from the
        unoccupied cells. All unoccupied cells are used when omitted.
    random_state:
        Seed for the candidate draw.
    kaiser_threshold:
        Eigenvalue a component must exceed to be retained.
    crs:
        CRS of ``points`` when they are passed as a plain coordinate array.

    Returns
    -------
    BackgroundSamples
        Empty (with ``reason`` set) when the PCA filter leaves nothing.
    """
    logger = logger or module_logger

    if not isinstance(points, SamplePoints):
        points = SamplePoints(points, crs=crs)
    if not isinstance(raster, RasterGrid):
        raise InvalidInput(f"Expected a RasterGrid adapter, got {type(raster).__name__}.")

    if regions is None:
        assignment = RegionAssignment.single_region(len(points))
    else:
        assignment = RegionAssignment.coerce(regions)
    if len(assignment) != len(points):
        raise InvalidInput(
            f"Presence points and region labels have different lengths ({len(points)} vs {len(assignment)})."
        )

    config = SamplingConfig(
        method=method,
        n_samples=n_samples,
        random_state=random_state,
        kaiser_threshold=kaiser_threshold,
    ).validate()
    _check_crs(points, raster)

    # Presences -> unique occupied cells
    cells = raster.cell_index(points.xy)
    outside = int(np.sum(cells == OUTSIDE))
    if outside:
        logger.warning("Dropping %d presence samples outside the raster grid", outside)
    unlabeled = int(np.sum(pd.isna(assignment.indices) & (cells != OUTSIDE)))
    if unlabeled:
        logger.warning("Dropping %d presence samples without a region label", unlabeled)
    presence_cells, presence_labels = dedupe_presences(cells, assignment.indices)

    rng = np.random.default_rng(config.random_state)
    candidate_cells = background_candidates(raster.cell_count, presence_cells, config.n_samples, rng)
    logger.info(
        "%d occupied cells, %d background candidates (raster has %d cells)",
        len(presence_cells),
        len(candidate_cells),
        raster.cell_count,
    )

    if config.method == "random":
        reason = None if len(candidate_cells) else "Every raster cell is occupied by a presence sample."
        return BackgroundSamples(
            coordinates=raster.cell_coordinates(candidate_cells),
            cells=candidate_cells,
            crs=raster.crs,
            method=config.method,
            reason=reason,
        )

    return _pca_selection(raster, presence_cells, presence_labels, candidate_cells, config, logger)


def _empty(raster: RasterGrid, reason: str, logger: logging.Logger, components=None) -> BackgroundSamples:
    logger.warning("Empty background selection: %s", reason)
    return BackgroundSamples(
        coordinates=np.empty((0, 2), dtype=float),
        cells=np.empty(0, dtype=np.int64),
        crs=raster.crs,
        method="pca",
        values=pd.DataFrame(columns=raster.band_names, dtype=float),
        components=list(components or []),
        reason=reason,
    )


def _pca_selection(
    raster: RasterGrid,
    presence_cells: np.ndarray,
    presence_labels: np.ndarray,
    candidate_cells: np.ndarray,
    config: SamplingConfig,
    logger: logging.Logger,
) -> BackgroundSamples:
    if len(candidate_cells) == 0:
        return _empty(raster, "No background candidates: every raster cell is occupied.", logger)

    cells = np.concatenate([presence_cells, candidate_cells])
    is_presence = np.zeros(len(cells), dtype=bool)
    is_presence[: len(presence_cells)] = True
    labels = np.concatenate([presence_labels, np.full(len(candidate_cells), None, dtype=object)])

    coordinates = raster.cell_coordinates(cells)
    values = raster.extract(coordinates)

    # A row with any missing band is removed from every point set
    complete = values.notna().all(axis=1).to_numpy()
    dropped = int((~complete).sum())
    if dropped:
        logger.info("Removing %d samples with missing raster values", dropped)
    cells, coordinates, labels, is_presence = cells[complete], coordinates[complete], labels[complete], is_presence[complete]
    values = values.loc[complete].reset_index(drop=True)

    if not (~is_presence).any():
        return _empty(raster, "No background candidates left after removing missing values.", logger)
    if not is_presence.any():
        return _empty(raster, "No presence samples left after removing missing values.", logger)
    if len(values) < 2:
        return _empty(raster, "Fewer than two complete samples; PCA cannot be fitted.", logger)

    constant = values.columns[(values.nunique() <= 1).to_numpy()].tolist()
    if constant:
        logger.warning("Ignoring constant bands in PCA: %s", constant)
    usable = values.drop(columns=constant)
    if usable.shape[1] == 0:
        return _empty(raster, "No raster band varies across the samples.", logger)

    scores, retained = kaiser_scores(usable, config.kaiser_threshold)
    logger.info("Kaiser rule retained %d of %d components", len(retained), usable.shape[1])
    if not retained:
        return _empty(raster, "No principal component has an eigenvalue above the Kaiser threshold.", logger)

    keep = consensus_mask(scores[is_presence], labels[is_presence], scores[~is_presence])
    logger.info("Selected %d of %d background candidates", int(keep.sum()), len(keep))
    if not keep.any():
        return _empty(raster, "No background candidate was flagged by every presence region.", logger, retained)

    background_rows = np.flatnonzero(~is_presence)[keep]
    return BackgroundSamples(
        coordinates=coordinates[background_rows],
        cells=cells[background_rows],
        crs=raster.crs,
        method="pca",
        values=values.iloc[background_rows].reset_index(drop=True),
        components=retained,
    )
