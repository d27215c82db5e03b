"""Exception types raised by the region statistics and background sampling helpers."""

from __future__ import annotations


class InvalidInput(ValueError):
    """Malformed or mismatched arguments. Raised before any computation starts."""


class CRSMismatch(InvalidInput):
    """Presence points and raster are not in the same coordinate reference system."""


class EmptySelection(RuntimeError):
    """
    The PCA filter produced no background samples.

    ``back_sample`` returns the empty outcome instead of raising; callers opt in
    to the exception through :meth:`BackgroundSamples.raise_if_empty`.
    """

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason
