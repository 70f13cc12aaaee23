"""Trimming – shrink a cube to the extent that holds non-missing data."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, NamedTuple, Sequence

import dask
import numpy as np
import xarray as xr

from rastercube.exceptions import DimensionMismatch, DimensionNotAvailable, InvalidArgument
from rastercube.ops.missing import is_valid, missingval
from rastercube.ops.series import for_member_kind
from rastercube.types import RasterCube, RasterSeries, RasterStack

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Axis ranges
# ---------------------------------------------------------------------------


class AxisRange(NamedTuple):
    """Inclusive, 0-based index interval ``[start, stop]`` along *dim*."""

    dim: str
    start: int
    stop: int

    def padded(self, pad: int, size: int) -> "AxisRange":
        """Grow by *pad* on both sides, never past ``[0, size - 1]``."""
        return AxisRange(self.dim, max(self.start - pad, 0), min(self.stop + pad, size - 1))

    def to_slice(self) -> slice:
        return slice(self.start, self.stop + 1)


# ---------------------------------------------------------------------------
# AxisReductionTracker
# ---------------------------------------------------------------------------


class AxisReductionTracker:
    """Track, per kept dimension, which indices hold any valid value.

    One boolean vector per kept dimension is OR-accumulated over every
    element passed to :meth:`update`, reducing over all other dimensions.
    The result does not depend on the order in which cubes or chunks are
    visited.

    Usage::

        tracker = AxisReductionTracker(cube.sizes, ("x", "y"))
        tracker.update(cube)
        ranges = tracker.ranges()
    """

    def __init__(self, sizes: Mapping[str, int], dims: Sequence[str]) -> None:
        self.sizes = {d: int(sizes[d]) for d in dims}
        self.dims = tuple(dims)
        self.tracking: dict[str, np.ndarray] = {
            d: np.zeros(self.sizes[d], dtype=bool) for d in self.dims
        }

    def update(self, data: RasterCube) -> None:
        """OR the validity of every element of *data* into the trackers.

        Kept dimensions missing from *data* are broadcast: the cube's
        overall validity is applied to every index along them.
        """
        valid = is_valid(data, missingval(data))
        reductions = []
        for dim in self.dims:
            if dim in valid.dims:
                if valid.sizes[dim] != self.sizes[dim]:
                    raise DimensionMismatch(
                        f"Dimension '{dim}' has size {valid.sizes[dim]} in "
                        f"'{data.name}', expected {self.sizes[dim]}."
                    )
                others = [d for d in valid.dims if d != dim]
                reduced = valid.any(dim=others) if others else valid
            else:
                reduced = valid.any()
            reductions.append(reduced.data)

        # A single compute lets dask scan each chunk once for all dims
        if any(dask.is_dask_collection(r) for r in reductions):
            reductions = list(dask.compute(*reductions))

        for dim, reduced in zip(self.dims, reductions):
            self.tracking[dim] |= np.asarray(reduced, dtype=bool)

    def ranges(self) -> tuple[AxisRange, ...]:
        """Return the first/last valid index per kept dimension.

        An axis with no valid index at all falls back to its full extent.
        """
        result = []
        for dim in self.dims:
            hits = np.flatnonzero(self.tracking[dim])
            if hits.size == 0:
                logger.info(
                    "No valid data along '%s'; keeping its full extent", dim
                )
                result.append(AxisRange(dim, 0, self.sizes[dim] - 1))
            else:
                result.append(AxisRange(dim, int(hits[0]), int(hits[-1])))
        return tuple(result)


# ---------------------------------------------------------------------------
# trim
# ---------------------------------------------------------------------------


def trim_ranges(
    data: RasterCube | RasterStack,
    *,
    dims: Sequence[str] = ("longitude", "latitude"),
    pad: int = 0,
) -> tuple[AxisRange, ...]:
    """Compute padded trim ranges for *data* without slicing it.

    For a :class:`~xarray.Dataset` validity is accumulated across all data
    variables.
    """
    dims = _validate(data, dims, pad)
    tracker = AxisReductionTracker(data.sizes, dims)
    for layer in _layers(data):
        tracker.update(layer)
    ranges = tuple(r.padded(pad, data.sizes[r.dim]) for r in tracker.ranges())
    logger.debug("Trim ranges for pad=%d: %s", pad, ranges)
    return ranges


def trim(
    data: RasterCube,
    *,
    dims: Sequence[str] = ("longitude", "latitude"),
    pad: int = 0,
) -> RasterCube:
    """Trim missing values from the edges of *data* along *dims*.

    Keeps the smallest extent of *dims* that holds a non-missing value
    along all other dimensions, grown by *pad* cells on every side but
    never beyond the original extent.  Dimensions not listed in *dims*
    are left untouched.  The result is a view sharing storage with *data*.

    Parameters
    ----------
    data : RasterCube
        Cube whose missing value is declared in ``attrs["_FillValue"]``.
    dims : sequence of str
        Dimensions to trim.
    pad : int
        Cells of padding added on each side (>= 0).

    Raises
    ------
    DimensionNotAvailable
        If a name in *dims* is not a dimension of *data*.
    InvalidArgument
        If *pad* is negative or not an integer.
    """
    return data.isel(_slices(trim_ranges(data, dims=dims, pad=pad)))


def trim_stack(
    data: RasterStack,
    *,
    dims: Sequence[str] = ("longitude", "latitude"),
    pad: int = 0,
) -> RasterStack:
    """Trim every layer of a stack to the extent where *any* layer has data."""
    return data.isel(_slices(trim_ranges(data, dims=dims, pad=pad)))


def trim_series(
    series: RasterSeries,
    *,
    dims: Sequence[str] = ("longitude", "latitude"),
    pad: int = 0,
    member_kind: str = "stack",
) -> RasterSeries:
    """Trim each member of *series* independently.

    *member_kind* is ``"stack"`` for a series of Datasets or ``"raster"``
    for a series of DataArrays.
    """
    fn = for_member_kind(member_kind, trim, trim_stack)
    return [fn(member, dims=dims, pad=pad) for member in series]


# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------


def _validate(data: RasterCube | RasterStack, dims: Sequence[str], pad: int) -> tuple[str, ...]:
    if isinstance(pad, bool) or not isinstance(pad, (int, np.integer)):
        raise InvalidArgument(f"pad must be an integer, got {pad!r}")
    if pad < 0:
        raise InvalidArgument(f"pad must be >= 0, got {pad}")
    if isinstance(dims, str):
        dims = (dims,)
    for dim in dims:
        if dim not in data.dims:
            raise DimensionNotAvailable(
                f"A dimension with the specified name '{dim}' does not exist. "
                f"Available dimensions: {list(data.dims)}"
            )
    return tuple(dims)


def _layers(data: RasterCube | RasterStack) -> Iterable[RasterCube]:
    if isinstance(data, xr.Dataset):
        return data.data_vars.values()
    return (data,)


def _slices(ranges: Iterable[AxisRange]) -> dict[str, slice]:
    return {r.dim: r.to_slice() for r in ranges}
