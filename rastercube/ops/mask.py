"""Masking – blank out cells excluded by a reference cube, boolean grid or geometry."""

from __future__ import annotations

import logging
from typing import Any

import numpy as np
import pandas as pd
import xarray as xr

from rastercube.exceptions import ConfigurationError, DimensionMismatch, InvalidArgument
from rastercube.ops.missing import (
    MISSINGVAL_ATTR,
    boolmask,
    fill_invalid,
    fits_dtype,
    is_nan_sentinel,
    missingval as _declared_missingval,
    promoted_dtype,
    with_missingval,
)
from rastercube.ops.series import for_member_kind
from rastercube.ops.vector import rasterize
from rastercube.types import GeometryLike, RasterCube, RasterSeries, RasterStack

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Coverage resolution
# ---------------------------------------------------------------------------


def coverage(
    data: RasterCube | RasterStack,
    to: RasterCube | np.ndarray | GeometryLike,
    *,
    shape: str = "polygon",
    x_dim: str = "longitude",
    y_dim: str = "latitude",
) -> RasterCube:
    """Resolve *to* into a boolean coverage mask for *data*.

    * boolean DataArray – broadcast by dimension name;
    * boolean ndarray – must have the shape of *data*;
    * other DataArray – a reference cube, covered where it is not missing;
    * anything else – a geometry, rasterized with :func:`rasterize`.

    Array masks are applied by position: their dimension sizes must match
    *data*, and their own coordinate labels are replaced by those of *data*.
    """
    if isinstance(to, xr.DataArray):
        cov = to if to.dtype == bool else boolmask(to)
    elif isinstance(to, np.ndarray) and to.dtype == bool:
        if isinstance(data, xr.Dataset):
            raise DimensionMismatch(
                "A boolean ndarray cannot be matched to a Dataset; wrap it in "
                "a DataArray with named dimensions."
            )
        if to.shape != data.shape:
            raise DimensionMismatch(
                f"Boolean mask shape {to.shape} does not match cube shape {data.shape}."
            )
        cov = xr.DataArray(to, dims=data.dims)
    else:
        return rasterize(data, to, shape=shape, x_dim=x_dim, y_dim=y_dim)

    for dim in cov.dims:
        if dim not in data.dims:
            raise DimensionMismatch(
                f"Mask dimension '{dim}' is not a dimension of the cube. "
                f"Available dimensions: {list(data.dims)}"
            )
        if cov.sizes[dim] != data.sizes[dim]:
            raise DimensionMismatch(
                f"Mask dimension '{dim}' has size {cov.sizes[dim]}, "
                f"expected {data.sizes[dim]}."
            )
    # Masks are matched to the cube by position, not by coordinate labels
    cov = cov.drop_vars(list(cov.coords))
    return cov.assign_coords({dim: data[dim].variable for dim in cov.dims if dim in data.coords})


# ---------------------------------------------------------------------------
# mask
# ---------------------------------------------------------------------------


def mask(
    data: RasterCube,
    *,
    to: RasterCube | np.ndarray | GeometryLike,
    missingval: Any | None = None,
    shape: str = "polygon",
    x_dim: str = "longitude",
    y_dim: str = "latitude",
) -> RasterCube:
    """Return a copy of *data* with cells outside *to* set to *missingval*.

    Cells already missing under the sentinel declared by *data* are
    rewritten to *missingval* as well, and the result declares *missingval*
    as its sentinel.  The dtype is promoted when *missingval* needs it.

    Parameters
    ----------
    data : RasterCube
        Cube to mask.
    to : RasterCube | numpy.ndarray | GeometryLike
        Reference cube, boolean grid or polygon / line geometry.  See
        :func:`coverage`.
    missingval
        Value written into excluded cells.  Defaults to the sentinel of
        *data*.
    shape : str
        ``"polygon"`` or ``"line"`` when *to* is a geometry.
    x_dim, y_dim : str
        Dimensions the geometry's ``(x, y)`` vertices refer to.

    Raises
    ------
    ConfigurationError
        If no *missingval* is given and *data* declares none.
    DimensionMismatch
        If the coverage does not fit the cube's dimensions.
    """
    mv = _resolve_missingval(data, missingval)
    cov = coverage(data, to, shape=shape, x_dim=x_dim, y_dim=y_dim)
    return _masked(data, cov, mv)


def mask_inplace(
    data: RasterCube,
    *,
    to: RasterCube | np.ndarray | GeometryLike,
    missingval: Any | None = None,
    shape: str = "polygon",
    x_dim: str = "longitude",
    y_dim: str = "latitude",
) -> RasterCube:
    """Mask *data* in place and return it.

    All arguments are validated before the cube is touched, so a rejected
    call leaves *data* unmodified.

    Raises
    ------
    InvalidArgument
        If *missingval* cannot be stored in the cube's dtype.
    """
    mv = _resolve_missingval(data, missingval)
    cov = coverage(data, to, shape=shape, x_dim=x_dim, y_dim=y_dim)
    _assert_fits(data, mv)
    _mask_layer_inplace(data, cov, mv)
    return data


def mask_stack(
    data: RasterStack,
    *,
    to: RasterCube | GeometryLike,
    missingval: Any | None = None,
    shape: str = "polygon",
    x_dim: str = "longitude",
    y_dim: str = "latitude",
) -> RasterStack:
    """Mask every layer of a stack with a coverage derived once from *to*."""
    cov = coverage(data, to, shape=shape, x_dim=x_dim, y_dim=y_dim)
    layers = {
        name: _resolve_missingval(layer, missingval)
        for name, layer in data.data_vars.items()
        if _shares_dims(layer, cov)
    }
    result = data.copy()
    for name, mv in layers.items():
        result[name] = _masked(data[name], cov, mv)
    return result


def mask_stack_inplace(
    data: RasterStack,
    *,
    to: RasterCube | GeometryLike,
    missingval: Any | None = None,
    shape: str = "polygon",
    x_dim: str = "longitude",
    y_dim: str = "latitude",
) -> RasterStack:
    """Mask every layer of a stack in place with a shared coverage."""
    cov = coverage(data, to, shape=shape, x_dim=x_dim, y_dim=y_dim)
    layers = {}
    for name, layer in data.data_vars.items():
        if not _shares_dims(layer, cov):
            continue
        mv = _resolve_missingval(layer, missingval)
        _assert_fits(layer, mv)
        layers[name] = mv
    for name, mv in layers.items():
        _mask_layer_inplace(data[name], cov, mv)
    return data


def mask_series(
    series: RasterSeries,
    *,
    to: RasterCube | GeometryLike,
    member_kind: str = "stack",
    **kwargs: Any,
) -> RasterSeries:
    """Mask each member of *series* independently."""
    fn = for_member_kind(member_kind, mask, mask_stack)
    return [fn(member, to=to, **kwargs) for member in series]


def mask_series_inplace(
    series: RasterSeries,
    *,
    to: RasterCube | GeometryLike,
    member_kind: str = "stack",
    **kwargs: Any,
) -> RasterSeries:
    """Mask each member of *series* in place."""
    fn = for_member_kind(member_kind, mask_inplace, mask_stack_inplace)
    for member in series:
        fn(member, to=to, **kwargs)
    return series


# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------


def _resolve_missingval(data: RasterCube, missingval: Any | None) -> Any:
    mv = missingval if missingval is not None else _declared_missingval(data)
    if mv is None:
        raise ConfigurationError(
            f"Cube '{data.name}' has no missing value.  Pass `missingval=` "
            f"compatible with dtype {data.dtype}, or declare one with "
            f"with_missingval()."
        )
    return mv


def _keep(data: RasterCube, cov: RasterCube) -> RasterCube:
    # Cells already missing are replaced too, but only under a declared sentinel
    if _declared_missingval(data) is None:
        return cov
    return cov & boolmask(data)


def _masked(data: RasterCube, cov: RasterCube, mv: Any) -> RasterCube:
    result = fill_invalid(data, _keep(data, cov), mv)
    result.name = data.name
    result.attrs = dict(data.attrs)
    return with_missingval(result, mv)


def _mask_layer_inplace(data: RasterCube, cov: RasterCube, mv: Any) -> None:
    keep = _keep(data, cov).broadcast_like(data).transpose(*data.dims)
    if isinstance(data.data, np.ndarray):
        np.putmask(data.data, ~keep.values, mv)
    else:
        data.data = fill_invalid(data, keep, mv).data.astype(data.dtype)
    data.attrs[MISSINGVAL_ATTR] = mv


def _assert_fits(data: RasterCube, mv: Any) -> None:
    """Raise ``InvalidArgument`` if *mv* cannot be written into *data*."""
    dtype = data.dtype
    if dtype.kind == "O":
        return
    if mv is pd.NA:
        fits = False
    elif is_nan_sentinel(mv):
        fits = dtype.kind in "fc"
    else:
        try:
            fits = fits_dtype(promoted_dtype(dtype, mv), dtype)
        except TypeError:
            fits = False
    if not fits:
        raise InvalidArgument(
            f"Missing value {mv!r} cannot be stored in cube '{data.name}' of "
            f"dtype {dtype}; use mask() to get a promoted copy instead."
        )


def _shares_dims(layer: RasterCube, cov: RasterCube) -> bool:
    shared = [d for d in cov.dims if d in layer.dims]
    if not shared:
        logger.debug("Layer '%s' has none of %s; left unmasked", layer.name, cov.dims)
        return False
    if len(shared) != len(cov.dims):
        raise DimensionMismatch(
            f"Layer '{layer.name}' has only {shared} of the mask dimensions {list(cov.dims)}."
        )
    return True
