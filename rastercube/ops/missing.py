"""Missing-value handling shared by trimming, masking and classification.

A raster cube declares its missing-value sentinel in
``attrs["_FillValue"]``.  Three kinds of sentinel are recognised:

* ``pandas.NA`` – the *absent* marker; any element :func:`pandas.isna`
  considers missing (``None``, ``NaN``, ``NA``, ``NaT``) is missing.
* a float ``NaN`` – elements are missing when they are NaN.
* any other scalar – elements are missing when they equal it.

When no sentinel is declared (``None`` or no attribute), derived masks fall
back to the absent-marker semantics.

Every component decides validity through :func:`valid_values` (raw arrays)
or :func:`is_valid` (DataArrays) so the three-way rule lives in one place.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd
import xarray as xr

from rastercube.types import RasterCube

MISSINGVAL_ATTR = "_FillValue"

# ---------------------------------------------------------------------------
# Sentinel accessors
# ---------------------------------------------------------------------------


def missingval(data: RasterCube) -> Any | None:
    """Return the missing-value sentinel declared by *data*, or ``None``."""
    return data.attrs.get(MISSINGVAL_ATTR)


def with_missingval(data: RasterCube, value: Any | None) -> RasterCube:
    """Rebuild *data* with a new sentinel, sharing the backing array.

    Passing ``None`` removes the sentinel.
    """
    result = data.copy(deep=False)
    attrs = dict(data.attrs)
    if value is None:
        attrs.pop(MISSINGVAL_ATTR, None)
    else:
        attrs[MISSINGVAL_ATTR] = value
    result.attrs = attrs
    return result


def is_nan_sentinel(value: Any) -> bool:
    """True if *value* is a float NaN (not the absent marker)."""
    return isinstance(value, (float, np.floating)) and bool(np.isnan(value))


def is_absent_sentinel(value: Any) -> bool:
    """True if *value* selects absent-marker semantics."""
    return value is None or value is pd.NA


def promoted_dtype(dtype: np.dtype, *values: Any) -> np.dtype:
    """Return a dtype that holds both *dtype* and every scalar in *values*.

    Integers are promoted by value: ``-1`` needs a signed type and ``300``
    does not fit in ``uint8``, while ``7`` keeps an ``int8`` array as is.
    Python floats promote like numpy's weak scalars.

    Raises
    ------
    TypeError
        If numpy cannot promote the dtypes (e.g. numbers and strings).
    """
    dtype = np.dtype(dtype)
    args: list[Any] = []
    for value in values:
        if isinstance(value, (bool, np.bool_)):
            args.append(np.dtype(bool))
        elif isinstance(value, (int, np.integer)):
            if dtype.kind in "iu" and np.iinfo(dtype).min <= value <= np.iinfo(dtype).max:
                args.append(dtype)
            else:
                args.append(np.min_scalar_type(value))
        elif isinstance(value, (float, complex, np.generic)):
            args.append(value)
        else:
            args.append(np.asarray(value).dtype)
    return np.result_type(dtype, *args)


def fits_dtype(promoted: np.dtype, dtype: np.dtype) -> bool:
    """True if values of dtype *promoted* can be written into *dtype*.

    Integer arrays must not need promotion at all; floating arrays accept
    any float or complex of the same kind, rounding to their precision.
    """
    return promoted == dtype or (
        dtype.kind in "fc" and np.can_cast(promoted, dtype, casting="same_kind")
    )


# ---------------------------------------------------------------------------
# Validity predicate
# ---------------------------------------------------------------------------


def valid_values(values: np.ndarray, missingval: Any | None) -> np.ndarray:
    """Return a boolean array, ``True`` where *values* is not missing."""
    values = np.asarray(values)
    if is_absent_sentinel(missingval):
        return ~np.asarray(pd.isna(values), dtype=bool)
    if is_nan_sentinel(missingval):
        if values.dtype.kind in "fcmMO":
            return ~np.asarray(pd.isna(values), dtype=bool)
        # Integer and boolean arrays cannot hold NaN
        return np.ones(values.shape, dtype=bool)
    return np.asarray(np.not_equal(values, missingval), dtype=bool)


def is_valid(data: RasterCube, missingval: Any | None) -> RasterCube:
    """Element-wise validity of *data* against *missingval*.

    Uses :func:`xarray.apply_ufunc` so dask-backed cubes stay lazy.
    """
    return xr.apply_ufunc(
        valid_values,
        data,
        kwargs={"missingval": missingval},
        dask="parallelized",
        output_dtypes=[bool],
    )


# ---------------------------------------------------------------------------
# Derived masks
# ---------------------------------------------------------------------------


def boolmask(data: RasterCube, missingval: Any | None = None) -> RasterCube:
    """Create a boolean mask, ``True`` wherever *data* holds a valid value.

    Parameters
    ----------
    data : RasterCube
        Source cube.
    missingval
        Sentinel to test against.  Defaults to the sentinel declared by
        *data*; when neither exists, absent-marker semantics apply.
    """
    mv = missingval if missingval is not None else _missingval_or_absent(data)
    result = is_valid(data, mv)
    result.name = "boolmask"
    result.attrs = {MISSINGVAL_ATTR: False}
    return result


def missingmask(data: RasterCube, missingval: Any | None = None) -> RasterCube:
    """Create a mask holding ``True`` for valid cells and ``pandas.NA`` elsewhere."""
    mv = missingval if missingval is not None else _missingval_or_absent(data)

    def _missingmask(values: np.ndarray) -> np.ndarray:
        return np.where(valid_values(values, mv), True, pd.NA).astype(object)

    result = xr.apply_ufunc(
        _missingmask,
        data,
        dask="parallelized",
        output_dtypes=[object],
    )
    result.name = "missingmask"
    result.attrs = {MISSINGVAL_ATTR: pd.NA}
    return result


def fill_invalid(data: RasterCube, keep: RasterCube, fill: Any) -> RasterCube:
    """Return *data* with every cell where *keep* is false set to *fill*.

    The dtype is promoted when *fill* needs it; ``pandas.NA`` gives an
    object array.  *keep* is broadcast against *data* by dimension name.
    """
    dtype = np.dtype(object) if fill is pd.NA else promoted_dtype(data.dtype, fill)

    def _fill(values: np.ndarray, valid: np.ndarray) -> np.ndarray:
        return np.where(valid, np.asarray(values, dtype=dtype), fill).astype(dtype, copy=False)

    return xr.apply_ufunc(
        _fill,
        data,
        keep,
        dask="parallelized",
        output_dtypes=[dtype],
    )


def replace_missing(data: RasterCube, missingval: Any) -> RasterCube:
    """Replace the current missing cells of *data* with a new sentinel.

    The dtype is promoted when the new sentinel needs it (e.g. ``NaN`` in
    an integer cube).  The result declares *missingval* as its sentinel.
    """
    valid = is_valid(data, _missingval_or_absent(data))
    result = fill_invalid(data, valid, missingval)
    result.name = data.name
    result.attrs = dict(data.attrs)
    return with_missingval(result, missingval)


def _missingval_or_absent(data: RasterCube) -> Any:
    mv = missingval(data)
    return pd.NA if mv is None else mv
