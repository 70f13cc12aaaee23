"""Core type aliases for rastercube data cubes."""

from __future__ import annotations

from typing import Any, Sequence, Union

import geopandas as gpd
import xarray as xr
from shapely.geometry.base import BaseGeometry

# ---------------------------------------------------------------------------
# Public type aliases
# ---------------------------------------------------------------------------

RasterCube = xr.DataArray
"""A raster data cube – always an xarray DataArray (numpy or dask-backed)."""

RasterStack = xr.Dataset
"""A named collection of raster layers sharing the same dimensions."""

RasterSeries = list
"""An ordered sequence of stacks or cubes, processed member by member."""

Cube = Union[RasterCube, RasterStack, "list[RasterCube | RasterStack]"]
"""Any data cube type recognised by the library."""

GeometryLike = Union[
    BaseGeometry,
    gpd.GeoSeries,
    gpd.GeoDataFrame,
    dict,
    Sequence[Sequence[float]],
    Sequence[Sequence[Sequence[float]]],
    Any,
]
"""Anything :func:`rastercube.ops.vector.as_geometry` can turn into a shapely geometry."""
