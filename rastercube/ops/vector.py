"""Vector operations – geometry normalisation and rasterization with shapely."""

from __future__ import annotations

import logging
from typing import Any, Sequence

import geopandas as gpd
import numpy as np
import pyproj
import shapely
import xarray as xr
from shapely.geometry import GeometryCollection, LineString, MultiLineString, Point, Polygon
from shapely.geometry.base import BaseGeometry

from rastercube.exceptions import (
    CrsMismatch,
    DimensionMismatch,
    DimensionNotAvailable,
    InvalidArgument,
)
from rastercube.ops.missing import MISSINGVAL_ATTR
from rastercube.types import GeometryLike, RasterCube, RasterStack

logger = logging.getLogger(__name__)

LOCUS_ATTR = "locus"
SHAPES = ("polygon", "line")


# ---------------------------------------------------------------------------
# Geometry normalisation
# ---------------------------------------------------------------------------


def as_geometry(geometry: GeometryLike, *, shape: str = "polygon") -> BaseGeometry:
    """Turn *geometry* into a 2-D shapely geometry.

    Accepts a shapely geometry, a GeoSeries / GeoDataFrame (geometries are
    unioned), a GeoJSON FeatureCollection dict, anything exposing
    ``__geo_interface__`` (including GeoJSON geometry dicts), a flat
    sequence of ``(x, y)`` vertices, or a list of rings where the first
    ring is the exterior and the rest are holes.

    Raw vertices become a polygon when *shape* is ``"polygon"`` and a line
    (one part per ring) when *shape* is ``"line"``.

    Raises
    ------
    DimensionMismatch
        If a vertex does not have exactly two coordinates, or the geometry
        carries Z values.
    """
    if isinstance(geometry, dict) and "features" in geometry:
        geometry = gpd.GeoDataFrame.from_features(geometry["features"])

    if isinstance(geometry, BaseGeometry):
        geom = geometry
    elif isinstance(geometry, (gpd.GeoSeries, gpd.GeoDataFrame)):
        geoms = geometry.geometry if isinstance(geometry, gpd.GeoDataFrame) else geometry
        geom = geoms.union_all()
    elif isinstance(geometry, dict) or hasattr(geometry, "__geo_interface__"):
        geom = shapely.geometry.shape(geometry)
    else:
        geom = _from_vertices(geometry, shape)

    if shapely.has_z(geom):
        raise DimensionMismatch(
            "Geometry has 3-D coordinates; only (x, y) vertices matching the "
            "two target dimensions are supported."
        )
    return geom


def _from_vertices(vertices: Any, shape: str) -> BaseGeometry:
    if len(vertices) == 0:
        return Polygon() if shape == "polygon" else LineString()

    if np.ndim(vertices[0]) == 0:
        raise DimensionMismatch("Vertices must be (x, y) pairs, not bare numbers.")
    # A list of rings nests one level deeper than a list of vertices
    if np.ndim(vertices[0][0]) > 0:
        rings = [_vertex_array(r) for r in vertices]
    else:
        rings = [_vertex_array(vertices)]

    try:
        if shape == "line":
            return LineString(rings[0]) if len(rings) == 1 else MultiLineString(rings)
        return Polygon(rings[0], holes=rings[1:])
    except (ValueError, shapely.errors.GEOSException) as exc:
        raise InvalidArgument(f"Invalid {shape} vertices: {exc}") from None


def _vertex_array(vertices: Sequence[Sequence[float]]) -> np.ndarray:
    arr = np.asarray(vertices, dtype=np.float64)
    if arr.ndim != 2 or arr.shape[1] != 2:
        raise DimensionMismatch(
            f"Vertices must be (x, y) pairs; got an array of shape {arr.shape}."
        )
    return arr


# ---------------------------------------------------------------------------
# rasterize
# ---------------------------------------------------------------------------


def rasterize(
    data: RasterCube | RasterStack,
    geometry: GeometryLike,
    *,
    shape: str = "polygon",
    x_dim: str = "longitude",
    y_dim: str = "latitude",
) -> RasterCube:
    """Rasterize a polygon or line onto the ``(x_dim, y_dim)`` grid of *data*.

    Containment is tested at cell centers, so a cell is covered by a polygon
    roughly when most of it lies inside.  Coordinates whose ``locus``
    attribute is ``"start"`` or ``"end"`` are shifted to centers first.

    If the geometry's bounding box does not overlap the grid, an all-false
    mask is returned without testing any cell.

    Parameters
    ----------
    data : RasterCube | RasterStack
        Provides the target grid; only its coordinates are used.
    geometry : GeometryLike
        Polygon / line source, see :func:`as_geometry`.  Vertex order is
        ``(x, y)``.
    shape : str
        ``"polygon"`` – cells whose center is inside or on the boundary.
        ``"line"`` – cells whose center is within half the mean cell size
        of the line.

    Returns
    -------
    RasterCube
        Boolean coverage mask over the two target dims (ordered as in
        *data*), with ``_FillValue=False``.

    Raises
    ------
    InvalidArgument
        If *shape* is not ``"polygon"`` or ``"line"``.
    DimensionNotAvailable
        If *x_dim* or *y_dim* is missing.
    CrsMismatch
        If both the geometry and *data* declare different CRSs.
    """
    if shape not in SHAPES:
        raise InvalidArgument(f"shape must be one of {list(SHAPES)}, got {shape!r}")
    for dim in (x_dim, y_dim):
        if dim not in data.dims:
            raise DimensionNotAvailable(
                f"A dimension with the specified name '{dim}' does not exist. "
                f"Available dimensions: {list(data.dims)}"
            )

    geom = as_geometry(geometry, shape=shape)
    _assert_same_crs(data, geometry)

    xs = cell_centers(data[x_dim])
    ys = cell_centers(data[y_dim])
    grid_bounds = (_cell_extent(xs), _cell_extent(ys))

    if geom.is_empty or not _bounds_overlap(geom, grid_bounds):
        logger.debug("Geometry bbox does not cross the grid; skipping point tests")
        inside = np.zeros((ys.size, xs.size), dtype=bool)
    else:
        xx, yy = np.meshgrid(xs, ys)
        if shape == "polygon":
            inside = _intersects_points(geom, xx.ravel(), yy.ravel())
        else:
            tol = _line_tolerance(grid_bounds, (xs.size, ys.size))
            inside = _near_line(geom, xx.ravel(), yy.ravel(), tol)
        inside = np.asarray(inside, dtype=bool).reshape(ys.size, xs.size)

    coverage = xr.DataArray(
        inside,
        dims=(y_dim, x_dim),
        coords={y_dim: data[y_dim].variable, x_dim: data[x_dim].variable},
        name="coverage",
        attrs={MISSINGVAL_ATTR: False},
    )
    return coverage.transpose(*[d for d in data.dims if d in (x_dim, y_dim)])


# ---------------------------------------------------------------------------
# Grid helpers
# ---------------------------------------------------------------------------


def cell_centers(coord: xr.DataArray) -> np.ndarray:
    """Return cell-center positions of a 1-D coordinate.

    The coordinate's ``locus`` attr (``"start"``, ``"center"`` or ``"end"``,
    default ``"center"``) says what its values denote.
    """
    values = np.asarray(coord.values, dtype=np.float64)
    locus = coord.attrs.get(LOCUS_ATTR, "center")
    if locus not in ("start", "center", "end"):
        raise InvalidArgument(
            f"Unknown locus {locus!r} on '{coord.name}'; use 'start', 'center' or 'end'."
        )
    if locus == "center" or values.size < 2:
        return values
    steps = np.diff(values)
    if locus == "start":
        return values + np.append(steps, steps[-1]) / 2
    return values - np.insert(steps, 0, steps[0]) / 2


def _cell_extent(centers: np.ndarray) -> tuple[float, float]:
    """Outer edges ``(min, max)`` of the cells around *centers*."""
    if centers.size == 0:
        return (np.nan, np.nan)
    if centers.size == 1:
        return (float(centers[0]), float(centers[0]))
    first_half = abs(centers[1] - centers[0]) / 2
    last_half = abs(centers[-1] - centers[-2]) / 2
    sign = 1.0 if centers[-1] >= centers[0] else -1.0
    edges = (centers[0] - sign * first_half, centers[-1] + sign * last_half)
    return (float(min(edges)), float(max(edges)))


def _bounds_overlap(geom: BaseGeometry, grid_bounds: tuple[tuple[float, float], ...]) -> bool:
    minx, miny, maxx, maxy = shapely.bounds(geom)
    for (p_min, p_max), (a_min, a_max) in zip(((minx, maxx), (miny, maxy)), grid_bounds):
        if not (p_min <= a_max and p_max >= a_min):
            return False
    return True


def _line_tolerance(grid_bounds: tuple[tuple[float, float], ...], sizes: tuple[int, ...]) -> float:
    # Half of the largest mean cell size across the two axes
    steps = [(hi - lo) / n for (lo, hi), n in zip(grid_bounds, sizes)]
    return max(steps) / 2


# ---------------------------------------------------------------------------
# Point tests
# ---------------------------------------------------------------------------


def _intersects_points(geom: BaseGeometry, x: np.ndarray, y: np.ndarray) -> np.ndarray:
    """Vectorised point-in-polygon test; boundary points count as inside."""
    shapely.prepare(geom)
    return shapely.intersects_xy(geom, x, y)


def _near_line(geom: BaseGeometry, x: np.ndarray, y: np.ndarray, tol: float) -> np.ndarray:
    """True where a point lies within *tol* of the closed pseudo-ring of *geom*."""
    ring = pseudo_ring(geom)
    shapely.prepare(ring)
    return shapely.distance(ring, shapely.points(x, y)) <= tol


def pseudo_ring(geom: BaseGeometry) -> BaseGeometry:
    """Close each line part of *geom* by appending its vertices in reverse.

    Polygons contribute their exterior and interior rings.
    """
    parts = []
    for part in shapely.get_parts(geom):
        if isinstance(part, Polygon):
            lines = [part.exterior, *part.interiors]
        else:
            lines = [part]
        for line in lines:
            coords = np.asarray(line.coords)
            if len(coords) < 2:
                parts.extend(Point(c) for c in coords)
                continue
            parts.append(LineString(np.vstack([coords, coords[::-1]])))
    return GeometryCollection(parts)


# ---------------------------------------------------------------------------
# CRS helpers
# ---------------------------------------------------------------------------


def _assert_same_crs(data: RasterCube | RasterStack, geometry: Any) -> None:
    """Raise ``CrsMismatch`` if geometry and cube declare different CRSs."""
    if not isinstance(geometry, (gpd.GeoSeries, gpd.GeoDataFrame)):
        return
    geom_crs = geometry.crs
    data_crs = data.attrs.get("crs")
    if geom_crs is None or data_crs is None:
        return
    if pyproj.CRS.from_user_input(data_crs) != pyproj.CRS.from_user_input(geom_crs):
        raise CrsMismatch(
            f"Geometry CRS {geom_crs} does not match the cube CRS {data_crs}. "
            f"Reproject the geometries first."
        )
