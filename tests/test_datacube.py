"""Tests for the DataCube fluent wrapper."""

import dask.array as da
import numpy as np
import pandas as pd
import pytest
import xarray as xr

from rastercube.datacube import DataCube
from rastercube.exceptions import InvalidArgument


def _make_raster_da(dask_backed: bool = False) -> xr.DataArray:
    """(time, latitude, longitude) cube valid only in its 2x2 center."""
    values = np.full((2, 4, 4), -9999.0)
    values[:, 1:3, 1:3] = np.arange(1, 9).reshape(2, 2, 2)
    data = da.from_array(values, chunks=(1, 2, 2)) if dask_backed else values
    return xr.DataArray(
        data,
        dims=["time", "latitude", "longitude"],
        coords={
            "time": pd.date_range("2023-01-01", periods=2, freq="D"),
            "latitude": np.arange(0.5, 4.0),
            "longitude": np.arange(0.5, 4.0),
        },
        name="band",
        attrs={"_FillValue": -9999.0},
    )


def _make_stack() -> xr.Dataset:
    b = _make_raster_da()
    b.values[b.values > 0] *= 2
    return xr.Dataset({"a": _make_raster_da(), "b": b})


class TestDataCubeKind:
    def test_of_infers_kind(self):
        assert DataCube.of(_make_raster_da()).is_raster
        assert DataCube.of(_make_stack()).is_stack
        series = DataCube.of([_make_raster_da()])
        assert series.is_series
        assert series.member_kind == "raster"
        assert DataCube.of([_make_stack()]).member_kind == "stack"

    def test_of_returns_existing_cube(self):
        cube = DataCube.of(_make_raster_da())
        assert DataCube.of(cube) is cube

    def test_of_rejects_unknown_type(self):
        with pytest.raises(InvalidArgument, match="Cannot wrap"):
            DataCube.of(np.zeros(3))

    def test_explicit_kind(self):
        cube = DataCube([_make_raster_da()], kind="series", member_kind="raster")
        assert cube.kind == "series"

    def test_bad_kind(self):
        with pytest.raises(InvalidArgument, match="kind must be one of"):
            DataCube(_make_raster_da(), kind="vector")
        with pytest.raises(InvalidArgument, match="member_kind must be one of"):
            DataCube([], kind="series", member_kind="vector")


class TestDataCubeRaster:
    def test_trim_fluent(self):
        result = DataCube.of(_make_raster_da()).trim()
        assert isinstance(result, DataCube)
        assert result.is_raster
        assert result.data.sizes == {"time": 2, "latitude": 2, "longitude": 2}

    def test_mask_fluent(self):
        cube = DataCube.of(_make_raster_da())
        result = cube.mask(to=[(1, 1), (2, 1), (2, 2), (1, 2)])
        assert (result.data.values != -9999).sum() == 2

    def test_mask_with_datacube_reference(self):
        cube = DataCube.of(_make_raster_da())
        reference = DataCube.of(_make_raster_da().isel(time=0, drop=True))
        result = cube.mask(to=reference, missingval=np.nan)
        assert int(np.isnan(result.data.values).sum()) == 2 * 12

    def test_classify_fluent(self):
        cube = DataCube.of(_make_raster_da())
        result = cube.classify([((0, 5), 1)], others=2)
        values = result.data.values
        assert set(np.unique(values)) == {-9999.0, 1.0, 2.0}

    def test_boolmask_and_missingmask(self):
        cube = DataCube.of(_make_raster_da())
        assert int(cube.boolmask().data.sum()) == 8
        assert cube.missingmask().data.values[0, 0, 0] is pd.NA

    def test_rasterize(self):
        result = DataCube.of(_make_raster_da()).rasterize([(1, 1), (3, 1), (3, 3), (1, 3)])
        assert result.is_raster
        assert result.data.dims == ("latitude", "longitude")
        assert int(result.data.sum()) == 4

    def test_chain(self):
        """Test fluent chaining of multiple operations."""
        result = (
            DataCube.of(_make_raster_da(dask_backed=True))
            .mask(to=[(0, 0), (4, 0), (4, 4), (0, 4)])
            .trim(pad=0)
            .classify([((0, 5), 1)], others=2)
            .compute()
        )
        assert isinstance(result.data.data, np.ndarray)
        np.testing.assert_array_equal(result.data.values[0], [[1, 1], [1, 1]])
        np.testing.assert_array_equal(result.data.values[1], [[2, 2], [2, 2]])

    def test_compute_noop_for_numpy(self):
        cube = DataCube.of(_make_raster_da())
        np.testing.assert_array_equal(cube.compute().data.values, cube.data.values)

    def test_repr(self):
        assert "raster" in repr(DataCube.of(_make_raster_da()))
        assert "series" in repr(DataCube.of([_make_stack()]))


class TestDataCubeStack:
    def test_trim_stack(self):
        result = DataCube.of(_make_stack()).trim(pad=1)
        assert result.is_stack
        assert result.data.sizes["longitude"] == 4

    def test_mask_stack(self):
        result = DataCube.of(_make_stack()).mask(to=[(100, 100), (101, 100), (101, 101)])
        assert (result.data["a"].values == -9999).all()

    def test_raster_only_methods(self):
        cube = DataCube.of(_make_stack())
        with pytest.raises(TypeError, match="boolmask.*requires a raster"):
            cube.boolmask()
        with pytest.raises(TypeError, match="plot.*requires a raster"):
            cube.plot()


class TestDataCubeSeries:
    def test_series_dispatch(self):
        cube = DataCube.of([_make_raster_da(), _make_raster_da()])
        result = cube.trim().classify([((0, 100), 0)])
        assert result.is_series
        assert result.member_kind == "raster"
        assert all(member.sizes["longitude"] == 2 for member in result.data)
        assert all((member.values == 0).all() for member in result.data)

    def test_series_of_stacks(self):
        result = DataCube.of([_make_stack()]).mask(to=[(1, 1), (2, 1), (2, 2), (1, 2)])
        assert (result.data[0]["b"].values != -9999).sum() == 2

    def test_series_compute(self):
        result = DataCube.of([_make_raster_da(dask_backed=True)]).compute()
        assert isinstance(result.data[0].data, np.ndarray)

    def test_rasterize_requires_grid(self):
        with pytest.raises(TypeError, match="rasterize"):
            DataCube.of([_make_stack()]).rasterize([(0, 0), (1, 0), (1, 1)])
