"""Tests for rastercube.ops.classify module."""

import operator

import dask.array as da
import numpy as np
import pytest
import xarray as xr

from rastercube.exceptions import InvalidArgument
from rastercube.ops.classify import (
    Exact,
    Predicate,
    Range,
    as_rules,
    classify,
    classify_inplace,
    classify_series,
    classify_series_inplace,
    classify_stack,
    classify_stack_inplace,
)


def _make_raster(values, missing=None, dask_backed: bool = False) -> xr.DataArray:
    data = np.asarray(values)
    if dask_backed:
        data = da.from_array(data, chunks=2)  # type: ignore[assignment]
    attrs = {} if missing is None else {"_FillValue": missing}
    return xr.DataArray(data, dims=["longitude"], name="band", attrs=attrs)


OVERLAPPING = [((5, 15), 10), ((10, 20), 20)]


# ---------------------------------------------------------------
# Rule parsing
# ---------------------------------------------------------------


class TestAsRules:
    def test_pairs(self):
        rules = as_rules([(1, 10), ((0, 5), 20), (np.isnan, 0)])
        assert rules[0] == Exact(1, 10)
        assert rules[1] == Range(0, 5, 20)
        assert isinstance(rules[2], Predicate)

    def test_mapping(self):
        assert as_rules({1: "a", 2: "b"}) == [Exact(1, "a"), Exact(2, "b")]

    def test_triples(self):
        assert as_rules([(0, 5, 1)]) == [Range(0, 5, 1)]

    def test_rule_objects_pass_through(self):
        rule = Range(0, 1, 2)
        assert as_rules([rule]) == [rule]

    def test_two_column_table(self):
        rules = as_rules(np.array([[1, 10], [2, 20]]))
        assert rules == [Exact(1, 10), Exact(2, 20)]

    def test_three_column_table(self):
        rules = as_rules(np.array([[0, 5, 1], [5, 10, 2]]))
        assert rules == [Range(0, 5, 1), Range(5, 10, 2)]

    def test_bad_table_width(self):
        with pytest.raises(InvalidArgument, match="N\\*2 or N\\*3"):
            as_rules(np.zeros((2, 4)))

    def test_mixed_bounds(self):
        with pytest.raises(InvalidArgument, match="both be values or both be callables"):
            as_rules([((lambda v: v > 0, 5), 1)])

    def test_unreadable_rule(self):
        with pytest.raises(InvalidArgument, match="Cannot read classification rule"):
            as_rules([42])


# ---------------------------------------------------------------
# classify
# ---------------------------------------------------------------


class TestClassify:
    def test_first_match_wins(self):
        result = classify(_make_raster([12.0, 10.0, 20.0, 3.0]), OVERLAPPING)
        np.testing.assert_array_equal(result.values, [10.0, 10.0, 20.0, 3.0])

    def test_others(self):
        result = classify(_make_raster([12.0, 10.0, 20.0, 3.0]), OVERLAPPING, others=0)
        np.testing.assert_array_equal(result.values, [10.0, 10.0, 0.0, 0.0])

    def test_comparators(self):
        cube = _make_raster([5.0, 10.0, 15.0])
        result = classify(cube, [((5, 10), 1)], lower=">", upper="<=", others=0)
        np.testing.assert_array_equal(result.values, [0.0, 1.0, 0.0])

    def test_operator_comparators(self):
        cube = _make_raster([5.0, 10.0])
        result = classify(cube, [((5, 10), 1)], lower=operator.gt, upper=operator.le)
        np.testing.assert_array_equal(result.values, [5.0, 1.0])

    def test_unsupported_comparator(self):
        with pytest.raises(InvalidArgument, match="Unsupported lower comparator"):
            classify(_make_raster([1.0]), OVERLAPPING, lower="==")
        with pytest.raises(InvalidArgument, match="Unsupported upper comparator"):
            classify(_make_raster([1.0]), OVERLAPPING, upper=">")

    def test_missing_values_pass_through(self):
        cube = _make_raster([-9999, 1, -5], missing=-9999)
        result = classify(cube, [(lambda v: v < 0, 99)], others=0)
        np.testing.assert_array_equal(result.values, [-9999, 0, 99])
        assert result.attrs["_FillValue"] == -9999

    def test_nan_sentinel_passes_through(self):
        cube = _make_raster([np.nan, 1.0, 2.0], missing=np.nan)
        result = classify(cube, [(1.0, 5.0)], others=0.0)
        np.testing.assert_array_equal(result.values, [np.nan, 5.0, 0.0])

    def test_exact_nan_rule(self):
        cube = _make_raster([np.nan, 1.0, -9999.0], missing=-9999.0)
        result = classify(cube, [(np.nan, 0.0)])
        np.testing.assert_array_equal(result.values, [0.0, 1.0, -9999.0])

    def test_predicate_pair(self):
        cube = _make_raster([1, 3, 7])
        result = classify(cube, [((lambda v: v > 2, lambda v: v < 5), 1)], others=0)
        np.testing.assert_array_equal(result.values, [0, 1, 0])

    def test_vectorized_predicate(self):
        cube = _make_raster([1, 2, 3, 4])
        rule = Predicate(lambda v: v % 2 == 0, 1, vectorize=True)
        result = classify(cube, [rule], others=0)
        np.testing.assert_array_equal(result.values, [0, 1, 0, 1])

    def test_promotes_dtype(self):
        result = classify(_make_raster(np.array([1, 2], dtype=np.int32)), [(1, 0.5)])
        assert result.dtype.kind == "f"
        np.testing.assert_array_equal(result.values, [0.5, 2.0])

    def test_promotes_unsigned_for_out_of_range_classes(self):
        cube = _make_raster(np.array([1, 2, 5], dtype=np.uint8))
        result = classify(cube, [((1, 3), 300)], others=-1)
        assert result.dtype.kind == "i"
        np.testing.assert_array_equal(result.values, [300, 300, -1])

    def test_string_classes(self):
        result = classify(_make_raster([1, 2]), {1: "water", 2: "land"})
        assert result.dtype == object
        assert list(result.values) == ["water", "land"]

    def test_table(self):
        table = np.array([[0, 10, 1], [10, 20, 2]])
        result = classify(_make_raster([0, 10, 25]), table, others=-1)
        np.testing.assert_array_equal(result.values, [1, 2, -1])

    def test_keeps_name_and_coords(self):
        cube = _make_raster([1.0, 2.0]).assign_coords(longitude=[10.0, 11.0])
        result = classify(cube, [(1.0, 3.0)])
        assert result.name == "band"
        np.testing.assert_array_equal(result["longitude"].values, [10.0, 11.0])

    def test_input_not_modified(self):
        cube = _make_raster([12.0, 10.0])
        classify(cube, OVERLAPPING)
        np.testing.assert_array_equal(cube.values, [12.0, 10.0])

    def test_dask_stays_lazy(self):
        cube = _make_raster([12.0, 10.0, 20.0, 3.0], dask_backed=True)
        result = classify(cube, OVERLAPPING, others=0)
        assert isinstance(result.data, da.Array)
        np.testing.assert_array_equal(result.compute().values, [10.0, 10.0, 0.0, 0.0])


class TestClassifyInplace:
    def test_modifies_in_place(self):
        cube = _make_raster([12.0, 10.0, 20.0])
        result = classify_inplace(cube, OVERLAPPING)
        assert result is cube
        np.testing.assert_array_equal(cube.values, [10.0, 10.0, 20.0])

    def test_uncastable_classes_leave_data_untouched(self):
        cube = _make_raster(np.array([1, 2], dtype=np.int32))
        with pytest.raises(InvalidArgument, match="cannot be stored"):
            classify_inplace(cube, [(1, 0.5)])
        np.testing.assert_array_equal(cube.values, [1, 2])

    def test_out_of_range_classes_rejected(self):
        cube = _make_raster(np.array([1, 2, 5], dtype=np.uint8))
        with pytest.raises(InvalidArgument, match="cannot be stored"):
            classify_inplace(cube, [((1, 3), 300)])
        np.testing.assert_array_equal(cube.values, [1, 2, 5])

    def test_dask_backed(self):
        cube = _make_raster([12.0, 10.0, 20.0, 3.0], dask_backed=True)
        classify_inplace(cube, OVERLAPPING, others=0)
        assert isinstance(cube.data, da.Array)
        np.testing.assert_array_equal(cube.values, [10.0, 10.0, 0.0, 0.0])


# ---------------------------------------------------------------
# Stacks and series
# ---------------------------------------------------------------


def _make_stack() -> xr.Dataset:
    return xr.Dataset(
        {
            "a": _make_raster([12.0, 20.0]),
            "b": _make_raster(np.array([7, -1], dtype=np.int64), missing=-1),
        }
    )


class TestClassifyStack:
    def test_every_layer(self):
        result = classify_stack(_make_stack(), OVERLAPPING, others=0)
        np.testing.assert_array_equal(result["a"].values, [10.0, 0.0])
        np.testing.assert_array_equal(result["b"].values, [10, -1])
        assert result["b"].attrs["_FillValue"] == -1

    def test_inplace(self):
        ds = _make_stack()
        classify_stack_inplace(ds, OVERLAPPING, others=0)
        np.testing.assert_array_equal(ds["a"].values, [10.0, 0.0])
        np.testing.assert_array_equal(ds["b"].values, [10, -1])

    def test_inplace_validates_every_layer_first(self):
        ds = _make_stack()
        with pytest.raises(InvalidArgument):
            classify_stack_inplace(ds, [(12.0, 0.5)])
        np.testing.assert_array_equal(ds["a"].values, [12.0, 20.0])


class TestClassifySeries:
    def test_raster_members(self):
        series = [_make_raster([12.0]), _make_raster([20.0])]
        result = classify_series(series, OVERLAPPING, member_kind="raster", others=0)
        assert [float(m.values[0]) for m in result] == [10.0, 0.0]

    def test_stack_members(self):
        result = classify_series([_make_stack()], OVERLAPPING, others=0)
        np.testing.assert_array_equal(result[0]["a"].values, [10.0, 0.0])

    def test_inplace(self):
        series = [_make_raster([12.0])]
        classify_series_inplace(series, OVERLAPPING, member_kind="raster")
        assert float(series[0].values[0]) == 10.0
