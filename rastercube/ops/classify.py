"""Classification – remap values through ordered exact / predicate / range rules."""

from __future__ import annotations

import logging
import operator
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Union

import numpy as np
import pandas as pd
import xarray as xr

from rastercube.exceptions import InvalidArgument
from rastercube.ops.missing import (
    fits_dtype,
    is_nan_sentinel,
    missingval,
    promoted_dtype,
    valid_values,
)
from rastercube.ops.series import for_member_kind
from rastercube.types import RasterCube, RasterSeries, RasterStack

logger = logging.getLogger(__name__)

Comparator = Callable[[Any, Any], Any]

# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Exact:
    """Replace values equal to *value*."""

    value: Any
    replacement: Any

    def matches(self, values: np.ndarray, lower: Comparator, upper: Comparator) -> np.ndarray:
        if is_nan_sentinel(self.value):
            return np.asarray(pd.isna(values), dtype=bool)
        return np.asarray(np.equal(values, self.value), dtype=bool)


@dataclass(frozen=True)
class Predicate:
    """Replace values for which ``test(values)`` is true.

    *test* receives a numpy array and must return a boolean array.  Set
    *vectorize* to wrap a scalar test with :func:`numpy.vectorize`.
    """

    test: Callable[[Any], Any]
    replacement: Any
    vectorize: bool = False

    def matches(self, values: np.ndarray, lower: Comparator, upper: Comparator) -> np.ndarray:
        test = np.vectorize(self.test, otypes=[bool]) if self.vectorize else self.test
        return np.broadcast_to(np.asarray(test(values), dtype=bool), values.shape)


@dataclass(frozen=True)
class Range:
    """Replace values with ``lower(v, low) and upper(v, high)``."""

    low: Any
    high: Any
    replacement: Any

    def matches(self, values: np.ndarray, lower: Comparator, upper: Comparator) -> np.ndarray:
        return np.asarray(lower(values, self.low) & upper(values, self.high), dtype=bool)


Rule = Union[Exact, Predicate, Range]

_LOWER: dict[Any, Comparator] = {
    ">=": operator.ge,
    ">": operator.gt,
    operator.ge: operator.ge,
    operator.gt: operator.gt,
    np.greater_equal: operator.ge,
    np.greater: operator.gt,
}
_UPPER: dict[Any, Comparator] = {
    "<": operator.lt,
    "<=": operator.le,
    operator.lt: operator.lt,
    operator.le: operator.le,
    np.less: operator.lt,
    np.less_equal: operator.le,
}


def as_rules(rules: Any) -> list[Rule]:
    """Normalise *rules* into an ordered list of rule objects.

    Accepts rule objects, ``(find, replacement)`` pairs, a mapping of
    ``find -> replacement``, ``(low, high, replacement)`` triples, or a 2-D
    ndarray table with 2 columns (value, replacement) or 3 columns
    (low, high, replacement).  For pairs, *find* may be:

    * a callable – :class:`Predicate`;
    * a ``(low, high)`` tuple – :class:`Range`;
    * a tuple of two callables – :class:`Predicate` requiring both;
    * anything else – :class:`Exact`.

    Raises
    ------
    InvalidArgument
        If a table does not have 2 or 3 columns, or a rule cannot be read.
    """
    if isinstance(rules, np.ndarray):
        return _table_rules(rules)
    if isinstance(rules, Mapping):
        rules = list(rules.items())

    result: list[Rule] = []
    for rule in rules:
        if isinstance(rule, (Exact, Predicate, Range)):
            result.append(rule)
        elif isinstance(rule, (tuple, list)) and len(rule) == 2:
            result.append(_rule_from_pair(rule[0], rule[1]))
        elif isinstance(rule, (tuple, list)) and len(rule) == 3:
            result.append(Range(rule[0], rule[1], rule[2]))
        else:
            raise InvalidArgument(
                f"Cannot read classification rule {rule!r}; expected a rule object, "
                f"a (find, replacement) pair or a (low, high, replacement) triple."
            )
    return result


def _rule_from_pair(find: Any, replacement: Any) -> Rule:
    if callable(find):
        return Predicate(find, replacement)
    if isinstance(find, tuple) and len(find) == 2:
        low, high = find
        if callable(low) and callable(high):
            return Predicate(_BothTests(low, high), replacement)
        if callable(low) or callable(high):
            raise InvalidArgument(
                f"Range bounds must both be values or both be callables, got {find!r}"
            )
        return Range(low, high, replacement)
    return Exact(find, replacement)


@dataclass(frozen=True)
class _BothTests:
    first: Callable[[Any], Any]
    second: Callable[[Any], Any]

    def __call__(self, values: Any) -> Any:
        return np.asarray(self.first(values), dtype=bool) & np.asarray(self.second(values), dtype=bool)


def _table_rules(table: np.ndarray) -> list[Rule]:
    if table.ndim != 2 or table.shape[1] not in (2, 3):
        raise InvalidArgument(
            f"A rules table must be an N*2 or N*3 matrix, got shape {table.shape}"
        )
    if table.shape[1] == 2:
        return [Exact(row[0], row[1]) for row in table.tolist()]
    return [Range(row[0], row[1], row[2]) for row in table.tolist()]


def _comparator(cmp: Any, allowed: dict[Any, Comparator], which: str) -> Comparator:
    try:
        return allowed[cmp]
    except (KeyError, TypeError):
        names = [k for k in allowed if isinstance(k, str)]
        raise InvalidArgument(
            f"Unsupported {which} comparator {cmp!r}. Choose from {names} "
            f"or the matching operator / numpy functions."
        ) from None


# ---------------------------------------------------------------------------
# classify
# ---------------------------------------------------------------------------


def classify(
    data: RasterCube,
    rules: Any,
    *,
    lower: Any = ">=",
    upper: Any = "<",
    others: Any | None = None,
) -> RasterCube:
    """Create a new cube with values remapped by *rules*.

    Rules are tried in order and the first match wins.  Missing values
    pass through untouched and are never handed to a rule.  Values that
    match no rule become *others*, or stay unchanged when *others* is
    ``None``.

    Parameters
    ----------
    data : RasterCube
        Cube to classify.
    rules
        Ordered rules, see :func:`as_rules`.
    lower, upper
        Comparators used by :class:`Range` rules.  ``lower`` is ``">="``
        or ``">"``; ``upper`` is ``"<"`` or ``"<="``.  The defaults make
        ranges half-open, ``[low, high)``.
    others
        Replacement for values that no rule matches.

    Raises
    ------
    InvalidArgument
        For unreadable rules or unsupported comparators.

    Example::

        classify(cube, [((5, 15), 10), ((15, 25), 20), (lambda v: v >= 35, 40)], others=0)
    """
    rule_list, lo, up = _prepare(rules, lower, upper)
    out_dtype = _output_dtype(data.dtype, rule_list, others)
    result = xr.apply_ufunc(
        _classify_values,
        data,
        kwargs={
            "rules": rule_list,
            "lower": lo,
            "upper": up,
            "others": others,
            "missingval": missingval(data),
            "dtype": out_dtype,
        },
        dask="parallelized",
        output_dtypes=[out_dtype],
    )
    result.name = data.name
    result.attrs = dict(data.attrs)
    return result


def classify_inplace(
    data: RasterCube,
    rules: Any,
    *,
    lower: Any = ">=",
    upper: Any = "<",
    others: Any | None = None,
) -> RasterCube:
    """Classify *data* in place and return it.

    Raises
    ------
    InvalidArgument
        If the replacements cannot be stored in the cube's dtype.  The
        cube is left unmodified.
    """
    rule_list, lo, up = _prepare(rules, lower, upper)
    _assert_castable(data, _output_dtype(data.dtype, rule_list, others))
    kwargs = {
        "rules": rule_list,
        "lower": lo,
        "upper": up,
        "others": others,
        "missingval": missingval(data),
        "dtype": data.dtype,
    }
    if isinstance(data.data, np.ndarray):
        data.data[...] = _classify_values(data.data, **kwargs)
    else:
        data.data = xr.apply_ufunc(
            _classify_values,
            data,
            kwargs=kwargs,
            dask="parallelized",
            output_dtypes=[data.dtype],
        ).data
    return data


def classify_stack(data: RasterStack, rules: Any, **kwargs: Any) -> RasterStack:
    """Classify every layer of a stack with the same rules."""
    return data.map(classify, keep_attrs=True, args=(rules,), **kwargs)


def classify_stack_inplace(data: RasterStack, rules: Any, **kwargs: Any) -> RasterStack:
    """Classify every layer of a stack in place."""
    rule_list, lo, up = _prepare(rules, kwargs.get("lower", ">="), kwargs.get("upper", "<"))
    for layer in data.data_vars.values():
        _assert_castable(layer, _output_dtype(layer.dtype, rule_list, kwargs.get("others")))
    for name in data.data_vars:
        classify_inplace(data[name], rule_list, **kwargs)
    return data


def classify_series(
    series: RasterSeries, rules: Any, *, member_kind: str = "stack", **kwargs: Any
) -> RasterSeries:
    """Classify each member of *series* independently."""
    fn = for_member_kind(member_kind, classify, classify_stack)
    return [fn(member, rules, **kwargs) for member in series]


def classify_series_inplace(
    series: RasterSeries, rules: Any, *, member_kind: str = "stack", **kwargs: Any
) -> RasterSeries:
    """Classify each member of *series* in place."""
    fn = for_member_kind(member_kind, classify_inplace, classify_stack_inplace)
    for member in series:
        fn(member, rules, **kwargs)
    return series


# ---------------------------------------------------------------------------
# Internal
# ---------------------------------------------------------------------------


def _prepare(rules: Any, lower: Any, upper: Any) -> tuple[list[Rule], Comparator, Comparator]:
    rule_list = as_rules(rules)
    lo = _comparator(lower, _LOWER, "lower")
    up = _comparator(upper, _UPPER, "upper")
    logger.debug("Classifying with %d rules (lower=%s, upper=%s)", len(rule_list), lower, upper)
    return rule_list, lo, up


def _classify_values(
    values: np.ndarray,
    *,
    rules: list[Rule],
    lower: Comparator,
    upper: Comparator,
    others: Any | None,
    missingval: Any | None,
    dtype: np.dtype,
) -> np.ndarray:
    """Classify a block of raw values; missing values are copied through."""
    values = np.asarray(values)
    out = values.astype(dtype, copy=True)
    valid = valid_values(values, missingval)
    candidates = values[valid]

    classified = out[valid]
    assigned = np.zeros(candidates.shape, dtype=bool)
    for rule in rules:
        pending = ~assigned
        if not pending.any():
            break
        hit = np.zeros_like(assigned)
        hit[pending] = rule.matches(candidates[pending], lower, upper)
        classified[hit] = rule.replacement
        assigned |= hit

    if others is not None:
        classified[~assigned] = others
    out[valid] = classified
    return out


def _output_dtype(dtype: np.dtype, rules: Iterable[Rule], others: Any | None) -> np.dtype:
    replacements = [r.replacement for r in rules]
    if others is not None:
        replacements.append(others)
    try:
        result = promoted_dtype(dtype, *replacements)
    except TypeError:
        return np.dtype(object)
    # Fixed-width strings would truncate longer class labels
    return np.dtype(object) if result.kind in "US" else result


def _assert_castable(data: RasterCube, dtype: np.dtype) -> None:
    if not fits_dtype(dtype, data.dtype):
        raise InvalidArgument(
            f"Classes of dtype {dtype} cannot be stored in cube '{data.name}' of "
            f"dtype {data.dtype}; use classify() to get a promoted copy instead."
        )
