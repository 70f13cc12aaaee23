"""DataCube – fluent wrapper dispatching on an explicit raster / stack / series tag.

Usage::

    from rastercube import DataCube

    cube = DataCube.of(ds)
    result = cube.mask(to=polygon, missingval=-9999) \
                 .trim(dims=("longitude", "latitude"), pad=1) \
                 .classify([((0, 10), 1), ((10, 20), 2)], others=0) \
                 .compute()
"""

from __future__ import annotations

from typing import Any, Sequence

import xarray as xr

from rastercube.exceptions import InvalidArgument
from rastercube.ops.series import MEMBER_KINDS
from rastercube.types import Cube, GeometryLike

KINDS = ("raster", "stack", "series")


class DataCube:
    """Immutable wrapper around a raster cube, a stack or a series.

    The *kind* tag is fixed at construction and every method dispatches on
    it.  Use :meth:`of` to infer the tag from the wrapped type.  Methods
    return **new** ``DataCube`` instances so that the original is never
    mutated.
    """

    def __init__(self, data: Cube, *, kind: str, member_kind: str = "stack") -> None:
        if kind not in KINDS:
            raise InvalidArgument(f"kind must be one of {list(KINDS)}, got {kind!r}")
        if member_kind not in MEMBER_KINDS:
            raise InvalidArgument(
                f"member_kind must be one of {list(MEMBER_KINDS)}, got {member_kind!r}"
            )
        self._data = data
        self._kind = kind
        self._member_kind = member_kind

    @classmethod
    def of(cls, data: Any, *, member_kind: str | None = None) -> "DataCube":
        """Wrap *data*, inferring its kind from its type.

        For a list the member kind is taken from the first member unless
        given explicitly; an empty list defaults to ``"stack"``.
        """
        if isinstance(data, DataCube):
            return data
        if isinstance(data, xr.DataArray):
            return cls(data, kind="raster")
        if isinstance(data, xr.Dataset):
            return cls(data, kind="stack")
        if isinstance(data, (list, tuple)):
            if member_kind is None:
                member_kind = "raster" if data and isinstance(data[0], xr.DataArray) else "stack"
            return cls(list(data), kind="series", member_kind=member_kind)
        raise InvalidArgument(
            f"Cannot wrap {type(data).__name__}; expected a DataArray, a Dataset or a list of them."
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def data(self) -> Cube:
        """Access the underlying DataArray, Dataset or list."""
        return self._data

    @property
    def kind(self) -> str:
        return self._kind

    @property
    def member_kind(self) -> str:
        return self._member_kind

    @property
    def is_raster(self) -> bool:
        return self._kind == "raster"

    @property
    def is_stack(self) -> bool:
        return self._kind == "stack"

    @property
    def is_series(self) -> bool:
        return self._kind == "series"

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def trim(
        self,
        *,
        dims: Sequence[str] = ("longitude", "latitude"),
        pad: int = 0,
    ) -> "DataCube":
        """Trim missing edges along *dims*, keeping *pad* extra cells."""
        from rastercube.ops.trim import trim, trim_series, trim_stack

        if self.is_series:
            return self._wrap(
                trim_series(self._data, dims=dims, pad=pad, member_kind=self._member_kind)
            )
        fn = trim if self.is_raster else trim_stack
        return self._wrap(fn(self._data, dims=dims, pad=pad))

    def mask(
        self,
        *,
        to: Any,
        missingval: Any | None = None,
        shape: str = "polygon",
        x_dim: str = "longitude",
        y_dim: str = "latitude",
    ) -> "DataCube":
        """Mask cells outside *to*.

        *to* may be another raster ``DataCube`` or anything accepted by
        :func:`rastercube.ops.mask.coverage`.
        """
        from rastercube.ops.mask import mask, mask_series, mask_stack

        if isinstance(to, DataCube):
            to = to.data
        kwargs = dict(to=to, missingval=missingval, shape=shape, x_dim=x_dim, y_dim=y_dim)
        if self.is_series:
            return self._wrap(mask_series(self._data, member_kind=self._member_kind, **kwargs))
        fn = mask if self.is_raster else mask_stack
        return self._wrap(fn(self._data, **kwargs))

    def classify(
        self,
        rules: Any,
        *,
        lower: Any = ">=",
        upper: Any = "<",
        others: Any | None = None,
    ) -> "DataCube":
        """Remap values through ordered *rules*; see :func:`rastercube.ops.classify.classify`."""
        from rastercube.ops.classify import classify, classify_series, classify_stack

        kwargs = dict(lower=lower, upper=upper, others=others)
        if self.is_series:
            return self._wrap(
                classify_series(self._data, rules, member_kind=self._member_kind, **kwargs)
            )
        fn = classify if self.is_raster else classify_stack
        return self._wrap(fn(self._data, rules, **kwargs))

    def boolmask(self, missingval: Any | None = None) -> "DataCube":
        """Boolean validity mask of a raster cube."""
        self._assert_kind("boolmask", "raster")
        from rastercube.ops.missing import boolmask

        return DataCube(boolmask(self._data, missingval), kind="raster")  # type: ignore[arg-type]

    def missingmask(self, missingval: Any | None = None) -> "DataCube":
        """``True`` / ``pandas.NA`` validity mask of a raster cube."""
        self._assert_kind("missingmask", "raster")
        from rastercube.ops.missing import missingmask

        return DataCube(missingmask(self._data, missingval), kind="raster")  # type: ignore[arg-type]

    def rasterize(
        self,
        geometry: GeometryLike,
        *,
        shape: str = "polygon",
        x_dim: str = "longitude",
        y_dim: str = "latitude",
    ) -> "DataCube":
        """Rasterize *geometry* onto this cube's grid as a boolean raster."""
        self._assert_kind("rasterize", "raster", "stack")
        from rastercube.ops.vector import rasterize

        return DataCube(
            rasterize(self._data, geometry, shape=shape, x_dim=x_dim, y_dim=y_dim),  # type: ignore[arg-type]
            kind="raster",
        )

    # ------------------------------------------------------------------
    # Materialisation
    # ------------------------------------------------------------------

    def compute(self) -> "DataCube":
        """Materialise dask-backed data into memory.

        Returns a new ``DataCube`` wrapping the computed result.
        """
        if self.is_series:
            return self._wrap([member.compute() for member in self._data])
        return self._wrap(self._data.compute())

    # ------------------------------------------------------------------
    # Plotting
    # ------------------------------------------------------------------

    def plot(self, *args: Any, **kwargs: Any) -> Any:
        """Delegate to :meth:`xarray.DataArray.plot` of a raster cube."""
        self._assert_kind("plot", "raster")
        return self._data.plot(*args, **kwargs)

    # ------------------------------------------------------------------
    # Dunder helpers
    # ------------------------------------------------------------------

    def __repr__(self) -> str:
        if self.is_series:
            return f"<DataCube(series) {len(self._data)} x {self._member_kind}>"
        return f"<DataCube({self._kind}) {self._data.__class__.__name__}>"

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _wrap(self, data: Cube) -> "DataCube":
        return DataCube(data, kind=self._kind, member_kind=self._member_kind)

    def _assert_kind(self, method: str, *kinds: str) -> None:
        if self._kind not in kinds:
            raise TypeError(
                f"{method}() requires a {' or '.join(kinds)} cube, got a {self._kind}"
            )
