"""rastercube – trim, mask, rasterize and classify labelled raster cubes."""

from rastercube.datacube import DataCube
from rastercube.exceptions import (
    ConfigurationError,
    CrsMismatch,
    DimensionMismatch,
    DimensionNotAvailable,
    InvalidArgument,
)
from rastercube.ops.classify import (
    Exact,
    Predicate,
    Range,
    classify,
    classify_inplace,
    classify_series,
    classify_series_inplace,
    classify_stack,
    classify_stack_inplace,
)
from rastercube.ops.mask import (
    mask,
    mask_inplace,
    mask_series,
    mask_series_inplace,
    mask_stack,
    mask_stack_inplace,
)
from rastercube.ops.missing import (
    boolmask,
    missingmask,
    missingval,
    replace_missing,
    with_missingval,
)
from rastercube.ops.trim import AxisRange, AxisReductionTracker, trim, trim_series, trim_stack
from rastercube.ops.vector import rasterize
from rastercube.types import Cube, GeometryLike, RasterCube, RasterSeries, RasterStack

__all__ = [
    "DataCube",
    "Cube",
    "GeometryLike",
    "RasterCube",
    "RasterSeries",
    "RasterStack",
    # trim
    "AxisRange",
    "AxisReductionTracker",
    "trim",
    "trim_stack",
    "trim_series",
    # missing values
    "boolmask",
    "missingmask",
    "missingval",
    "replace_missing",
    "with_missingval",
    # mask / rasterize
    "mask",
    "mask_inplace",
    "mask_stack",
    "mask_stack_inplace",
    "mask_series",
    "mask_series_inplace",
    "rasterize",
    # classify
    "Exact",
    "Predicate",
    "Range",
    "classify",
    "classify_inplace",
    "classify_stack",
    "classify_stack_inplace",
    "classify_series",
    "classify_series_inplace",
    # exceptions
    "ConfigurationError",
    "CrsMismatch",
    "DimensionMismatch",
    "DimensionNotAvailable",
    "InvalidArgument",
]

__version__ = "0.1.0"
