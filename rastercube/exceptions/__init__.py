"""rastercube exceptions."""

from rastercube.exceptions.general import (
    ConfigurationError,
    CrsMismatch,
    DimensionMismatch,
    DimensionNotAvailable,
    InvalidArgument,
)

__all__ = [
    "ConfigurationError",
    "CrsMismatch",
    "DimensionMismatch",
    "DimensionNotAvailable",
    "InvalidArgument",
]
