"""General rastercube exceptions."""


class ConfigurationError(Exception):
    """No missing value is available to represent excluded cells."""


class InvalidArgument(ValueError):
    """An argument has a value the operation does not support."""


class DimensionMismatch(Exception):
    """Dimensions or coordinate arity do not agree between inputs."""


class DimensionNotAvailable(DimensionMismatch):
    """A dimension with the specified name does not exist."""


class CrsMismatch(InvalidArgument):
    """The geometry CRS does not match the CRS of the raster cube."""
