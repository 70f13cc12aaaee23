import numpy as np
import xarray as xr

from rastercube import DataCube

# Synthetic elevation grid over a 1-degree tile, with a no-data margin
lon = np.linspace(10.0, 11.0, 50)
lat = np.linspace(51.0, 50.0, 50)
elevation = np.random.default_rng(0).uniform(0, 3000, size=(50, 50))
elevation[:5, :] = -9999
elevation[:, -8:] = -9999

cube = DataCube.of(
    xr.DataArray(
        elevation,
        dims=["latitude", "longitude"],
        coords={"latitude": lat, "longitude": lon},
        name="elevation",
        attrs={"_FillValue": -9999.0},
    ).chunk({"latitude": 25, "longitude": 25})
)

print(f"Loaded cube: {cube.data.dims}, shape={cube.data.shape}")

# Fluent chaining: cut to a catchment outline, drop the empty margin, classify bands
catchment = [(10.1, 50.2), (10.7, 50.1), (10.9, 50.6), (10.4, 50.95), (10.05, 50.6)]
result = (
    cube
    .mask(to=catchment)
    .trim(pad=1)
    .classify([((0, 500), 1), ((500, 1500), 2), ((1500, 3000), 3)], upper="<=")
)

print(f"Classified result: {result.data.dims}, shape={result.data.shape}")
print(result.compute().data.to_series().value_counts())
