"""Operations on raster cubes, stacks and series."""
