"""
Terrain metrics (slope, aspect, northness, eastness) from a digital elevation model,
on Earth Engine and locally with numpy.
"""
import math
import logging
from typing import Tuple
import numpy as np
import rasterio
import ee

from .config import METERS_PER_DEGREE
from .ee_utils import deg2rad


def northness(aspect):
    """cos(aspect): 1 facing north, -1 facing south."""
    return deg2rad(aspect).cos().rename("northness")


def eastness(aspect):
    """sin(aspect): 1 facing east, -1 facing west."""
    return deg2rad(aspect).sin().rename("eastness")


def terrain_metrics(dem):
    """Stack the DEM with slope, northness and aspect bands (degrees for slope/aspect)."""
    slope = ee.Terrain.slope(dem).rename("slope")
    aspect = ee.Terrain.aspect(dem).rename("aspect")
    return (dem
            .addBands(slope)
            .addBands(northness(aspect))
            .addBands(aspect))


def slope_aspect(dem: np.ndarray, xres: float, yres: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Slope and aspect in degrees from an elevation grid.

    Rows run north to south. Aspect is the downslope direction measured clockwise
    from north (0 north, 90 east); flat cells get NaN aspect.
    """
    z = dem.astype(np.float64)
    dz_drow, dz_dcol = np.gradient(z, abs(yres), abs(xres))
    dz_east = dz_dcol
    dz_north = -dz_drow

    slope = np.degrees(np.arctan(np.hypot(dz_east, dz_north)))
    aspect = np.degrees(np.arctan2(-dz_east, -dz_north)) % 360.0
    aspect[(dz_east == 0) & (dz_north == 0)] = np.nan
    return slope.astype(np.float32), aspect.astype(np.float32)


def terrain_metrics_local(dem_path: str, out_path: str) -> str:
    """
    Write a 4-band float32 GeoTIFF (elevation, slope, northness, aspect) from a DEM GeoTIFF.
    Geographic DEMs are converted to metres per pixel at the raster's centre latitude.
    """
    with rasterio.open(dem_path) as src:
        dem = src.read(1).astype(np.float32)
        profile = src.profile.copy()
        nodata = src.nodata
        xres, yres = src.res
        if src.crs is not None and src.crs.is_geographic:
            center_lat = (src.bounds.bottom + src.bounds.top) / 2.0
            yres = yres * METERS_PER_DEGREE
            xres = xres * METERS_PER_DEGREE * math.cos(math.radians(center_lat))

    if nodata is not None:
        dem[dem == nodata] = np.nan

    slope, aspect = slope_aspect(dem, xres, yres)
    north = np.cos(np.radians(aspect)).astype(np.float32)

    profile.update(dtype="float32", count=4, nodata=np.nan)
    with rasterio.open(out_path, "w", **profile) as dst:
        for idx, (name, arr) in enumerate(
                [("elevation", dem), ("slope", slope), ("northness", north), ("aspect", aspect)], start=1):
            dst.write(arr, idx)
            dst.set_band_description(idx, name)

    logging.info(f"Terrain metrics written to {out_path}")
    return out_path
