"""
Earth Engine collection helpers: area of interest, Sentinel-2, MODIS phenology,
CDEM elevation and annual forest land cover.
"""
import logging
import ee

from .config import (
    GAUL_LEVEL1, DEFAULT_COUNTRY, DEFAULT_PROVINCE,
    SENTINEL2_SR, MODIS_MCD12Q2, NRCAN_CDEM, CDEM_NOMINAL_SCALE, TERRAIN_CRS,
    FOREST_LC_COLLECTION, FOREST_LC_BAND,
)


def province_aoi(country: str = DEFAULT_COUNTRY, province: str = DEFAULT_PROVINCE):
    """First-level administrative boundary from FAO GAUL as an ee.Geometry."""
    return (ee.FeatureCollection(GAUL_LEVEL1)
            .filter(ee.Filter.eq("ADM0_NAME", country))
            .filter(ee.Filter.eq("ADM1_NAME", province))
            .geometry())


def sentinel2_collection(start, end, aoi=None):
    """Sentinel-2 surface reflectance for [start, end), optionally limited to an AOI."""
    col = ee.ImageCollection(SENTINEL2_SR).filterDate(start, end)
    if aoi is not None:
        col = col.filterBounds(aoi)
    return col


def modis_phenology_collection(start: str = "2001-01-01", end: str = "2023-12-31", aoi=None):
    """MODIS MCD12Q2 land cover dynamics, each image clipped to the AOI if given."""
    col = ee.ImageCollection(MODIS_MCD12Q2).filter(ee.Filter.date(start, end))
    if aoi is not None:
        col = col.map(lambda image: image.clip(aoi))
    logging.debug(f"MODIS MCD12Q2 collection {start} to {end}")
    return col


def cdem_image(aoi=None):
    """
    NRCan CDEM mosaicked into a single float image. The mosaic has no projection
    of its own, so the CDEM native projection is set as the default to allow
    terrain calculations.
    """
    dem = ee.ImageCollection(NRCAN_CDEM).mosaic()
    if aoi is not None:
        dem = dem.clip(aoi)
    return dem.toFloat().setDefaultProjection(TERRAIN_CRS, None, CDEM_NOMINAL_SCALE)


def forest_landcover(start, end, aoi=None):
    """Annual forest land cover for the date range with the class band named 'forest_lc_class'."""
    col = ee.ImageCollection(FOREST_LC_COLLECTION).filterDate(start, end)
    if aoi is not None:
        col = col.filterBounds(aoi)
    return col.map(lambda image: image.select([FOREST_LC_BAND], ["forest_lc_class"]))
