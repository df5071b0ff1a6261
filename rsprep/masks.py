"""
Cloud, scene-classification and land cover masks for Sentinel-2 imagery.
"""
import ee
from typing import List, Optional

from .config import (
    QA60_CLOUD_BIT, QA60_CIRRUS_BIT, S2_REFLECTANCE_SCALE, SCL_KEEP_CLASSES,
    DEFAULT_FOREST_TYPES, FOREST_LC_LAST_YEAR,
)
from .ee_collections import forest_landcover


def mask_s2_clouds(image):
    """
    Mask clouds using the Sentinel-2 QA60 band and scale to reflectance.
    Both the cloud and cirrus flags must be zero for a pixel to be kept.
    """
    qa = image.select("QA60")
    mask = (qa.bitwiseAnd(QA60_CLOUD_BIT).eq(0)
            .And(qa.bitwiseAnd(QA60_CIRRUS_BIT).eq(0)))
    return image.updateMask(mask).divide(S2_REFLECTANCE_SCALE)


def s2_scl_mask(image):
    """Mask SCL classes considered cloud/shadow/snow etc."""
    scl = image.select("SCL")
    mask = scl.eq(SCL_KEEP_CLASSES[0])
    for cls in SCL_KEEP_CLASSES[1:]:
        mask = mask.Or(scl.eq(cls))
    return image.updateMask(mask)


def forest_mask(landcover, forest_types: Optional[List[int]] = None):
    """1 where the land cover class is one of forest_types, 0 elsewhere."""
    forest_types = forest_types or DEFAULT_FOREST_TYPES
    return landcover.remap(forest_types, [1] * len(forest_types), 0)


def landcover_year_range(year):
    """
    Server-side start/end dates of the land cover year matching an image year.
    Land cover is only available up to FOREST_LC_LAST_YEAR, later years reuse it.
    """
    year = ee.Number(year).min(FOREST_LC_LAST_YEAR).int()
    start = ee.Date.fromYMD(year, 1, 1)
    return start, start.advance(1, "year")


def image_forest_mask(image, forest_types: Optional[List[int]] = None):
    """Forest mask from the land cover of the image's 'year' property, over the image footprint."""
    start, end = landcover_year_range(image.get("year"))
    landcover = ee.Image(forest_landcover(start, end, image.geometry()).first()).select("forest_lc_class")
    return forest_mask(landcover, forest_types)


def create_binary_mask(image, band_name: str, threshold: float, forest_types: Optional[List[int]] = None):
    """
    Add an 'NDRS_stressed' band: 1 where band_name exceeds threshold on forest
    pixels of forest_types, 0 elsewhere (non-forest pixels count as 0).
    """
    band = image.select(band_name).updateMask(image_forest_mask(image, forest_types)).unmask(0)
    stressed = band.gt(threshold).rename("NDRS_stressed")
    return image.addBands(stressed)


def has_bands(image, bands: List[str]):
    """Server-side boolean: True if the image contains every band in bands."""
    return ee.List(bands).removeAll(image.bandNames()).size().eq(0)
