"""
MODIS MCD12Q2 land cover dynamics preparation.
"""
import ee

from .config import MCD12Q2_SCALING


def apply_scaling(image):
    """Apply MCD12Q2 scale factors to the EVI bands, overwriting them and keeping properties."""
    scaled = None
    for band, factor in MCD12Q2_SCALING.items():
        b = image.select([band]).multiply(factor).rename(band)
        scaled = b if scaled is None else scaled.addBands(b)
    return ee.Image(image.addBands(scaled, None, True).copyProperties(image, image.propertyNames()))


def to_float(image):
    # Multiband exports need one data type for all bands
    return image.toFloat()
