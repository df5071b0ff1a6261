"""
Sentinel-2 spectral indices as Earth Engine band math.

Each add_<INDEX> function returns the input image with one extra band named
after the index. Formulas use Sentinel-2 band ids (B2 blue ... B12 SWIR2).
"""
import logging
import ee
from typing import List, Optional

from .config import DEFAULT_FOREST_TYPES, FOREST_TYPES, NDRS_SCALE
from .masks import has_bands, image_forest_mask


def add_cre(image):
    """Red Edge Chlorophyll Index (Gitelson et al. 2003)."""
    cre = image.expression(
        "(RedEdge3 / RedEdge1) - 1", {
            "RedEdge1": image.select("B5"),
            "RedEdge3": image.select("B7"),
        }).rename("CRE")
    return image.addBands([cre])


def add_dswi(image):
    """Disease Stress Water Index."""
    dswi = image.expression(
        "(NIR + Green) / (Red + SWIR)", {
            "NIR": image.select("B8"),
            "Green": image.select("B3"),
            "Red": image.select("B4"),
            "SWIR": image.select("B11"),
        }).rename("DSWI")
    return image.addBands([dswi])


def add_drs(image):
    """Distance Red & SWIR."""
    drs = image.expression(
        "sqrt((RED * RED) + (SWIR * SWIR))", {
            "RED": image.select("B4"),
            "SWIR": image.select("B11"),
        }).rename("DRS")
    return ee.Image(image.addBands([drs]).copyProperties(image, ["system:time_start"]))


def _evi(image):
    return image.expression(
        "2.5 * ((NIR - RED) / (NIR + 6 * RED - 7.5 * BLUE + 1))", {
            "NIR": image.select("B8"),
            "RED": image.select("B4"),
            "BLUE": image.select("B2"),
        })


def add_evi(image):
    """Enhanced Vegetation Index: 2.5 * (NIR - RED) / (NIR + 6*RED - 7.5*BLUE + 1)."""
    return image.addBands([_evi(image).rename("EVI")])


def add_gndvi(image):
    """Green NDVI (Gitelson and Merzlyak 1998)."""
    gndvi = image.normalizedDifference(["B8", "B3"]).rename("GNDVI")
    return image.addBands([gndvi])


def add_lai(image):
    """Leaf Area Index: 3.618 * EVI - 0.118."""
    lai = image.expression("3.618 * EVI - 0.118", {"EVI": _evi(image)}).rename("LAI")
    return image.addBands([lai])


def add_nbr(image):
    """Normalized Burn Ratio: (NIR - SWIR2) / (NIR + SWIR2)."""
    nbr = image.expression(
        "(NIR - SWIR2) / (NIR + SWIR2)", {
            "NIR": image.select("B8"),
            "SWIR2": image.select("B12"),
        }).rename("NBR")
    return image.addBands([nbr])


def add_ndre1(image):
    nd = image.expression(
        "(RedEdge2 - RedEdge1) / (RedEdge2 + RedEdge1)", {
            "RedEdge2": image.select("B6"),
            "RedEdge1": image.select("B5"),
        }).rename("NDRE1")
    return image.addBands([nd])


def add_ndre2(image):
    nd = image.expression(
        "(RedEdge3 - RedEdge1) / (RedEdge3 + RedEdge1)", {
            "RedEdge3": image.select("B7"),
            "RedEdge1": image.select("B5"),
        }).rename("NDRE2")
    return image.addBands([nd])


def add_ndre3(image):
    """NDRE3 from B8A and B7; the image is returned unchanged if either band is missing."""
    with_band = image.addBands(image.expression(
        "(RedEdge4 - RedEdge3) / (RedEdge4 + RedEdge3)", {
            "RedEdge4": image.select("B8A"),
            "RedEdge3": image.select("B7"),
        }).rename("NDRE3"))
    return ee.Image(ee.Algorithms.If(has_bands(image, ["B8A", "B7"]), with_band, image))


def add_ndvi(image):
    """Normalized Difference Vegetation Index."""
    ndvi = image.normalizedDifference(["B8", "B4"]).rename("NDVI")
    return image.addBands([ndvi])


def add_ndwi(image):
    """Normalized Difference Water Index: (Green - NIR) / (Green + NIR)."""
    ndwi = image.expression(
        "(Green - NIR) / (Green + NIR)", {
            "NIR": image.select("B8"),
            "Green": image.select("B3"),
        }).rename("NDWI")
    return image.addBands([ndwi])


def add_rdi(image):
    """Ratio Drought Index (SWIR2 / RedEdge4); unchanged if B12 or B8A is missing."""
    with_band = image.addBands(image.expression(
        "SWIR2 / RedEdge4", {
            "SWIR2": image.select("B12"),
            "RedEdge4": image.select("B8A"),
        }).rename("RDI"))
    return ee.Image(ee.Algorithms.If(has_bands(image, ["B12", "B8A"]), with_band, image))


def ndrs_suffix(forest_types: Optional[List[int]] = None) -> str:
    """Band suffix for an NDRS band: the forest type's suffix, or '_mixed' for several types."""
    forest_types = forest_types or DEFAULT_FOREST_TYPES
    if len(forest_types) == 1:
        return FOREST_TYPES.get(forest_types[0], "_mixed")
    return "_mixed"


def add_ndrs(image, forest_types: Optional[List[int]] = None, scale: int = NDRS_SCALE):
    """
    Normalized Distance Red & SWIR for the given forest types.

    DRS is rescaled with the min and max of DRS over forest pixels within the
    image footprint. The image must carry a DRS band and a 'year' property.
    The band is named NDRS_coni, NDRS_deci or NDRS_mixed.
    """
    forest_types = forest_types or DEFAULT_FOREST_TYPES
    aoi = image.geometry()
    drs = image.select("DRS")
    masked_drs = drs.updateMask(image_forest_mask(image, forest_types))

    min_max = masked_drs.reduceRegion(
        reducer=ee.Reducer.minMax(),
        geometry=aoi.bounds(),
        scale=scale,
        maxPixels=1e10,
        bestEffort=True,
        tileScale=8,
    )
    drs_min = ee.Number(min_max.get("DRS_min"))
    drs_max = ee.Number(min_max.get("DRS_max"))

    clamped = drs.clamp(drs_min, drs_max)
    ndrs = clamped.expression(
        "(DRS - DRSmin) / (DRSmax - DRSmin)", {
            "DRS": clamped,
            "DRSmin": drs_min,
            "DRSmax": drs_max,
        }).rename("NDRS" + ndrs_suffix(forest_types))
    return image.addBands(ndrs)


INDEX_FUNCTIONS = {
    "CRE": add_cre,
    "DRS": add_drs,
    "DSWI": add_dswi,
    "EVI": add_evi,
    "GNDVI": add_gndvi,
    "LAI": add_lai,
    "NBR": add_nbr,
    "NDRE1": add_ndre1,
    "NDRE2": add_ndre2,
    "NDRE3": add_ndre3,
    "NDVI": add_ndvi,
    "NDWI": add_ndwi,
    "RDI": add_rdi,
}


def add_indices(image, names: List[str]):
    """Add each named index to the image, in order."""
    unknown = [n for n in names if n not in INDEX_FUNCTIONS]
    if unknown:
        raise ValueError(f"Unknown spectral indices: {unknown}. Available: {sorted(INDEX_FUNCTIONS)}")
    for name in names:
        image = INDEX_FUNCTIONS[name](image)
    logging.debug(f"Added indices: {names}")
    return image
