"""
Earth Engine utility functions: angle conversion, image combination and
normalization, visualization ranges, AOI tiling, band filtering and
region statistics.
"""
import math
import logging
from typing import Dict, List, Tuple
import ee
import pyproj
from shapely.geometry import box
from shapely.ops import transform as shp_transform

from .config import EXPORT_MAX_PIXELS


def deg2rad(deg):
    """Convert an ee.Number or ee.Image from degrees to radians."""
    return deg.divide(180 / math.pi)


def combine_images(img_list, prefix: bool = True, props=None):
    """
    Combine a list of images into a single multiband image.

    With prefix=True band names are prefixed with the index of the image they
    came from (so identical band names can be combined); with prefix=False the
    original names are kept. Properties default to those of the first image.
    """
    img_list = ee.List(img_list)
    first = ee.Image(img_list.get(0))
    if props is None:
        props = first.toDictionary(first.propertyNames())

    combined = ee.ImageCollection.fromImages(img_list).toBands().set(props)
    if not prefix:
        band_names = img_list.map(lambda img: ee.Image(img).bandNames()).flatten()
        combined = combined.rename(band_names)
    return combined


def normalize_image(img, region=None, scale=None, max_pixels: float = EXPORT_MAX_PIXELS):
    """Rescale every band of an image to 0-1 using its min/max over region."""
    def _reduce(reducer):
        return img.reduceRegion(
            reducer=reducer, geometry=region, scale=scale, maxPixels=max_pixels,
        ).toImage(img.bandNames())

    min_img = _reduce(ee.Reducer.min())
    max_img = _reduce(ee.Reducer.max())
    return img.subtract(min_img).divide(max_img.subtract(min_img))


def get_vis_params(image, band: str, aoi, scale: float) -> Dict:
    """Min/max visualization parameters for one band over aoi."""
    stats = image.select(band).reduceRegion(
        reducer=ee.Reducer.minMax(),
        geometry=aoi,
        scale=scale,
        bestEffort=True,
        tileScale=8,
    ).getInfo()
    return {
        "min": stats.get(f"{band}_min"),
        "max": stats.get(f"{band}_max"),
        "palette": ["red", "yellow", "green"],
    }


def utm_crs_for(lon: float, lat: float) -> pyproj.CRS:
    zone = int((lon + 180) / 6) + 1
    south = "" if lat >= 0 else " +south"
    return pyproj.CRS.from_proj4(f"+proj=utm +zone={zone}{south} +datum=WGS84 +units=m +no_defs")


def make_tile_bounds(bounds: Tuple[float, float, float, float],
                     tile_size: float) -> List[Tuple[float, float, float, float]]:
    """
    Split a WGS84 bounding box (lon_min, lat_min, lon_max, lat_max) into square
    tiles of tile_size metres, laid out in the local UTM zone. Tiles on the
    east/north edges extend past the box. Returns WGS84 bounds per tile.
    """
    if tile_size <= 0:
        raise ValueError("tile_size must be positive")
    lon_min, lat_min, lon_max, lat_max = bounds
    utm_crs = utm_crs_for((lon_min + lon_max) / 2.0, (lat_min + lat_max) / 2.0)
    wgs84 = pyproj.CRS("EPSG:4326")
    to_utm = pyproj.Transformer.from_crs(wgs84, utm_crs, always_xy=True).transform
    to_wgs = pyproj.Transformer.from_crs(utm_crs, wgs84, always_xy=True).transform

    minx, miny, maxx, maxy = shp_transform(to_utm, box(*bounds)).bounds
    nx = max(1, math.ceil((maxx - minx) / tile_size))
    ny = max(1, math.ceil((maxy - miny) / tile_size))

    tiles = []
    for i in range(nx):
        for j in range(ny):
            x0 = minx + i * tile_size
            y0 = miny + j * tile_size
            tile = box(x0, y0, x0 + tile_size, y0 + tile_size)
            tiles.append(shp_transform(to_wgs, tile).bounds)
    logging.debug(f"Split AOI into {nx}x{ny}={len(tiles)} tiles of {tile_size}m")
    return tiles


def split_aoi_into_tiles(aoi, tile_size: float) -> List:
    """Split an AOI into rectangular ee.Geometry tiles with tile_size metre sides."""
    coords = ee.Geometry(aoi).bounds().coordinates().getInfo()[0]
    lons = [c[0] for c in coords]
    lats = [c[1] for c in coords]
    bounds = (min(lons), min(lats), max(lons), max(lats))
    return [ee.Geometry.Rectangle(list(b)) for b in make_tile_bounds(bounds, tile_size)]


def filter_collection_by_bands(collection, required_bands: List[str]):
    """Keep only images that contain all of required_bands."""
    required = ee.List(required_bands)

    def _flag(image):
        missing = required.removeAll(image.bandNames()).size()
        return image.set("hasAllBands", missing.eq(0))

    return collection.map(_flag).filter(ee.Filter.eq("hasAllBands", 1))


def calculate_image_stats(image, geometry, scale: float, max_pixels: float, reducer):
    """reduceRegion with bestEffort; returns an ee.Dictionary."""
    return image.reduceRegion(
        reducer=reducer,
        geometry=geometry,
        scale=scale,
        bestEffort=True,
        maxPixels=max_pixels,
    )


def calculate_image_collection_stats(collection, geometry, scale: float, max_pixels: float, reducer):
    """Compute stats per image and store them as image properties."""
    return collection.map(
        lambda image: image.set(calculate_image_stats(image, geometry, scale, max_pixels, reducer)))


def band_min_max(image, aoi, scale: float, max_pixels: float = EXPORT_MAX_PIXELS) -> Dict[str, Tuple]:
    """Min and max of every band over aoi, logged per band. Used to sanity check outputs."""
    stats = image.reduceRegion(
        reducer=ee.Reducer.minMax(),
        geometry=aoi,
        scale=scale,
        maxPixels=max_pixels,
        bestEffort=True,
    ).getInfo()
    result = {}
    for band in image.bandNames().getInfo():
        lo = stats.get(f"{band}_min")
        hi = stats.get(f"{band}_max")
        result[band] = (lo, hi)
        logging.info(f"{band} min/max: {lo} / {hi}")
    return result


def reducer_type(reducer) -> str:
    """Short reducer name, e.g. 'mean' for ee.Reducer.mean()."""
    info = reducer.getInfo()
    return info["type"].split(".")[-1]


def property_renames(names: List[str], keep: List[str], suffix: str) -> Tuple[List[str], List[str]]:
    """
    Old and new property names: names in keep are unchanged, every other name
    gets '_' + suffix appended.
    """
    keep = set(keep)
    new = [n if n in keep else f"{n}_{suffix}" for n in names]
    return list(names), new


def first_property_names(collection) -> List[str]:
    return ee.Feature(collection.first()).propertyNames().getInfo()
