"""
End-to-end preprocessing pipelines: load -> clip -> band math -> export.

Earth Engine must already be initialized by the caller.
"""
import logging
from typing import List, Optional

from .config import EXPORT_FOLDER, DEFAULT_CRS, TERRAIN_CRS, MANIFEST_CSV
from .ee_collections import modis_phenology_collection, cdem_image
from .ee_utils import band_min_max
from .export import export_image_collection, export_image
from .indices import add_ndrs
from .phenology import apply_scaling, to_float
from .terrain import terrain_metrics
from .time_series import create_date_list, s2_time_series

S2_DEFAULT_INDICES = [
    "CRE", "DRS", "DSWI", "EVI", "GNDVI", "LAI", "NBR",
    "NDRE1", "NDRE2", "NDRE3", "NDVI", "NDWI", "RDI",
]


def year_file_name(prefix: str, key: str = "year"):
    """File naming function: prefix + '_' + the image's year (or 'unknown')."""
    def _name(img):
        year = img.get(key).getInfo() or "unknown"
        return f"{prefix}_{year}"
    return _name


def modis_land_cover_dynamics(aoi, start: str = "2001-01-01", end: str = "2023-12-31",
                              folder: str = EXPORT_FOLDER, scale: float = 500, crs: str = DEFAULT_CRS,
                              check_year: Optional[int] = 2023, destination: str = "drive",
                              manifest_path: Optional[str] = MANIFEST_CSV):
    """
    Export every band of MODIS MCD12Q2 as one multiband GeoTIFF per year,
    named MODIS_MCD12Q2_<year>. EVI bands are scaled and all bands cast to float.
    """
    dataset = modis_phenology_collection(start, end, aoi).map(apply_scaling).map(to_float)

    if check_year is not None:
        check = dataset.filterDate(f"{check_year}-01-01", f"{check_year}-12-31").mosaic()
        band_min_max(check, aoi, scale)

    def _file_name(img):
        return "MODIS_MCD12Q2_" + img.date().format("yyyy").getInfo()

    return export_image_collection(dataset, aoi, folder, scale, crs, _file_name,
                                   destination=destination, manifest_path=manifest_path)


def terrain_indices(aoi, folder: str = "terrain_exports", scale: float = 30, crs: str = TERRAIN_CRS,
                    check: bool = True, destination: str = "drive",
                    manifest_path: Optional[str] = MANIFEST_CSV, wait: bool = False):
    """
    Export CDEM elevation with slope, northness and aspect to the file
    'terrain_metrics' (task 'terrain_metrics_export').
    """
    terrain = terrain_metrics(cdem_image(aoi))
    if check:
        band_min_max(terrain, aoi, scale)
    return export_image(terrain, aoi, "terrain_metrics_export", folder=folder, scale=scale, crs=crs,
                        destination=destination, manifest_path=manifest_path,
                        file_name="terrain_metrics", wait=wait)


def sentinel2_time_series(aoi, start: str, end: str, interval: int = 1, interval_type: str = "years",
                          window: int = 121, window_unit: str = "days",
                          indices: Optional[List[str]] = None, statistic: str = "mean",
                          folder: str = EXPORT_FOLDER, scale: float = 10, crs: str = DEFAULT_CRS,
                          destination: str = "drive", manifest_path: Optional[str] = MANIFEST_CSV):
    """
    Sentinel-2 index composites over window units from each start date, with
    NDRS for coniferous, broadleaf and all forest, exported as
    sentinel2_multiband_<year>. DRS must be among the indices for NDRS.
    """
    indices = list(indices or S2_DEFAULT_INDICES)
    if "DRS" not in indices:
        raise ValueError("DRS is required to compute NDRS bands")

    date_list = create_date_list(start, end, interval, interval_type)
    logging.info(f"Start dates: {[d.isoformat() for d in date_list]}")

    s2 = (s2_time_series(date_list, window, window_unit, aoi, indices, statistic)
          .map(lambda image: add_ndrs(image, [210]))
          .map(lambda image: add_ndrs(image, [220]))
          .map(lambda image: add_ndrs(image))
          .map(to_float))

    return export_image_collection(s2, aoi, folder, scale, crs,
                                   year_file_name("sentinel2_multiband"),
                                   destination=destination, manifest_path=manifest_path)
