"""
Remote Sensing Preprocessing Package

Spectral indices, terrain metrics, gap filling, raster mosaicking and
time-series exports for Sentinel-2, MODIS and DEM data, using Google Earth
Engine for server-side processing and rasterio for local GeoTIFFs.
"""

__version__ = "1.0.0"

# Pipelines
from .pipelines import modis_land_cover_dynamics, terrain_indices, sentinel2_time_series

# Core functions
from .mosaic import mosaic_rasters_in_directory, mosaic_rasters_in_list, mosaic_rasters_in_batches
from .indices import add_indices, add_ndrs
from .local_indices import compute_index, add_indices_to_raster
from .terrain import terrain_metrics, terrain_metrics_local
from .gap_filling import apply_idw_interpolation, idw_fill, fill_raster_gaps
from .time_series import create_date_list, s2_time_series
from .export import export_image_collection, image_to_points, image_collection_to_points
from .logging_setup import setup_logging

__all__ = [
    'modis_land_cover_dynamics',
    'terrain_indices',
    'sentinel2_time_series',
    'mosaic_rasters_in_directory',
    'mosaic_rasters_in_list',
    'mosaic_rasters_in_batches',
    'add_indices',
    'add_ndrs',
    'compute_index',
    'add_indices_to_raster',
    'terrain_metrics',
    'terrain_metrics_local',
    'apply_idw_interpolation',
    'idw_fill',
    'fill_raster_gaps',
    'create_date_list',
    's2_time_series',
    'export_image_collection',
    'image_to_points',
    'image_collection_to_points',
    'setup_logging',
]
