"""
Configuration constants and default values.
"""
import os

# Export destinations
# Drive folder used when a caller does not pass one explicitly
EXPORT_FOLDER = os.environ.get("RSPREP_EXPORT_FOLDER", "gee_exports")
TABLE_EXPORT_FOLDER = os.environ.get("RSPREP_TABLE_FOLDER", "gee_tables")
# Cloud Storage bucket for destination="cloud" exports (None = must be passed explicitly)
CLOUD_BUCKET = os.environ.get("RSPREP_CLOUD_BUCKET")
EXPORT_MAX_PIXELS = 1e13
DEFAULT_CRS = "EPSG:4326"  # WGS 84
TERRAIN_CRS = "EPSG:3348"  # NAD83(CSRS) / Statistics Canada Lambert
EXPORT_DESTINATIONS = ("drive", "cloud")

# Export task polling
EXPORT_POLL_INTERVAL = 8
EXPORT_POLL_TIMEOUT = 60 * 30
TASK_TERMINAL_STATES = ("COMPLETED", "FAILED", "CANCELLED")

MANIFEST_CSV = "export_manifest.csv"

# Area of interest
GAUL_LEVEL1 = "FAO/GAUL_SIMPLIFIED_500m/2015/level1"
DEFAULT_COUNTRY = "Canada"
DEFAULT_PROVINCE = "Alberta"

# Earth Engine datasets
SENTINEL2_SR = "COPERNICUS/S2_SR_HARMONIZED"
MODIS_MCD12Q2 = "MODIS/061/MCD12Q2"
NRCAN_CDEM = "NRCan/CDEM"
CDEM_NOMINAL_SCALE = 23.19  # meters
# Annual forest land cover (VLCE2), one image per year with a single class band
FOREST_LC_COLLECTION = "projects/sat-io/open-datasets/CA_FOREST_LC_VLCE2"
FOREST_LC_BAND = "b1"
FOREST_LC_LAST_YEAR = 2019

# MODIS MCD12Q2 scale factors (band -> multiplier)
MCD12Q2_SCALING = {
    "EVI_Minimum_1": 0.0001,
    "EVI_Minimum_2": 0.0001,
    "EVI_Amplitude_1": 0.0001,
    "EVI_Amplitude_2": 0.0001,
    "EVI_Area_1": 0.1,
    "EVI_Area_2": 0.1,
}

# Sentinel-2 band aliases used by the index formulas
S2_BANDS = {
    "BLUE": "B2",
    "GREEN": "B3",
    "RED": "B4",
    "RED_EDGE1": "B5",
    "RED_EDGE2": "B6",
    "RED_EDGE3": "B7",
    "NIR": "B8",
    "RED_EDGE4": "B8A",
    "SWIR1": "B11",
    "SWIR2": "B12",
}
S2_REFLECTANCE_SCALE = 10000
# QA60 bits 10 and 11 are opaque clouds and cirrus
QA60_CLOUD_BIT = 1 << 10
QA60_CIRRUS_BIT = 1 << 11
# SCL classes kept: 4 vegetation, 5 non-vegetated, 6 water, 7 unclassified
SCL_KEEP_CLASSES = (4, 5, 6, 7)

# Forest land cover classes and the NDRS band suffix for each
FOREST_TYPES = {
    210: "_coni",   # Coniferous
    220: "_deci",   # Broadleaf
    230: "_mixed",  # Mixedwood
}
DEFAULT_FOREST_TYPES = [210, 220, 230]
NDRS_SCALE = 1000  # meters, scale of the DRS min/max reduction

# Time series
INTERVAL_TYPES = ("days", "weeks", "months", "years")
TIME_SERIES_STATISTICS = ("mean", "median", "min", "max", "mode", "sum")

# Local mosaicking
MOSAIC_BATCH_SIZE = 10
MOSAIC_FUN = "mean"
MOSAIC_FUNCTIONS = ("mean", "sum", "min", "max", "first", "last", "median")
GTIFF_OPTIONS = {
    "driver": "GTiff",
    "compress": "LZW",
    "tiled": True,
    "blockxsize": 512,
    "blockysize": 512,
    "bigtiff": "IF_SAFER",
}

# Gap filling (IDW)
IDW_SAMPLE_SCALE = 30  # meters
IDW_SAMPLE_PROJECTION = "EPSG:4326"

# Approximate length of one degree of latitude, used for geographic rasters
METERS_PER_DEGREE = 111320
