"""
Spectral indices computed locally with numpy on rasters already on disk.

Same formulas as the Earth Engine calculators in indices.py. Bands are passed
as a dict keyed by alias (RED, NIR, ...) or by Sentinel-2 band id (B4, B8, ...).
"""
import logging
from typing import Dict, List, Optional
import numpy as np
import rasterio

from .config import S2_BANDS


def _band(bands: Dict[str, np.ndarray], alias: str) -> np.ndarray:
    if alias in bands:
        return bands[alias].astype(np.float32)
    band_id = S2_BANDS[alias]
    if band_id in bands:
        return bands[band_id].astype(np.float32)
    raise KeyError(f"Missing band {alias} ({band_id})")


def _ratio(num: np.ndarray, den: np.ndarray) -> np.ndarray:
    with np.errstate(divide="ignore", invalid="ignore"):
        out = num / den
    out[~np.isfinite(out)] = np.nan
    return out


def _nd(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    return _ratio(a - b, a + b)


def _evi(b):
    nir, red, blue = _band(b, "NIR"), _band(b, "RED"), _band(b, "BLUE")
    return 2.5 * _ratio(nir - red, nir + 6 * red - 7.5 * blue + 1)


INDEX_FORMULAS = {
    "CRE": lambda b: _ratio(_band(b, "RED_EDGE3"), _band(b, "RED_EDGE1")) - 1,
    "DRS": lambda b: np.sqrt(_band(b, "RED") ** 2 + _band(b, "SWIR1") ** 2),
    "DSWI": lambda b: _ratio(_band(b, "NIR") + _band(b, "GREEN"), _band(b, "RED") + _band(b, "SWIR1")),
    "EVI": _evi,
    "GNDVI": lambda b: _nd(_band(b, "NIR"), _band(b, "GREEN")),
    "LAI": lambda b: 3.618 * _evi(b) - 0.118,
    "NBR": lambda b: _nd(_band(b, "NIR"), _band(b, "SWIR2")),
    "NDRE1": lambda b: _nd(_band(b, "RED_EDGE2"), _band(b, "RED_EDGE1")),
    "NDRE2": lambda b: _nd(_band(b, "RED_EDGE3"), _band(b, "RED_EDGE1")),
    "NDRE3": lambda b: _nd(_band(b, "RED_EDGE4"), _band(b, "RED_EDGE3")),
    "NDVI": lambda b: _nd(_band(b, "NIR"), _band(b, "RED")),
    "NDWI": lambda b: _nd(_band(b, "GREEN"), _band(b, "NIR")),
    "RDI": lambda b: _ratio(_band(b, "SWIR2"), _band(b, "RED_EDGE4")),
}


def compute_index(name: str, bands: Dict[str, np.ndarray]) -> np.ndarray:
    """Compute one index as float32; undefined pixels (zero denominators) are NaN."""
    if name not in INDEX_FORMULAS:
        raise ValueError(f"Unknown spectral index: {name}. Available: {sorted(INDEX_FORMULAS)}")
    return INDEX_FORMULAS[name](bands).astype(np.float32)


def compute_ndrs(drs: np.ndarray, forest: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Normalized DRS: DRS rescaled to 0-1 with the min/max over forest pixels,
    values outside that range clamped. Returns all-NaN if no forest pixel is valid.
    """
    drs = drs.astype(np.float32)
    valid = np.isfinite(drs)
    if forest is not None:
        valid &= forest.astype(bool)
    if not np.any(valid):
        return np.full(drs.shape, np.nan, dtype=np.float32)
    lo = drs[valid].min()
    hi = drs[valid].max()
    return _ratio(np.clip(drs, lo, hi) - lo, np.full(drs.shape, hi - lo, dtype=np.float32))


def add_indices_to_raster(src_path: str, dst_path: str, band_map: Dict[str, int],
                          names: List[str]) -> str:
    """
    Append index bands to a multiband GeoTIFF.

    band_map maps band alias or id to a 1-based band index in src_path,
    e.g. {"RED": 1, "GREEN": 2, "BLUE": 3, "NIR": 4}. The output is float32
    with every source band followed by one band per index, band descriptions set.
    """
    with rasterio.open(src_path) as src:
        profile = src.profile.copy()
        source = src.read().astype(np.float32)
        descriptions = list(src.descriptions)
        nodata = src.nodata

    if nodata is not None:
        source[source == nodata] = np.nan
    bands = {alias: source[idx - 1] for alias, idx in band_map.items()}
    index_arrays = [compute_index(name, bands) for name in names]

    profile.update(dtype="float32", count=source.shape[0] + len(names), nodata=np.nan)
    with rasterio.open(dst_path, "w", **profile) as dst:
        dst.write(source, list(range(1, source.shape[0] + 1)))
        for i, arr in enumerate(index_arrays, start=source.shape[0] + 1):
            dst.write(arr, i)
        for i, desc in enumerate(descriptions, start=1):
            if desc:
                dst.set_band_description(i, desc)
        for i, name in enumerate(names, start=source.shape[0] + 1):
            dst.set_band_description(i, name)

    logging.info(f"Wrote {len(names)} indices to {dst_path}")
    return dst_path
