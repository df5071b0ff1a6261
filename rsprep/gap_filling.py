"""
Gap filling by inverse distance weighting (IDW), on Earth Engine and locally.
"""
import logging
from typing import Optional
import numpy as np
import rasterio
from scipy.spatial import cKDTree
import ee

from .config import IDW_SAMPLE_SCALE, IDW_SAMPLE_PROJECTION


def _interpolate_band(image, band_name, aoi, range_m, gamma, num_pixels):
    band_name = ee.String(band_name)
    samples = (image.select([band_name]).addBands(ee.Image.pixelLonLat())
               .sample(region=aoi, numPixels=num_pixels,
                       scale=IDW_SAMPLE_SCALE, projection=IDW_SAMPLE_PROJECTION)
               .map(lambda s: ee.Feature(
                   ee.Geometry.Point([s.get("longitude"), s.get("latitude")])
               ).set(band_name, s.get(band_name))))

    # Global mean and standard deviation of the samples
    stats = samples.reduceColumns(
        reducer=ee.Reducer.mean().combine(reducer2=ee.Reducer.stdDev(), sharedInputs=True),
        selectors=[band_name],
    )
    return samples.inverseDistance(
        range=range_m,
        propertyName=band_name,
        mean=stats.get("mean"),
        stdDev=stats.get("stdDev"),
        gamma=gamma,
    ).rename([band_name])


def apply_idw_interpolation(image, aoi, range_m: float, gamma: float, num_pixels: int):
    """
    Interpolate every band of an image by IDW from a random sample of its pixels.

    range_m is the search distance in metres, gamma the decay factor and
    num_pixels the number of pixels sampled per band. Returns the interpolated
    surface for all bands, clipped to aoi.
    """
    band_names = image.bandNames()
    interpolated = band_names.map(
        lambda name: _interpolate_band(image, name, aoi, range_m, gamma, num_pixels))
    # toBands prefixes names with the list index
    return ee.ImageCollection.fromImages(interpolated).toBands().rename(band_names).clip(aoi)


def fill_gaps(image, aoi, range_m: float, gamma: float, num_pixels: int):
    """Keep known pixels and fill masked pixels from the IDW surface."""
    return image.unmask(apply_idw_interpolation(image, aoi, range_m, gamma, num_pixels)).clip(aoi)


def idw_fill(array: np.ndarray, nodata: Optional[float] = None, range_px: float = 20,
             gamma: float = 2.0, num_pixels: int = 5000, seed: Optional[int] = 0) -> np.ndarray:
    """
    Fill invalid pixels of a 2-D array by IDW from a sample of valid pixels.

    Invalid pixels are NaN or equal to nodata. Up to num_pixels valid pixels are
    sampled; each gap pixel takes the 1/d**gamma weighted mean of the samples
    within range_px pixels, or the sample mean if none are in range.
    Returns a float32 copy; the input is not modified.
    """
    out = array.astype(np.float32)
    invalid = ~np.isfinite(out)
    if nodata is not None:
        invalid |= out == nodata
    if not np.any(invalid):
        return out

    valid_rc = np.argwhere(~invalid)
    if len(valid_rc) == 0:
        logging.warning("No valid pixels to interpolate from")
        return out
    if len(valid_rc) > num_pixels:
        rng = np.random.default_rng(seed)
        valid_rc = valid_rc[rng.choice(len(valid_rc), size=num_pixels, replace=False)]
    values = out[valid_rc[:, 0], valid_rc[:, 1]].astype(np.float64)
    fallback = values.mean()

    tree = cKDTree(valid_rc)
    gap_rc = np.argwhere(invalid)
    neighbours = tree.query_ball_point(gap_rc, r=range_px)
    for (r, c), idx in zip(gap_rc, neighbours):
        if not idx:
            out[r, c] = fallback
            continue
        d = np.hypot(valid_rc[idx, 0] - r, valid_rc[idx, 1] - c)
        w = 1.0 / np.power(d, gamma)
        out[r, c] = np.sum(w * values[idx]) / np.sum(w)

    logging.debug(f"IDW filled {len(gap_rc)} pixels from {len(values)} samples")
    return out


def fill_raster_gaps(src_path: str, dst_path: str, range_px: float = 20, gamma: float = 2.0,
                     num_pixels: int = 5000, seed: Optional[int] = 0) -> str:
    """Gap fill every band of a GeoTIFF with idw_fill, band by band."""
    with rasterio.open(src_path) as src:
        profile = src.profile.copy()
        nodata = src.nodata
        profile.update(dtype="float32")
        if nodata is None:
            profile.update(nodata=np.nan)
        with rasterio.open(dst_path, "w", **profile) as dst:
            for band_idx in range(1, src.count + 1):
                filled = idw_fill(src.read(band_idx), nodata=nodata, range_px=range_px,
                                  gamma=gamma, num_pixels=num_pixels, seed=seed)
                dst.write(filled, band_idx)
    logging.info(f"Gap filled {src_path} -> {dst_path}")
    return dst_path
