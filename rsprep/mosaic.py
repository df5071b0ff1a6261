"""
Local raster mosaicking: merge GeoTIFF tiles onto a common grid, aggregating
overlapping pixels with mean/sum/min/max/first/last/median.

Large tile sets can be processed in batches; each batch is mosaicked, folded
into the running mosaic, and its datasets and temporary files released before
the next batch is read.
"""
import os
import gc
import glob
import math
import shutil
import logging
import tempfile
from contextlib import ExitStack
from typing import Dict, List, Optional
import numpy as np
import rasterio
from rasterio.transform import from_origin
from rasterio.warp import Resampling, reproject, transform_bounds
from tqdm import tqdm

from .config import MOSAIC_FUN, MOSAIC_FUNCTIONS, MOSAIC_BATCH_SIZE, GTIFF_OPTIONS

# Aggregations whose output keeps the source data type
_DTYPE_PRESERVING = ("first", "last", "min", "max")


def _check_fun(fun: str):
    if fun not in MOSAIC_FUNCTIONS:
        raise ValueError(f"Unsupported mosaic function '{fun}'. Use one of {MOSAIC_FUNCTIONS}")


def compute_common_grid(datasets) -> Dict:
    """
    Grid covering the union of all dataset bounds, in the first dataset's CRS,
    at the finest pixel size among the inputs.
    """
    ref = datasets[0]
    ref_crs = ref.crs
    lefts, bottoms, rights, tops = [], [], [], []
    xres, yres = ref.res
    for ds in datasets:
        if ref_crs is not None and ds.crs is not None and ds.crs != ref_crs:
            left, bottom, right, top = transform_bounds(ds.crs, ref_crs, *ds.bounds)
        else:
            left, bottom, right, top = ds.bounds
            xres = min(xres, ds.res[0])
            yres = min(yres, ds.res[1])
        lefts.append(left)
        bottoms.append(bottom)
        rights.append(right)
        tops.append(top)

    minx, miny, maxx, maxy = min(lefts), min(bottoms), max(rights), max(tops)
    # Round to avoid an extra column/row from floating point noise
    width = int(math.ceil(round((maxx - minx) / xres, 6)))
    height = int(math.ceil(round((maxy - miny) / yres, 6)))
    return {
        "crs": ref_crs,
        "transform": from_origin(minx, maxy, xres, yres),
        "width": width,
        "height": height,
    }


def _read_onto_grid(ds, band_idx: int, grid: Dict) -> np.ndarray:
    """Resample one band onto the grid as float64 with NaN where the source has no data."""
    dest = np.full((grid["height"], grid["width"]), np.nan, dtype=np.float64)
    reproject(
        source=ds.read(band_idx),
        destination=dest,
        src_transform=ds.transform,
        src_crs=ds.crs,
        src_nodata=ds.nodata,
        dst_transform=grid["transform"],
        dst_crs=grid["crs"] if grid["crs"] is not None else ds.crs,
        dst_nodata=np.nan,
        resampling=Resampling.nearest,
    )
    return dest


def _fold(out: np.ndarray, count: np.ndarray, arr: np.ndarray, fun: str):
    """Fold one grid-aligned array (NaN = no data) into the running out/count arrays in place."""
    valid = np.isfinite(arr)
    if fun in ("mean", "sum"):
        out[valid & (count == 0)] = 0.0
        out[valid] += arr[valid]
    elif fun == "min":
        np.fmin(out, arr, out=out)
    elif fun == "max":
        np.fmax(out, arr, out=out)
    elif fun == "first":
        take = valid & (count == 0)
        out[take] = arr[take]
    elif fun == "last":
        out[valid] = arr[valid]
    count += valid


def _finish(out: np.ndarray, count: np.ndarray, fun: str) -> np.ndarray:
    if fun == "mean":
        has_data = count > 0
        out[has_data] /= count[has_data]
    return out


def aggregate(arrays: List[np.ndarray], fun: str) -> np.ndarray:
    """
    Combine co-registered float arrays (NaN = no data) pixel by pixel.
    Pixels with no data in any array stay NaN. Arrays are combined in list
    order, which matters for 'first' and 'last'.
    """
    _check_fun(fun)
    if fun == "median":
        with np.errstate(all="ignore"):
            stack = np.stack(arrays)
            out = np.full(stack.shape[1:], np.nan)
            has_data = np.any(np.isfinite(stack), axis=0)
            out[has_data] = np.nanmedian(stack[:, has_data], axis=0)
        return out

    out = np.full(arrays[0].shape, np.nan, dtype=np.float64)
    count = np.zeros(arrays[0].shape, dtype=np.int32)
    for arr in arrays:
        _fold(out, count, arr, fun)
    return _finish(out, count, fun)


def _mosaic_band(datasets, band_idx: int, grid: Dict, fun: str) -> np.ndarray:
    """
    Aggregate one band of every dataset on the grid. Tiles are reprojected and
    folded one at a time; only 'median' holds every tile in memory at once.
    """
    if fun == "median":
        return aggregate([_read_onto_grid(ds, band_idx, grid) for ds in datasets], fun)

    shape = (grid["height"], grid["width"])
    out = np.full(shape, np.nan, dtype=np.float64)
    count = np.zeros(shape, dtype=np.int32)
    for ds in datasets:
        _fold(out, count, _read_onto_grid(ds, band_idx, grid), fun)
    return _finish(out, count, fun)


def _output_dtype_and_nodata(src_dtype: str, src_nodata: Optional[float], fun: str):
    """
    Output dtype and nodata for a mosaic. Integer outputs without a source nodata
    use the dtype's max (unsigned) or min (signed) as the nodata flag.
    """
    if fun in _DTYPE_PRESERVING:
        dtype = src_dtype
    else:
        dtype = "float32" if np.dtype(src_dtype).itemsize <= 4 else "float64"
    if src_nodata is not None:
        return dtype, src_nodata
    if np.issubdtype(np.dtype(dtype), np.floating):
        return dtype, np.nan
    info = np.iinfo(np.dtype(dtype))
    return dtype, info.max if info.min == 0 else info.min


def _mosaic_to_file(raster_files: List[str], out_path: str, fun: str,
                    dtype: Optional[str] = None, nodata: Optional[float] = None) -> str:
    """
    Mosaic raster_files into out_path, band by band. dtype and nodata override
    the defaults derived from the first raster.
    """
    with ExitStack() as stack:
        datasets = [stack.enter_context(rasterio.open(p)) for p in raster_files]
        count = datasets[0].count
        mismatched = [ds.name for ds in datasets if ds.count != count]
        if mismatched:
            raise ValueError(f"Rasters must have the same number of bands ({count}): {mismatched}")

        grid = compute_common_grid(datasets)
        if dtype is None:
            dtype, nodata = _output_dtype_and_nodata(datasets[0].dtypes[0], datasets[0].nodata, fun)
        profile = dict(GTIFF_OPTIONS)
        profile.update({
            "crs": grid["crs"],
            "transform": grid["transform"],
            "width": grid["width"],
            "height": grid["height"],
            "count": count,
            "dtype": dtype,
            "nodata": nodata,
        })
        if grid["width"] < 512 or grid["height"] < 512:
            # GTiff block sizes must not exceed the raster size for tiny outputs
            profile["tiled"] = False
            profile.pop("blockxsize")
            profile.pop("blockysize")

        descriptions = datasets[0].descriptions
        if os.path.exists(out_path):
            os.remove(out_path)
        with rasterio.open(out_path, "w", **profile) as dst:
            for band_idx in range(1, count + 1):
                band = _mosaic_band(datasets, band_idx, grid, fun)
                band[~np.isfinite(band)] = nodata
                dst.write(band.astype(dtype), band_idx)
                if descriptions[band_idx - 1]:
                    dst.set_band_description(band_idx, descriptions[band_idx - 1])

    logging.debug(f"Mosaicked {len(raster_files)} rasters with fun={fun} -> {out_path}")
    return out_path


def list_rasters(path_name: str, exclude: Optional[str] = None) -> List[str]:
    """All .tif files under path_name, recursively, sorted."""
    files = sorted(glob.glob(os.path.join(path_name, "**", "*.tif"), recursive=True))
    if exclude is not None:
        files = [f for f in files if os.path.abspath(f) != os.path.abspath(exclude)]
    return files


def mosaic_rasters_in_directory(path_name: str, export_filename: str, fun: str = MOSAIC_FUN) -> str:
    """Mosaic every .tif file found (recursively) in path_name into export_filename."""
    _check_fun(fun)
    files = list_rasters(path_name, exclude=export_filename)
    if not files:
        raise FileNotFoundError(f"No .tif files found in {path_name}")
    logging.info(f"Found {len(files)} rasters in {path_name}")
    return mosaic_rasters_in_list(files, export_filename, fun=fun)


def mosaic_rasters_in_list(raster_files: List[str], export_filename: str, fun: str = MOSAIC_FUN) -> str:
    """Mosaic all raster_files at once into export_filename (overwritten if present)."""
    _check_fun(fun)
    if not raster_files:
        raise ValueError("No raster files provided for mosaicking.")
    _mosaic_to_file(list(raster_files), export_filename, fun)
    gc.collect()
    logging.info(f"Mosaic of {len(raster_files)} rasters written to {export_filename}")
    return export_filename


def mosaic_rasters_in_batches(raster_files: List[str], export_filename: str, fun: str = MOSAIC_FUN,
                              batch_size: int = MOSAIC_BATCH_SIZE) -> str:
    """
    Mosaic raster_files batch_size at a time.

    Each batch mosaic is merged into the running mosaic with the same fun, so for
    'mean' and 'median' the result is an aggregate of batch aggregates rather
    than a single pass over all inputs. Intermediate mosaics are float64 with
    NaN nodata; only the last merge is written with the output dtype. Temporary
    files of every batch are removed as soon as the batch is folded in.
    """
    _check_fun(fun)
    if not raster_files:
        raise ValueError("No raster files provided for mosaicking.")
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    raster_files = list(raster_files)
    with rasterio.open(raster_files[0]) as first:
        out_dtype, out_nodata = _output_dtype_and_nodata(first.dtypes[0], first.nodata, fun)
    n_batches = int(math.ceil(len(raster_files) / batch_size))
    tmpdir = tempfile.mkdtemp(prefix="rsprep_mosaic_")
    final_mosaic = None
    try:
        for b in tqdm(range(n_batches), desc="Mosaic batches", unit="batch", ncols=100):
            batch_files = raster_files[b * batch_size:(b + 1) * batch_size]
            if b == n_batches - 1:
                write_opts = {"dtype": out_dtype, "nodata": out_nodata}
            else:
                write_opts = {"dtype": "float64", "nodata": np.nan}
            batch_path = os.path.join(tmpdir, f"batch_{b}.tif")

            if final_mosaic is None:
                _mosaic_to_file(batch_files, batch_path, fun, **write_opts)
                final_mosaic = batch_path
            else:
                _mosaic_to_file(batch_files, batch_path, fun, dtype="float64", nodata=np.nan)
                merged_path = os.path.join(tmpdir, f"running_{b}.tif")
                _mosaic_to_file([final_mosaic, batch_path], merged_path, fun, **write_opts)
                os.remove(final_mosaic)
                os.remove(batch_path)
                final_mosaic = merged_path

            gc.collect()
            logging.debug(f"Batch {b + 1}/{n_batches} merged ({len(batch_files)} files)")

        if os.path.exists(export_filename):
            os.remove(export_filename)
        shutil.move(final_mosaic, export_filename)
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)

    logging.info(f"Mosaic of {len(raster_files)} rasters in {n_batches} batches written to {export_filename}")
    return export_filename
