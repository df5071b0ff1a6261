"""
Export helpers: start Earth Engine image and table export tasks to Google Drive
or Cloud Storage, reduce images to (buffered) points, and track started tasks
in a CSV manifest.
"""
import time
import logging
from typing import Callable, List, Optional
import ee

from .config import (
    EXPORT_FOLDER, TABLE_EXPORT_FOLDER, CLOUD_BUCKET, EXPORT_MAX_PIXELS, EXPORT_DESTINATIONS,
    EXPORT_POLL_INTERVAL, EXPORT_POLL_TIMEOUT, TASK_TERMINAL_STATES, MANIFEST_CSV,
)
from .ee_utils import reducer_type, property_renames, first_property_names
from .manifest import manifest_append


def _check_destination(destination: str, bucket: Optional[str]) -> Optional[str]:
    if destination not in EXPORT_DESTINATIONS:
        raise ValueError(f"Unsupported export destination '{destination}'. Use one of {EXPORT_DESTINATIONS}")
    if destination == "cloud":
        bucket = bucket or CLOUD_BUCKET
        if not bucket:
            raise ValueError("A Cloud Storage bucket is required for destination='cloud'")
    return bucket


def image_export_task(image, description: str, region, scale: float, crs: str,
                      folder: str = EXPORT_FOLDER, destination: str = "drive",
                      bucket: Optional[str] = None, file_name: Optional[str] = None):
    """Create (but do not start) an image export task. file_name defaults to the description."""
    bucket = _check_destination(destination, bucket)
    file_name = file_name or description
    params = {
        "image": image,
        "description": description,
        "region": region,
        "scale": scale,
        "crs": crs,
        "maxPixels": EXPORT_MAX_PIXELS,
    }
    if destination == "drive":
        return ee.batch.Export.image.toDrive(folder=folder, fileNamePrefix=file_name, **params)
    return ee.batch.Export.image.toCloudStorage(
        bucket=bucket, fileNamePrefix=f"{folder}/{file_name}", **params)


def table_export_task(collection, description: str, folder: str = TABLE_EXPORT_FOLDER,
                      destination: str = "drive", bucket: Optional[str] = None):
    """Create (but do not start) a CSV table export task."""
    bucket = _check_destination(destination, bucket)
    if destination == "drive":
        return ee.batch.Export.table.toDrive(
            collection=collection, description=description, folder=folder,
            fileNamePrefix=description, fileFormat="CSV")
    return ee.batch.Export.table.toCloudStorage(
        collection=collection, description=description, bucket=bucket,
        fileNamePrefix=f"{folder}/{description}", fileFormat="CSV")


def start_task(task, kind: str, description: str, destination: str,
               manifest_path: Optional[str] = MANIFEST_CSV, wait: bool = False):
    """
    Start a task and record it in the manifest (skipped if manifest_path is None).
    With wait=True, block until the task ends and raise RuntimeError unless it completed.
    """
    task.start()
    task_id = getattr(task, "id", None)
    logging.info(f"Started {kind} export '{description}' to {destination} (task {task_id})")
    if manifest_path:
        manifest_append(kind, description, destination, task_id, path=manifest_path)
    if wait:
        status = wait_for_task(task)
        if status.get("state") != "COMPLETED":
            raise RuntimeError(f"Export '{description}' ended as {status.get('state')}: "
                               f"{status.get('error_message', 'no error message')}")
    return task


def export_image(image, aoi, description: str, folder: str = EXPORT_FOLDER, scale: float = 30,
                 crs: str = "EPSG:4326", destination: str = "drive", bucket: Optional[str] = None,
                 manifest_path: Optional[str] = MANIFEST_CSV, file_name: Optional[str] = None,
                 wait: bool = False):
    """Export a single image clipped to aoi; file_name defaults to the task description."""
    task = image_export_task(image.clip(aoi), description, aoi, scale, crs, folder=folder,
                             destination=destination, bucket=bucket, file_name=file_name)
    return start_task(task, "image", description, destination, manifest_path, wait=wait)


def _validate_file_name(file_name) -> str:
    if not file_name or not isinstance(file_name, str):
        raise ValueError("Invalid file name generated.")
    return file_name


def export_image_collection(collection, aoi, folder: str, scale: float, crs: str,
                            file_name_fn: Callable, destination: str = "drive",
                            bucket: Optional[str] = None,
                            manifest_path: Optional[str] = MANIFEST_CSV) -> List:
    """
    Export each image of a collection as one multiband image.

    file_name_fn(image) must return a non-empty string used as task description
    and file name. An image that fails (bad name, EE error) is logged and skipped.
    Returns the started tasks.
    """
    _check_destination(destination, bucket)
    size = collection.size().getInfo()
    col_list = collection.toList(collection.size())
    tasks = []
    for i in range(size):
        try:
            img = ee.Image(col_list.get(i))
            file_name = _validate_file_name(file_name_fn(img))
            task = image_export_task(img.clip(aoi), file_name, aoi, scale, crs,
                                     folder=folder, destination=destination, bucket=bucket)
            tasks.append(start_task(task, "image", file_name, destination, manifest_path))
        except Exception as e:
            logging.warning(f"Error processing image {i}: {e}")
            continue
    logging.info(f"Started {len(tasks)} of {size} image exports")
    return tasks


def export_bands_by_year(collection, aoi, folder: str, scale: float, crs: str,
                         file_name_fn: Callable, destination: str = "drive",
                         bucket: Optional[str] = None,
                         manifest_path: Optional[str] = MANIFEST_CSV) -> List:
    """
    Export every band of every image separately; file_name_fn(image, band)
    names each export. A failing image is logged and skipped.
    """
    _check_destination(destination, bucket)
    size = collection.size().getInfo()
    col_list = collection.toList(collection.size())
    tasks = []
    for i in range(size):
        try:
            img = ee.Image(col_list.get(i))
            for band in img.bandNames().getInfo():
                file_name = _validate_file_name(file_name_fn(img, band))
                task = image_export_task(img.select(band).clip(aoi), file_name, aoi, scale, crs,
                                         folder=folder, destination=destination, bucket=bucket)
                tasks.append(start_task(task, "image", file_name, destination, manifest_path))
        except Exception as e:
            logging.warning(f"Error processing image {i}: {e}")
            continue
    return tasks


def _buffer_points(xy_points, aoi, buffer_size: float):
    points = xy_points.filterBounds(aoi)
    if buffer_size == 0:
        return points
    return points.map(lambda pt: pt.buffer(buffer_size))


def rename_reduced_properties(collection, keep: List[str], suffix: str):
    """
    Append '_' + suffix to every property not in keep. Property names are taken
    from the first feature; system properties are left alone.
    """
    names = [n for n in first_property_names(collection) if not n.startswith("system:")]
    old, new = property_renames(names, keep, suffix)
    return collection.map(lambda f: f.select(old, new))


def image_to_points(buffer_size: float, reducer, xy_points, aoi, image, crs: str, scale: float,
                    tile_scale: float, file_name: str, folder: str = EXPORT_FOLDER,
                    destination: str = "drive", bucket: Optional[str] = None,
                    manifest_path: Optional[str] = MANIFEST_CSV):
    """
    Reduce an image over points (buffered by buffer_size metres unless 0) and
    export the result as CSV. Reduced values are renamed
    <band>_<reducer>_<buffer_size>; point properties keep their names.
    Returns the renamed FeatureCollection.
    """
    suffix = f"{reducer_type(reducer)}_{buffer_size}"
    points = _buffer_points(xy_points, aoi, buffer_size)
    xy_properties = first_property_names(xy_points)

    reduced = image.reduceRegions(
        collection=points, reducer=reducer, crs=crs, scale=scale, tileScale=tile_scale)
    renamed = rename_reduced_properties(reduced, xy_properties, suffix)

    task = table_export_task(renamed, file_name, folder=folder, destination=destination, bucket=bucket)
    start_task(task, "table", file_name, destination, manifest_path)
    return renamed


def image_collection_to_points(buffer_size: float, reducer, xy_points, aoi, image_collection,
                               crs: str, scale: float, tile_scale: float, file_name: str,
                               folder: str = EXPORT_FOLDER, destination: str = "drive",
                               bucket: Optional[str] = None,
                               manifest_path: Optional[str] = MANIFEST_CSV):
    """
    Like image_to_points for every image of a collection. Each output row also
    carries the properties of the image it was reduced from, unrenamed.
    """
    suffix = f"{reducer_type(reducer)}_{buffer_size}"
    image_collection = ee.ImageCollection(image_collection)
    points = _buffer_points(xy_points, aoi, buffer_size)
    keep = first_property_names(xy_points) + first_property_names(image_collection)

    def _reduce(img):
        return img.reduceRegions(
            collection=points, reducer=reducer, crs=crs, scale=scale, tileScale=tile_scale,
        ).map(lambda f: ee.Feature(f.copyProperties(img)))

    reduced = ee.FeatureCollection(image_collection.map(_reduce).flatten())
    renamed = rename_reduced_properties(reduced, keep, suffix)

    task = table_export_task(renamed, file_name, folder=folder, destination=destination, bucket=bucket)
    start_task(task, "table", file_name, destination, manifest_path)
    return renamed


def export_stats_to_csv(stats_collection, file_name: str, folder: str = TABLE_EXPORT_FOLDER,
                        destination: str = "drive", bucket: Optional[str] = None,
                        manifest_path: Optional[str] = MANIFEST_CSV, wait: bool = False):
    """Export a feature collection of statistics as CSV, optionally waiting for the task to finish."""
    task = table_export_task(stats_collection, file_name, folder=folder,
                             destination=destination, bucket=bucket)
    return start_task(task, "table", file_name, destination, manifest_path, wait=wait)


def wait_for_task(task, timeout_s: int = EXPORT_POLL_TIMEOUT, poll_interval: int = EXPORT_POLL_INTERVAL):
    """
    Poll task.status() until the task reaches a terminal state and return that
    status. Returns {"state": "TIMEOUT"} once timeout_s seconds have passed.
    Errors while reading the status are logged and polling continues.
    """
    deadline = time.time() + timeout_s
    state = None
    while True:
        try:
            status = task.status()
        except Exception as e:
            logging.warning(f"Could not read status of task {getattr(task, 'id', None)}: {e}")
        else:
            if status.get("state") != state:
                state = status.get("state")
                logging.debug(f"Task {getattr(task, 'id', None)} is {state}")
            if state in TASK_TERMINAL_STATES:
                if state == "FAILED":
                    logging.warning(f"Task failed: {status.get('error_message', 'unknown error')}")
                return status
        if time.time() > deadline:
            logging.warning(f"Gave up waiting for task after {timeout_s}s (last state {state})")
            return {"state": "TIMEOUT"}
        time.sleep(poll_interval)
