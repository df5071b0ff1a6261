from unittest import mock

import pytest

from rsprep import export
from rsprep.manifest import manifest_read


def _task(task_id):
    task = mock.MagicMock()
    task.id = task_id
    return task


@pytest.fixture
def fake_ee():
    with mock.patch("rsprep.export.ee") as ee_mock:
        ids = iter(f"TASK{i}" for i in range(100))
        ee_mock.batch.Export.image.toDrive.side_effect = lambda **kw: _task(next(ids))
        ee_mock.batch.Export.image.toCloudStorage.side_effect = lambda **kw: _task(next(ids))
        ee_mock.batch.Export.table.toDrive.side_effect = lambda **kw: _task(next(ids))
        yield ee_mock


def _collection(size):
    collection = mock.MagicMock()
    collection.size.return_value.getInfo.return_value = size
    return collection


def test_export_collection_skips_failing_images(fake_ee, tmp_path):
    names = iter(["img_2019", None, "img_2021"])
    manifest = str(tmp_path / "manifest.csv")

    tasks = export.export_image_collection(
        _collection(3), "aoi", "folder", 30, "EPSG:4326", lambda img: next(names),
        manifest_path=manifest)

    assert len(tasks) == 2
    for task in tasks:
        task.start.assert_called_once()
    prefixes = [c.kwargs["fileNamePrefix"] for c in fake_ee.batch.Export.image.toDrive.call_args_list]
    assert prefixes == ["img_2019", "img_2021"]

    rows = manifest_read(manifest)
    assert [r["description"] for r in rows] == ["img_2019", "img_2021"]
    assert [r["task_id"] for r in rows] == ["TASK0", "TASK1"]
    assert all(r["kind"] == "image" and r["destination"] == "drive" for r in rows)


def test_export_collection_to_cloud(fake_ee):
    tasks = export.export_image_collection(
        _collection(1), "aoi", "exports", 10, "EPSG:4326", lambda img: "s2_2020",
        destination="cloud", bucket="my-bucket", manifest_path=None)
    assert len(tasks) == 1
    kwargs = fake_ee.batch.Export.image.toCloudStorage.call_args.kwargs
    assert kwargs["bucket"] == "my-bucket"
    assert kwargs["fileNamePrefix"] == "exports/s2_2020"
    assert kwargs["maxPixels"] == 1e13


def test_cloud_without_bucket_fails_early(fake_ee, monkeypatch):
    monkeypatch.setattr(export, "CLOUD_BUCKET", None)
    collection = _collection(1)
    with pytest.raises(ValueError, match="bucket"):
        export.export_image_collection(collection, "aoi", "f", 10, "EPSG:4326",
                                       lambda img: "x", destination="cloud")
    collection.size.assert_not_called()


def test_unknown_destination(fake_ee):
    with pytest.raises(ValueError, match="Unsupported export destination"):
        export.image_export_task(mock.MagicMock(), "x", "aoi", 30, "EPSG:4326", destination="ftp")


def test_export_bands_by_year(fake_ee):
    img = fake_ee.Image.return_value
    img.bandNames.return_value.getInfo.return_value = ["NDVI", "EVI"]
    tasks = export.export_bands_by_year(
        _collection(1), "aoi", "f", 30, "EPSG:4326", lambda image, band: f"{band}_2020",
        manifest_path=None)
    assert len(tasks) == 2
    prefixes = [c.kwargs["fileNamePrefix"] for c in fake_ee.batch.Export.image.toDrive.call_args_list]
    assert prefixes == ["NDVI_2020", "EVI_2020"]


def test_rename_reduced_properties():
    collection = mock.MagicMock()
    with mock.patch.object(export, "first_property_names",
                           return_value=["site_id", "NDVI", "EVI", "system:index"]):
        export.rename_reduced_properties(collection, ["site_id"], "mean_30")

    rename = collection.map.call_args.args[0]
    feature = mock.MagicMock()
    rename(feature)
    feature.select.assert_called_once_with(
        ["site_id", "NDVI", "EVI"], ["site_id", "NDVI_mean_30", "EVI_mean_30"])


def test_buffer_zero_keeps_points():
    points = mock.MagicMock()
    out = export._buffer_points(points, "aoi", 0)
    assert out is points.filterBounds.return_value
    points.filterBounds.return_value.map.assert_not_called()


def test_image_to_points_exports_csv(fake_ee, tmp_path):
    reducer = mock.MagicMock()
    reducer.getInfo.return_value = {"type": "Reducer.mean"}
    image = mock.MagicMock()
    manifest = str(tmp_path / "m.csv")
    with mock.patch.object(export, "first_property_names", return_value=["id", "NDVI"]):
        export.image_to_points(30, reducer, mock.MagicMock(), "aoi", image, "EPSG:4326", 10, 4,
                               "points_ndvi", manifest_path=manifest)

    assert image.reduceRegions.call_args.kwargs["tileScale"] == 4
    kwargs = fake_ee.batch.Export.table.toDrive.call_args.kwargs
    assert kwargs["fileFormat"] == "CSV"
    assert kwargs["description"] == "points_ndvi"
    assert manifest_read(manifest)[0]["kind"] == "table"


def test_wait_for_task_until_completed():
    task = mock.MagicMock()
    task.status.side_effect = [{"state": "READY"}, {"state": "RUNNING"}, {"state": "COMPLETED"}]
    assert export.wait_for_task(task, timeout_s=60, poll_interval=0)["state"] == "COMPLETED"
    assert task.status.call_count == 3


def test_wait_for_task_failed():
    task = mock.MagicMock()
    task.status.return_value = {"state": "FAILED", "error_message": "quota"}
    assert export.wait_for_task(task, poll_interval=0)["state"] == "FAILED"


def test_wait_for_task_timeout():
    task = mock.MagicMock()
    task.status.return_value = {"state": "RUNNING"}
    assert export.wait_for_task(task, timeout_s=-1, poll_interval=0) == {"state": "TIMEOUT"}


def test_wait_for_task_survives_status_errors():
    task = mock.MagicMock()
    task.status.side_effect = [RuntimeError("network"), {"state": "CANCELLED"}]
    assert export.wait_for_task(task, timeout_s=60, poll_interval=0)["state"] == "CANCELLED"


def test_image_collection_to_points_keeps_image_properties(fake_ee, tmp_path):
    reducer = mock.MagicMock()
    reducer.getInfo.return_value = {"type": "Reducer.median"}
    xy_points = mock.MagicMock()
    names = [["site"], ["year"], ["site", "year", "NDVI", "system:index"]]
    with mock.patch.object(export, "first_property_names", side_effect=names):
        renamed = export.image_collection_to_points(
            50, reducer, xy_points, "aoi", "collection", "EPSG:4326", 10, 2, "ndvi_points",
            manifest_path=str(tmp_path / "m.csv"))

    fake_ee.ImageCollection.assert_called_once_with("collection")
    collection = fake_ee.ImageCollection.return_value
    buffered = xy_points.filterBounds.return_value.map.return_value
    xy_points.filterBounds.assert_called_once_with("aoi")

    reduce_one = collection.map.call_args.args[0]
    img = mock.MagicMock()
    reduce_one(img)
    kwargs = img.reduceRegions.call_args.kwargs
    assert kwargs["collection"] is buffered
    assert kwargs["reducer"] is reducer
    assert kwargs["tileScale"] == 2
    copy_props = img.reduceRegions.return_value.map.call_args.args[0]
    feature = mock.MagicMock()
    copy_props(feature)
    feature.copyProperties.assert_called_once_with(img)

    fake_ee.FeatureCollection.assert_called_once_with(collection.map.return_value.flatten.return_value)
    reduced = fake_ee.FeatureCollection.return_value
    rename = reduced.map.call_args.args[0]
    row = mock.MagicMock()
    rename(row)
    row.select.assert_called_once_with(["site", "year", "NDVI"], ["site", "year", "NDVI_median_50"])
    assert renamed is reduced.map.return_value
    assert fake_ee.batch.Export.table.toDrive.call_args.kwargs["collection"] is renamed


def test_export_stats_to_csv(fake_ee, tmp_path):
    manifest = str(tmp_path / "m.csv")
    task = export.export_stats_to_csv("stats", "band_stats", manifest_path=manifest)
    kwargs = fake_ee.batch.Export.table.toDrive.call_args.kwargs
    assert kwargs["collection"] == "stats"
    assert kwargs["folder"] == "gee_tables"
    assert kwargs["fileFormat"] == "CSV"
    task.start.assert_called_once()
    assert manifest_read(manifest)[0]["description"] == "band_stats"


def test_export_image_file_name_differs_from_description(fake_ee):
    image = mock.MagicMock()
    export.export_image(image, "aoi", "terrain_metrics_export", file_name="terrain_metrics",
                        manifest_path=None)
    kwargs = fake_ee.batch.Export.image.toDrive.call_args.kwargs
    assert kwargs["description"] == "terrain_metrics_export"
    assert kwargs["fileNamePrefix"] == "terrain_metrics"
    assert kwargs["image"] is image.clip.return_value


def test_start_task_waits_for_completion():
    task = _task("T1")
    task.status.return_value = {"state": "COMPLETED"}
    assert export.start_task(task, "image", "done", "drive", manifest_path=None, wait=True) is task
    task.status.assert_called_once()


def test_start_task_raises_when_export_fails():
    task = _task("T2")
    task.status.return_value = {"state": "FAILED", "error_message": "User memory limit exceeded"}
    with pytest.raises(RuntimeError, match="memory limit"):
        export.start_task(task, "image", "broken", "drive", manifest_path=None, wait=True)


def test_start_task_does_not_poll_by_default():
    task = _task("T3")
    export.start_task(task, "image", "async", "drive", manifest_path=None)
    task.status.assert_not_called()
