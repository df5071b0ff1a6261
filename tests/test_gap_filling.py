import numpy as np
import rasterio

from rsprep.gap_filling import fill_raster_gaps, idw_fill


def test_constant_field_is_filled_with_constant():
    arr = np.full((10, 10), 7.0, dtype=np.float32)
    arr[4:6, 4:6] = np.nan
    out = idw_fill(arr)
    np.testing.assert_allclose(out, 7.0)


def test_nodata_value_is_treated_as_gap():
    arr = np.array([[1.0, 1.0, 1.0], [1.0, -9999.0, 3.0], [1.0, 1.0, 1.0]])
    out = idw_fill(arr, nodata=-9999.0)
    assert 1.0 < out[1, 1] < 3.0
    assert out[1, 2] == 3.0
    # input untouched
    assert arr[1, 1] == -9999.0


def test_nearer_pixels_weigh_more():
    arr = np.array([[0.0, np.nan, np.nan, 10.0]])
    out = idw_fill(arr, range_px=5)
    assert out[0, 1] < 5.0 < out[0, 2]
    np.testing.assert_allclose(out[0, 1] + out[0, 2], 10.0, rtol=1e-6)


def test_no_gaps_returns_copy():
    arr = np.arange(6, dtype=np.int16).reshape(2, 3)
    out = idw_fill(arr)
    assert out.dtype == np.float32
    np.testing.assert_array_equal(out, arr)


def test_out_of_range_falls_back_to_sample_mean():
    arr = np.full((1, 50), np.nan)
    arr[0, 0] = 2.0
    arr[0, 1] = 4.0
    out = idw_fill(arr, range_px=3)
    np.testing.assert_allclose(out[0, 40], 3.0)


def test_all_invalid_is_left_alone():
    out = idw_fill(np.full((2, 2), np.nan))
    assert np.all(np.isnan(out))


def test_sampling_is_reproducible():
    rng = np.random.default_rng(1)
    arr = rng.random((30, 30))
    arr[10:20, 10:20] = np.nan
    a = idw_fill(arr, num_pixels=50, seed=3)
    b = idw_fill(arr, num_pixels=50, seed=3)
    np.testing.assert_array_equal(a, b)
    assert np.all(np.isfinite(a))


def test_fill_raster_gaps(tif_writer, tmp_path):
    data = np.full((2, 4, 4), 5.0, dtype=np.float32)
    data[0, 1, 1] = -1
    data[1, 2, 2] = -1
    src = tif_writer("gappy.tif", data, nodata=-1)
    out = fill_raster_gaps(src, str(tmp_path / "filled.tif"))
    with rasterio.open(out) as ds:
        assert ds.count == 2
        np.testing.assert_allclose(ds.read(), 5.0)


def test_earth_engine_idw_per_band():
    from unittest import mock

    from rsprep import gap_filling

    image = mock.MagicMock(name="image")
    with mock.patch.object(gap_filling, "ee") as ee_mock:
        result = gap_filling.apply_idw_interpolation(image, "aoi", 5000, 2, 1000)
        band_names = image.bandNames.return_value
        interpolate = band_names.map.call_args.args[0]
        interpolate("NDVI")

    ee_mock.String.assert_called_once_with("NDVI")
    name = ee_mock.String.return_value
    sample = image.select.return_value.addBands.return_value.sample
    image.select.assert_called_once_with([name])
    sample.assert_called_once_with(region="aoi", numPixels=1000, scale=30, projection="EPSG:4326")
    samples = sample.return_value.map.return_value
    kwargs = samples.inverseDistance.call_args.kwargs
    assert kwargs["range"] == 5000
    assert kwargs["gamma"] == 2
    assert kwargs["propertyName"] is name
    stats = samples.reduceColumns.return_value
    assert [c.args[0] for c in stats.get.call_args_list] == ["mean", "stdDev"]
    samples.inverseDistance.return_value.rename.assert_called_once_with([name])

    stacked = ee_mock.ImageCollection.fromImages
    stacked.assert_called_once_with(band_names.map.return_value)
    stacked.return_value.toBands.return_value.rename.assert_called_once_with(band_names)
    assert result is stacked.return_value.toBands.return_value.rename.return_value.clip.return_value


def test_fill_gaps_keeps_known_pixels():
    from unittest import mock

    from rsprep import gap_filling

    image = mock.MagicMock()
    with mock.patch.object(gap_filling, "apply_idw_interpolation") as idw:
        result = gap_filling.fill_gaps(image, "aoi", 3000, 1.5, 500)
    idw.assert_called_once_with(image, "aoi", 3000, 1.5, 500)
    image.unmask.assert_called_once_with(idw.return_value)
    image.unmask.return_value.clip.assert_called_once_with("aoi")
    assert result is image.unmask.return_value.clip.return_value
