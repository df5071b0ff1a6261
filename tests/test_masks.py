from unittest import mock

from rsprep import masks


def test_qa60_cloud_and_cirrus_bits_and_scaling():
    image = mock.MagicMock()
    result = masks.mask_s2_clouds(image)

    image.select.assert_called_once_with("QA60")
    qa = image.select.return_value
    assert [c.args[0] for c in qa.bitwiseAnd.call_args_list] == [1 << 10, 1 << 11]
    mask = qa.bitwiseAnd.return_value.eq.return_value.And.return_value
    image.updateMask.assert_called_once_with(mask)
    image.updateMask.return_value.divide.assert_called_once_with(10000)
    assert result is image.updateMask.return_value.divide.return_value


def test_scl_keeps_clear_classes():
    image = mock.MagicMock()
    masks.s2_scl_mask(image)
    scl = image.select.return_value
    image.select.assert_called_once_with("SCL")
    assert [c.args[0] for c in scl.eq.call_args_list] == [4, 5, 6, 7]
    assert scl.eq.return_value.Or.call_count == 3


def test_forest_mask_remaps_types_to_one():
    landcover = mock.MagicMock()
    masks.forest_mask(landcover, [210, 230])
    landcover.remap.assert_called_once_with([210, 230], [1, 1], 0)
    masks.forest_mask(landcover)
    landcover.remap.assert_called_with([210, 220, 230], [1, 1, 1], 0)


def test_image_forest_mask_uses_clamped_landcover_year():
    image = mock.MagicMock()
    with mock.patch.object(masks, "ee") as ee_mock, \
            mock.patch.object(masks, "forest_landcover") as landcover:
        result = masks.image_forest_mask(image, [220])

    image.get.assert_called_once_with("year")
    ee_mock.Number.assert_called_once_with(image.get.return_value)
    ee_mock.Number.return_value.min.assert_called_once_with(2019)
    year = ee_mock.Number.return_value.min.return_value.int.return_value
    ee_mock.Date.fromYMD.assert_called_once_with(year, 1, 1)
    start = ee_mock.Date.fromYMD.return_value
    start.advance.assert_called_once_with(1, "year")
    landcover.assert_called_once_with(start, start.advance.return_value, image.geometry.return_value)

    selected = ee_mock.Image.return_value.select
    selected.assert_called_once_with("forest_lc_class")
    selected.return_value.remap.assert_called_once_with([220], [1], 0)
    assert result is selected.return_value.remap.return_value


def test_binary_mask_always_applies_forest_mask():
    image = mock.MagicMock()
    with mock.patch.object(masks, "image_forest_mask") as forest:
        result = masks.create_binary_mask(image, "NDRS_mixed", 0.4)

    forest.assert_called_once_with(image, None)
    band = image.select.return_value
    image.select.assert_called_once_with("NDRS_mixed")
    band.updateMask.assert_called_once_with(forest.return_value)
    band.updateMask.return_value.unmask.assert_called_once_with(0)
    stressed = band.updateMask.return_value.unmask.return_value.gt
    stressed.assert_called_once_with(0.4)
    stressed.return_value.rename.assert_called_once_with("NDRS_stressed")
    image.addBands.assert_called_once_with(stressed.return_value.rename.return_value)
    assert result is image.addBands.return_value


def test_has_bands_checks_missing_list():
    image = mock.MagicMock()
    with mock.patch.object(masks, "ee") as ee_mock:
        masks.has_bands(image, ["B8A"])
    ee_mock.List.assert_called_once_with(["B8A"])
    ee_mock.List.return_value.removeAll.assert_called_once_with(image.bandNames.return_value)
    ee_mock.List.return_value.removeAll.return_value.size.return_value.eq.assert_called_once_with(0)
