import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin

UTM_CRS = "EPSG:32612"


def write_tif(path, data, left=500000.0, top=6000000.0, res=10.0, crs=UTM_CRS, nodata=None,
              descriptions=None):
    """Write a (bands, rows, cols) or (rows, cols) array as a GeoTIFF."""
    data = np.asarray(data)
    if data.ndim == 2:
        data = data[np.newaxis, :, :]
    profile = {
        "driver": "GTiff",
        "height": data.shape[1],
        "width": data.shape[2],
        "count": data.shape[0],
        "dtype": data.dtype.name,
        "crs": crs,
        "transform": from_origin(left, top, res, res),
    }
    if nodata is not None:
        profile["nodata"] = nodata
    with rasterio.open(path, "w", **profile) as dst:
        dst.write(data)
        for i, desc in enumerate(descriptions or [], start=1):
            dst.set_band_description(i, desc)
    return str(path)


@pytest.fixture
def tif_writer(tmp_path):
    def _write(name, data, **kwargs):
        return write_tif(tmp_path / name, data, **kwargs)
    return _write
