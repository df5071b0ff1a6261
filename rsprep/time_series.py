"""
Date lists and Sentinel-2 index time series.
"""
import calendar
import logging
from datetime import date, datetime, timedelta
from typing import List, Union
import ee

from .config import INTERVAL_TYPES, TIME_SERIES_STATISTICS
from .ee_collections import sentinel2_collection
from .indices import INDEX_FUNCTIONS, add_indices
from .masks import mask_s2_clouds

DateLike = Union[str, date, datetime]


def _to_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(value).date()


def _check_unit(unit: str):
    if unit not in INTERVAL_TYPES:
        raise ValueError(f"Unsupported interval type '{unit}'. Use one of {INTERVAL_TYPES}")


def _add_months(d: date, months: int) -> date:
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def advance_date(value: DateLike, n: int, unit: str) -> date:
    """Advance a date by n days/weeks/months/years (month ends are clamped)."""
    _check_unit(unit)
    d = _to_date(value)
    if unit == "days":
        return d + timedelta(days=n)
    if unit == "weeks":
        return d + timedelta(weeks=n)
    if unit == "months":
        return _add_months(d, n)
    return _add_months(d, 12 * n)


def date_difference(end: DateLike, start: DateLike, unit: str) -> float:
    """Fractional number of units from start to end."""
    _check_unit(unit)
    s, e = _to_date(start), _to_date(end)
    if unit == "days":
        return float((e - s).days)
    if unit == "weeks":
        return (e - s).days / 7.0
    months = (e.year - s.year) * 12 + (e.month - s.month)
    months += (e.day - s.day) / calendar.monthrange(s.year, s.month)[1]
    if unit == "months":
        return months
    return months / 12.0


def create_date_list(start: DateLike, end: DateLike, interval: int = 1,
                     interval_type: str = "years") -> List[date]:
    """
    Start dates of a time series: start advanced by 0, interval, 2*interval, ...
    units up to the rounded number of units between start and end.
    """
    if interval < 1:
        raise ValueError("interval must be at least 1")
    n_intervals = int(round(date_difference(end, start, interval_type)))
    return [advance_date(start, k, interval_type) for k in range(0, n_intervals + 1, interval)]


def s2_time_series(date_list: List[DateLike], n: int, unit: str, aoi, indices: List[str],
                   statistic: str = "mean"):
    """
    Sentinel-2 index composites, one per start date.

    For each start date the images in [start, start + n unit) over the AOI are
    cloud masked, the requested indices computed, and the index bands reduced
    with statistic. Each composite carries year, start_date, end_date and
    system:time_start properties.
    """
    _check_unit(unit)
    if statistic not in TIME_SERIES_STATISTICS:
        raise ValueError(f"Unsupported statistic '{statistic}'. Use one of {TIME_SERIES_STATISTICS}")
    unknown = [i for i in indices if i not in INDEX_FUNCTIONS]
    if unknown:
        raise ValueError(f"Unknown spectral indices: {unknown}")

    images = []
    for value in date_list:
        start = _to_date(value)
        end = advance_date(start, n, unit)
        col = (sentinel2_collection(start.isoformat(), end.isoformat(), aoi)
               .map(mask_s2_clouds)
               .map(lambda img: add_indices(img, indices))
               .select(indices))
        composite = getattr(col, statistic)().clip(aoi).set({
            "year": start.year,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "system:time_start": ee.Date(start.isoformat()).millis(),
        })
        images.append(composite)
        logging.debug(f"S2 {statistic} composite {start} to {end}: {indices}")

    return ee.ImageCollection.fromImages(images)
