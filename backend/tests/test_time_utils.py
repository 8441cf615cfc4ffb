from datetime import datetime

import pytest

from counterpos.time_utils import parse_iso_datetime, parse_range_bound, to_utc_z


def test_offsets_normalized_to_utc():
    assert parse_iso_datetime("2024-05-01T12:00:00+02:00") == datetime(2024, 5, 1, 10, 0)
    assert parse_iso_datetime("2024-05-01T12:00:00Z") == datetime(2024, 5, 1, 12, 0)
    assert parse_iso_datetime("  ") is None


def test_bad_datetime_names_field():
    with pytest.raises(ValueError, match="from"):
        parse_iso_datetime("soon", "from")


def test_date_only_bounds_cover_whole_day():
    assert parse_range_bound("2024-05-01", "from") == datetime(2024, 5, 1)
    assert parse_range_bound("2024-05-01", "to", end=True) == datetime(2024, 5, 1, 23, 59, 59, 999999)
    assert parse_range_bound("2024-05-01T08:30", "to", end=True) == datetime(2024, 5, 1, 8, 30)
    assert parse_range_bound(None, "to") is None


def test_serialized_with_z_suffix():
    assert to_utc_z(datetime(2024, 5, 1, 10, 0, 0, 500)) == "2024-05-01T10:00:00Z"
    assert to_utc_z(None) is None
