from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest
from standbook.utils.time import local_date, resolve_zone, to_utc_naive, utc_naive_to_aware


def test_to_utc_naive_converts_offset() -> None:
    chicago = datetime(2024, 11, 20, 5, 0, tzinfo=ZoneInfo("America/Chicago"))
    assert to_utc_naive(chicago) == datetime(2024, 11, 20, 11, 0)


def test_to_utc_naive_rejects_naive() -> None:
    with pytest.raises(ValueError):
        to_utc_naive(datetime(2024, 11, 20, 5, 0))


def test_utc_naive_to_aware() -> None:
    assert utc_naive_to_aware(datetime(2024, 11, 20, 11, 0)) == datetime(2024, 11, 20, 11, 0, tzinfo=timezone.utc)


def test_local_date_depends_on_zone() -> None:
    instant = datetime(2024, 11, 24, 3, 0, tzinfo=timezone.utc)
    assert local_date(instant, ZoneInfo("America/Chicago")) == date(2024, 11, 23)
    assert local_date(instant, timezone.utc) == date(2024, 11, 24)


def test_resolve_zone_falls_back() -> None:
    assert resolve_zone("America/Denver", "UTC") == ZoneInfo("America/Denver")
    assert resolve_zone(None, "America/Chicago") == ZoneInfo("America/Chicago")
    assert resolve_zone("Not/AZone", "America/Chicago") == ZoneInfo("America/Chicago")
    assert resolve_zone(None, "") == timezone.utc
