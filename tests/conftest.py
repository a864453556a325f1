import pytest

from series_model import TimeSeriesPoint


def make_daily_series(n=10, start_day=1):
    """n consecutive daily points in January 2021 with distinct values per column."""
    out = []
    for i in range(n):
        out.append(TimeSeriesPoint(
            date=f"2021-01-{start_day + i:02d}",
            NDVI=0.10 + 0.01 * i,
            NDWI=-0.20 + 0.02 * i,
            NSMI=0.30 - 0.01 * i,
            NDVI_d1=None if i == 0 else 0.01,
            NDWI_d1=None if i == 0 else 0.02,
            NSMI_d1=None if i == 0 else -0.01,
        ))
    return out


@pytest.fixture
def daily_series():
    return make_daily_series()


@pytest.fixture
def all_on():
    return {"NDVI": True, "NDWI": True, "NSMI": True}


@pytest.fixture
def all_tiers():
    return {"raw": True, "d1": True, "d2": True}
