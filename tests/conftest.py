"""
Pytest configuration and fixtures for the station index tests.
"""

import random
import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from KDTree import KDTree  # noqa: E402
from station import Station  # noqa: E402
from station_loader import axis_views  # noqa: E402

TIMEZONE_GROUPS = ("CET", "WET/GMT", "EET")
COUNTRIES = ("PT", "ES", "FR", "DE")


def make_station(name, lat, lon, timezone_group="CET", country="PT",
                 is_city=False, is_main_station=False, is_airport=False):
    return Station(
        name=name,
        latitude=lat,
        longitude=lon,
        country=country,
        timezone=timezone_group,
        timezone_group=timezone_group,
        is_city=is_city,
        is_main_station=is_main_station,
        is_airport=is_airport,
    )


def build_tree(stations):
    return KDTree.from_axis_views(*axis_views(stations))


@pytest.fixture
def five_stations():
    coords = [(40.0, -74.0), (40.1, -74.1), (40.2, -74.2), (40.3, -74.3), (40.4, -74.4)]
    return [
        make_station(f"S{i + 1}", lat, lon, "America/New_York", "US")
        for i, (lat, lon) in enumerate(coords)
    ]


@pytest.fixture
def random_stations():
    """500 stations scattered over western Europe, attributes cycled deterministically."""
    rng = random.Random(42)
    stations = []
    for i in range(500):
        stations.append(make_station(
            f"Station {i:04d}",
            rng.uniform(36.0, 52.0),
            rng.uniform(-10.0, 25.0),
            timezone_group=TIMEZONE_GROUPS[i % 3],
            country=COUNTRIES[i % 4],
            is_city=i % 2 == 0,
            is_main_station=i % 5 == 0,
            is_airport=i % 7 == 0,
        ))
    return stations


@pytest.fixture
def query_points():
    rng = random.Random(7)
    return [(rng.uniform(38.0, 50.0), rng.uniform(-8.0, 23.0)) for _ in range(25)]
