from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

from logger import get_logger
from station import Station, by_name

log = get_logger(__name__)

# (axis value, stations sharing that value), ascending by axis value
AxisView = Iterable[Tuple[float, Sequence[Station]]]


class PointBucket:
    __slots__ = ("lat", "lon", "stations")

    def __init__(self, lat, lon, stations):
        # stations: every station at exactly (lat, lon), sorted by name
        self.lat = lat
        self.lon = lon
        self.stations = stations

    def key(self, axis):
        # order along the split axis, ties resolved by the other axis
        if axis == 0:
            return (self.lat, self.lon)
        return (self.lon, self.lat)

    def __len__(self):
        return len(self.stations)

    def __repr__(self):
        return f"PointBucket({self.lat}, {self.lon}, {len(self.stations)} stations)"


class BucketExtraction(NamedTuple):
    latitude_sorted: List[PointBucket]
    longitude_sorted: List[PointBucket]
    warning: Optional[str] = None


def bucketize(latitude_view: AxisView, longitude_view: AxisView) -> BucketExtraction:
    """
    Collapse stations sharing an exact coordinate into one bucket.

    Buckets are built from the latitude view; the longitude view is only
    counted to cross-check that both views cover the same stations. Both
    returned lists hold the same bucket objects.
    """
    # 1) Group every station of the latitude view by its exact coordinate pair
    grouped: Dict[Tuple[float, float], List[Station]] = {}
    for _, stations in latitude_view:
        for station in stations:
            grouped.setdefault((station.latitude, station.longitude), []).append(station)

    # 2) Cross-check station counts against the longitude view
    from_latitude = sum(len(stations) for stations in grouped.values())
    from_longitude = sum(len(stations) for _, stations in longitude_view)
    warning = None
    if from_latitude != from_longitude:
        warning = (
            "axis views contain different numbers of stations "
            f"(latitude: {from_latitude}, longitude: {from_longitude})"
        )
        log.warning(warning)

    # 3) One bucket per coordinate, stations ordered by name
    buckets = [
        PointBucket(lat, lon, tuple(sorted(stations, key=by_name)))
        for (lat, lon), stations in grouped.items()
    ]

    latitude_sorted = sorted(buckets, key=lambda b: b.key(0))
    longitude_sorted = sorted(buckets, key=lambda b: b.key(1))
    return BucketExtraction(latitude_sorted, longitude_sorted, warning)
