import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from KDTree import KDTree
from station import Station, StationDistance, by_name


@dataclass
class DistanceGroup:
    """Stations whose distance rounds to the same hundredth of a kilometer."""

    distance_km: float
    stations: List[Station] = field(default_factory=list)

    def __str__(self):
        return f"{self.distance_km:.2f} km ({len(self.stations)} stations)"


class DensitySummary:

    def __init__(self, stations: Sequence[Station], radius_km: float,
                 center_lat: float, center_lon: float):
        self.radius_km = radius_km
        self.center_lat = center_lat
        self.center_lon = center_lon
        self.total_stations = len(stations)
        self.city_stations = sum(1 for s in stations if s.is_city)
        self.non_city_stations = self.total_stations - self.city_stations
        counts = Counter(s.country for s in stations)
        self.count_by_country: Dict[str, int] = dict(sorted(counts.items()))

    def top_countries(self, n: int) -> List[Tuple[str, int]]:
        # stable sort keeps country-code order between equal counts
        ranked = sorted(self.count_by_country.items(), key=lambda item: item[1], reverse=True)
        return ranked[:max(n, 0)]

    def _share(self, count):
        return 100.0 * count / self.total_stations if self.total_stations else 0.0

    def compact(self) -> str:
        return (
            f"Total: {self.total_stations} stations | City: {self.city_stations} | "
            f"Non-city: {self.non_city_stations} | Countries: {len(self.count_by_country)}"
        )

    def __str__(self):
        lines = [
            "=== Density Summary ===",
            f"Search radius: {self.radius_km:.1f} km around ({self.center_lat:.4f}, {self.center_lon:.4f})",
            f"Total stations: {self.total_stations}",
            f"  City stations: {self.city_stations} ({self._share(self.city_stations):.1f}%)",
            f"  Non-city stations: {self.non_city_stations} ({self._share(self.non_city_stations):.1f}%)",
            "",
            "Stations by country:",
        ]
        for country, count in self.count_by_country.items():
            lines.append(f"  {country}: {count} ({self._share(count):.1f}%)")
        return "\n".join(lines)


class RadiusSearchResult:
    """
    Circular search result grouped by distance.

    Groups are ordered by distance rounded to 2 decimals, ascending; stations
    inside a group are ordered by name, descending.
    """

    def __init__(self, matches: Sequence[StationDistance], radius_km: float,
                 center_lat: float, center_lon: float):
        self.radius_km = radius_km
        self.center_lat = center_lat
        self.center_lon = center_lon

        groups: Dict[float, DistanceGroup] = {}
        for match in matches:
            # halves round up
            rounded = math.floor(match.distance_km * 100 + 0.5) / 100
            groups.setdefault(rounded, DistanceGroup(rounded)).stations.append(match.station)
        for group in groups.values():
            group.stations.sort(key=by_name, reverse=True)
        self.groups: List[DistanceGroup] = [groups[d] for d in sorted(groups)]

        self.summary = DensitySummary([m.station for m in matches], radius_km,
                                      center_lat, center_lon)

    def all_stations(self) -> List[Station]:
        return [station for group in self.groups for station in group.stations]

    @property
    def total_stations(self) -> int:
        return self.summary.total_stations

    def __str__(self):
        return (
            f"Radius Search: {self.radius_km:.1f} km around ({self.center_lat:.4f}, {self.center_lon:.4f})\n"
            f"Stations found: {self.total_stations}\n"
            f"Unique distance groups: {len(self.groups)}"
        )


def radius_search(tree: KDTree, lat: float, lon: float, radius_km: float) -> RadiusSearchResult:
    matches = tree.circular_range_query(lat, lon, radius_km)
    return RadiusSearchResult(matches, radius_km, lat, lon)
