from dataclasses import dataclass
from typing import NamedTuple, Optional


@dataclass(frozen=True)
class Station:
    name: str
    latitude: float
    longitude: float
    country: str
    timezone: str = ""
    timezone_group: str = ""
    is_city: bool = False
    is_main_station: bool = False
    is_airport: bool = False

    def is_valid(self) -> bool:
        if not self.name or not self.name.strip():
            return False
        if not self.country or not self.country.strip():
            return False
        if not self.timezone_group or not self.timezone_group.strip():
            return False
        if not (-90.0 <= self.latitude <= 90.0):
            return False
        if not (-180.0 <= self.longitude <= 180.0):
            return False
        return True

    @property
    def point(self):
        return (self.latitude, self.longitude)

    def __str__(self):
        return (
            f"{self.name} ({self.latitude:.6f}, {self.longitude:.6f}) "
            f"{self.country} {self.timezone_group}"
        )


class StationDistance(NamedTuple):
    station: Station
    distance_km: float

    def __str__(self):
        return f"{self.station.name} ({self.distance_km:.2f} km)"


@dataclass(frozen=True)
class StationFilter:
    """
    Conjunction of optional station attributes.

    A field left as None imposes no constraint; every field that is set must
    match for a station to pass.
    """

    timezone_group: Optional[str] = None
    country: Optional[str] = None
    main_station: Optional[bool] = None
    city: Optional[bool] = None
    airport: Optional[bool] = None

    def matches(self, station: Station) -> bool:
        if self.timezone_group is not None and station.timezone_group != self.timezone_group:
            return False
        if self.country is not None and station.country != self.country:
            return False
        if self.main_station is not None and station.is_main_station != self.main_station:
            return False
        if self.city is not None and station.is_city != self.city:
            return False
        if self.airport is not None and station.is_airport != self.airport:
            return False
        return True

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (self.timezone_group, self.country, self.main_station,
                          self.city, self.airport)
        )

    def __str__(self):
        filters = []
        if self.timezone_group is not None:
            filters.append(f"timezone={self.timezone_group}")
        if self.country is not None:
            filters.append(f"country={self.country}")
        if self.main_station is not None:
            filters.append(f"mainStation={self.main_station}")
        if self.city is not None:
            filters.append(f"city={self.city}")
        if self.airport is not None:
            filters.append(f"airport={self.airport}")
        return ", ".join(filters) if filters else "No filters"


def by_name(station: Station):
    return station.name


def by_distance(result: StationDistance):
    return result.distance_km
