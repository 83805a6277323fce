"""
Station CSV loading and attribute lookups.

Produces the two sorted axis views consumed by the 2D-tree and answers the
simple catalogue queries (time zone groups, latitude/longitude bands) with
pandas.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Tuple

import pandas as pd

from KDTree import KDTree
from logger import get_logger
from station import Station

log = get_logger(__name__)

COLUMN_ALIASES = {
    "country": ("country",),
    "name": ("station",),
    "latitude": ("latitude", "lat"),
    "longitude": ("longitude", "lon"),
    "timezone": ("time_zone", "tz"),
    "timezone_group": ("time_zone_group", "tzgroup"),
    "is_city": ("is_city", "iscity"),
    "is_main_station": ("is_main_station", "ismain", "is_main"),
    "is_airport": ("is_airport", "airport", "isairport"),
}

MANDATORY_COLUMNS = ("country", "name", "latitude", "longitude")

FRAME_COLUMNS = [
    "name", "latitude", "longitude", "country", "timezone_group",
    "is_city", "is_main_station", "is_airport", "station",
]


class StationLoadError(Exception):
    """The station file cannot be read or lacks mandatory columns."""


@dataclass
class LoadReport:
    stations: List[Station] = field(default_factory=list)
    total_rows: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def valid(self) -> int:
        return len(self.stations)

    @property
    def invalid(self) -> int:
        return self.total_rows - self.valid


def _detect_delimiter(path):
    with open(path, "r", encoding="utf-8") as f:
        header = f.readline()
    return ";" if ";" in header else ","


def _resolve_columns(columns) -> Dict[str, str]:
    lowered = {str(col).strip().lower(): col for col in columns}
    resolved = {}
    for field_name, aliases in COLUMN_ALIASES.items():
        for alias in aliases:
            if alias in lowered:
                resolved[field_name] = lowered[alias]
                break
    return resolved


def _clean_timezone(value: str) -> str:
    # time zones sometimes come wrapped as a tuple literal: ('Europe/Lisbon',)
    value = value.strip()
    if value.startswith("('"):
        value = value[2:]
    if value.endswith("',)"):
        value = value[:-3]
    return value.strip("'").strip()


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "t", "1")


def load_stations(path) -> LoadReport:
    """Read a station CSV, skipping (and recording) rows that cannot be indexed."""
    try:
        delimiter = _detect_delimiter(path)
        df = pd.read_csv(path, sep=delimiter, dtype=str, keep_default_na=False,
                         skipinitialspace=True, skip_blank_lines=False)
    except pd.errors.EmptyDataError:
        return LoadReport()
    except (OSError, UnicodeDecodeError, pd.errors.ParserError) as e:
        raise StationLoadError(f"cannot read {path}: {e}") from e
    # short rows and blank lines leave NaN in the trailing columns
    df = df.fillna("")
    # blank lines are kept so the index tracks file lines; drop them here
    blank = (df.apply(lambda column: column.str.strip()) == "").all(axis=1)
    df = df[~blank]

    columns = _resolve_columns(df.columns)
    missing = [name for name in MANDATORY_COLUMNS if name not in columns]
    if missing:
        raise StationLoadError(f"missing mandatory columns in header: {', '.join(missing)}")

    def get(row, field_name):
        column = columns.get(field_name)
        return "" if column is None else str(row[column]).strip()

    report = LoadReport(total_rows=len(df))
    for idx, row in df.iterrows():
        line_no = idx + 2  # header is line 1, blank lines included

        name = get(row, "name")
        country = get(row, "country")
        lat_str = get(row, "latitude")
        lon_str = get(row, "longitude")
        if not name or not country or not lat_str or not lon_str:
            report.errors.append(f"Line {line_no}: mandatory field empty")
            log.debug("Ignoring line %d: mandatory field empty", line_no)
            continue

        try:
            lat = float(lat_str)
            lon = float(lon_str)
        except ValueError:
            report.errors.append(f"Line {line_no}: bad lat/lon")
            log.debug("Ignoring line %d: bad lat/lon", line_no)
            continue

        station = Station(
            name=name,
            latitude=lat,
            longitude=lon,
            country=country,
            timezone=_clean_timezone(get(row, "timezone")),
            timezone_group=get(row, "timezone_group"),
            is_city=_parse_bool(get(row, "is_city")),
            is_main_station=_parse_bool(get(row, "is_main_station")),
            is_airport=_parse_bool(get(row, "is_airport")),
        )
        if not station.is_valid():
            report.errors.append(f"Line {line_no}: invalid data - {name}")
            log.debug("Ignoring line %d: not valid according to model", line_no)
            continue

        report.stations.append(station)

    log.info("Loaded %d of %d stations from %s", report.valid, report.total_rows, path)
    return report


def stations_frame(stations: Iterable[Station]) -> pd.DataFrame:
    records = [
        {
            "name": s.name,
            "latitude": s.latitude,
            "longitude": s.longitude,
            "country": s.country,
            "timezone_group": s.timezone_group,
            "is_city": s.is_city,
            "is_main_station": s.is_main_station,
            "is_airport": s.is_airport,
            "station": s,
        }
        for s in stations
    ]
    return pd.DataFrame(records, columns=FRAME_COLUMNS)


def _axis_view(frame: pd.DataFrame, column: str) -> List[Tuple[float, List[Station]]]:
    ordered = frame.sort_values([column, "name"], kind="mergesort")
    return [
        (float(value), group["station"].tolist())
        for value, group in ordered.groupby(column, sort=True)
    ]


def axis_views(stations: Sequence[Station]):
    """(latitude view, longitude view): each a sorted list of (value, stations at that value)."""
    frame = stations if isinstance(stations, pd.DataFrame) else stations_frame(stations)
    return _axis_view(frame, "latitude"), _axis_view(frame, "longitude")


class StationCatalog:

    def __init__(self, stations: Sequence[Station]):
        self.frame = stations_frame(stations)

    def __len__(self):
        return len(self.frame)

    @staticmethod
    def _stations(frame) -> List[Station]:
        return frame["station"].tolist()

    def by_timezone_group(self, timezone_group: str) -> List[Station]:
        matches = self.frame[self.frame["timezone_group"] == timezone_group]
        return self._stations(matches.sort_values("name", kind="mergesort"))

    def by_timezone_window(self, timezone_groups: Iterable[str]) -> List[Station]:
        matches = self.frame[self.frame["timezone_group"].isin(list(timezone_groups))]
        ordered = matches.sort_values(["timezone_group", "country", "name"], kind="mergesort")
        return self._stations(ordered)

    def by_latitude_range(self, lat_min: float, lat_max: float) -> List[Station]:
        matches = self.frame[self.frame["latitude"].between(lat_min, lat_max)]
        return self._stations(matches.sort_values(["latitude", "name"], kind="mergesort"))

    def by_longitude_range(self, lon_min: float, lon_max: float) -> List[Station]:
        matches = self.frame[self.frame["longitude"].between(lon_min, lon_max)]
        return self._stations(matches.sort_values(["longitude", "name"], kind="mergesort"))

    def index_sizes(self) -> Dict[str, int]:
        return {
            "latitudes": int(self.frame["latitude"].nunique()),
            "longitudes": int(self.frame["longitude"].nunique()),
            "timezone_country": len(self.frame.drop_duplicates(["timezone_group", "country"])),
        }

    def axis_views(self):
        return axis_views(self.frame)

    def build_spatial_index(self) -> KDTree:
        return KDTree.from_axis_views(*self.axis_views())
