"""
Runtime configuration for the station map.

Defaults can be overridden with environment variables:
- STATIONS_CSV
- STATIONS_HOST
- STATIONS_PORT
- STATIONS_DEBUG
- STATIONS_DEFAULT_K
"""

import os
from dataclasses import dataclass, field
from typing import List


@dataclass
class MapConfig:
    csv_path: str = "train_stations_europe.csv"
    # Lisbon
    center: List[float] = field(default_factory=lambda: [38.7223, -9.1393])
    zoom: int = 6
    min_marker_zoom: int = 9
    default_k: int = 10
    host: str = "127.0.0.1"
    port: int = 8050
    debug: bool = False

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/"

    @classmethod
    def from_environment(cls) -> "MapConfig":
        config = cls()

        if os.environ.get("STATIONS_CSV"):
            config.csv_path = os.environ["STATIONS_CSV"]

        if os.environ.get("STATIONS_HOST"):
            config.host = os.environ["STATIONS_HOST"]

        if os.environ.get("STATIONS_PORT"):
            try:
                config.port = int(os.environ["STATIONS_PORT"])
            except ValueError:
                pass

        if os.environ.get("STATIONS_DEBUG"):
            config.debug = os.environ["STATIONS_DEBUG"].lower() == "true"

        if os.environ.get("STATIONS_DEFAULT_K"):
            try:
                config.default_k = int(os.environ["STATIONS_DEFAULT_K"])
            except ValueError:
                pass

        return config
