import math

EARTH_RADIUS_KM = 6371.0

# 1 degree of latitude is about 111 km everywhere
KM_PER_DEGREE = 111.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in kilometers."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)
    a = math.sin(delta_phi / 2) ** 2 + \
        math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    # rounding (or latitudes outside [-90, 90]) can push a out of [0, 1]
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def plane_distance(axis: int, split_lat: float, split_lon: float,
                   query_lat: float, query_lon: float) -> float:
    """
    Approximate distance (km) from the query point to a node's splitting line.

    Only used to decide whether the far side of a split can hold something
    closer; longitude degrees shrink with cos(query latitude).
    """
    if axis == 0:
        return abs(split_lat - query_lat) * KM_PER_DEGREE
    return abs(split_lon - query_lon) * KM_PER_DEGREE * math.cos(math.radians(query_lat))
