import heapq
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from buckets import AxisView, PointBucket, bucketize
from geo import haversine_distance, plane_distance
from logger import get_logger
from station import Station, StationDistance, StationFilter, by_distance, by_name

log = get_logger(__name__)


class KDNode:
    __slots__ = ("axis", "lat", "lon", "stations", "left", "right")

    def __init__(self, axis, bucket):
        # axis: split dimension (0 = latitude, 1 = longitude)
        # stations: the median bucket, sorted by name
        # left/right: child positions in the tree's node list, or None
        self.axis = axis
        self.lat = bucket.lat
        self.lon = bucket.lon
        self.stations = bucket.stations
        self.left = None
        self.right = None

    def split_value(self):
        return self.lat if self.axis == 0 else self.lon

    def __repr__(self):
        return f"KDNode(axis={self.axis}, lat={self.lat}, lon={self.lon}, stations={len(self.stations)})"


@dataclass(frozen=True)
class TreeStats:
    size: int
    height: int
    bucket_distribution: Dict[int, int] = field(default_factory=dict)

    def __str__(self):
        return (
            f"Size: {self.size}\n"
            f"Height: {self.height}\n"
            f"Bucket Distribution: {self.bucket_distribution}"
        )


def _partition(buckets, axis, median_key):
    # keeps the incoming order, so both halves stay sorted
    left = []
    right = []
    for bucket in buckets:
        key = bucket.key(axis)
        if key < median_key:
            left.append(bucket)
        elif key > median_key:
            right.append(bucket)
        # equal on both axes: the median bucket itself
    return left, right


class KDTree:
    """
    Balanced 2D-tree over coordinate buckets.

    Every node holds all stations sharing one exact (lat, lon) pair, so the
    node count is the number of distinct coordinates. Nodes are stored in a
    list and reference their children by position; the tree is never modified
    after construction and can be queried from several threads at once.
    """

    def __init__(self, latitude_sorted: List[PointBucket], longitude_sorted: List[PointBucket],
                 warning: Optional[str] = None):
        self.warning = warning
        nodes: List[KDNode] = []
        self._root = self._build(latitude_sorted, longitude_sorted, nodes)
        self._nodes = tuple(nodes)
        log.info("Built 2D-tree: %d nodes, height %d", self.size(), self.height())

    @classmethod
    def from_axis_views(cls, latitude_view: AxisView, longitude_view: AxisView) -> "KDTree":
        extraction = bucketize(latitude_view, longitude_view)
        return cls(extraction.latitude_sorted, extraction.longitude_sorted, extraction.warning)

    @staticmethod
    def _build(latitude_sorted, longitude_sorted, nodes):
        if not latitude_sorted:
            return None

        # (lat-sorted buckets, lon-sorted buckets, depth, parent position, is left child)
        pending = [(latitude_sorted, longitude_sorted, 0, None, False)]
        while pending:
            lat_sorted, lon_sorted, depth, parent, is_left = pending.pop()

            # 1) Alternate the split axis with depth
            axis = depth % 2

            # 2) Lower median of the view sorted along that axis
            current = lat_sorted if axis == 0 else lon_sorted
            median = current[len(current) // 2]

            position = len(nodes)
            nodes.append(KDNode(axis, median))
            if parent is not None:
                if is_left:
                    nodes[parent].left = position
                else:
                    nodes[parent].right = position

            # 3) Split both views around the median, no re-sorting needed
            median_key = median.key(axis)
            lat_left, lat_right = _partition(lat_sorted, axis, median_key)
            lon_left, lon_right = _partition(lon_sorted, axis, median_key)

            # 4) Left subtree is built first
            if lat_right:
                pending.append((lat_right, lon_right, depth + 1, position, False))
            if lat_left:
                pending.append((lat_left, lon_left, depth + 1, position, True))

        return 0

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    @property
    def root(self) -> Optional[KDNode]:
        return None if self._root is None else self._nodes[self._root]

    def left(self, node: KDNode) -> Optional[KDNode]:
        return None if node.left is None else self._nodes[node.left]

    def right(self, node: KDNode) -> Optional[KDNode]:
        return None if node.right is None else self._nodes[node.right]

    def __iter__(self):
        return iter(self._nodes)

    def __len__(self):
        return len(self._nodes)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def range_query(self, lat_min: float, lat_max: float,
                    lon_min: float, lon_max: float) -> List[Station]:
        """Stations inside the closed rectangle, sorted by name."""
        found: List[Station] = []
        if self._root is None:
            return found

        pending = [self._root]
        while pending:
            node = self._nodes[pending.pop()]

            if lat_min <= node.lat <= lat_max and lon_min <= node.lon <= lon_max:
                found.extend(node.stations)

            if node.axis == 0:  # latitude
                go_left = lat_min <= node.lat
                go_right = lat_max >= node.lat
            else:  # longitude
                go_left = lon_min <= node.lon
                go_right = lon_max >= node.lon

            if go_right and node.right is not None:
                pending.append(node.right)
            if go_left and node.left is not None:
                pending.append(node.left)

        found.sort(key=by_name)
        return found

    def circular_range_query(self, center_lat: float, center_lon: float,
                             radius_km: float) -> List[StationDistance]:
        """Stations within radius_km of the center, sorted by distance."""
        found: List[StationDistance] = []
        if self._root is None:
            return found

        pending = [self._root]
        while pending:
            node = self._nodes[pending.pop()]

            distance = haversine_distance(center_lat, center_lon, node.lat, node.lon)
            if distance <= radius_km:
                found.extend(StationDistance(station, distance) for station in node.stations)

            to_plane = plane_distance(node.axis, node.lat, node.lon, center_lat, center_lon)
            if to_plane <= radius_km:
                # circle may cross the splitting line
                children = (node.right, node.left)
            elif self._query_goes_left(node, center_lat, center_lon):
                children = (node.left,)
            else:
                children = (node.right,)

            pending.extend(child for child in children if child is not None)

        found.sort(key=by_distance)
        return found

    def nearest_neighbor(self, lat: float, lon: float) -> Optional[StationDistance]:
        """
        Closest station to (lat, lon), or None for an empty tree.

        When several stations share the closest coordinate the first one by
        name is returned.
        """
        if self._root is None:
            return None

        best: Optional[StationDistance] = None
        # (node position, plane distance that must beat the best, None = always visit)
        pending = [(self._root, None)]
        while pending:
            position, bound = pending.pop()
            if bound is not None and best is not None and not bound < best.distance_km:
                continue

            node = self._nodes[position]
            distance = haversine_distance(lat, lon, node.lat, node.lon)
            if best is None or distance < best.distance_km:
                best = StationDistance(node.stations[0], distance)

            near, far = self._near_far(node, lat, lon)
            if far is not None:
                pending.append((far, plane_distance(node.axis, node.lat, node.lon, lat, lon)))
            if near is not None:
                pending.append((near, None))

        return best

    def k_nearest_neighbors(self, lat: float, lon: float, k: int) -> List[StationDistance]:
        return self._k_nearest(lat, lon, k, None)

    def k_nearest_with_timezone(self, lat: float, lon: float, k: int,
                                timezone_group: Optional[str]) -> List[StationDistance]:
        """k nearest stations of one time zone group (None disables the filter)."""
        if timezone_group is None:
            return self._k_nearest(lat, lon, k, None)
        return self._k_nearest(lat, lon, k, lambda s: s.timezone_group == timezone_group)

    def k_nearest_with_criteria(self, lat: float, lon: float, k: int,
                                criteria: Optional[StationFilter]) -> List[StationDistance]:
        """k nearest stations matching every field set in criteria."""
        if criteria is None or criteria.is_empty():
            return self._k_nearest(lat, lon, k, None)
        return self._k_nearest(lat, lon, k, criteria.matches)

    def _k_nearest(self, lat, lon, k, accept: Optional[Callable[[Station], bool]]):
        if self._root is None or k <= 0:
            return []

        # max-heap via negated distance; among equal distances the latest
        # insertion sits on top and is evicted first
        heap = []
        inserted = 0

        pending = [(self._root, None)]
        while pending:
            position, bound = pending.pop()
            if bound is not None and len(heap) >= k and not bound < -heap[0][0]:
                continue

            node = self._nodes[position]
            distance = haversine_distance(lat, lon, node.lat, node.lon)
            for station in node.stations:
                if accept is not None and not accept(station):
                    continue
                entry = (-distance, -inserted, StationDistance(station, distance))
                inserted += 1
                if len(heap) < k:
                    heapq.heappush(heap, entry)
                elif distance < -heap[0][0]:
                    heapq.heapreplace(heap, entry)

            near, far = self._near_far(node, lat, lon)
            if far is not None:
                pending.append((far, plane_distance(node.axis, node.lat, node.lon, lat, lon)))
            if near is not None:
                pending.append((near, None))

        found = sorted(heap, key=lambda entry: (-entry[0], -entry[1]))
        return [entry[2] for entry in found]

    @staticmethod
    def _query_goes_left(node, lat, lon):
        if node.axis == 0:
            return lat < node.lat
        return lon < node.lon

    def _near_far(self, node, lat, lon):
        if self._query_goes_left(node, lat, lon):
            return node.left, node.right
        return node.right, node.left

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def size(self) -> int:
        return len(self._nodes)

    def height(self) -> int:
        if self._root is None:
            return 0
        tallest = 0
        pending = [(self._root, 1)]
        while pending:
            position, depth = pending.pop()
            tallest = max(tallest, depth)
            node = self._nodes[position]
            for child in (node.left, node.right):
                if child is not None:
                    pending.append((child, depth + 1))
        return tallest

    def bucket_size_distribution(self) -> Dict[int, int]:
        """Stations per coordinate -> number of nodes with that many stations."""
        counts = Counter(len(node.stations) for node in self._nodes)
        return dict(sorted(counts.items()))

    def station_count(self) -> int:
        return sum(len(node.stations) for node in self._nodes)

    def stats(self) -> TreeStats:
        return TreeStats(self.size(), self.height(), self.bucket_size_distribution())

    def summary(self) -> str:
        size = self.size()
        height = self.height()
        lines = ["=== 2D-Tree Summary ===", f"Size (nodes): {size}", f"Height: {height}"]
        if size == 0:
            lines.append("Empty tree")
            return "\n".join(lines)

        expected = max(1, math.ceil(math.log2(size)))
        lines.append(f"Expected height for balanced tree: ~{expected}")
        lines.append(f"Balance factor: {height / expected:.2f} (1.0 = perfect, <1.5 = good)")
        lines.append("")
        lines.append("Bucket Size Distribution:")
        for per_bucket, nodes in self.bucket_size_distribution().items():
            lines.append(
                f"  {per_bucket} station(s) per coordinate: {nodes} nodes ({100.0 * nodes / size:.2f}%)"
            )
        lines.append("")
        lines.append(f"Total stations indexed: {self.station_count()}")
        if self.warning:
            lines.append(f"Warning: {self.warning}")
        return "\n".join(lines)


def build_kdtree(latitude_view: AxisView, longitude_view: AxisView) -> KDTree:
    # Builds the 2D-tree from the latitude-sorted and longitude-sorted views
    return KDTree.from_axis_views(latitude_view, longitude_view)
