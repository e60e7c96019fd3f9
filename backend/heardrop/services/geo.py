"""
HEARDROP Backend — Geographic helpers
=======================================

Great-circle distances and grid clustering for the shop locator map.
All coordinates are decimal degrees; distances are kilometres.
"""

import math
from collections import OrderedDict
from typing import Dict, Iterable, List, Tuple

EARTH_RADIUS_KM = 6371.0

LatLng = Tuple[float, float]


def haversine_km(a: LatLng, b: LatLng) -> float:
    lat1, lng1 = map(math.radians, a)
    lat2, lng2 = map(math.radians, b)
    dlat = lat2 - lat1
    dlng = lng2 - lng1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def cell_size(zoom: int) -> float:
    """Grid cell edge in degrees: the whole map at zoom 0, halved per level."""
    return 180.0 / (2 ** zoom)


def grid_clusters(points: Iterable[Tuple[object, float, float]], zoom: int) -> List[Dict]:
    """
    Bucket (id, lat, lng) points into square cells.

    Returns one dict per non-empty cell with the centroid of its points,
    the count, and the member ids. Cells keep first-seen order.
    """
    size = cell_size(zoom)
    cells: "OrderedDict[Tuple[int, int], Dict]" = OrderedDict()
    for point_id, lat, lng in points:
        key = (math.floor(lat / size), math.floor(lng / size))
        cell = cells.setdefault(key, {"lat_sum": 0.0, "lng_sum": 0.0, "ids": []})
        cell["lat_sum"] += lat
        cell["lng_sum"] += lng
        cell["ids"].append(point_id)

    clusters = []
    for cell in cells.values():
        count = len(cell["ids"])
        clusters.append(
            {
                "latitude": cell["lat_sum"] / count,
                "longitude": cell["lng_sum"] / count,
                "count": count,
                "ids": cell["ids"],
            }
        )
    return clusters

