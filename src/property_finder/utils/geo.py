"""Geographic utilities for distances, grids, polygons and bounding boxes."""

import math
from typing import Iterable, Sequence

from property_finder.models.search import BoundingBox

EARTH_RADIUS_KM = 6371
KM_PER_DEGREE = 111.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate the great circle distance between two points in km."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def grid_cell(lat: float, lng: float, cell_size: float) -> tuple[int, int]:
    """Quantize a coordinate into an (x, y) grid cell."""
    return (math.floor(lng / cell_size), math.floor(lat / cell_size))


def cell_reach(lat: float, cell_size: float, distance_km: float) -> tuple[int, int]:
    """How many cells (x, y) to scan around a point to cover `distance_km`.

    Longitude cells shrink towards the poles, so x usually needs more cells.
    """
    cell_km_lat = cell_size * KM_PER_DEGREE
    cell_km_lng = cell_km_lat * max(math.cos(math.radians(lat)), 0.01)
    return (
        max(1, math.ceil(distance_km / cell_km_lng)),
        max(1, math.ceil(distance_km / cell_km_lat)),
    )


def is_point_in_polygon(lat: float, lng: float, polygon: Sequence[Sequence[float]]) -> bool:
    """Ray casting test; polygon is a ring of [lng, lat] pairs."""
    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        lng_i, lat_i = polygon[i][0], polygon[i][1]
        lng_j, lat_j = polygon[j][0], polygon[j][1]
        if (lat_i > lat) != (lat_j > lat):
            crossing = (lng_j - lng_i) * (lat - lat_i) / (lat_j - lat_i) + lng_i
            if lng < crossing:
                inside = not inside
        j = i
    return inside


def polygon_bounding_box(polygon: Sequence[Sequence[float]]) -> BoundingBox:
    lngs = [p[0] for p in polygon]
    lats = [p[1] for p in polygon]
    return BoundingBox(min_lng=min(lngs), max_lng=max(lngs), min_lat=min(lats), max_lat=max(lats))


def merge_bounding_boxes(boxes: Iterable[BoundingBox]) -> BoundingBox:
    boxes = list(boxes)
    return BoundingBox(
        min_lng=min(b.min_lng for b in boxes),
        max_lng=max(b.max_lng for b in boxes),
        min_lat=min(b.min_lat for b in boxes),
        max_lat=max(b.max_lat for b in boxes),
    )


def pad_bounding_box(bbox: BoundingBox, padding_km: float) -> BoundingBox:
    """Grow a box by `padding_km` on every side (rough degree conversion)."""
    if padding_km <= 0:
        return bbox

    lat_padding = padding_km / KM_PER_DEGREE
    avg_lat_rad = math.radians((bbox.min_lat + bbox.max_lat) / 2)
    lng_padding = padding_km / (KM_PER_DEGREE * math.cos(avg_lat_rad))

    return BoundingBox(
        min_lng=bbox.min_lng - lng_padding,
        max_lng=bbox.max_lng + lng_padding,
        min_lat=bbox.min_lat - lat_padding,
        max_lat=bbox.max_lat + lat_padding,
    )


def is_point_in_bounding_box(lat: float, lng: float, bbox: BoundingBox) -> bool:
    return bbox.min_lng <= lng <= bbox.max_lng and bbox.min_lat <= lat <= bbox.max_lat


def do_bounding_boxes_intersect(a: BoundingBox, b: BoundingBox) -> bool:
    return (
        a.min_lng <= b.max_lng
        and a.max_lng >= b.min_lng
        and a.min_lat <= b.max_lat
        and a.max_lat >= b.min_lat
    )


def does_polygon_intersect_bounding_box(
    polygon: Sequence[Sequence[float]], bbox: BoundingBox
) -> bool:
    """Approximate polygon/box intersection.

    True when the boxes overlap and either a box corner lies inside the
    polygon or a polygon vertex lies inside the box. Edge crossings without
    any contained point are not detected.
    """
    if not polygon or not do_bounding_boxes_intersect(polygon_bounding_box(polygon), bbox):
        return False

    corners = [
        (bbox.min_lat, bbox.min_lng),
        (bbox.max_lat, bbox.min_lng),
        (bbox.max_lat, bbox.max_lng),
        (bbox.min_lat, bbox.max_lng),
    ]
    if any(is_point_in_polygon(lat, lng, polygon) for lat, lng in corners):
        return True

    return any(is_point_in_bounding_box(p[1], p[0], bbox) for p in polygon)
