# geometry.py

from typing import Tuple

from constants import MIN_SIZE, MAX_SIZE

# Bounding boxes are (min_x, min_y, max_x, max_y), the same ordering Widget.get_bbox returns.
BBox = Tuple[float, float, float, float]


def clamp(value, low, high):
    """Pins value into [low, high]. If the range is inverted, low wins."""
    return max(low, min(value, high))


def clamp_size(width, height) -> Tuple[float, float]:
    return clamp(width, MIN_SIZE, MAX_SIZE), clamp(height, MIN_SIZE, MAX_SIZE)


def clamp_rect_to_bounds(x, y, width, height, bounds_width, bounds_height) -> Tuple[float, float, float, float]:
    """
    Fits a rectangle inside a (0, 0, bounds_width, bounds_height) area.
    A rectangle larger than the area is shrunk to the area first, then its
    origin is pinned so that 0 <= x and x + width <= bounds_width (same for y).
    """
    width = min(width, bounds_width)
    height = min(height, bounds_height)
    x = clamp(x, 0, bounds_width - width)
    y = clamp(y, 0, bounds_height - height)
    return x, y, width, height


def normalize_bbox(x0, y0, x1, y1) -> BBox:
    """Orders two arbitrary corners into (min_x, min_y, max_x, max_y)."""
    return min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1)


def bbox_from_rect(x, y, width, height) -> BBox:
    return x, y, x + width, y + height


def bbox_contains_point(bbox: BBox, px, py) -> bool:
    min_x, min_y, max_x, max_y = bbox
    return min_x <= px <= max_x and min_y <= py <= max_y


def bbox_contains_bbox(outer: BBox, inner: BBox) -> bool:
    return (outer[0] <= inner[0] and outer[1] <= inner[1] and
            inner[2] <= outer[2] and inner[3] <= outer[3])


def bboxes_intersect(a: BBox, b: BBox) -> bool:
    # Touching edges count as an intersection so a zero-area marquee on an edge still hits.
    return a[0] <= b[2] and b[0] <= a[2] and a[1] <= b[3] and b[1] <= a[3]


def bbox_center(bbox: BBox) -> Tuple[float, float]:
    return (bbox[0] + bbox[2]) / 2, (bbox[1] + bbox[3]) / 2


def snap_value(value, grid_size):
    if not grid_size:
        return value
    return round(value / grid_size) * grid_size


def calculate_snap(x, y, grid_size) -> Tuple[float, float]:
    return snap_value(x, grid_size), snap_value(y, grid_size)
