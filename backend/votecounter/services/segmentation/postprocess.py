"""
VoteCounter Region Post-Processing
Rectangle bookkeeping, contour extraction and mask clearing for fill masks.

Fill masks carry a one pixel border (shape H+2 x W+2) as required by
``cv2.floodFill``; image coordinate (x, y) lives at mask[y + 1, x + 1].
"""
from typing import List, Tuple

import cv2
import numpy as np

Rect = Tuple[int, int, int, int]


def rects_intersect(a: Rect, b: Rect) -> bool:
    """Whether two (x, y, w, h) rectangles share at least one pixel."""
    ax, ay, aw, ah = a
    bx, by, bw, bh = b
    if aw <= 0 or ah <= 0 or bw <= 0 or bh <= 0:
        return False
    return ax < bx + bw and bx < ax + aw and ay < by + bh and by < ay + ah


def rect_union(a: Rect, b: Rect) -> Rect:
    """Smallest rectangle covering both rectangles."""
    x0 = min(a[0], b[0])
    y0 = min(a[1], b[1])
    x1 = max(a[0] + a[2], b[0] + b[2])
    y1 = max(a[1] + a[3], b[1] + b[3])
    return x0, y0, x1 - x0, y1 - y0


def clip_rect(rect: Rect, width: int, height: int) -> Rect:
    """Intersect a rectangle with the image bounds."""
    x0 = max(rect[0], 0)
    y0 = max(rect[1], 0)
    x1 = min(rect[0] + rect[2], width)
    y1 = min(rect[1] + rect[3], height)
    return x0, y0, max(0, x1 - x0), max(0, y1 - y0)


def extract_contours(mask: np.ndarray, rect: Rect, epsilon: float = 3.0) -> List[Tuple[np.ndarray, np.ndarray]]:
    """
    Find outer boundaries of filled areas inside a rectangle of a fill mask.

    Args:
        mask: Bordered fill mask (H+2, W+2), nonzero = filled
        rect: Image-space rectangle to search, already clipped to the image
        epsilon: approxPolyDP tolerance in pixels

    Returns:
        List of (contour, polygon) pairs as (N, 2) int32 arrays in absolute
        image coordinates; polygon is the simplified contour
    """
    x, y, w, h = rect
    if w <= 0 or h <= 0:
        return []

    # Skip the mask border and binarize
    roi = (mask[y + 1:y + 1 + h, x + 1:x + 1 + w] == 255).astype(np.uint8) * 255

    contours, _hierarchy = cv2.findContours(
        roi,
        cv2.RETR_EXTERNAL,
        cv2.CHAIN_APPROX_TC89_L1,
        offset=(x, y)
    )

    results = []
    for contour in contours:
        approx = cv2.approxPolyDP(contour, epsilon, True)
        results.append((contour.reshape(-1, 2).astype(np.int32),
                        approx.reshape(-1, 2).astype(np.int32)))
    return results


def contour_bounds(contour: np.ndarray) -> Rect:
    """Bounding rectangle of an (N, 2) point array."""
    x, y, w, h = cv2.boundingRect(contour.reshape(-1, 1, 2))
    return int(x), int(y), int(w), int(h)


def polygon_contains(polygon: np.ndarray, x: float, y: float) -> bool:
    """
    Point-in-polygon test; points on the boundary count as inside.
    """
    if len(polygon) == 0:
        return False
    result = cv2.pointPolygonTest(polygon.reshape(-1, 1, 2).astype(np.float32),
                                  (float(x), float(y)), False)
    return result >= 0


def clear_contour(mask: np.ndarray, contour: np.ndarray) -> None:
    """Zero the pixels enclosed by an image-space contour in a bordered mask."""
    pts = [contour.reshape(-1, 1, 2).astype(np.int32)]
    # compensate for mask border
    cv2.drawContours(mask, pts, -1, 0, thickness=cv2.FILLED, offset=(1, 1))
    cv2.drawContours(mask, pts, -1, 0, thickness=1, offset=(1, 1))


def calculate_mask_area(mask: np.ndarray) -> int:
    """Number of filled pixels inside the mask border."""
    return int(np.count_nonzero(mask[1:-1, 1:-1] == 255))
