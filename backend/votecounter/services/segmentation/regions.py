"""
VoteCounter Region Grower
Grows operator picks into color regions by flood fill and keeps the per-class
region polygons consistent with the fill masks and the pick ledger.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np
from loguru import logger

from votecounter.config import config
from votecounter.services.cache import CacheSlot, DerivedDataCache
from votecounter.services.imaging import get_image_dimensions
from votecounter.services.ledger import PickLedger
from votecounter.services.segmentation.postprocess import (
    Rect, rects_intersect, rect_union, clip_rect, extract_contours,
    contour_bounds, polygon_contains, clear_contour, calculate_mask_area
)


@dataclass(eq=False)
class Region:
    """Simplified outline of one connected filled area of a color class."""
    color: str
    polygon: np.ndarray
    contour: np.ndarray = field(repr=False)
    bounds: Rect = (0, 0, 0, 0)

    def contains(self, x: float, y: float) -> bool:
        """Whether the simplified polygon contains the point."""
        return polygon_contains(self.polygon, x, y)

    def encloses(self, x: float, y: float) -> bool:
        """Whether the point lies in the polygon or on the region's own pixels."""
        return self.contains(x, y) or polygon_contains(self.contour, x, y)

    def to_dict(self) -> dict:
        return {
            "color": self.color,
            "polygon": self.polygon.tolist(),
            "bounds": list(self.bounds),
        }


def _inflate(rect: Rect, pad: int = 1) -> Rect:
    return rect[0] - pad, rect[1] - pad, rect[2] + 2 * pad, rect[3] + 2 * pad


class RegionGrower:
    """Flood-fill region growing over the Lab matrix of a snapshot."""

    def __init__(self,
                 cache: DerivedDataCache,
                 ledger: PickLedger,
                 pick_fuzz: float = config.PICK_FUZZ,
                 epsilon: float = config.POLYGON_EPSILON):
        self.cache = cache
        self.ledger = ledger
        self.pick_fuzz = float(pick_fuzz)
        self.epsilon = epsilon
        self._regions: Dict[str, List[Region]] = {}

    @property
    def image_size(self) -> Tuple[int, int]:
        """(width, height) of the working image."""
        return get_image_dimensions(self.cache.get(CacheSlot.LAB))

    def in_bounds(self, x: int, y: int) -> bool:
        width, height = self.image_size
        return 0 <= x < width and 0 <= y < height

    def regions(self, color: Optional[str] = None) -> List[Region]:
        """Current regions of one class, or of every class in class order."""
        if color is not None:
            return list(self._regions.get(color, []))
        return [r for regions in self._regions.values() for r in regions]

    def masks(self) -> Dict[str, np.ndarray]:
        """Fill masks of every class that has one, in creation order."""
        return {c: self.cache.get(CacheSlot.FILL_MASK, c) for c in self.cache.colors(CacheSlot.FILL_MASK)}

    def flood_fill(self, color: str, x: int, y: int) -> Tuple[int, Rect]:
        """
        Flood fill from (x, y) into the class's fill mask.

        Pixels owned by other classes are barriers. A seed already covered by
        any class's mask fills nothing.

        Returns:
            (number of newly filled pixels, bounding rectangle of the new fill)
        """
        lab = self.cache.get(CacheSlot.LAB)
        mask = self.cache.get(CacheSlot.FILL_MASK, color)

        work = mask.copy()
        for other, other_mask in self.masks().items():
            if other != color:
                work[other_mask == 255] = 1

        if work[y + 1, x + 1]:
            return 0, (x, y, 0, 0)

        fuzz = (self.pick_fuzz,) * 3
        flags = 4 | (255 << 8) | cv2.FLOODFILL_MASK_ONLY | cv2.FLOODFILL_FIXED_RANGE
        filled, _, _, rect = cv2.floodFill(lab, work, (int(x), int(y)), (0, 0, 0), fuzz, fuzz, flags)

        if filled < 1:
            return 0, (x, y, 0, 0)

        # Barriers and the border floodFill marks are not part of this class
        mask[:] = np.where(work == 255, 255, 0).astype(np.uint8)
        return int(filled), tuple(int(v) for v in rect)

    def pick(self, color: str, x: int, y: int) -> int:
        """
        Grow a region for `color` from the picked pixel.

        Out-of-bounds picks and fills that add no pixels are silent no-ops.

        Returns:
            Number of newly filled pixels (0 for a no-op)
        """
        x, y = int(x), int(y)
        if not self.in_bounds(x, y):
            logger.debug(f"Pick ({x}, {y}) outside working image, ignored")
            return 0

        filled, bounds = self.flood_fill(color, x, y)
        if filled < 1:
            logger.debug(f"Pick ({x}, {y}) for {color} filled nothing")
            return 0

        # Merge every region of this class the new fill touches
        regions = self._regions.setdefault(color, [])
        merged = True
        while merged:
            merged = False
            for region in list(regions):
                if rects_intersect(_inflate(bounds), region.bounds):
                    bounds = rect_union(bounds, region.bounds)
                    regions.remove(region)
                    merged = True

        width, height = self.image_size
        bounds = clip_rect(bounds, width, height)

        mask = self.cache.get(CacheSlot.FILL_MASK, color)
        for contour, polygon in extract_contours(mask, bounds, self.epsilon):
            regions.append(Region(color=color, polygon=polygon, contour=contour,
                                  bounds=contour_bounds(contour)))

        self.ledger.add(color, x, y)
        logger.debug(f"Pick ({x}, {y}) for {color} filled {filled} pixels, "
                     f"{len(regions)} regions covering {calculate_mask_area(mask)} pixels")
        return filled

    def find_region(self, x: float, y: float) -> Optional[Region]:
        """First region, across classes, whose polygon contains the point."""
        for regions in self._regions.values():
            for region in regions:
                if region.contains(x, y):
                    return region
        return None

    def unpick(self, x: int, y: int) -> Optional[Region]:
        """
        Remove the region under (x, y) together with its picks and mask pixels.

        Returns:
            The removed region, or None if no region contains the point
        """
        region = self.find_region(x, y)
        if region is None:
            logger.debug(f"Unpick ({x}, {y}) hit no region")
            return None

        removed = self.ledger.remove(region.color, lambda p: region.encloses(*p))

        mask = self.cache.get(CacheSlot.FILL_MASK, region.color)
        clear_contour(mask, region.contour)

        self._regions[region.color].remove(region)
        logger.debug(f"Unpicked {region.color} region at {region.bounds}, "
                     f"dropped {len(removed)} picks")
        return region

    def clear(self, color: str) -> None:
        """Drop every region, pick and mask pixel of a class."""
        self._regions.pop(color, None)
        self.ledger.clear(color)
        self.cache.invalidate(CacheSlot.FILL_MASK, color)
