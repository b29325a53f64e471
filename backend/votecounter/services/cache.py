"""
VoteCounter Derived Data Cache
Lazily computes and memoizes images and matrices derived from a snapshot photo.

Every artifact lives in a typed slot. Persistable slots are mirrored as image
files in the snapshot cache directory; size-bound slots are discarded when the
configured size limit changes.
"""
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np
from loguru import logger

from votecounter.config import config
from votecounter.services.imaging import (
    read_image, read_cached_image, write_image, fit_long_edge, rgb_to_lab
)


class CacheSlot(str, Enum):
    """Closed set of derived artifacts held per snapshot."""
    WORKING = "working"
    LAB = "lab"
    FILL_MASK = "pickMask"
    PALETTE = "palette"
    CLASSIFIED = "classified"


@dataclass(frozen=True)
class SlotRule:
    """Static caching rule for one slot."""
    persistable: bool = False
    size_bound: bool = False
    per_color: bool = False
    derived_from_working: bool = False


SLOT_RULES: Dict[CacheSlot, SlotRule] = {
    CacheSlot.WORKING: SlotRule(persistable=True, size_bound=True),
    CacheSlot.LAB: SlotRule(derived_from_working=True),
    CacheSlot.FILL_MASK: SlotRule(per_color=True, derived_from_working=True),
    CacheSlot.PALETTE: SlotRule(persistable=True),
    CacheSlot.CLASSIFIED: SlotRule(persistable=True, size_bound=True),
}

PERSISTABLE_SLOTS = frozenset(s for s, r in SLOT_RULES.items() if r.persistable)
SIZE_BOUND_SLOTS = frozenset(s for s, r in SLOT_RULES.items() if r.size_bound)

CacheKey = Tuple[CacheSlot, Optional[str]]


class DerivedDataCache:
    """Per-snapshot memo of derived images and matrices."""

    def __init__(self, source_path: Path, cache_dir: Path, size_limit: int = config.SIZE_LIMIT):
        self.source_path = Path(source_path)
        self.cache_dir = Path(cache_dir)
        self.size_limit = size_limit
        self._entries: Dict[CacheKey, Any] = {}
        self.stats = {'hits': 0, 'misses': 0, 'disk_loads': 0, 'computed': 0}

        self._compute: Dict[CacheSlot, Callable[[Optional[str]], Any]] = {
            CacheSlot.WORKING: self._compute_working,
            CacheSlot.LAB: self._compute_lab,
            CacheSlot.FILL_MASK: self._compute_fill_mask,
        }

    def _key(self, slot: CacheSlot, color: Optional[str]) -> CacheKey:
        if SLOT_RULES[slot].per_color:
            if not color:
                raise ValueError(f"Cache slot {slot.value} requires a color class")
            return slot, color
        return slot, None

    def file_path(self, slot: CacheSlot, color: Optional[str] = None) -> Path:
        """Path of the on-disk copy of a slot."""
        tag = f"{color}_{slot.value}" if color else slot.value
        return self.cache_dir / f"{tag}{config.IMAGE_EXTENSION}"

    def get(self, slot: CacheSlot, color: Optional[str] = None) -> Optional[Any]:
        """
        Return the artifact for a slot, computing it on first access.

        Args:
            slot: Cache slot
            color: Color class for per-class slots

        Returns:
            The artifact, or None for slots that are only ever set externally
            and have not been set yet
        """
        key = self._key(slot, color)
        if key in self._entries:
            self.stats['hits'] += 1
            return self._entries[key]

        self.stats['misses'] += 1

        rule = SLOT_RULES[slot]
        if rule.persistable:
            value = self._load_persisted(slot, color)
            if value is not None:
                self.stats['disk_loads'] += 1
                self._entries[key] = value
                return value

        compute = self._compute.get(slot)
        if compute is None:
            return None

        value = compute(color)
        self.stats['computed'] += 1
        self.set(slot, value, color)
        return value

    def set(self, slot: CacheSlot, value: Any, color: Optional[str] = None) -> None:
        """Memoize an artifact, writing persistable slots to disk."""
        key = self._key(slot, color)
        self._entries[key] = value
        if SLOT_RULES[slot].persistable:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            write_image(self.file_path(slot, color), value)

    def contains(self, slot: CacheSlot, color: Optional[str] = None) -> bool:
        """Whether the slot currently holds an in-memory value."""
        return self._key(slot, color) in self._entries

    def invalidate(self, slot: CacheSlot, color: Optional[str] = None) -> None:
        """Drop a slot from memory and from disk."""
        self._entries.pop(self._key(slot, color), None)
        if SLOT_RULES[slot].persistable:
            self.file_path(slot, color).unlink(missing_ok=True)

    def colors(self, slot: CacheSlot = CacheSlot.FILL_MASK):
        """Color classes holding a value in a per-class slot, in creation order."""
        return [color for (s, color) in self._entries if s == slot and color is not None]

    def set_size_limit(self, size_limit: int) -> bool:
        """
        Change the working image size limit.

        Size-bound slots and everything derived from the working image are
        discarded so they are recomputed at the new size.

        Returns:
            True if the limit changed
        """
        if size_limit == self.size_limit:
            return False

        logger.info(f"Size limit changed {self.size_limit} -> {size_limit}, invalidating derived data")
        self.size_limit = size_limit
        for slot, color in list(self._entries):
            rule = SLOT_RULES[slot]
            if rule.size_bound or rule.derived_from_working:
                self.invalidate(slot, color)
        for slot in SIZE_BOUND_SLOTS:
            self.file_path(slot).unlink(missing_ok=True)
        return True

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        total = self.stats['hits'] + self.stats['misses']
        return {
            'stats': self.stats.copy(),
            'hit_rate': self.stats['hits'] / total if total > 0 else 0.0,
            'entries': len(self._entries)
        }

    def _load_persisted(self, slot: CacheSlot, color: Optional[str]) -> Optional[np.ndarray]:
        image = read_cached_image(self.file_path(slot, color))
        if image is None:
            return None
        if slot in SIZE_BOUND_SLOTS and max(image.shape[:2]) != self.size_limit:
            logger.debug(f"Discarding cached {slot.value}: size {image.shape[:2]} "
                         f"does not match limit {self.size_limit}")
            return None
        return image

    def _compute_working(self, _color: Optional[str]) -> np.ndarray:
        logger.info(f"Scaling {self.source_path} to {self.size_limit}")
        return fit_long_edge(read_image(self.source_path), self.size_limit)

    def _compute_lab(self, _color: Optional[str]) -> np.ndarray:
        return rgb_to_lab(self.get(CacheSlot.WORKING))

    def _compute_fill_mask(self, _color: Optional[str]) -> np.ndarray:
        height, width = self.get(CacheSlot.WORKING).shape[:2]
        # floodFill needs a one pixel border around the image
        return np.zeros((height + 2, width + 2), dtype=np.uint8)
