"""
Per-pixel color classification for VoteCounter.

Every pixel of the Lab matrix is matched to its nearest trained palette entry;
pixels too far from every entry stay unclassified. Classified pixels are then
grouped into blobs so the cards of each color can be counted.
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple

import cv2
import numpy as np
from loguru import logger

from votecounter.config import config
from votecounter.services.colors.training import TrainedPalette

UNCLASSIFIED = -1


class NotTrainedError(RuntimeError):
    """Classification was requested before a usable palette was trained."""
    pass


@dataclass
class ClassificationResult:
    """Outcome of classifying one working image."""
    labels: np.ndarray = field(repr=False)
    image: np.ndarray = field(repr=False)
    pixel_counts: Dict[str, int] = field(default_factory=dict)
    unclassified: int = 0
    blob_counts: Dict[str, int] = field(default_factory=dict)

    def summary(self) -> Dict:
        return {
            "pixel_counts": dict(self.pixel_counts),
            "unclassified": self.unclassified,
            "blob_counts": dict(self.blob_counts),
        }


def nearest_entries(lab: np.ndarray, palette: TrainedPalette,
                    chunk_size: int = 65536) -> Tuple[np.ndarray, np.ndarray]:
    """
    Find the nearest palette entry of every pixel.

    Args:
        lab: Lab matrix (H, W, 3)
        palette: Trained palette
        chunk_size: Pixels per query batch

    Returns:
        Tuple of (entry index map (H, W) int32, squared distance map (H, W) float32)
    """
    height, width = lab.shape[:2]
    pixels = lab.reshape(-1, 3).astype(np.float32)

    indices = np.empty(len(pixels), dtype=np.int32)
    sq_dists = np.empty(len(pixels), dtype=np.float32)
    for start in range(0, len(pixels), chunk_size):
        stop = start + chunk_size
        dist, ind = palette.index.kneighbors(pixels[start:stop], n_neighbors=1)
        indices[start:stop] = ind[:, 0]
        sq_dists[start:stop] = dist[:, 0] ** 2

    return indices.reshape(height, width), sq_dists.reshape(height, width)


def count_blobs(class_map: np.ndarray, classes, min_area: int = config.MIN_BLOB_AREA) -> Dict[str, int]:
    """
    Count connected blobs of each class in a class-position map.

    Args:
        class_map: (H, W) int32 map of class positions, -1 for unclassified
        classes: Class names in position order
        min_area: Smallest blob, in pixels, that is counted

    Returns:
        Blob count per class
    """
    counts = {}
    for position, color in enumerate(classes):
        component = (class_map == position).astype(np.uint8)
        n_labels, _, stats, _ = cv2.connectedComponentsWithStats(component, connectivity=8)
        areas = stats[1:n_labels, cv2.CC_STAT_AREA]
        counts[color] = int(np.count_nonzero(areas >= min_area))
    return counts


class Classifier:
    """Nearest-palette-entry classifier with a distance cutoff."""

    def __init__(self,
                 threshold: float = config.CLASSIFY_THRESHOLD,
                 min_blob_area: int = config.MIN_BLOB_AREA):
        self.threshold = threshold
        self.min_blob_area = min_blob_area

    def classify(self, lab: np.ndarray, palette: TrainedPalette) -> ClassificationResult:
        """
        Classify every pixel of a Lab matrix.

        Raises:
            NotTrainedError: If the palette has no entries or no index
        """
        if palette is None or not palette.is_trained:
            raise NotTrainedError("No trained palette; run training first")

        indices, sq_dists = nearest_entries(lab, palette)

        labels = np.where(sq_dists >= self.threshold, UNCLASSIFIED, indices).astype(np.int32)
        classified = labels != UNCLASSIFIED

        image = np.zeros(lab.shape[:2] + (3,), dtype=np.uint8)
        image[classified] = palette.colors_rgb[labels[classified]]

        owners = palette.entry_classes()
        class_map = np.full(labels.shape, UNCLASSIFIED, dtype=np.int32)
        class_map[classified] = owners[labels[classified]]

        classes = palette.classes
        pixel_counts = {
            color: int(np.count_nonzero(class_map == position))
            for position, color in enumerate(classes)
        }
        unclassified = int(np.count_nonzero(~classified))
        blob_counts = count_blobs(class_map, classes, self.min_blob_area)

        logger.info(f"Classified {labels.size} pixels: {pixel_counts}, "
                    f"unclassified={unclassified}, blobs={blob_counts}")

        return ClassificationResult(
            labels=labels,
            image=image,
            pixel_counts=pixel_counts,
            unclassified=unclassified,
            blob_counts=blob_counts,
        )
