"""
Color training for VoteCounter.

Collects the Lab pixels covered by each color class's fill mask, clusters
them into a small per-class palette and builds the nearest-neighbor index
used for classification.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
from loguru import logger
from sklearn.cluster import MiniBatchKMeans
from sklearn.neighbors import NearestNeighbors

from votecounter.config import config
from votecounter.services.imaging import lab_to_rgb, rgb_to_hex


@dataclass
class TrainedPalette:
    """Combined palette of all trained classes plus its search index."""
    centers_lab: np.ndarray
    colors_rgb: np.ndarray
    slices: Dict[str, Tuple[int, int]] = field(default_factory=dict)
    index: Optional[NearestNeighbors] = field(default=None, repr=False)

    @property
    def size(self) -> int:
        return int(len(self.centers_lab))

    @property
    def is_trained(self) -> bool:
        return self.size > 0 and self.index is not None

    @property
    def classes(self) -> List[str]:
        return list(self.slices)

    def entry_classes(self) -> np.ndarray:
        """Class position (in `classes` order) of every palette entry."""
        owners = np.full(self.size, -1, dtype=np.int32)
        for position, (start, stop) in enumerate(self.slices.values()):
            owners[start:stop] = position
        return owners

    def class_of(self, entry: int) -> str:
        for color, (start, stop) in self.slices.items():
            if start <= entry < stop:
                return color
        raise IndexError(f"Palette entry {entry} out of range")

    def to_entries(self) -> List[Dict]:
        """Palette entries as plain dictionaries for API responses."""
        return [
            {
                "color": self.class_of(i),
                "hex": rgb_to_hex(self.colors_rgb[i]),
                "lab": [float(v) for v in self.centers_lab[i]],
            }
            for i in range(self.size)
        ]


def empty_palette() -> TrainedPalette:
    """Palette with no entries; never usable for classification."""
    return TrainedPalette(
        centers_lab=np.empty((0, 3), dtype=np.float32),
        colors_rgb=np.empty((0, 3), dtype=np.uint8),
    )


def sample_class_pixels(mask: np.ndarray, lab: np.ndarray,
                        max_samples: int = config.MAX_TRAIN_SAMPLES,
                        rng_seed: int = config.RNG_SEED) -> np.ndarray:
    """
    Collect the Lab pixels covered by a bordered fill mask.

    Args:
        mask: Fill mask of shape (H+2, W+2)
        lab: Lab matrix of shape (H, W, 3)
        max_samples: Maximum number of pixels to keep
        rng_seed: Random seed for deterministic downsampling

    Returns:
        Samples array (N, 3) float32
    """
    covered = mask[1:-1, 1:-1] == 255
    samples = lab[covered].astype(np.float32)

    # Downsample if needed (deterministic)
    if len(samples) > max_samples:
        rng = np.random.default_rng(rng_seed)
        indices = rng.choice(len(samples), size=max_samples, replace=False)
        samples = samples[np.sort(indices)]
        logger.debug(f"Downsampled to {max_samples} pixels")

    return samples


def cluster_palette(samples: np.ndarray, k: int = config.PALETTE_K,
                    max_iter: int = config.KMEANS_MAX_ITER,
                    rng_seed: int = config.RNG_SEED) -> np.ndarray:
    """
    Cluster Lab samples into at most k centers.

    Classes with no more than k distinct colors use those colors directly.

    Returns:
        Centers array (M, 3) float32 with M <= k
    """
    unique_colors = np.unique(samples, axis=0)
    if len(unique_colors) <= k:
        logger.debug(f"{len(unique_colors)} distinct colors <= k={k}, using them as centers")
        return unique_colors.astype(np.float32)

    kmeans = MiniBatchKMeans(
        n_clusters=k,
        init="k-means++",
        random_state=rng_seed,
        batch_size=min(2048, len(samples)),
        n_init="auto",
        max_iter=max_iter
    )
    kmeans.fit(samples)
    return kmeans.cluster_centers_.astype(np.float32)


def build_index(centers_lab: np.ndarray, n_jobs: Optional[int] = None) -> NearestNeighbors:
    """Nearest-neighbor index over Lab palette centers."""
    index = NearestNeighbors(n_neighbors=1, algorithm="auto", n_jobs=n_jobs)
    index.fit(centers_lab)
    return index


def assemble_palette(centers_by_class: Dict[str, np.ndarray],
                     n_jobs: Optional[int] = None) -> TrainedPalette:
    """
    Concatenate per-class centers into one palette, in class order.

    Classes without centers are left out. An empty result carries no index.
    """
    slices: Dict[str, Tuple[int, int]] = {}
    blocks = []
    start = 0
    for color, centers in centers_by_class.items():
        centers = np.asarray(centers, dtype=np.float32).reshape(-1, 3)
        if len(centers) == 0:
            continue
        slices[color] = (start, start + len(centers))
        blocks.append(centers)
        start += len(centers)

    if not blocks:
        return empty_palette()

    centers_lab = np.concatenate(blocks, axis=0)
    return TrainedPalette(
        centers_lab=centers_lab,
        colors_rgb=lab_to_rgb(centers_lab),
        slices=slices,
        index=build_index(centers_lab, n_jobs=n_jobs),
    )


class ColorTrainer:
    """Builds a TrainedPalette from per-class fill masks."""

    def __init__(self,
                 k: int = config.PALETTE_K,
                 max_iter: int = config.KMEANS_MAX_ITER,
                 max_samples: int = config.MAX_TRAIN_SAMPLES,
                 rng_seed: int = config.RNG_SEED,
                 n_jobs: Optional[int] = None):
        self.k = k
        self.max_iter = max_iter
        self.max_samples = max_samples
        self.rng_seed = rng_seed
        self.n_jobs = n_jobs

    def train(self, masks: Dict[str, np.ndarray], lab: np.ndarray) -> TrainedPalette:
        """
        Train a palette from every class's fill mask.

        Args:
            masks: Bordered fill mask per color class, in class order
            lab: Lab matrix of the working image

        Returns:
            The combined palette; untrained if no class had samples
        """
        centers_by_class: Dict[str, np.ndarray] = {}
        for color, mask in masks.items():
            samples = sample_class_pixels(mask, lab, self.max_samples, self.rng_seed)
            if len(samples) == 0:
                logger.warning(f"No sample pixels for class '{color}', skipping")
                continue
            centers_by_class[color] = cluster_palette(samples, self.k, self.max_iter, self.rng_seed)
            logger.info(f"Class '{color}': {len(samples)} samples -> "
                        f"{len(centers_by_class[color])} centers")

        palette = assemble_palette(centers_by_class, n_jobs=self.n_jobs)
        if not palette.is_trained:
            logger.warning("Training produced an empty palette")
        return palette
