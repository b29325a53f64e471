"""
VoteCounter Configuration
Manages environment variables and defaults for the color engine and API.
"""
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


class Config:
    """Configuration class for VoteCounter services."""

    # Working image
    SIZE_LIMIT: int = int(os.environ.get("VOTECOUNTER_SIZE_LIMIT", "640"))

    # Region growing
    PICK_FUZZ: float = float(os.environ.get("VOTECOUNTER_PICK_FUZZ", "8.0"))
    POLYGON_EPSILON: float = 3.0

    # Training
    PALETTE_K: int = int(os.environ.get("VOTECOUNTER_PALETTE_K", "5"))
    KMEANS_MAX_ITER: int = int(os.environ.get("VOTECOUNTER_KMEANS_MAX_ITER", "10"))
    MAX_TRAIN_SAMPLES: int = int(os.environ.get("VOTECOUNTER_MAX_TRAIN_SAMPLES", "20000"))
    RNG_SEED: int = 42

    # Classification (squared Lab distance)
    CLASSIFY_THRESHOLD: float = float(os.environ.get("VOTECOUNTER_CLASSIFY_THRESHOLD", "1000.0"))
    CLASSIFY_JOBS: int = int(os.environ.get("VOTECOUNTER_CLASSIFY_JOBS", "1"))
    MIN_BLOB_AREA: int = int(os.environ.get("VOTECOUNTER_MIN_BLOB_AREA", "20"))

    # Logging
    LOG_LEVEL: str = os.environ.get("VOTECOUNTER_LOG_LEVEL", "INFO")

    # Cache directory layout
    CACHE_SUFFIX: str = ".cache"
    LEDGER_FILENAME: str = "data.json"
    IMAGE_EXTENSION: str = ".png"

    # Reserved class name that switches to mask editing
    MASK_MODE_TAG: str = "mask"
    DEFAULT_COLOR: str = "green"

    @classmethod
    def validate_size_limit(cls, size_limit: int) -> bool:
        """Validate working image size limit."""
        return 16 <= size_limit <= 4096

    @classmethod
    def validate_pick_fuzz(cls, pick_fuzz: float) -> bool:
        """Validate flood fill tolerance (Lab units per channel)."""
        return 0.0 <= pick_fuzz <= 100.0

    @classmethod
    def validate_palette_k(cls, k: int) -> bool:
        """Validate per-class cluster count."""
        return 1 <= k <= 64


# Global config instance
config = Config()


@dataclass
class SnapshotSettings:
    """Per-snapshot tunables, defaulting to the global config."""

    size_limit: int = config.SIZE_LIMIT
    pick_fuzz: float = config.PICK_FUZZ
    palette_k: int = config.PALETTE_K
    kmeans_max_iter: int = config.KMEANS_MAX_ITER
    max_train_samples: int = config.MAX_TRAIN_SAMPLES
    classify_threshold: float = config.CLASSIFY_THRESHOLD
    classify_jobs: int = config.CLASSIFY_JOBS
    min_blob_area: int = config.MIN_BLOB_AREA
    polygon_epsilon: float = config.POLYGON_EPSILON

    def __post_init__(self):
        if not config.validate_size_limit(self.size_limit):
            raise ValueError(f"Invalid size_limit: {self.size_limit}")
        if not config.validate_pick_fuzz(self.pick_fuzz):
            raise ValueError(f"Invalid pick_fuzz: {self.pick_fuzz}")
        if not config.validate_palette_k(self.palette_k):
            raise ValueError(f"Invalid palette_k: {self.palette_k}")

    @classmethod
    def from_config(cls, **overrides) -> "SnapshotSettings":
        """Build settings from the global config, applying non-None overrides."""
        values = {k: v for k, v in overrides.items() if v is not None}
        return cls(**values)
