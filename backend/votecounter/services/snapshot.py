"""
VoteCounter Snapshot
One photograph under analysis: its derived-data cache, the regions grown from
operator picks, the pick ledger, the trained palette and the editing mode.
"""
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from loguru import logger

from votecounter.config import config, SnapshotSettings
from votecounter.services.cache import CacheSlot, DerivedDataCache
from votecounter.services.colors.classification import Classifier, ClassificationResult, NotTrainedError
from votecounter.services.colors.swatches import render_palette_image
from votecounter.services.colors.training import ColorTrainer, TrainedPalette
from votecounter.services.imaging import get_image_dimensions
from votecounter.services.ledger import PickLedger
from votecounter.services.segmentation.regions import Region, RegionGrower
from votecounter.utils.metrics import get_metrics, timed


class Mode(str, Enum):
    """Editing mode of a snapshot."""
    INERT = "inert"
    TRAIN = "train"
    MASK = "mask"


class PickAction(str, Enum):
    """Pointer action translated by the caller."""
    ADD = "add"
    REMOVE = "remove"


class Snapshot:
    """Color analysis session over a single photo."""

    def __init__(self, path: Path, cache_dir: Path, settings: SnapshotSettings):
        self.path = path
        self.cache_dir = cache_dir
        self.settings = settings
        self.mode = Mode.INERT
        self.active_color = config.DEFAULT_COLOR
        self.palette: Optional[TrainedPalette] = None

        self.cache = DerivedDataCache(path, cache_dir, settings.size_limit)
        self.ledger = PickLedger()
        self.grower = RegionGrower(self.cache, self.ledger,
                                   pick_fuzz=settings.pick_fuzz,
                                   epsilon=settings.polygon_epsilon)
        self.trainer = ColorTrainer(k=settings.palette_k,
                                    max_iter=settings.kmeans_max_iter,
                                    max_samples=settings.max_train_samples,
                                    n_jobs=settings.classify_jobs)
        self.classifier = Classifier(threshold=settings.classify_threshold,
                                     min_blob_area=settings.min_blob_area)

    @classmethod
    def open(cls, path: Union[str, Path], settings: Optional[SnapshotSettings] = None) -> "Snapshot":
        """
        Open a photo, creating its cache directory and restoring saved picks.

        Raises:
            FileNotFoundError: If the photo does not exist or cannot be read
        """
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Snapshot photo not found: {path}")

        cache_dir = path.parent / f"{path.stem}{config.CACHE_SUFFIX}"
        if not cache_dir.exists():
            logger.info(f"Creating cache directory {cache_dir}")
            cache_dir.mkdir(parents=True)

        snapshot = cls(path, cache_dir, settings or SnapshotSettings.from_config())
        with timed("snapshot_open"):
            snapshot.cache.get(CacheSlot.WORKING)
            snapshot.restore(PickLedger.load(snapshot.ledger_path))

        get_metrics().increment("snapshots_opened_total")
        logger.info(f"Opened snapshot {path} ({snapshot.size[0]}x{snapshot.size[1]}, "
                    f"{len(snapshot.ledger)} picks)")
        return snapshot

    @property
    def ledger_path(self) -> Path:
        return self.cache_dir / config.LEDGER_FILENAME

    @property
    def size(self) -> Tuple[int, int]:
        """(width, height) of the working image."""
        return self.grower.image_size

    @property
    def is_trained(self) -> bool:
        return self.palette is not None and self.palette.is_trained

    def restore(self, ledger: PickLedger) -> int:
        """
        Rebuild regions by replaying every pick of a ledger.

        Returns:
            Number of picks that grew a region
        """
        replayed = 0
        for color, x, y in ledger:
            if self.grower.pick(color, x, y) > 0:
                replayed += 1
        if replayed < len(ledger):
            logger.warning(f"{len(ledger) - replayed} of {len(ledger)} saved picks filled nothing on replay")
        return replayed

    def set_train_mode(self, tag: str) -> Mode:
        """
        Switch to training a color class, or to mask editing for "mask".

        Raises:
            ValueError: If the tag is empty
        """
        tag = (tag or "").strip()
        if not tag:
            raise ValueError("Color class name must not be empty")

        if tag.lower() == config.MASK_MODE_TAG:
            self.mode = Mode.MASK
        else:
            self.mode = Mode.TRAIN
            self.active_color = tag
        logger.debug(f"Mode {self.mode.value}, active class {self.active_color}")
        return self.mode

    def pick(self, x: int, y: int) -> int:
        """Grow a region of the active class; ignored outside train mode."""
        if self.mode != Mode.TRAIN:
            logger.debug(f"Pick ({x}, {y}) ignored in {self.mode.value} mode")
            return 0
        with timed("pick"):
            filled = self.grower.pick(self.active_color, x, y)
        if filled:
            get_metrics().increment("picks_total")
        return filled

    def unpick(self, x: int, y: int) -> Optional[Region]:
        """Remove the region under the point, in any mode."""
        region = self.grower.unpick(x, y)
        if region is not None:
            get_metrics().increment("unpicks_total")
        return region

    def handle_pick(self, x: int, y: int, action: PickAction) -> bool:
        """
        Apply a pointer action.

        Returns:
            True if any region changed
        """
        action = PickAction(action)
        if action == PickAction.ADD:
            return self.pick(x, y) > 0
        return self.unpick(x, y) is not None

    def clear_layer(self) -> None:
        """Drop every region and pick of the active class."""
        self.grower.clear(self.active_color)
        logger.info(f"Cleared class {self.active_color}")

    def set_size_limit(self, size_limit: int) -> bool:
        """
        Rescale the working image and replay the picks at the new scale.

        Returns:
            True if the limit changed
        """
        if not config.validate_size_limit(size_limit):
            raise ValueError(f"Invalid size_limit: {size_limit}")

        old_limit = self.cache.size_limit
        if not self.cache.set_size_limit(size_limit):
            return False

        scale = size_limit / old_limit
        width, height = get_image_dimensions(self.cache.get(CacheSlot.WORKING))
        rescaled = PickLedger()
        for color, x, y in self.ledger:
            # Keep picks on the last row or column inside the new image
            new_x = min(width - 1, max(0, int(round(x * scale))))
            new_y = min(height - 1, max(0, int(round(y * scale))))
            rescaled.add(color, new_x, new_y)

        self.settings.size_limit = size_limit
        self.ledger = PickLedger()
        self.grower = RegionGrower(self.cache, self.ledger,
                                   pick_fuzz=self.settings.pick_fuzz,
                                   epsilon=self.settings.polygon_epsilon)
        self.restore(rescaled)
        return True

    def train(self) -> TrainedPalette:
        """Train the palette from every class's fill mask and store its image."""
        lab = self.cache.get(CacheSlot.LAB)
        with timed("train"):
            palette = self.trainer.train(self.grower.masks(), lab)

        self.palette = palette
        if palette.is_trained:
            self.cache.set(CacheSlot.PALETTE, render_palette_image(palette))
            get_metrics().increment("trainings_total")
        else:
            self.cache.invalidate(CacheSlot.PALETTE)
        return palette

    def classify(self) -> ClassificationResult:
        """
        Classify every pixel of the working image and store the result image.

        Raises:
            NotTrainedError: If no usable palette has been trained
        """
        if not self.is_trained:
            raise NotTrainedError("No trained palette; run training first")

        lab = self.cache.get(CacheSlot.LAB)
        with timed("classify"):
            result = self.classifier.classify(lab, self.palette)
        self.cache.set(CacheSlot.CLASSIFIED, result.image)
        get_metrics().increment("classifications_total")
        return result

    def regions(self, color: Optional[str] = None) -> List[Region]:
        return self.grower.regions(color)

    def picks(self) -> Dict[str, List[Tuple[int, int]]]:
        return {color: self.ledger.picks(color) for color in self.ledger.colors()}

    def save(self) -> None:
        """Persist the pick ledger into the cache directory."""
        self.ledger.save(self.ledger_path)

    def close(self) -> None:
        self.save()
        logger.info(f"Closed snapshot {self.path} ({len(self.ledger)} picks saved)")
