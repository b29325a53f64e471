"""
Test the snapshot session: modes, picks, persistence, training and classification.
"""
import json

import numpy as np
import pytest

from votecounter.config import SnapshotSettings
from votecounter.services.cache import CacheSlot
from votecounter.services.colors.classification import NotTrainedError
from votecounter.services.snapshot import Mode, PickAction, Snapshot


@pytest.fixture
def snapshot(ballot_photo, settings):
    return Snapshot.open(ballot_photo, settings)


def _pick_ballot(snapshot):
    snapshot.set_train_mode("red")
    snapshot.pick(10, 10)
    snapshot.pick(12, 11)
    snapshot.set_train_mode("green")
    snapshot.pick(50, 60)


class TestOpen:
    """Opening a photo"""

    def test_open_creates_cache_directory(self, ballot_photo, settings):
        snapshot = Snapshot.open(ballot_photo, settings)

        assert snapshot.cache_dir == ballot_photo.parent / "ballot.cache"
        assert snapshot.cache_dir.is_dir()
        assert (snapshot.cache_dir / "working.png").exists()
        assert snapshot.size == (120, 90)

    def test_open_scales_working_image(self, ballot_photo):
        snapshot = Snapshot.open(ballot_photo, SnapshotSettings(size_limit=60))

        assert snapshot.size == (60, 45)

    def test_open_missing_photo(self, tmp_path, settings):
        with pytest.raises(FileNotFoundError):
            Snapshot.open(tmp_path / "missing.png", settings)

    def test_initial_mode(self, snapshot):
        assert snapshot.mode == Mode.INERT
        assert snapshot.active_color == "green"
        assert not snapshot.is_trained


class TestModes:
    """Mode switching and pick gating"""

    def test_color_tag_enters_train_mode(self, snapshot):
        assert snapshot.set_train_mode("red") == Mode.TRAIN
        assert snapshot.active_color == "red"

    @pytest.mark.parametrize("tag", ["mask", "MASK", "Mask"])
    def test_mask_tag_enters_mask_mode(self, snapshot, tag):
        snapshot.set_train_mode("red")

        assert snapshot.set_train_mode(tag) == Mode.MASK
        assert snapshot.active_color == "red"

    def test_empty_tag_rejected(self, snapshot):
        with pytest.raises(ValueError):
            snapshot.set_train_mode("  ")

    def test_pick_ignored_outside_train_mode(self, snapshot):
        assert snapshot.pick(10, 10) == 0

        snapshot.set_train_mode("mask")
        assert snapshot.pick(10, 10) == 0
        assert snapshot.regions() == []

    def test_unpick_works_in_any_mode(self, snapshot):
        snapshot.set_train_mode("red")
        snapshot.pick(10, 10)
        snapshot.set_train_mode("mask")

        assert snapshot.unpick(10, 10) is not None
        assert snapshot.regions() == []

    def test_handle_pick_actions(self, snapshot):
        snapshot.set_train_mode("red")

        assert snapshot.handle_pick(10, 10, PickAction.ADD)
        assert not snapshot.handle_pick(10, 10, PickAction.ADD)
        assert snapshot.handle_pick(10, 10, "remove")
        assert not snapshot.handle_pick(10, 10, PickAction.REMOVE)

    def test_clear_layer_clears_active_class(self, snapshot):
        _pick_ballot(snapshot)
        snapshot.set_train_mode("red")

        snapshot.clear_layer()

        assert snapshot.picks() == {"green": [(50, 60)]}
        assert [r.color for r in snapshot.regions()] == ["green"]


class TestPersistence:
    """Pick ledger save and replay"""

    def test_close_writes_ledger(self, snapshot):
        _pick_ballot(snapshot)
        snapshot.close()

        data = json.loads(snapshot.ledger_path.read_text())
        assert data == {"picks": {"red": [10, 10], "green": [50, 60]}}

    def test_ledger_round_trip_replays_identical_regions(self, snapshot, ballot_photo):
        _pick_ballot(snapshot)
        masks = {c: m.copy() for c, m in snapshot.grower.masks().items()}
        polygons = [(r.color, r.polygon.tolist()) for r in snapshot.regions()]

        snapshot.ledger_path.write_text(json.dumps(
            {"picks": {"red": [10, 10, 12, 11], "green": [50, 60]}}
        ))
        restored = Snapshot.open(ballot_photo, SnapshotSettings(size_limit=120, pick_fuzz=8.0))

        restored_masks = restored.grower.masks()
        assert list(restored_masks) == list(masks)
        for color, mask in masks.items():
            np.testing.assert_array_equal(restored_masks[color], mask)
        assert [(r.color, r.polygon.tolist()) for r in restored.regions()] == polygons

    @pytest.mark.parametrize("content", [
        json.dumps({"picks": {"red": [1, 2, 3]}}),
        "{\"picks\": {\"red\": [10, 10",
    ])
    def test_unreadable_ledger_opens_without_picks(self, snapshot, ballot_photo, settings, content):
        snapshot.ledger_path.write_text(content)

        reopened = Snapshot.open(ballot_photo, settings)

        assert reopened.picks() == {}
        assert reopened.regions() == []

    def test_set_size_limit_rescales_picks(self, snapshot):
        _pick_ballot(snapshot)

        assert snapshot.set_size_limit(60)

        assert snapshot.size == (60, 45)
        assert snapshot.picks() == {"red": [(5, 5)], "green": [(25, 30)]}
        assert len(snapshot.regions("red")) == 1
        assert len(snapshot.regions("green")) == 1
        assert not snapshot.set_size_limit(60)

    def test_set_size_limit_keeps_pick_on_last_pixel(self, snapshot):
        snapshot.set_train_mode("gray")
        assert snapshot.pick(119, 89) > 0

        assert snapshot.set_size_limit(60)

        assert snapshot.picks() == {"gray": [(59, 44)]}
        assert len(snapshot.regions("gray")) == 1


class TestTrainAndClassify:
    """Palette training and classification through the snapshot"""

    def test_classify_untrained_raises(self, snapshot):
        with pytest.raises(NotTrainedError):
            snapshot.classify()

        assert snapshot.cache.get(CacheSlot.CLASSIFIED) is None
        assert not (snapshot.cache_dir / "classified.png").exists()

    def test_train_without_picks_is_untrained(self, snapshot):
        palette = snapshot.train()

        assert not palette.is_trained
        assert snapshot.cache.get(CacheSlot.PALETTE) is None
        with pytest.raises(NotTrainedError):
            snapshot.classify()

    def test_train_and_classify_counts_cards(self, snapshot):
        for color, (x, y) in (("red", (10, 10)), ("green", (50, 60)), ("blue", (100, 20))):
            snapshot.set_train_mode(color)
            snapshot.pick(x, y)

        palette = snapshot.train()
        assert palette.is_trained
        assert palette.classes == ["red", "green", "blue"]
        assert palette.size == 3
        assert (snapshot.cache_dir / "palette.png").exists()

        result = snapshot.classify()

        assert result.pixel_counts == {"red": 900, "green": 900, "blue": 400}
        assert result.unclassified == 120 * 90 - 2200
        assert result.blob_counts == {"red": 1, "green": 1, "blue": 1}
        assert result.image.shape == (90, 120, 3)
        # Gray background is far from every card color
        assert tuple(result.image[0, 0]) == (0, 0, 0)
        assert (snapshot.cache_dir / "classified.png").exists()
