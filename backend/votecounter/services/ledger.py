"""
VoteCounter Pick Ledger
Ordered per-class record of operator picks, the snapshot's only persisted state.

File format::

    {"picks": {"red": [x0, y0, x1, y1, ...], "green": [...]}}
"""
import json
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Tuple, Union

from loguru import logger

Point = Tuple[int, int]


class PickLedger:
    """Per-class ordered pick coordinates."""

    def __init__(self):
        self._picks: Dict[str, List[Point]] = {}

    def add(self, color: str, x: int, y: int) -> bool:
        """
        Record a pick for a class.

        Returns:
            False if the exact coordinate was already recorded for the class
        """
        picks = self._picks.setdefault(color, [])
        point = (int(x), int(y))
        if point in picks:
            return False
        picks.append(point)
        return True

    def remove(self, color: str, predicate: Callable[[Point], bool]) -> List[Point]:
        """Remove and return the class's picks matching predicate."""
        picks = self._picks.get(color, [])
        removed = [p for p in picks if predicate(p)]
        if removed:
            self._picks[color] = [p for p in picks if not predicate(p)]
        return removed

    def clear(self, color: str) -> None:
        """Forget every pick of a class."""
        self._picks.pop(color, None)

    def picks(self, color: str) -> List[Point]:
        """Picks of a class in recording order."""
        return list(self._picks.get(color, []))

    def colors(self) -> List[str]:
        """Classes with at least one recorded pick."""
        return [color for color, picks in self._picks.items() if picks]

    def __iter__(self) -> Iterator[Tuple[str, int, int]]:
        """Replay order: class by class, picks in recording order."""
        for color in self.colors():
            for x, y in self._picks[color]:
                yield color, x, y

    def __len__(self) -> int:
        return sum(len(picks) for picks in self._picks.values())

    def to_dict(self) -> Dict[str, Dict[str, List[int]]]:
        """Serialize to the persisted mapping of flat interleaved x, y lists."""
        picks = {}
        for color in self.colors():
            flat: List[int] = []
            for x, y in self._picks[color]:
                flat.extend((x, y))
            picks[color] = flat
        return {"picks": picks}

    @classmethod
    def from_dict(cls, data: dict) -> "PickLedger":
        """
        Build a ledger from its persisted mapping.

        Raises:
            ValueError: If the mapping does not follow the ledger format
        """
        if not isinstance(data, dict):
            raise ValueError("Pick ledger must be a mapping")
        picks = data.get("picks", {})
        if not isinstance(picks, dict):
            raise ValueError("'picks' must map color names to coordinate lists")

        ledger = cls()
        for color, flat in picks.items():
            if not isinstance(flat, list) or len(flat) % 2 != 0:
                raise ValueError(f"Picks for '{color}' must be a flat list of x, y pairs")
            if not all(isinstance(v, int) and not isinstance(v, bool) for v in flat):
                raise ValueError(f"Picks for '{color}' must be integers")
            for i in range(0, len(flat), 2):
                ledger.add(color, flat[i], flat[i + 1])
        return ledger

    def save(self, path: Union[str, Path]) -> None:
        """Write the ledger as JSON."""
        Path(path).write_text(json.dumps(self.to_dict()))
        logger.debug(f"Saved {len(self)} picks to {path}")

    @classmethod
    def load(cls, path: Union[str, Path]) -> "PickLedger":
        """
        Read a ledger file.

        A missing file yields an empty ledger, and so does an unreadable or
        malformed one, which is logged.
        """
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            ledger = cls.from_dict(json.loads(path.read_text()))
        except ValueError as e:
            logger.warning(f"Ignoring unreadable pick ledger {path}: {e}")
            return cls()
        logger.debug(f"Loaded {len(ledger)} picks from {path}")
        return ledger
