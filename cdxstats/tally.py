"""In-memory tally store keyed by full statistics keys."""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Sequence, Tuple

from .normalize import StatKey


@dataclass
class Tally:
    """Number of records and their total size in bytes."""
    count: int = 0
    bytes: int = 0

    def add(self, count: int, size: int) -> None:
        self.count += count
        self.bytes += size


class TallyStore:
    """
    Accumulates tallies per StatKey.

    Every key maps directly to one Tally; prefixes are only used to select
    a slice of the store when draining or discarding it.
    """

    def __init__(self):
        self._tallies: Dict[StatKey, Tally] = {}
        self.records_accumulated = 0

    def accumulate(self, key: StatKey, size: int, count: int = 1) -> None:
        """Add a record (or a pre-aggregated group of records) to the store."""
        tally = self._tallies.get(key)
        if tally is None:
            tally = self._tallies[key] = Tally()
        tally.add(count, size)
        self.records_accumulated += count

    def _matching(self, prefix: Sequence[str]) -> List[StatKey]:
        prefix = tuple(prefix)
        size = len(prefix)
        return [key for key in self._tallies if key[:size] == prefix]

    def drain_sorted(self, prefix: Sequence[str] = ()) -> List[Tuple[StatKey, Tally]]:
        """Remove and return all tallies under ``prefix`` in key order."""
        keys = sorted(self._matching(prefix))
        return [(key, self._tallies.pop(key)) for key in keys]

    def discard(self, prefix: Sequence[str] = ()) -> int:
        """Drop all tallies under ``prefix`` without emitting them."""
        keys = self._matching(prefix)
        for key in keys:
            del self._tallies[key]
        return len(keys)

    def get(self, key: StatKey) -> Tally:
        return self._tallies.get(key, Tally())

    def __len__(self) -> int:
        return len(self._tallies)

    def __iter__(self) -> Iterator[StatKey]:
        return iter(self._tallies)
