"""Group flush controller.

Owns the tally store and decides when a group of tallies is complete:

- live fetch: the scope is (collection, tld, sld). Index records arrive in
  urlkey order, so once a record with a different domain pair shows up the
  previous pair can never receive more data and is written out. Memory stays
  bounded to a single domain.
- replay: there is one scope, the whole store, written once at the end.
"""

import enum
import logging
from typing import Callable, Iterable, Optional, Tuple

from .normalize import StatKey
from .tally import Tally, TallyStore

logger = logging.getLogger(__name__)

Scope = Tuple[str, str, str]
GroupSink = Callable[[Iterable[Tuple[StatKey, Tally]]], int]


class FlushState(enum.Enum):
    ACCUMULATING = "accumulating"
    FLUSHING = "flushing"
    DONE = "done"


class GroupFlushController:
    """Accumulates tallies and hands completed groups to ``sink``."""

    def __init__(self, sink: GroupSink, whole_store: bool = False,
                 store: Optional[TallyStore] = None):
        """Initialize flush controller.

        Args:
            sink: Callable receiving the sorted rows of a completed group
            whole_store: Replay mode; flush only once at the end
            store: Tally store to own (a fresh one by default)
        """
        self.sink = sink
        self.whole_store = whole_store
        self.store = store if store is not None else TallyStore()
        self.state = FlushState.ACCUMULATING
        self.scope: Optional[Scope] = None

        # Statistics
        self.groups_flushed = 0
        self.rows_flushed = 0
        self.groups_discarded = 0

    def add(self, key: StatKey, size: int, count: int = 1) -> None:
        """Accumulate a record, flushing the previous scope on a boundary."""
        if self.state is FlushState.DONE:
            raise RuntimeError("flush controller is closed")
        if not self.whole_store:
            scope = key.scope
            if scope != self.scope:
                self._flush()
                self.scope = scope
        self.store.accumulate(key, size, count)

    def end_collection(self) -> None:
        """Input for the current collection is exhausted."""
        if not self.whole_store:
            self._flush()
            self.scope = None

    def rollback(self) -> Optional[Scope]:
        """Discard the in-flight scope so it can be fetched again.

        Returns the discarded scope.
        """
        scope = self.scope
        discarded = self.store.discard(scope if scope and not self.whole_store else ())
        if discarded:
            self.groups_discarded += 1
            logger.debug("Discarded %d partial tallies of %s", discarded, scope)
        self.scope = None
        return scope

    def close(self) -> None:
        """Flush whatever is left and stop accepting records."""
        if self.state is FlushState.DONE:
            return
        self._flush()
        self.scope = None
        self.state = FlushState.DONE

    def _flush(self) -> None:
        if self.whole_store:
            prefix = ()
        elif self.scope is None:
            return
        else:
            prefix = self.scope
        self.state = FlushState.FLUSHING
        rows = self.store.drain_sorted(prefix)
        if rows:
            self.rows_flushed += self.sink(rows)
            self.groups_flushed += 1
        self.state = FlushState.ACCUMULATING
