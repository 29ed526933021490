"""Statistics runs: live fetch from the index service and file replay.

Live fetch:
- Iterates collections (explicit or discovered in the index directory)
- Issues one range/domain/exact query per collection and resume point
- Normalizes each CDX line and feeds the flush controller
- On a broken stream after some data, discards the domain in flight and
  resumes the same collection from that domain after a short delay
- On a broken stream without any data, skips the collection

Replay:
- Reads a previously written statistics file
- Applies filters, normalization modes and merges
- Writes the re-aggregated rows once, fully sorted
"""

from __future__ import annotations

import enum
import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .config import StatsConfig
from .errors import CdxFetchError
from .flush import GroupFlushController
from .io.replay_reader import ReplayReader
from .net.cdx_client import MATCH_DOMAIN, MATCH_EXACT, MATCH_RANGE, CdxClient
from .normalize import IP_DOMAIN, RecordNormalizer
from .policy import RecordPolicy

logger = logging.getLogger(__name__)

_LAST_LABEL_RE = re.compile(r"^(.+)\.([^.]+)$", re.DOTALL)


class FetchStatus(enum.Enum):
    COMPLETE = "complete"
    RETRY = "retry"
    SKIP = "skip"


@dataclass
class FetchAttempt:
    """Outcome of one query against the index service."""
    status: FetchStatus
    records: int = 0
    error: str = ""


@dataclass
class StartPoint:
    """Where a collection query starts."""
    match_type: str = MATCH_RANGE
    tld: str = ""
    sld: str = ""

    @property
    def url(self) -> str:
        return f"{self.sld}.{self.tld}" if self.sld else self.tld

    @classmethod
    def from_url(cls, start_url: str = "") -> "StartPoint":
        """Derive match type and domain anchor from a --url value.

        "kb.se" fetches one domain, "kb.se." resumes a range from that
        domain and anything containing "/" fetches a single URL.
        """
        match_type = MATCH_DOMAIN if start_url else MATCH_RANGE
        if "/" in start_url:
            match_type = MATCH_EXACT
        if start_url.endswith("."):
            match_type = MATCH_RANGE
        host = start_url[:-1] if start_url.endswith(".") else start_url
        match = _LAST_LABEL_RE.match(host)
        if match:
            return cls(match_type, match.group(2), match.group(1))
        return cls(match_type, host, "")


def discover_collections(index_dir: str) -> List[str]:
    """List collection names as the directories of the index directory."""
    root = Path(index_dir)
    if not root.is_dir():
        logger.warning("Index directory not found: %s", root)
        return []
    return sorted(entry.name for entry in root.iterdir() if entry.is_dir())


def collection_name(value: str) -> str:
    return value.rstrip("/").rsplit("/", 1)[-1]


class FetchDriver:
    """Fetches every collection from the index service into the controller."""

    def __init__(self, config: StatsConfig, client: CdxClient,
                 controller: GroupFlushController,
                 normalizer: Optional[RecordNormalizer] = None,
                 start_url: str = "",
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.client = client
        self.controller = controller
        self.normalizer = normalizer or RecordNormalizer()
        self.start = StartPoint.from_url(start_url)
        self.sleep = sleep

        # Metrics
        self.stats: Dict[str, int] = {
            "collections_done": 0,
            "collections_skipped": 0,
            "retries": 0,
            "records": 0,
        }

    def run(self, collections: Sequence[str]) -> Dict[str, int]:
        for collection in collections:
            self.fetch_collection(collection_name(collection))
        self.controller.close()
        return self.stats

    def fetch_collection(self, collection: str) -> FetchAttempt:
        point = StartPoint(self.start.match_type, self.start.tld, self.start.sld)
        while True:
            attempt = self._attempt(collection, point)
            self.stats["records"] += attempt.records

            if attempt.status is FetchStatus.COMPLETE:
                self.controller.end_collection()
                self.stats["collections_done"] += 1
                return attempt

            if attempt.status is FetchStatus.SKIP:
                logger.error("fetch failed before first line of data from '%s': %s",
                             collection, attempt.error)
                self.controller.rollback()
                self.stats["collections_skipped"] += 1
                return attempt

            point = self._resume_point(point, self.controller.rollback())
            self.stats["retries"] += 1
            logger.warning("fetch failed - restarting from '%s' in '%s': %s",
                           point.url, collection, attempt.error)
            self.sleep(self.config.limits.retry_delay_sec)

    def _resume_point(self, point: StartPoint, scope: Optional[Tuple[str, str, str]]) -> StartPoint:
        if point.match_type != MATCH_RANGE:
            return StartPoint(point.match_type, self.start.tld, self.start.sld)
        if scope is None:
            return point
        _, tld, sld = scope
        if tld == IP_DOMAIN:
            # addresses sort first; start the collection over
            return StartPoint(point.match_type, "", "")
        return StartPoint(point.match_type, tld, sld)

    def _attempt(self, collection: str, point: StartPoint) -> FetchAttempt:
        logger.info("fetching %s", self.client.query_url(collection, point.url, point.match_type))
        self.normalizer.reset_domain(point.tld, point.sld)
        records = 0
        try:
            for line in self.client.iter_lines(collection, point.url, point.match_type):
                result = self.normalizer.normalize_live(line, collection)
                if result is None:
                    continue
                key, size = result
                self.controller.add(key, size)
                records += 1
        except CdxFetchError as e:
            status = FetchStatus.RETRY if records else FetchStatus.SKIP
            return FetchAttempt(status, records, str(e))
        return FetchAttempt(FetchStatus.COMPLETE, records)


def replay_statistics(path: str, policy: RecordPolicy, normalizer: RecordNormalizer,
                      controller: GroupFlushController) -> Dict[str, int]:
    """Re-aggregate a statistics file into ``controller`` (whole-store mode)."""
    reader = ReplayReader(path)
    kept = 0
    for row in reader:
        if not policy.accepts(row.key):
            continue
        row = normalizer.normalize_replay(row)
        controller.add(policy.merge(row.key), row.size, row.count)
        kept += 1
    controller.close()
    return {
        "lines_read": reader.lines_read,
        "rows_rejected": reader.rows_rejected,
        "rows_denied": policy.rows_denied,
        "rows_kept": kept,
    }
