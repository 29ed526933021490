"""Filter and merge policy for re-aggregating statistics files.

Filters are per-dimension allow-lists of regular expressions; a row is kept
only if every configured dimension matches at least one of its patterns and
its time bucket lies within the configured range. Merges collapse a
dimension to the wildcard so all its values add up in one row.
"""

import logging
import re
from typing import List, Pattern

from .config import DEFAULT_END, DEFAULT_START, FilterConfig, MergeConfig
from .normalize import WILDCARD, StatKey

logger = logging.getLogger(__name__)


def compile_patterns(patterns: List[str]) -> List[Pattern]:
    return [re.compile(pattern) for pattern in patterns]


def matches_any(patterns: List[Pattern], value: str) -> bool:
    return any(pattern.search(value) for pattern in patterns)


class RecordPolicy:
    """Decides which replay rows are kept and rewrites merged dimensions."""

    def __init__(self, filters: FilterConfig, merges: MergeConfig):
        """Initialize record policy.

        Args:
            filters: Per-dimension regular expressions and time range
            merges: Dimensions collapsed to the wildcard
        """
        self.filters = filters
        self.merges = merges

        # Compile regex patterns for efficiency
        self.collection_patterns = compile_patterns(filters.collections)
        self.domain_patterns = compile_patterns(filters.domains)
        self.sub_domain_patterns = compile_patterns(filters.sub_domains)
        self.type_patterns = compile_patterns(filters.types)
        self.extension_patterns = compile_patterns(filters.extensions)

        self.start = filters.start
        # merged-month rows carry no time, so only an explicit range drops them
        self.range_given = (filters.start, filters.end) != (DEFAULT_START, DEFAULT_END)
        # tolerate buckets longer than the end bound
        self.end = filters.end + "99"

        self.rows_denied = 0

        logger.debug(
            "Policy initialized with %d collection, %d domain, %d sub-domain, "
            "%d type and %d extension patterns; range %s-%s",
            len(self.collection_patterns),
            len(self.domain_patterns),
            len(self.sub_domain_patterns),
            len(self.type_patterns),
            len(self.extension_patterns),
            self.start,
            self.end,
        )

    def accepts(self, key: StatKey) -> bool:
        """Check a raw (not yet normalized) key against filters and range."""
        checks = (
            (self.collection_patterns, key.collection),
            (self.domain_patterns, key.tld),
            (self.sub_domain_patterns, key.sld),
            (self.type_patterns, key.content_type),
            (self.extension_patterns, key.extension),
        )
        for patterns, value in checks:
            if patterns and not matches_any(patterns, value):
                self.rows_denied += 1
                return False
        if key.bucket == WILDCARD and not self.range_given:
            return True
        if key.bucket < self.start or key.bucket > self.end:
            self.rows_denied += 1
            return False
        return True

    def merge(self, key: StatKey) -> StatKey:
        """Rewrite every merged dimension of ``key`` to the wildcard."""
        merges = self.merges
        return StatKey(
            WILDCARD if merges.collections else key.collection,
            WILDCARD if merges.domains else key.tld,
            WILDCARD if merges.sub_domains else key.sld,
            WILDCARD if merges.months else key.bucket,
            WILDCARD if merges.types else key.content_type,
            WILDCARD if merges.extensions else key.extension,
        )
