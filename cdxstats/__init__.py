"""
Statistics for web archive CDX indexes.

This package provides:
- RecordNormalizer: Turn live CDX lines and statistics rows into StatKeys
- TallyStore: Count and byte totals per StatKey
- GroupFlushController: Emit completed domain groups with bounded memory
- FetchDriver: Fetch collections from an OutbackCDX-style index service
- RecordPolicy: Filter and merge rows when recalculating a statistics file
- StatsWriter: Render tallies as quoted, delimited rows
"""

__version__ = "1.0.0"

from .flush import GroupFlushController
from .normalize import RecordNormalizer, StatKey
from .policy import RecordPolicy
from .run import FetchDriver, replay_statistics
from .tally import Tally, TallyStore
from .io.stats_writer import StatsWriter

__all__ = [
    'FetchDriver',
    'GroupFlushController',
    'RecordNormalizer',
    'RecordPolicy',
    'StatKey',
    'StatsWriter',
    'Tally',
    'TallyStore',
    'replay_statistics',
]
