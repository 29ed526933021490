"""Reader for previously written statistics files.

Compressed inputs (.gz, .bz2) are decompressed while reading and "-" reads
standard input. The field separator is sniffed from the first data line and
kept for the whole file.
"""

import bz2
import gzip
import logging
import sys
from pathlib import Path
from typing import Iterator, Optional, TextIO

from ..errors import CdxStatsError
from ..normalize import ReplayRow, parse_replay_line, sniff_separator

logger = logging.getLogger(__name__)


def open_stats_file(path: str) -> TextIO:
    """Open a statistics file for text reading, decompressing as needed."""
    if path == "-":
        return sys.stdin
    file_path = Path(path)
    try:
        if file_path.suffix == ".gz":
            return gzip.open(file_path, "rt", encoding="utf-8", errors="replace")
        if file_path.suffix == ".bz2":
            return bz2.open(file_path, "rt", encoding="utf-8", errors="replace")
        return open(file_path, "r", encoding="utf-8", errors="replace")
    except OSError as e:
        raise CdxStatsError(f"failed to open file '{path}': {e}") from e


class ReplayReader:
    """Iterates the rows of a statistics file as ReplayRow tuples."""

    def __init__(self, path: str):
        self.path = path
        self.separator: Optional[str] = None

        # Statistics
        self.lines_read = 0
        self.rows_rejected = 0

    def rows(self, handle: TextIO) -> Iterator[ReplayRow]:
        for line in handle:
            if not line.strip():
                continue
            self.lines_read += 1
            if self.separator is None:
                self.separator = sniff_separator(line)
                logger.debug("Separator of '%s' is %r", self.path, self.separator)
            row = parse_replay_line(line, self.separator)
            if row is None:
                self.rows_rejected += 1
                continue
            yield row

    def __iter__(self) -> Iterator[ReplayRow]:
        handle = open_stats_file(self.path)
        try:
            try:
                yield from self.rows(handle)
            except (OSError, EOFError) as e:
                raise CdxStatsError(f"failed to read '{self.path}': {e}") from e
        finally:
            if handle is not sys.stdin:
                handle.close()
