"""
Delimited statistics output and staged output files
"""

import bz2
import gzip
import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, TextIO, Tuple

from ..errors import CdxStatsError, EmptyOutputError
from ..normalize import StatKey
from ..tally import Tally
from ..util.bytes import human_size

logger = logging.getLogger(__name__)

STAGING_SUFFIX = "-in-progress"

COMPRESSORS = {
    ".gz": gzip.open,
    ".bz2": bz2.open,
}


class StatsWriter:
    """
    Write tallies as quoted, delimited rows.

    Each field is wrapped in double quotes and fields are joined with the
    configured separator (", " or TAB).
    """

    def __init__(self, stream: TextIO, separator: str = ", "):
        """
        Initialize writer.

        Args:
            stream: Text stream receiving the rows
            separator: Field separator
        """
        self.stream = stream
        self.separator = separator

        # Statistics
        self.rows_written = 0
        self.groups_written = 0

    def format_row(self, key: StatKey, tally: Tally) -> str:
        fields = list(key) + [str(tally.count), str(tally.bytes), human_size(tally.bytes)]
        return self.separator.join(f'"{value}"' for value in fields)

    def write(self, key: StatKey, tally: Tally) -> None:
        self.stream.write(self.format_row(key, tally) + "\n")
        self.rows_written += 1

    def write_group(self, rows: Iterable[Tuple[StatKey, Tally]]) -> int:
        """Write one flushed group and push it out immediately."""
        written = 0
        for key, tally in rows:
            self.write(key, tally)
            written += 1
        if written:
            self.groups_written += 1
            self.stream.flush()
        return written

    def get_stats(self) -> Dict[str, Any]:
        """Get writer statistics"""
        return {
            "rows_written": self.rows_written,
            "groups_written": self.groups_written,
        }


class StagedOutput:
    """
    Output target that only appears under its final name once complete.

    Rows go to ``<target>-in-progress``; ``commit()`` refuses an empty file,
    compresses it when the target ends in .gz or .bz2 and renames it into
    place. Without a target (or with "-") rows go to standard output.
    """

    def __init__(self, target: Optional[str] = None):
        self.target = None if target in (None, "", "-") else Path(target)
        self.staging_path = (
            self.target.with_name(self.target.name + STAGING_SUFFIX) if self.target else None
        )
        self._file: Optional[TextIO] = None

    def open(self) -> TextIO:
        if self.target is None:
            return sys.stdout
        try:
            self.staging_path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.staging_path, "w", encoding="utf-8", newline="")
        except OSError as e:
            raise CdxStatsError(f"failed to open file '{self.staging_path}': {e}") from e
        return self._file

    def close(self) -> None:
        """Close the staging file"""
        if self._file and not self._file.closed:
            self._file.close()

    def commit(self) -> Optional[Path]:
        """Finalize the staging file; returns the final path."""
        if self.target is None:
            sys.stdout.flush()
            return None
        self.close()

        if self.staging_path.stat().st_size == 0:
            raise EmptyOutputError(f"no data written to '{self.staging_path}'")

        staged = self.staging_path
        opener = COMPRESSORS.get(self.target.suffix)
        try:
            if opener:
                logger.info("compressing '%s'", staged)
                compressed = staged.with_name(staged.name + self.target.suffix)
                with open(staged, "rb") as src, opener(compressed, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                staged.unlink()
                staged = compressed

            os.replace(staged, self.target)
        except OSError as e:
            raise CdxStatsError(f"failed to move '{staged}' to '{self.target}': {e}") from e
        return self.target

    def __enter__(self) -> TextIO:
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
