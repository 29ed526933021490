"""Record normalization: raw index lines to statistics keys.

Two feeds are understood:

- live CDX lines as returned by the index service (space separated,
  SURT-style urlkey first), and
- rows of a previously written statistics file (quoted, ", " or TAB
  separated) in the current or one of the legacy layouts.

Both produce a ``StatKey`` plus the byte size (and for replay rows the
pre-aggregated count).
"""

import logging
import re
from typing import NamedTuple, Optional, Tuple

from .content_type import NormalizeOptions, canonical_type

logger = logging.getLogger(__name__)

WILDCARD = "*"
NO_EXTENSION = "-"
IP_DOMAIN = "IP"

EXTENSION_SYNONYMS = {
    "jpeg": "jpg",
    "htm": "html",
}

_IP_RE = re.compile(r"^\d+\.\d+\.\d+\.\d+")
# dash allowed for punycode
_DOMAIN_RE = re.compile(r"^([A-Za-z0-9-]+)(,([^,/)]+))?")
_EXTENSION_RE = re.compile(r".*\.([A-Za-z0-9]{1,5})$", re.DOTALL)
_TIMESTAMP_RE = re.compile(r"^(\d{6})\d+")
_ALPHA_RE = re.compile(r"[A-Za-z]")


class StatKey(NamedTuple):
    collection: str
    tld: str
    sld: str
    bucket: str
    content_type: str
    extension: str

    @property
    def scope(self) -> Tuple[str, str, str]:
        return (self.collection, self.tld, self.sld)


class ReplayRow(NamedTuple):
    key: StatKey
    count: int
    size: int


def derive_extension(path: str) -> str:
    """Return the lower-cased file name extension of a URL path, or "-".

    Only 1-5 alphanumeric characters with at least one letter count as an
    extension; the query string is ignored.
    """
    name = path.rsplit("/", 1)[-1]
    name = name.split("?", 1)[0]
    match = _EXTENSION_RE.match(name)
    if not match or not _ALPHA_RE.search(match.group(1)):
        return NO_EXTENSION
    ext = match.group(1).lower()
    return EXTENSION_SYNONYMS.get(ext, ext)


def truncate_timestamp(timestamp: str, year: bool = False) -> str:
    """Cut a 14-digit timestamp down to YYYYMM, or YYYY in year mode."""
    bucket = _TIMESTAMP_RE.sub(r"\1", timestamp)
    if year:
        bucket = bucket[:4]
    return bucket


def parse_count(value: str, line: str) -> int:
    if value.isdigit():
        return int(value)
    logger.warning("BAD DATA: '%s'", line)
    return 0


class RecordNormalizer:
    """Turns raw index lines into (StatKey, size) pairs.

    The normalizer remembers the domain pair of the last record so that a
    record with an unparseable urlkey can be attributed to its neighbour.
    """

    def __init__(self, options: Optional[NormalizeOptions] = None):
        self.options = options or NormalizeOptions()
        self.last_tld = ""
        self.last_sld = ""
        self.records_seen = 0
        self.records_skipped = 0
        self.records_malformed = 0

    def reset_domain(self, tld: str = "", sld: str = "") -> None:
        self.last_tld = tld
        self.last_sld = sld

    def split_domain(self, urlkey: str, line: str = "", collection: str = "") -> Tuple[str, str]:
        """Split a SURT urlkey into (top-level domain, second-level domain)."""
        if _IP_RE.match(urlkey):
            return IP_DOMAIN, ""
        match = _DOMAIN_RE.match(urlkey)
        if match:
            return match.group(1), match.group(3) or ""
        logger.warning("UNEXPECTED DOMAIN: '%s' in %s", line or urlkey, collection)
        return self.last_tld, self.last_sld

    def normalize_live(self, line: str, collection: str) -> Optional[Tuple[StatKey, int]]:
        """Normalize one live CDX line.

        Returns None for records that are skipped (DNS lookups, blank lines,
        unparseable domains with no earlier record in the same query).
        """
        line = line.replace('"', "").rstrip("\r\n")
        fields = line.split(" ")
        urlkey = fields[0]
        if not urlkey or urlkey.startswith("dns:"):
            self.records_skipped += 1
            return None
        self.records_seen += 1

        def field(index: int) -> str:
            return fields[index] if len(fields) > index else ""

        timestamp, content_type, size_field = field(1), field(3), field(8)

        if size_field.isdigit():
            size = int(size_field)
        else:
            logger.warning("BAD DATA: '%s' in %s", line, collection)
            self.records_malformed += 1
            size = 0

        tld, sld = self.split_domain(urlkey, line, collection)
        if not tld:
            # no earlier record to attribute it to
            self.records_skipped += 1
            return None
        self.last_tld, self.last_sld = tld, sld

        content_type = canonical_type(content_type)
        extension = derive_extension(urlkey)
        if extension == tld and content_type == "text/html":
            extension = NO_EXTENSION

        key = StatKey(
            collection,
            tld,
            sld,
            truncate_timestamp(timestamp, self.options.year),
            content_type,
            extension,
        )
        return key, size

    def normalize_replay(self, row: ReplayRow) -> ReplayRow:
        """Apply year truncation and content-type reduction to a replay row."""
        key = row.key
        bucket = key.bucket
        if self.options.year and len(bucket) > 4:
            bucket = bucket[:-2]
        key = key._replace(
            bucket=bucket,
            content_type=canonical_type(key.content_type, self.options),
        )
        return row._replace(key=key)


def sniff_separator(line: str) -> str:
    """Pick the field separator of a statistics file from one data line."""
    return ", " if ", " in line else "\t"


def parse_replay_line(line: str, separator: str) -> Optional[ReplayRow]:
    """Parse one row of a statistics file.

    Layouts by field count:
      9 - collection, tld, sld, bucket, type, ext, count, bytes, human size
      7 - collection, tld, bucket, type, ext, count, bytes (no sld column)
      6 - collection, bucket, type, ext, count, bytes (no domain columns)
    """
    line = line.rstrip("\r\n").replace('"', "")
    fields = line.split(separator)
    if len(fields) == 9:
        collection, tld, sld, bucket, content_type, ext, count, size, _human = fields
    elif len(fields) == 7:
        collection, tld, bucket, content_type, ext, count, size = fields
        sld = WILDCARD
    elif len(fields) == 6:
        collection, bucket, content_type, ext, count, size = fields
        tld = sld = WILDCARD
    else:
        logger.warning("BAD DATA: '%s'", line)
        return None
    if not size:
        logger.warning("BAD DATA: '%s'", line)
        return None
    key = StatKey(collection, tld, sld, bucket, content_type, ext)
    return ReplayRow(key, parse_count(count, line), parse_count(size, line))
