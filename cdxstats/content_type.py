"""Content-type canonicalization for statistics keys.

Index records carry whatever Content-Type header the archived server sent,
which is frequently malformed. These helpers reduce a raw value to a stable
grouping key according to the selected mode.
"""

import re
from dataclasses import dataclass

DEFAULT_TYPE = "-"
OCTET_STREAM = "application/octet-stream"

# https://www.rfc-editor.org/rfc/rfc2045#section-5.1
REGISTERED_MAIN_TYPES = (
    "application",
    "audio",
    "image",
    "message",
    "multipart",
    "text",
    "video",
)

_TYPE_PARTS_RE = re.compile(r"([^/]+)(/[^;]*)?")
_MAIN_TYPE_RE = re.compile(r"^(?:%s|x-[\x20-\x7e]+)$" % "|".join(REGISTERED_MAIN_TYPES))
_FORBIDDEN_RE = re.compile(r'[\x00-\x1f\x7f <>@,:;?.=\[\]()\\/"]')
_NON_PRINTABLE_TAIL_RE = re.compile(r"[^\x20-\x7e].*$", re.DOTALL)
_OCTET_STREAM_RE = re.compile(r"^application/octet-stream.*$", re.DOTALL)
_SEPARATOR_RE = re.compile(r"\t|, ")


@dataclass
class NormalizeOptions:
    """Key normalization modes (replay path only)."""
    year: bool = False
    main_type: bool = False
    ascii_only: bool = False
    rfc: bool = False


def rfc_clean(content_type: str) -> str:
    """Reduce a content-type to an RFC 2045 compliant type/subtype.

    An empty sub-type is allowed. Anything that cannot be salvaged becomes
    application/octet-stream.
    """
    match = _TYPE_PARTS_RE.search(content_type)
    if match:
        main_type, sub_type = match.group(1), match.group(2) or ""
        if not _MAIN_TYPE_RE.match(main_type):
            main_type = ""
        elif main_type.startswith("x-") and _FORBIDDEN_RE.search(main_type):
            main_type = ""

        if not main_type:
            sub_type = ""
        if sub_type:
            sub_type = sub_type[1:]
            if _FORBIDDEN_RE.search(sub_type):
                sub_type = ""
            if sub_type:
                sub_type = "/" + sub_type
        cleaned = main_type + sub_type
    else:
        cleaned = ""

    cleaned = _OCTET_STREAM_RE.sub(OCTET_STREAM, cleaned)
    return cleaned or OCTET_STREAM


def ascii_prefix(content_type: str) -> str:
    """Truncate at the first non-printable character."""
    return _NON_PRINTABLE_TAIL_RE.sub("", content_type)


def strip_separators(content_type: str) -> str:
    """Replace output separators so the value is safe as a key column."""
    return _SEPARATOR_RE.sub(";", content_type)


def canonical_type(content_type: str, options: NormalizeOptions = None) -> str:
    """Apply lower-casing, the selected reduction mode and separator escaping."""
    options = options or NormalizeOptions()
    value = (content_type or DEFAULT_TYPE).lower()
    if options.main_type:
        value = value.split("/", 1)[0]
    if options.ascii_only:
        value = ascii_prefix(value)
    if options.rfc:
        value = rfc_clean(value)
    value = strip_separators(value)
    return value or DEFAULT_TYPE
