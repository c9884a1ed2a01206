"""Request suffixes and filesystem-safe names.

A suffix is ``<epoch-millis>_<6 base36 chars>``: sortable by creation time,
and with ~2.1 billion random values per millisecond collisions within one
retention window are negligible.
"""

import re
import secrets
import string
import time

_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
_SUFFIX_RANDOM_LEN = 6
SUFFIX_PATTERN = re.compile(r"^\d{13,}_[0-9a-z]{6}$")

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def new_suffix() -> str:
    """Create a unique per-request identifier."""
    millis = time.time_ns() // 1_000_000
    rand = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(_SUFFIX_RANDOM_LEN))
    return f"{millis}_{rand}"


def is_valid_suffix(value: str) -> bool:
    """True if ``value`` has the shape produced by :func:`new_suffix`."""
    return bool(SUFFIX_PATTERN.match(value or ""))


def extract_suffix(filename: str) -> str | None:
    """Find the request suffix embedded in a published file name.

    Published names end in ``_<suffix>.<ext>`` (``signed_<suffix>.ipa``,
    ``<Name>_<suffix>.plist``).
    """
    stem = filename.rsplit(".", 1)[0]
    match = re.search(r"(\d{13,}_[0-9a-z]{6})$", stem)
    return match.group(1) if match else None


def sanitize_filename(name: str) -> str:
    """Strip every character outside ``[A-Za-z0-9_-]``.

    Used for display names taken from untrusted metadata documents.
    """
    return _UNSAFE_NAME_CHARS.sub("", name or "")
