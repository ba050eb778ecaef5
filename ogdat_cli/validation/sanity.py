"""Text and geometry well-formedness checks.

check_text flags free-text values that were most likely mangled on the way
into the portal: broken encodings, HTML markup and escapes, percent-encoded
URL fragments and literal POSIX escape sequences.

check_bbox validates the WKT bounding box of a dataset. The loose rules
accept the two-corner shorthand or a five-point ring; the strict rules
require the ring and check that it is closed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from ogdat_cli.constants import BBOX_EPSILON
from ogdat_cli.messages import CheckFlag
from ogdat_cli.parsers import printable

# Characters shown on either side of an offending position
CONTEXT_WINDOW = 20

_HTML_TAG = re.compile(r"<\w+.*('|\"|)>")
_HTML_ESCAPE = re.compile(r"&\w{1,10};|&#\d{1,6};")
_URL_ESCAPE = re.compile(r"%[0-9a-fA-F][0-9a-fA-F]")
_POSIX_ESCAPE = re.compile(r"\\n|\\b|\\v|\\t")

# Pattern, description, excerpt length
_WARNING_PATTERNS: tuple[tuple[re.Pattern[str], str, int], ...] = (
    (_HTML_TAG, "possible HTML markup", 20),
    (_HTML_ESCAPE, "possible HTML escape", 15),
    (_URL_ESCAPE, "possible URL escape", 8),
    (_POSIX_ESCAPE, "possible POSIX escape", 5),
)

REPLACEMENT_CHARACTER = "\ufffd"


@dataclass(frozen=True)
class SanityIssue:
    """Why a text failed the sanity check.

    Attributes:
        level: CheckFlag.ERROR or CheckFlag.WARNING.
        position: Byte offset of the first offending character in the
            UTF-8 encoded text.
        reason: Description with an excerpt of the offending text.
    """

    level: CheckFlag
    position: int
    reason: str

    def __str__(self) -> str:
        return self.reason


def context_window(text: str, index: int, width: int = CONTEXT_WINDOW) -> str:
    """Return text around character index, with ellipses where it was cut.

    Undecodable bytes are shown as ``\\xNN`` escapes.
    """
    index = min(index, len(text))
    start = index - width
    end = index + width
    prefix = "..." if start > 0 else ""
    suffix = "..." if end < len(text) else ""
    return prefix + printable(text[max(start, 0) : min(end, len(text))]) + suffix


def byte_offset(text: str, index: int) -> int:
    """Byte position of character index in the document's UTF-8 bytes."""
    return len(text[:index].encode("utf-8", "surrogateescape"))


def _first_unencodable(text: str) -> int | None:
    for index, char in enumerate(text):
        if "\ud800" <= char <= "\udfff":
            return index
    return None


def check_text(text: str) -> SanityIssue | None:
    """Check a free-text value.

    Returns:
        None if the text looks clean, otherwise the first issue found.
    """
    bad = _first_unencodable(text)
    if bad is not None:
        return SanityIssue(
            CheckFlag.ERROR,
            byte_offset(text, bad),
            f"invalid UTF-8 sequence 0x{ord(text[bad]) & 0xFF:x} (around '{context_window(text, bad)}')",
        )

    replacement = text.find(REPLACEMENT_CHARACTER)
    if replacement >= 0:
        return SanityIssue(
            CheckFlag.WARNING,
            byte_offset(text, replacement),
            f"Unicode replacement character (around '{context_window(text, replacement)}')",
        )

    for pattern, description, excerpt in _WARNING_PATTERNS:
        match = pattern.search(text)
        if match:
            return SanityIssue(
                CheckFlag.WARNING,
                byte_offset(text, match.start()),
                f"{description}: '{match.group(0)[:excerpt]}'",
            )
    return None


# =============================================================================
# Bounding boxes
# =============================================================================

_NUMBER = r"[-+]?\d*\.?\d+"

_BBOX_LOOSE = re.compile(
    r"^POLYGON\s?\({1,2}\s{0,2}" + _NUMBER + r"\s{1,2}" + _NUMBER + r",\s{0,2}"
    + _NUMBER + r"\s{1,2}" + _NUMBER + r"\s{0,2}\){1,2}$"
)

_BBOX_RING = re.compile(
    r"^POLYGON\s?(\({1,2})"
    rf"({_NUMBER}) ({_NUMBER}),\s?"
    rf"(?:{_NUMBER} {_NUMBER},\s?){{3}}"
    rf"({_NUMBER}) ({_NUMBER})\s?"
    r"(\){1,2})$"
)


def _close(a: str, b: str, epsilon: float) -> bool:
    return abs(float(a) - float(b)) <= epsilon


def check_bbox(text: str, *, closed_ring: bool) -> str | None:
    """Check a WKT bounding box.

    Args:
        text: The WKT value.
        closed_ring: Require five points whose first and last pair match
            within BBOX_EPSILON. Otherwise the two-corner shorthand or any
            five-point ring is accepted.

    Returns:
        None if valid, otherwise the reason it is not.
    """
    if _first_unencodable(text) is not None:
        return "text is not valid UTF-8"

    match = _BBOX_RING.match(text)
    if match is not None and len(match.group(1)) != len(match.group(6)):
        match = None

    if not closed_ring:
        if match is None and _BBOX_LOOSE.match(text) is None:
            return f"not a valid WKT bounding box: '{text}'"
        return None

    if match is None:
        return f"not a valid WKT POLYGON bounding box: '{text}'"
    first_x, first_y, last_x, last_y = match.group(2, 3, 4, 5)
    if not (_close(first_x, last_x, BBOX_EPSILON) and _close(first_y, last_y, BBOX_EPSILON)):
        return f"first and last point do not close the polygon: '{text}'"
    return None
