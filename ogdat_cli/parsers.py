"""Value parsers for metadata fields.

Every parser takes the decoded JSON value of one field and returns an
immutable value object that keeps the raw input next to the parsed form.
Parsers never raise on bad content: a value that does not parse keeps its
raw text and an empty parsed form, and the field rules decide how to
report it.

Categorization and metadata linkage have historically been published in
several JSON shapes (array, single string, array serialized into a
string). Their parsers record the observed shape in ``ValueShape`` so the
checks can flag legacy encodings.
"""

from __future__ import annotations

import json
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from urllib.parse import SplitResult, urlsplit

from ogdat_cli.constants import DATE_FORMAT, DATETIME_FORMAT

if TYPE_CHECKING:
    from ogdat_cli.vocabularies import Category, Cycle, Vocabularies


# =============================================================================
# Plain text
# =============================================================================


def parse_text(value: Any) -> str:
    """Pass strings through, keep any other JSON value as its JSON text."""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def printable(text: str) -> str:
    """Replace bytes that were not valid UTF-8 with ``\\xNN`` escapes.

    Documents are decoded with ``surrogateescape``, so invalid bytes live on
    as lone surrogates. They cannot be encoded again and must not reach
    messages, terminals or files.
    """
    return text.encode("utf-8", "surrogateescape").decode("utf-8", "backslashreplace")


def parse_tags(value: Any) -> tuple[str, ...]:
    """Normalize CKAN tags to a tuple of names.

    Tags arrive either as plain strings or as objects with a "name" key.
    """
    if isinstance(value, str):
        return (value,) if value else ()
    if not isinstance(value, list):
        return (parse_text(value),)
    names: list[str] = []
    for tag in value:
        if isinstance(tag, dict):
            name = tag.get("name")
            if name:
                names.append(str(name))
        elif tag is not None:
            names.append(parse_text(tag))
    return tuple(names)


# =============================================================================
# Identifiers
# =============================================================================

_UUID_PATTERN = re.compile(
    r"^(?:urn:uuid:)?[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Identifier:
    """A metadata identifier; ``uuid`` is None when raw is not a UUID."""

    raw: str
    uuid: uuid.UUID | None = None

    @property
    def is_uuid(self) -> bool:
        return self.uuid is not None

    def __str__(self) -> str:
        return self.raw


def parse_identifier(value: Any) -> Identifier:
    raw = parse_text(value)
    if _UUID_PATTERN.match(raw):
        return Identifier(raw, uuid.UUID(raw))
    return Identifier(raw)


# =============================================================================
# Timestamps
# =============================================================================


class TimestampFormat(Enum):
    """Formats a timestamp can be written in, in matching order."""

    RFC3339_NANO = "rfc3339nano"
    RFC3339 = "rfc3339"
    DATETIME = DATETIME_FORMAT
    DATE = DATE_FORMAT


_RFC3339_PATTERN = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(\.\d{1,9})?(Z|[+-]\d{2}:\d{2})$",
    re.IGNORECASE,
)
_DATETIME_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}$")
_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class Timestamp:
    """A timestamp with the format it matched.

    ``format`` and ``value`` are None when the raw text matched no format.
    """

    raw: str
    format: TimestampFormat | None = None
    value: datetime | None = None

    @property
    def is_parsed(self) -> bool:
        return self.format is not None

    def __str__(self) -> str:
        return self.raw


def _parse_rfc3339(raw: str) -> tuple[TimestampFormat, datetime] | None:
    match = _RFC3339_PATTERN.match(raw)
    if match is None:
        return None
    base, fraction, zone = match.groups()
    zone = "+00:00" if zone.upper() == "Z" else zone
    micros = (fraction[1:] + "000000")[:6] if fraction else "000000"
    try:
        parsed = datetime.strptime(f"{base}.{micros}{zone}", "%Y-%m-%dT%H:%M:%S.%f%z")
    except ValueError:
        return None
    kind = TimestampFormat.RFC3339_NANO if fraction else TimestampFormat.RFC3339
    return kind, parsed


def parse_timestamp(value: Any) -> Timestamp:
    """Try the RFC 3339 forms, then the OGD date-time, then the OGD date."""
    raw = parse_text(value)
    text = raw.strip()

    rfc = _parse_rfc3339(text)
    if rfc is not None:
        return Timestamp(raw, rfc[0], rfc[1])

    for fmt, pattern in (
        (TimestampFormat.DATETIME, _DATETIME_PATTERN),
        (TimestampFormat.DATE, _DATE_PATTERN),
    ):
        if pattern.match(text):
            try:
                return Timestamp(raw, fmt, datetime.strptime(text, fmt.value))
            except ValueError:
                # Shape matched but the calendar values are out of range
                continue
    return Timestamp(raw)


# =============================================================================
# URLs
# =============================================================================

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_BAD_ESCAPE = re.compile(r"%(?![0-9a-fA-F]{2})")


@dataclass(frozen=True)
class Url:
    """A link value; ``parts`` is None when raw cannot be parsed as a URL."""

    raw: str
    parts: SplitResult | None = None

    @property
    def is_valid(self) -> bool:
        return self.parts is not None

    @property
    def host(self) -> str:
        if self.parts is None:
            return ""
        return self.parts.hostname or ""

    def __str__(self) -> str:
        return self.raw


def parse_url(value: Any) -> Url:
    """Parse a link.

    Rejects control characters, malformed percent escapes, a missing
    scheme in front of a colon, and unparsable hosts or ports.
    """
    raw = parse_text(value)
    if _CONTROL_CHARS.search(raw) or _BAD_ESCAPE.search(raw) or raw.startswith(":"):
        return Url(raw)
    try:
        parts = urlsplit(raw)
        # Accessing port validates it
        _ = parts.port
    except ValueError:
        return Url(raw)
    return Url(raw, parts)


# =============================================================================
# Legacy shapes
# =============================================================================


class ValueShape(Enum):
    """JSON shape a multi-valued field was published in."""

    ARRAY = "array"
    STRING = "string"
    STRING_ENCODED_ARRAY = "string-encoded-array"

    @property
    def is_legacy(self) -> bool:
        return self is not ValueShape.ARRAY


def _decode_multi(value: Any) -> tuple[ValueShape, list[str]]:
    """Split a multi-valued field into its shape and its string entries."""
    if isinstance(value, list):
        return ValueShape.ARRAY, [parse_text(v) for v in value if v is not None]

    raw = parse_text(value)
    stripped = raw.strip()
    if stripped.startswith("["):
        try:
            decoded = json.loads(stripped)
        except ValueError:
            decoded = None
        if isinstance(decoded, list):
            return ValueShape.STRING_ENCODED_ARRAY, [
                parse_text(v) for v in decoded if v is not None
            ]
    return ValueShape.STRING, [raw] if raw else []


@dataclass(frozen=True)
class Categorization:
    """The categories of a dataset and the shape they were published in."""

    shape: ValueShape
    categories: tuple[Category, ...] = field(default_factory=tuple)

    @property
    def unknown(self) -> tuple[Category, ...]:
        return tuple(c for c in self.categories if not c.is_known)

    def __len__(self) -> int:
        return len(self.categories)


def parse_categorization(value: Any, vocabularies: Vocabularies) -> Categorization:
    shape, entries = _decode_multi(value)
    return Categorization(shape, tuple(vocabularies.category(e) for e in entries))


@dataclass(frozen=True)
class Linkage:
    """Metadata linkage URLs and the shape they were published in."""

    shape: ValueShape
    urls: tuple[Url, ...] = field(default_factory=tuple)

    @property
    def is_array(self) -> bool:
        return self.shape is ValueShape.ARRAY


def parse_linkage(value: Any) -> Linkage:
    shape, entries = _decode_multi(value)
    return Linkage(shape, tuple(parse_url(e) for e in entries))


# =============================================================================
# Update cycle
# =============================================================================


def parse_cycle(value: Any, vocabularies: Vocabularies) -> Cycle:
    """Resolve an update frequency; unresolved values get num_id -1."""
    return vocabularies.cycle(parse_text(value))
