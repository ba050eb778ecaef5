"""Metadata document model and field access by numeric ID.

A metadata document is a CKAN package: top-level core fields, an
``extras`` object, and a ``resources`` array. The three are separate
namespaces. Every field the checker knows is registered in FIELD_SLOTS
with its namespace, JSON key and parser, so the checker can look a value
up by field ID without knowing where the document keeps it.

One field table serves all specification versions. Which fields a version
requires is decided by its descriptor table (see ogdat_cli.spec), never by
the document model.

Usage:
    from ogdat_cli.document import field_value, parse_document

    document = parse_document(raw_bytes)
    value, present = field_value(document, 8)  # title
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from types import MappingProxyType
from typing import Any

from ogdat_cli.errors import DocumentParseError
from ogdat_cli.parsers import (
    parse_categorization,
    parse_cycle,
    parse_identifier,
    parse_linkage,
    parse_tags,
    parse_text,
    parse_timestamp,
    parse_url,
    printable,
)
from ogdat_cli.vocabularies import Vocabularies


class Namespace(Enum):
    """Where a field lives inside a CKAN package."""

    CORE = "core"
    EXTRAS = "extras"
    RESOURCE = "resource"


Parser = Callable[[Any, Vocabularies], Any]


def _plain(parse: Callable[[Any], Any]) -> Parser:
    def parser(value: Any, vocabularies: Vocabularies) -> Any:
        return parse(value)

    return parser


@dataclass(frozen=True)
class FieldSlot:
    """Location and parser of one field."""

    field_id: int
    short_name: str
    namespace: Namespace
    key: str
    parse: Parser


_text = _plain(parse_text)

FIELD_SLOTS: Mapping[int, FieldSlot] = MappingProxyType(
    {
        slot.field_id: slot
        for slot in (
            FieldSlot(1, "metadata_identifier", Namespace.EXTRAS, "metadata_identifier", _plain(parse_identifier)),
            FieldSlot(2, "schema_name", Namespace.EXTRAS, "schema_name", _text),
            FieldSlot(3, "schema_language", Namespace.EXTRAS, "schema_language", _text),
            FieldSlot(4, "schema_characterset", Namespace.EXTRAS, "schema_characterset", _text),
            FieldSlot(5, "metadata_modified", Namespace.EXTRAS, "metadata_modified", _plain(parse_timestamp)),
            FieldSlot(6, "metadata_linkage", Namespace.EXTRAS, "metadata_linkage", _plain(parse_linkage)),
            FieldSlot(8, "title", Namespace.CORE, "title", _text),
            FieldSlot(9, "description", Namespace.CORE, "notes", _text),
            FieldSlot(10, "categorization", Namespace.EXTRAS, "categorization", parse_categorization),
            FieldSlot(11, "keywords", Namespace.CORE, "tags", _plain(parse_tags)),
            FieldSlot(12, "attribute_description", Namespace.EXTRAS, "attribute_description", _text),
            FieldSlot(13, "maintainer_link", Namespace.EXTRAS, "maintainer_link", _plain(parse_url)),
            FieldSlot(14, "resource_url", Namespace.RESOURCE, "url", _plain(parse_url)),
            FieldSlot(15, "resource_format", Namespace.RESOURCE, "format", _text),
            FieldSlot(16, "resource_name", Namespace.RESOURCE, "name", _text),
            FieldSlot(17, "resource_created", Namespace.RESOURCE, "created", _plain(parse_timestamp)),
            FieldSlot(18, "resource_lastmodified", Namespace.RESOURCE, "last_modified", _plain(parse_timestamp)),
            FieldSlot(19, "maintainer", Namespace.CORE, "maintainer", _text),
            FieldSlot(20, "publisher", Namespace.EXTRAS, "publisher", _text),
            FieldSlot(21, "license", Namespace.CORE, "license", _text),
            FieldSlot(22, "geographic_toponym", Namespace.EXTRAS, "geographic_toponym", _text),
            FieldSlot(23, "geographic_bbox", Namespace.EXTRAS, "geographic_bbox", _text),
            FieldSlot(24, "begin_datetime", Namespace.EXTRAS, "begin_datetime", _plain(parse_timestamp)),
            FieldSlot(25, "end_datetime", Namespace.EXTRAS, "end_datetime", _plain(parse_timestamp)),
            FieldSlot(26, "update_frequency", Namespace.EXTRAS, "update_frequency", parse_cycle),
            FieldSlot(27, "lineage_quality", Namespace.EXTRAS, "lineage_quality", _text),
            FieldSlot(28, "en_title_and_desc", Namespace.EXTRAS, "en_title_and_desc", _text),
            FieldSlot(29, "resource_size", Namespace.RESOURCE, "size", _text),
            FieldSlot(30, "license_citation", Namespace.EXTRAS, "license_citation", _text),
            FieldSlot(31, "resource_language", Namespace.RESOURCE, "language", _text),
            FieldSlot(32, "resource_encoding", Namespace.RESOURCE, "characterset", _text),
            FieldSlot(33, "metadata_original_portal", Namespace.EXTRAS, "metadata_original_portal", _plain(parse_url)),
            FieldSlot(34, "maintainer_email", Namespace.CORE, "maintainer_email", _plain(parse_url)),
        )
    }
)


def slot_for(field_id: int) -> FieldSlot | None:
    return FIELD_SLOTS.get(field_id)


def namespace_of(field_id: int) -> Namespace | None:
    slot = FIELD_SLOTS.get(field_id)
    return slot.namespace if slot is not None else None


def _slots_in(*namespaces: Namespace) -> tuple[FieldSlot, ...]:
    return tuple(s for s in FIELD_SLOTS.values() if s.namespace in namespaces)


@dataclass(frozen=True)
class Resource:
    """One element of a document's ``resources`` array."""

    index: int
    values: Mapping[int, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MetadataDocument:
    """A parsed metadata document.

    Absent fields, and fields whose JSON value is null, have no entry in
    ``core`` or ``extras``.
    """

    core: Mapping[int, Any]
    extras: Mapping[int, Any]
    resources: tuple[Resource, ...]
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def schema_name(self) -> str | None:
        value = self.extras.get(2)
        return value if isinstance(value, str) else None

    @property
    def identifier(self) -> str | None:
        value = self.extras.get(1)
        return value.raw if value is not None else None


def _collect(
    source: Mapping[str, Any], slots: tuple[FieldSlot, ...], vocabularies: Vocabularies
) -> dict[int, Any]:
    values: dict[int, Any] = {}
    for slot in slots:
        value = source.get(slot.key)
        if value is None:
            continue
        values[slot.field_id] = slot.parse(value, vocabularies)
    return values


def _load_json(data: Mapping[str, Any] | str | bytes, source: str | None) -> Mapping[str, Any]:
    if isinstance(data, Mapping):
        return data
    if isinstance(data, bytes):
        # Invalid UTF-8 survives as lone surrogates and is reported by the text checks
        data = data.decode("utf-8", errors="surrogateescape")
    try:
        decoded = json.loads(data)
    except ValueError as err:
        raise DocumentParseError(str(err), source=source) from err
    if not isinstance(decoded, dict):
        raise DocumentParseError(
            f"expected a JSON object, got {type(decoded).__name__}", source=source
        )
    return decoded


@lru_cache(maxsize=1)
def default_vocabularies() -> Vocabularies:
    """Vocabularies shipped with the package, loaded on first use."""
    return Vocabularies.load()


def parse_document(
    data: Mapping[str, Any] | str | bytes,
    vocabularies: Vocabularies | None = None,
    *,
    source: str | None = None,
) -> MetadataDocument:
    """Parse a CKAN package into a MetadataDocument.

    Args:
        data: Decoded JSON object, or its JSON text.
        vocabularies: Lookup tables for categories and cycles. Defaults to
            the tables shipped with the package.
        source: Optional name of the input, used in error messages.

    Raises:
        DocumentParseError: If data is not a JSON object.
    """
    if vocabularies is None:
        vocabularies = default_vocabularies()
    document = _load_json(data, source)

    extras = document.get("extras")
    if not isinstance(extras, Mapping):
        extras = {}

    resources: list[Resource] = []
    raw_resources = document.get("resources")
    if isinstance(raw_resources, list):
        resource_slots = _slots_in(Namespace.RESOURCE)
        for index, element in enumerate(raw_resources):
            if not isinstance(element, Mapping):
                element = {}
            resources.append(
                Resource(index, MappingProxyType(_collect(element, resource_slots, vocabularies)))
            )

    return MetadataDocument(
        core=MappingProxyType(_collect(document, _slots_in(Namespace.CORE), vocabularies)),
        extras=MappingProxyType(_collect(extras, _slots_in(Namespace.EXTRAS), vocabularies)),
        resources=tuple(resources),
        raw=document,
    )


def field_value(target: MetadataDocument | Resource, field_id: int) -> tuple[Any, bool]:
    """Look a field up by ID.

    Documents answer for core and extras fields, resources for resource
    fields. Anything else, including unregistered IDs, is reported absent.

    Returns:
        Tuple of (value, present). value is None when present is False.
    """
    slot = FIELD_SLOTS.get(field_id)
    if slot is None:
        return None, False

    if isinstance(target, Resource):
        if slot.namespace is not Namespace.RESOURCE:
            return None, False
        values = target.values
    elif slot.namespace is Namespace.CORE:
        values = target.core
    elif slot.namespace is Namespace.EXTRAS:
        values = target.extras
    else:
        return None, False

    if field_id in values:
        return values[field_id], True
    return None, False


# =============================================================================
# Minimal projection for tracking
# =============================================================================

_VERSION_NUMBER = re.compile(r"(\d+(?:\.\d+)*)")


def version_from_schema_name(name: str | None) -> str:
    """Extract the version number from a schema name.

    "OGD Austria Metadata 2.1" yields "2.1". Returns "" unless the name
    holds exactly one version number.
    """
    if not name:
        return ""
    matches = _VERSION_NUMBER.findall(name)
    if len(matches) != 1:
        return ""
    return matches[0]


@dataclass(frozen=True)
class MinimalMetadata:
    """The few fields the tracking store keeps about every dataset.

    Built without the full parser, so documents of unsupported versions
    can still be tracked. Undecodable bytes are kept as ``\\xNN`` escapes.
    """

    identifier: str | None = None
    description: str | None = None
    schema_name: str | None = None
    publisher: str | None = None
    maintainer_link: str | None = None
    geographic_bbox: str | None = None
    geographic_toponym: str | None = None
    categories: tuple[str, ...] = ()

    @property
    def version(self) -> str:
        return version_from_schema_name(self.schema_name)

    @classmethod
    def from_json(cls, data: Mapping[str, Any] | str | bytes) -> MinimalMetadata:
        document = _load_json(data, None)
        extras = document.get("extras")
        if not isinstance(extras, Mapping):
            extras = {}

        def text(container: Mapping[str, Any], key: str) -> str | None:
            value = container.get(key)
            return printable(parse_text(value)) if value is not None else None

        raw_categories = extras.get("categorization")
        if isinstance(raw_categories, list):
            categories = tuple(printable(parse_text(c)) for c in raw_categories if c is not None)
        elif raw_categories:
            categories = (printable(parse_text(raw_categories)),)
        else:
            categories = ()

        return cls(
            identifier=text(extras, "metadata_identifier"),
            description=text(document, "notes"),
            schema_name=text(extras, "schema_name"),
            publisher=text(extras, "publisher"),
            maintainer_link=text(extras, "maintainer_link"),
            geographic_bbox=text(extras, "geographic_bbox"),
            geographic_toponym=text(extras, "geographic_toponym"),
            categories=categories,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "identifier": self.identifier,
            "description": self.description,
            "schema_name": self.schema_name,
            "publisher": self.publisher,
            "maintainer_link": self.maintainer_link,
            "geographic_bbox": self.geographic_bbox,
            "geographic_toponym": self.geographic_toponym,
            "categories": list(self.categories),
        }
