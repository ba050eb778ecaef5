"""The metadata checker.

CheckEngine walks a document in two passes:

1. Resource pass: every element of ``resources`` is checked against the
   descriptors of resource fields. Messages are prefixed with the
   element's index ("R   0: ...").
2. Top-level pass: every descriptor of the active specification version is
   visited in table order, so required fields are presence-checked even
   when the document has no slot for them.

A required field that is absent yields one ERROR and nothing else for that
field. Required fields with cardinality "N" are exempt from the presence
check; their rules downgrade absence to a WARNING.

The rule bodies are shared by all versions. Versions differ only in their
descriptor tables and in the bbox grammar (closed rings from 2.2 on).

Usage:
    from ogdat_cli.validation import CheckEngine

    engine = CheckEngine(default_registry())
    messages = engine.check(document, "OGD Austria Metadata 2.1")
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from ogdat_cli.constants import (
    DATA_PORTAL_HOST_PREFIX,
    DATE_FORMAT_LABEL,
    DATETIME_FORMAT_LABEL,
    MIN_ATTRIBUTE_DESCRIPTION_LENGTH,
    RESOURCE_ENCODINGS,
    RESOURCE_FORMAT_FORBIDDEN,
    SCHEMA_CHARACTERSET,
    SCHEMA_LANGUAGE,
    VERSION_21,
)
from ogdat_cli.document import (
    MetadataDocument,
    Namespace,
    Resource,
    default_vocabularies,
    field_value,
    slot_for,
    version_from_schema_name,
)
from ogdat_cli.errors import FieldMappingError, SpecNotFoundError, UnknownSpecVersionError
from ogdat_cli.messages import (
    DOCUMENT_LEVEL_ID,
    CheckFlag,
    CheckMessage,
    CheckReport,
)
from ogdat_cli.parsers import (
    Categorization,
    Identifier,
    Linkage,
    Timestamp,
    TimestampFormat,
    Url,
)
from ogdat_cli.probe import UrlProbe
from ogdat_cli.spec.registry import FieldDescriptor, SpecRegistry, resolve_version
from ogdat_cli.validation.sanity import check_bbox, check_text
from ogdat_cli.vocabularies import Cycle, Vocabularies, encoding_matches

logger = logging.getLogger(__name__)

REQUIRED_MISSING = "required field missing"
EMPTY_STRING = "empty string is not meaningful here"
NO_RESOURCES = "the metadata document contains no resources"
INVALID_CHARACTERS = "text contains unsuitable characters starting at position {position}: {reason}"
EXPECTED_LINK = "expected a valid link, '{raw}' is not one"
WRONG_DATETIME = (
    "expected a value of type ISO 8601 TM_Primitive '" + DATETIME_FORMAT_LABEL + "', got '{raw}'"
)
WRONG_DATE = "expected a value of type ISO 8601 '" + DATE_FORMAT_LABEL + "', got '{raw}'"

_DIGITS = re.compile(r"^[0-9]+$")


@dataclass(frozen=True)
class RuleSet:
    """Version-dependent switches of the shared rules."""

    closed_bbox_ring: bool = True


# Versions not listed here get the latest rules
RULE_SETS: dict[str, RuleSet] = {
    VERSION_21: RuleSet(closed_bbox_ring=False),
}


class _Emitter:
    """Appends messages for one field, adding the resource prefix."""

    def __init__(self, out: list[CheckMessage], field_id: int, prefix: str = "") -> None:
        self._out = out
        self.field_id = field_id
        self._prefix = prefix

    def emit(self, kind: CheckFlag, text: str) -> None:
        self._out.append(CheckMessage(kind, self.field_id, self._prefix + text))

    def adopt(self, messages: list[CheckMessage]) -> None:
        """Append messages produced elsewhere under this field."""
        for message in messages:
            self._out.append(message.retarget(self.field_id, self._prefix))


@dataclass(frozen=True)
class _Context:
    version: str
    descriptor: FieldDescriptor
    rules: RuleSet
    follow_links: bool


Rule = Callable[[_Emitter, Any, _Context], None]

# Rules that run even when the field is absent
_ABSENCE_AWARE = frozenset({"categorization", "keywords"})


def resource_prefix(index: int) -> str:
    return f"R{index:4d}: "


class CheckEngine:
    """Checks metadata documents against registered specification versions.

    The engine holds no per-document state and can be shared between
    threads. Each call's result depends only on the document, the registry
    and, when links are followed, the probed servers.
    """

    def __init__(
        self,
        registry: SpecRegistry,
        vocabularies: Vocabularies | None = None,
        probe: UrlProbe | None = None,
    ) -> None:
        self._registry = registry
        self._vocabularies = vocabularies or default_vocabularies()
        self._probe = probe or UrlProbe()
        self._rules: dict[str, Rule] = {
            # resource fields
            "resource_url": self._check_link,
            "resource_format": self._check_resource_format,
            "resource_name": self._check_text,
            "resource_created": self._check_date,
            "resource_lastmodified": self._check_date,
            "resource_size": self._check_resource_size,
            "resource_language": self._check_resource_language,
            "resource_encoding": self._check_resource_encoding,
            # top-level fields
            "metadata_identifier": self._check_identifier,
            "metadata_modified": self._check_date,
            "title": self._check_text,
            "description": self._check_text,
            "categorization": self._check_categorization,
            "keywords": self._check_keywords,
            "maintainer": self._check_text,
            "license": self._check_text,
            "begin_datetime": self._check_datetime,
            "schema_name": self._check_schema_name,
            "schema_language": self._check_schema_language,
            "schema_characterset": self._check_schema_characterset,
            "metadata_linkage": self._check_linkage,
            "attribute_description": self._check_attribute_description,
            "maintainer_link": self._check_link,
            "publisher": self._check_text,
            "geographic_toponym": self._check_text,
            "geographic_bbox": self._check_bbox,
            "end_datetime": self._check_datetime,
            "update_frequency": self._check_update_frequency,
            "lineage_quality": self._check_text,
            "en_title_and_desc": self._check_text,
            "license_citation": self._check_text,
            "metadata_original_portal": self._check_original_portal,
            "maintainer_email": self._check_link,
        }

    @property
    def registry(self) -> SpecRegistry:
        return self._registry

    def check(
        self, document: MetadataDocument, version: str, follow_links: bool = False
    ) -> list[CheckMessage]:
        """Check a document against one specification version.

        Args:
            document: The parsed document.
            version: Registered version string.
            follow_links: Probe http(s) links over the network.

        Returns:
            Messages in traversal order: resources first, then the
            top-level descriptors in table order.

        Raises:
            SpecNotFoundError: If the version is not registered.
            FieldMappingError: If a resource descriptor has no document slot.
        """
        spec = self._registry.lookup(version)
        if spec is None:
            raise SpecNotFoundError(version)
        rules = RULE_SETS.get(version, RuleSet())

        messages: list[CheckMessage] = []
        if not document.resources:
            messages.append(CheckMessage(CheckFlag.ERROR, DOCUMENT_LEVEL_ID, NO_RESOURCES))

        resource_descriptors: list[FieldDescriptor] = []
        top_level_descriptors: list[FieldDescriptor] = []
        for descriptor in spec:
            slot = slot_for(descriptor.id)
            if slot is None:
                if descriptor.ckan_field.startswith("resources:"):
                    raise FieldMappingError(version, descriptor.id)
                top_level_descriptors.append(descriptor)
            elif slot.namespace is Namespace.RESOURCE:
                resource_descriptors.append(descriptor)
            else:
                top_level_descriptors.append(descriptor)

        for resource in document.resources:
            self._check_resource(messages, resource, resource_descriptors, version, rules, follow_links)

        for descriptor in top_level_descriptors:
            value, present = field_value(document, descriptor.id)
            emitter = _Emitter(messages, descriptor.id)
            if descriptor.is_required and not descriptor.is_many and not present:
                emitter.emit(CheckFlag.ERROR, REQUIRED_MISSING)
                continue
            self._dispatch(emitter, descriptor, value, present, version, rules, follow_links)

        logger.debug(
            "Checked %s against %s: %d messages",
            document.identifier or "<no identifier>",
            version,
            len(messages),
        )
        return messages

    def check_report(
        self, document: MetadataDocument, version: str, follow_links: bool = False
    ) -> CheckReport:
        """Like check(), wrapped in a CheckReport."""
        return CheckReport.of(version, self.check(document, version, follow_links))

    def _check_resource(
        self,
        messages: list[CheckMessage],
        resource: Resource,
        descriptors: list[FieldDescriptor],
        version: str,
        rules: RuleSet,
        follow_links: bool,
    ) -> None:
        prefix = resource_prefix(resource.index)
        for descriptor in descriptors:
            value, present = field_value(resource, descriptor.id)
            emitter = _Emitter(messages, descriptor.id, prefix)
            if descriptor.is_required and not present:
                emitter.emit(CheckFlag.ERROR, REQUIRED_MISSING)
                continue
            self._dispatch(emitter, descriptor, value, present, version, rules, follow_links)

    def _dispatch(
        self,
        emitter: _Emitter,
        descriptor: FieldDescriptor,
        value: Any,
        present: bool,
        version: str,
        rules: RuleSet,
        follow_links: bool,
    ) -> None:
        rule = self._rules.get(descriptor.short_name)
        if rule is None:
            return
        if not present and descriptor.short_name not in _ABSENCE_AWARE:
            return
        rule(emitter, value, _Context(version, descriptor, rules, follow_links))

    # =========================================================================
    # Shared rule bodies
    # =========================================================================

    def _report_empty(self, emitter: _Emitter, ctx: _Context) -> None:
        emitter.emit(CheckFlag.INFO | CheckFlag.EMPTY_DATA, EMPTY_STRING)

    def _sane(self, emitter: _Emitter, text: str) -> bool:
        issue = check_text(text)
        if issue is None:
            return True
        emitter.emit(
            issue.level,
            INVALID_CHARACTERS.format(position=issue.position, reason=issue.reason),
        )
        return False

    def _check_text(self, emitter: _Emitter, value: str, ctx: _Context) -> None:
        if value == "" and not ctx.descriptor.is_required:
            self._report_empty(emitter, ctx)
            return
        self._sane(emitter, value)

    def _check_timestamp(
        self,
        emitter: _Emitter,
        value: Timestamp,
        ctx: _Context,
        expected: TimestampFormat,
        message: str,
    ) -> None:
        if value.raw == "" and not ctx.descriptor.is_required:
            self._report_empty(emitter, ctx)
            return
        if value.format is not expected:
            emitter.emit(CheckFlag.ERROR, message.format(raw=value.raw))

    def _check_date(self, emitter: _Emitter, value: Timestamp, ctx: _Context) -> None:
        self._check_timestamp(emitter, value, ctx, TimestampFormat.DATE, WRONG_DATE)

    def _check_datetime(self, emitter: _Emitter, value: Timestamp, ctx: _Context) -> None:
        self._check_timestamp(emitter, value, ctx, TimestampFormat.DATETIME, WRONG_DATETIME)

    def _probe_url(self, emitter: _Emitter, url: Url, ctx: _Context) -> bool:
        if not url.is_valid:
            emitter.emit(CheckFlag.ERROR, EXPECTED_LINK.format(raw=url.raw))
            return False
        ok, messages = self._probe.classify(url.raw, ctx.follow_links)
        emitter.adopt(messages)
        return ok

    def _check_link(self, emitter: _Emitter, value: Url, ctx: _Context) -> None:
        self._probe_url(emitter, value, ctx)

    # =========================================================================
    # Resource fields
    # =========================================================================

    def _check_resource_format(self, emitter: _Emitter, value: str, ctx: _Context) -> None:
        for index, char in enumerate(value):
            if char in RESOURCE_FORMAT_FORBIDDEN:
                emitter.emit(CheckFlag.WARNING, f"invalid character '{char}' (index {index})")
                break
        if value != value.lower():
            emitter.emit(CheckFlag.WARNING, "format must be given in lowercase letters")

    def _check_resource_size(self, emitter: _Emitter, value: str, ctx: _Context) -> None:
        if value == "":
            self._report_empty(emitter, ctx)
            return
        if not _DIGITS.match(value):
            emitter.emit(
                CheckFlag.ERROR,
                f"only digits are allowed, but the value contains other characters: '{value}'",
            )

    def _check_resource_language(self, emitter: _Emitter, value: str, ctx: _Context) -> None:
        if value == "":
            self._report_empty(emitter, ctx)
            return
        if not self._vocabularies.is_iso_language(value):
            emitter.emit(
                CheckFlag.ERROR, f"'{value}' is not a valid three-letter ISO 639-2 language code"
            )

    def _check_resource_encoding(self, emitter: _Emitter, value: str, ctx: _Context) -> None:
        if value == "":
            self._report_empty(emitter, ctx)
            return
        if encoding_matches(value, RESOURCE_ENCODINGS):
            return
        if self._vocabularies.is_iana_encoding(value):
            emitter.emit(
                CheckFlag.WARNING,
                f"'{value}' is registered with IANA but is not an encoding allowed for OGD resources",
            )
            return
        emitter.emit(CheckFlag.ERROR, f"'{value}' is not a known character encoding")

    # =========================================================================
    # Top-level fields
    # =========================================================================

    def _check_identifier(self, emitter: _Emitter, value: Identifier, ctx: _Context) -> None:
        if not value.is_uuid:
            emitter.emit(CheckFlag.ERROR, f"expected a UUID, got '{value.raw}'")

    def _check_categorization(
        self, emitter: _Emitter, value: Categorization | None, ctx: _Context
    ) -> None:
        if value is None or len(value) == 0:
            emitter.emit(
                CheckFlag.WARNING,
                "categorization has cardinality 'N' and may be omitted, "
                "but at least one category should be assigned",
            )
            return
        if value.shape.is_legacy:
            emitter.emit(
                CheckFlag.INFO | CheckFlag.STRUCTURAL_ERROR,
                f"categorization must be a JSON array, found {value.shape.value}",
            )
        for category in value.unknown:
            emitter.emit(CheckFlag.ERROR, f"'{category.id}' is not a standard OGD category")

    def _check_keywords(
        self, emitter: _Emitter, value: tuple[str, ...] | None, ctx: _Context
    ) -> None:
        if not value:
            emitter.emit(
                CheckFlag.WARNING,
                "keywords have cardinality 'N' and may be omitted, but giving some is recommended",
            )

    def _check_schema_name(self, emitter: _Emitter, value: str, ctx: _Context) -> None:
        if value == "":
            self._report_empty(emitter, ctx)
            return
        self._sane(emitter, value)
        number = ctx.version.rsplit(" ", 1)[-1]
        if ctx.version not in value and version_from_schema_name(value) != number:
            emitter.emit(
                CheckFlag.INFO,
                f"schema name does not refer to version {number}: '{value}'",
            )

    def _check_schema_language(self, emitter: _Emitter, value: str, ctx: _Context) -> None:
        if value == "":
            self._report_empty(emitter, ctx)
            return
        if value.lower() != SCHEMA_LANGUAGE:
            emitter.emit(
                CheckFlag.ERROR, f"schema language expected as '{SCHEMA_LANGUAGE}', got '{value}'"
            )

    def _check_schema_characterset(self, emitter: _Emitter, value: str, ctx: _Context) -> None:
        if value == "":
            self._report_empty(emitter, ctx)
            return
        if not encoding_matches(value, (SCHEMA_CHARACTERSET,)):
            emitter.emit(
                CheckFlag.ERROR,
                f"schema character set expected as '{SCHEMA_CHARACTERSET}', got '{value}'",
            )

    def _check_linkage(self, emitter: _Emitter, value: Linkage, ctx: _Context) -> None:
        if not value.is_array:
            emitter.emit(
                CheckFlag.INFO | CheckFlag.STRUCTURAL_ERROR,
                f"expected a JSON array of strings, found {value.shape.value}",
            )
        for url in value.urls:
            self._probe_url(emitter, url, ctx)

    def _check_attribute_description(self, emitter: _Emitter, value: str, ctx: _Context) -> None:
        if len(value) < MIN_ATTRIBUTE_DESCRIPTION_LENGTH:
            emitter.emit(
                CheckFlag.WARNING,
                f"description has fewer than {MIN_ATTRIBUTE_DESCRIPTION_LENGTH} characters",
            )
        self._sane(emitter, value)

    def _check_bbox(self, emitter: _Emitter, value: str, ctx: _Context) -> None:
        if value == "":
            self._report_empty(emitter, ctx)
            return
        reason = check_bbox(value, closed_ring=ctx.rules.closed_bbox_ring)
        if reason is not None:
            emitter.emit(CheckFlag.ERROR, f"no valid WKT bounding box: {reason}")

    def _check_update_frequency(self, emitter: _Emitter, value: Cycle, ctx: _Context) -> None:
        if value.raw == "":
            self._report_empty(emitter, ctx)
            return
        if not value.is_known:
            emitter.emit(
                CheckFlag.WARNING,
                "expected an update frequency after ON/EN/ISO 19115:2003, "
                f"got '{value.raw}'",
            )

    def _check_original_portal(self, emitter: _Emitter, value: Url, ctx: _Context) -> None:
        self._probe_url(emitter, value, ctx)
        if value.is_valid and not value.host.startswith(DATA_PORTAL_HOST_PREFIX):
            emitter.emit(
                CheckFlag.WARNING,
                f"'{value.raw}' does not look like the address of a data portal "
                f"(host should start with '{DATA_PORTAL_HOST_PREFIX}')",
            )


def detect_version(document: MetadataDocument) -> str:
    """Resolve the specification version a document declares.

    Raises:
        UnknownSpecVersionError: If schema_name is missing or names an
            unsupported version.
    """
    number = version_from_schema_name(document.schema_name)
    if not number:
        raise UnknownSpecVersionError(document.schema_name or "")
    return resolve_version(number)
