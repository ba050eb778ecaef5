"""Field descriptor tables per OGD specification version.

A specification table is a pipe-delimited text file. Row 0 holds the
column labels, each following row describes one metadata field:

    ID|Bezeichner|OGD_Kurzname|CKAN_Feld|Anzahl|Definition_DE|...|Occurrence

Columns 0-11 map positionally onto FieldDescriptor attributes, column 12
holds the occurrence code ('R' required, 'O' optional).

Several versions live side by side in one SpecRegistry. Registered
versions are immutable, so a registry can be shared between threads once
startup is done.

Usage:
    from ogdat_cli.spec import default_registry

    registry = default_registry()
    spec = registry.lookup("OGD Austria Metadata 2.1")
    len(spec)  # 31
"""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum
from importlib import resources
from pathlib import Path
from typing import IO

from ogdat_cli.constants import (
    CARDINALITY_MANY,
    SUPPORTED_VERSIONS,
    VERSION_ALIASES,
)
from ogdat_cli.errors import SpecLoadError, UnknownSpecVersionError

logger = logging.getLogger(__name__)

SPEC_DELIMITER = "|"

# Column holding the occurrence code
OCCURRENCE_COLUMN = 12
MIN_COLUMNS = OCCURRENCE_COLUMN + 1


class Occurrence(Enum):
    """Whether a field must be present in a document."""

    REQUIRED = "required"
    OPTIONAL = "optional"
    UNDEFINED = "undefined"

    @classmethod
    def from_code(cls, code: str) -> Occurrence:
        """Map the first letter of an occurrence cell to an Occurrence."""
        code = code.strip()
        if code.startswith("R"):
            return cls.REQUIRED
        if code.startswith("O"):
            return cls.OPTIONAL
        return cls.UNDEFINED


@dataclass(frozen=True)
class FieldDescriptor:
    """One row of a specification table.

    Attributes:
        id: Numeric field ID, stable across versions.
        label: German designation of the field.
        short_name: Canonical lookup key, e.g. "resource_url".
        ckan_field: Where CKAN stores the field, e.g. "extras:schema_name".
        cardinality: "1" or "N" (required, but absence is tolerated).
        occurrence: Required, optional or undefined.
        version: Version string of the table this row belongs to.
    """

    id: int
    label: str
    short_name: str
    ckan_field: str
    cardinality: str
    occurrence: Occurrence
    version: str
    definition_de: str = ""
    explanation: str = ""
    example: str = ""
    onorm_2270: str = ""
    iso_19115: str = ""
    rdf_property: str = ""
    definition_en: str = ""

    @property
    def is_required(self) -> bool:
        return self.occurrence is Occurrence.REQUIRED

    @property
    def is_many(self) -> bool:
        """True for cardinality "N" fields."""
        return self.cardinality == CARDINALITY_MANY

    def to_dict(self) -> dict[str, object]:
        """Convert to JSON-serializable dict."""
        return {
            "id": self.id,
            "label": self.label,
            "short_name": self.short_name,
            "ckan_field": self.ckan_field,
            "cardinality": self.cardinality,
            "occurrence": self.occurrence.value,
            "definition_de": self.definition_de,
            "definition_en": self.definition_en,
        }


@dataclass(frozen=True)
class SpecificationVersion:
    """Ordered, immutable descriptor table of one version."""

    version: str
    labels: tuple[str, ...]
    descriptors: tuple[FieldDescriptor, ...]

    def __len__(self) -> int:
        return len(self.descriptors)

    def __iter__(self) -> Iterator[FieldDescriptor]:
        return iter(self.descriptors)

    def descriptor_by_id(self, field_id: int) -> FieldDescriptor | None:
        for descriptor in self.descriptors:
            if descriptor.id == field_id:
                return descriptor
        return None

    def descriptor_by_short_name(self, short_name: str) -> FieldDescriptor | None:
        for descriptor in self.descriptors:
            if descriptor.short_name == short_name:
                return descriptor
        return None

    @property
    def required(self) -> tuple[FieldDescriptor, ...]:
        """Descriptors with Occurrence.REQUIRED, in table order."""
        return tuple(d for d in self.descriptors if d.is_required)


def _descriptor_from_row(version: str, row: list[str], line: int) -> FieldDescriptor:
    if len(row) < MIN_COLUMNS:
        raise SpecLoadError(
            version, f"expected {MIN_COLUMNS} columns, found {len(row)}", line=line
        )
    cells = [cell.strip() for cell in row]
    try:
        field_id = int(cells[0])
    except ValueError as err:
        raise SpecLoadError(version, f"field ID '{cells[0]}' is not a number", line=line) from err

    return FieldDescriptor(
        id=field_id,
        label=cells[1],
        short_name=cells[2],
        ckan_field=cells[3],
        cardinality=cells[4],
        definition_de=cells[5],
        explanation=cells[6],
        example=cells[7],
        onorm_2270=cells[8],
        iso_19115=cells[9],
        rdf_property=cells[10],
        definition_en=cells[11],
        occurrence=Occurrence.from_code(cells[OCCURRENCE_COLUMN]),
        version=version,
    )


def load_spec(version: str, source: Path | str | IO[str]) -> SpecificationVersion:
    """Parse a pipe-delimited specification table.

    Args:
        version: Version string the table describes.
        source: Path to the table, an open text stream, or the table text.

    Returns:
        The parsed SpecificationVersion.

    Raises:
        SpecLoadError: If the source is missing, malformed, or repeats an
            ID or short name.
    """
    if isinstance(source, Path):
        try:
            text = source.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as err:
            raise SpecLoadError(version, str(err)) from err
        stream: IO[str] = io.StringIO(text)
    elif isinstance(source, str):
        stream = io.StringIO(source)
    else:
        stream = source

    reader = csv.reader(stream, delimiter=SPEC_DELIMITER)
    labels: tuple[str, ...] | None = None
    descriptors: list[FieldDescriptor] = []
    seen_ids: set[int] = set()
    seen_names: set[str] = set()

    for row in reader:
        if not any(cell.strip() for cell in row):
            continue
        if labels is None:
            labels = tuple(cell.strip() for cell in row)
            continue

        descriptor = _descriptor_from_row(version, row, reader.line_num)
        if descriptor.id in seen_ids:
            raise SpecLoadError(version, f"duplicate field ID {descriptor.id}", line=reader.line_num)
        if descriptor.short_name in seen_names:
            raise SpecLoadError(
                version, f"duplicate short name '{descriptor.short_name}'", line=reader.line_num
            )
        seen_ids.add(descriptor.id)
        seen_names.add(descriptor.short_name)
        descriptors.append(descriptor)

    if labels is None:
        raise SpecLoadError(version, "table is empty")

    logger.debug("Loaded %d field descriptors for %s", len(descriptors), version)
    return SpecificationVersion(version=version, labels=labels, descriptors=tuple(descriptors))


class SpecRegistry:
    """Specification tables keyed by version string.

    Registration overwrites an earlier table for the same version. A failed
    load leaves the previous registration in place.
    """

    def __init__(self) -> None:
        self._versions: dict[str, SpecificationVersion] = {}

    def register(self, version: str, source: Path | str | IO[str]) -> SpecificationVersion:
        spec = load_spec(version, source)
        self._versions[version] = spec
        return spec

    def register_version(self, spec: SpecificationVersion) -> None:
        self._versions[spec.version] = spec

    def lookup(self, version: str) -> SpecificationVersion | None:
        return self._versions.get(version)

    def descriptor_by_id(self, version: str, field_id: int) -> FieldDescriptor | None:
        spec = self._versions.get(version)
        if spec is None:
            return None
        return spec.descriptor_by_id(field_id)

    def versions(self) -> list[str]:
        return sorted(self._versions)

    def __contains__(self, version: object) -> bool:
        return version in self._versions


def bundled_spec_path(version: str) -> Path:
    """Return the path of the bundled table for a supported version."""
    number = version.rsplit(" ", 1)[-1]
    return Path(str(resources.files("ogdat_cli.spec") / "data" / f"ogdat_spec-{number}.csv"))


def default_registry() -> SpecRegistry:
    """Build a fresh registry holding the bundled 2.1, 2.2 and 2.3 tables."""
    registry = SpecRegistry()
    for version in SUPPORTED_VERSIONS:
        registry.register(version, bundled_spec_path(version))
    return registry


def resolve_version(value: str) -> str:
    """Map a user-supplied version to its canonical name.

    Accepts the canonical name itself, a bare number ("2.2") or the short
    form used in older tooling ("V22").

    Raises:
        UnknownSpecVersionError: If the value names no supported version.
    """
    candidate = value.strip()
    if candidate in SUPPORTED_VERSIONS:
        return candidate
    if candidate.upper().startswith("V") and candidate[1:].isdigit() and len(candidate) == 3:
        candidate = f"{candidate[1]}.{candidate[2]}"
    if candidate.startswith("OGD Austria Metadata "):
        candidate = candidate.rsplit(" ", 1)[-1]
    try:
        return VERSION_ALIASES[candidate]
    except KeyError:
        raise UnknownSpecVersionError(value) from None
