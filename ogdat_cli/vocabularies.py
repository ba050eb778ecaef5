"""Controlled vocabularies of the OGD specification.

Four lookup tables back the field rules:

- OGD categories (categorization)
- update cycles after ON/EN/ISO 19115:2003 (update_frequency)
- ISO 639-2 language codes (resource_language)
- IANA character set names (resource_encoding)

The language and encoding tables are read from the text files in
``ogdat_cli/data`` when a Vocabularies instance is created. Instances are
read-only afterwards; tests build their own via ``Vocabularies.load()`` or
pass explicit tables to the constructor.
"""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from importlib import resources
from pathlib import Path

logger = logging.getLogger(__name__)

ISO_639_FILENAME = "ISO-639-2_utf-8.txt"
IANA_CHARSET_FILENAME = "character-sets.txt"

# NumID used for values outside the controlled vocabulary
UNKNOWN_NUM_ID = -1


@dataclass(frozen=True)
class Category:
    """An OGD category.

    Attributes:
        num_id: Position in the category list, or -1 for an unknown category.
        id: Category key as used in metadata documents.
        pretty_name: Display name.
    """

    num_id: int
    id: str
    pretty_name: str

    @property
    def is_known(self) -> bool:
        return self.num_id != UNKNOWN_NUM_ID


CATEGORIES: tuple[Category, ...] = (
    Category(1, "arbeit", "Arbeit"),
    Category(2, "bevölkerung", "Bevölkerung"),
    Category(3, "bildung-und-forschung", "Bildung und Forschung"),
    Category(4, "finanzen-und-rechnungswesen", "Finanzen und Rechnungswesen"),
    Category(5, "geographie-und-planung", "Geographie und Planung"),
    Category(6, "gesellschaft-und-soziales", "Gesellschaft und Soziales"),
    Category(7, "gesundheit", "Gesundheit"),
    Category(8, "kunst-und-kultur", "Kunst und Kultur"),
    Category(9, "land-und-forstwirtschaft", "Land und Forstwirtschaft"),
    Category(10, "sport-und-freizeit", "Sport und Freizeit"),
    Category(11, "umwelt", "Umwelt"),
    Category(12, "verkehr-und-technik", "Verkehr und Technik"),
    Category(13, "verwaltung-und-politik", "Verwaltung und Politik"),
    Category(14, "wirtschaft-und-tourismus", "Wirtschaft und Tourismus"),
)


@dataclass(frozen=True)
class Cycle:
    """An update cycle (MD_MaintenanceFrequencyCode).

    Attributes:
        num_id: 1-12, or -1 when the raw value matched no cycle.
        domain_code: Three-digit code, e.g. "005".
        maintenance_code: ISO 19115 code, e.g. "monthly".
        name_de: German name, e.g. "monatlich".
        raw: The value as found in the document.
    """

    num_id: int
    domain_code: str
    maintenance_code: str
    name_de: str
    raw: str = ""

    @property
    def is_known(self) -> bool:
        return self.num_id != UNKNOWN_NUM_ID

    def matches(self, value: str) -> bool:
        """Compare a raw value against every representation of this cycle.

        Names and codes compare case-insensitively, the numeric form must
        be an integer equal to num_id.
        """
        candidate = value.strip()
        if not candidate:
            return False
        folded = candidate.casefold()
        if folded in (
            self.name_de.casefold(),
            self.domain_code.casefold(),
            self.maintenance_code.casefold(),
        ):
            return True
        return candidate.isdigit() and int(candidate) == self.num_id

    def __str__(self) -> str:
        return self.name_de


CYCLES: tuple[Cycle, ...] = (
    Cycle(1, "001", "continual", "kontinuierlich"),
    Cycle(2, "002", "daily", "täglich"),
    Cycle(3, "003", "weekly", "wöchentlich"),
    Cycle(4, "004", "fortnightly", "14-tägig"),
    Cycle(5, "005", "monthly", "monatlich"),
    Cycle(6, "006", "quarterly", "quartalsweise"),
    Cycle(7, "007", "biannually", "halbjährlich"),
    Cycle(8, "008", "annually", "jährlich"),
    Cycle(9, "009", "asNeeded", "nach Bedarf"),
    Cycle(10, "010", "irregular", "unregelmäßig"),
    Cycle(11, "011", "notPlanned", "nicht geplant"),
    Cycle(12, "012", "unknown", "unbekannt"),
)


@dataclass(frozen=True)
class Language:
    """One ISO 639-2 entry."""

    code: str
    name_en: str
    name_fr: str = ""
    alpha2: str = ""


def _normalize_encoding(name: str) -> str:
    return name.strip().lower().replace("-", "")


def parse_language_table(text: str) -> dict[str, Language]:
    """Parse the Library of Congress ISO 639-2 list.

    Each line is ``bibliographic|terminologic|alpha2|English|French``.
    Both three-letter codes of a line are registered.
    """
    languages: dict[str, Language] = {}
    for row in csv.reader(io.StringIO(text.lstrip("\ufeff")), delimiter="|"):
        if len(row) < 4 or not row[0].strip():
            continue
        bibliographic, terminologic, alpha2, name_en = (cell.strip() for cell in row[:4])
        name_fr = row[4].strip() if len(row) > 4 else ""
        languages[bibliographic] = Language(bibliographic, name_en, name_fr, alpha2)
        if terminologic:
            languages[terminologic] = Language(terminologic, name_en, name_fr, alpha2)
    return languages


def parse_encoding_table(text: str) -> frozenset[str]:
    """Parse a list of IANA charset names and aliases, one per line."""
    return frozenset(
        line.strip().lower() for line in text.splitlines() if line.strip()
    )


def _read_data_file(filename: str) -> str:
    return (resources.files("ogdat_cli") / "data" / filename).read_text(encoding="utf-8")


class Vocabularies:
    """Process-scoped lookup tables for the field rules."""

    def __init__(
        self,
        languages: Mapping[str, Language],
        encodings: Iterable[str],
        categories: Iterable[Category] = CATEGORIES,
        cycles: Iterable[Cycle] = CYCLES,
    ) -> None:
        self._languages = dict(languages)
        names = [e.strip().lower() for e in encodings]
        # Hyphenless forms too, so "iso88591" finds "ISO-8859-1"
        self._encodings = frozenset(names) | frozenset(_normalize_encoding(n) for n in names)
        self._categories = {c.id: c for c in categories}
        self._cycles = tuple(cycles)

    @classmethod
    def load(cls, data_dir: Path | None = None) -> Vocabularies:
        """Read the language and encoding tables.

        Args:
            data_dir: Directory holding the two table files. Defaults to
                the files shipped with the package.
        """
        if data_dir is None:
            language_text = _read_data_file(ISO_639_FILENAME)
            encoding_text = _read_data_file(IANA_CHARSET_FILENAME)
        else:
            language_text = (data_dir / ISO_639_FILENAME).read_text(encoding="utf-8")
            encoding_text = (data_dir / IANA_CHARSET_FILENAME).read_text(encoding="utf-8")

        vocabularies = cls(
            languages=parse_language_table(language_text),
            encodings=parse_encoding_table(encoding_text),
        )
        logger.debug(
            "Read %d ISO language records and %d IANA encoding names",
            len(vocabularies._languages),
            len(vocabularies._encodings),
        )
        return vocabularies

    # Categories

    def category(self, value: str) -> Category:
        """Resolve a category key. Unknown keys yield num_id -1."""
        found = self._categories.get(value)
        if found is not None:
            return found
        return Category(UNKNOWN_NUM_ID, value, f"non-standard category: {value}")

    @property
    def categories(self) -> tuple[Category, ...]:
        return tuple(self._categories.values())

    # Cycles

    def cycle(self, value: str) -> Cycle:
        """Resolve an update frequency by name, code or number.

        Unresolved values yield the sentinel cycle with num_id -1.
        """
        for cycle in self._cycles:
            if cycle.matches(value):
                return Cycle(
                    cycle.num_id, cycle.domain_code, cycle.maintenance_code, cycle.name_de, raw=value
                )
        return Cycle(UNKNOWN_NUM_ID, "", "", f"non-standard cycle: {value}", raw=value)

    # Languages and encodings

    def is_iso_language(self, code: str) -> bool:
        return code in self._languages

    def is_iana_encoding(self, name: str) -> bool:
        lowered = name.strip().lower()
        return lowered in self._encodings or _normalize_encoding(lowered) in self._encodings


def encoding_matches(value: str, allowed: Iterable[str]) -> bool:
    """True if value names one of the allowed encodings.

    Comparison ignores case and hyphens, so "UTF-8" matches "utf8".
    """
    normalized = _normalize_encoding(value)
    return any(normalized == _normalize_encoding(candidate) for candidate in allowed)
