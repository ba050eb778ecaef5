"""Shared constants for the OGD metadata checker.

Values used by more than one module (version names, date formats, the
fixed schema language and character set) live here to keep them in one
place.
"""

from __future__ import annotations

# Canonical specification version names, as they appear in schema_name
VERSION_21: str = "OGD Austria Metadata 2.1"
VERSION_22: str = "OGD Austria Metadata 2.2"
VERSION_23: str = "OGD Austria Metadata 2.3"

SUPPORTED_VERSIONS: tuple[str, ...] = (VERSION_21, VERSION_22, VERSION_23)

# Bare version numbers to canonical names. 2.0 documents are checked with 2.1 rules.
VERSION_ALIASES: dict[str, str] = {
    "2.0": VERSION_21,
    "2.1": VERSION_21,
    "2.2": VERSION_22,
    "2.3": VERSION_23,
}

# strptime patterns for the two timestamp shapes of the OGD specification
DATETIME_FORMAT: str = "%Y-%m-%dT%H:%M:%S"
DATE_FORMAT: str = "%Y-%m-%d"

# Human-readable names of the patterns above, used in messages
DATETIME_FORMAT_LABEL: str = "YYYY-MM-DDThh:mm:ss"
DATE_FORMAT_LABEL: str = "YYYY-MM-DD"

# Fixed expectations for the schema_* fields
SCHEMA_LANGUAGE: str = "ger"
SCHEMA_CHARACTERSET: str = "utf8"

# Encodings the specification allows for resources
RESOURCE_ENCODINGS: tuple[str, ...] = ("utf8", "utf16", "utf32")

# Minimum length for a meaningful attribute description
MIN_ATTRIBUTE_DESCRIPTION_LENGTH: int = 20

# Tolerance when comparing the first and last point of a bbox ring
BBOX_EPSILON: float = 1e-8

# Characters that make a resource format look like a path or a MIME type
RESOURCE_FORMAT_FORBIDDEN: str = ".:/\\"

# Host prefix expected for metadata_original_portal
DATA_PORTAL_HOST_PREFIX: str = "data."

# Cardinality marker for fields that are required but tolerated when absent
CARDINALITY_MANY: str = "N"
