"""Versioned OGD field specifications."""

from ogdat_cli.spec.registry import (
    FieldDescriptor,
    Occurrence,
    SpecificationVersion,
    SpecRegistry,
    default_registry,
    load_spec,
    resolve_version,
)

__all__ = [
    "FieldDescriptor",
    "Occurrence",
    "SpecRegistry",
    "SpecificationVersion",
    "default_registry",
    "load_spec",
    "resolve_version",
]
