"""ogdat CLI - Check Open Government Data Austria metadata documents."""

from ogdat_cli.cli import cli
from ogdat_cli.document import MetadataDocument, parse_document
from ogdat_cli.messages import CheckFlag, CheckMessage, CheckReport
from ogdat_cli.spec import SpecRegistry, default_registry
from ogdat_cli.validation import CheckEngine, check

__all__ = [
    "CheckEngine",
    "CheckFlag",
    "CheckMessage",
    "CheckReport",
    "MetadataDocument",
    "SpecRegistry",
    "check",
    "cli",
    "default_registry",
    "parse_document",
]
