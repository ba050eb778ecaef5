"""Metadata checks for OGD Austria documents.

This module provides the public API for checking documents:
- check(): Check one document and return a CheckReport
- CheckEngine: The reusable, thread-safe checker
- CheckMessage / CheckFlag: Findings and their levels and flags
"""

from ogdat_cli.messages import (
    DOCUMENT_LEVEL_ID,
    CheckFlag,
    CheckMessage,
    CheckReport,
)
from ogdat_cli.validation.engine import CheckEngine, detect_version
from ogdat_cli.validation.runner import check, load_document

__all__ = [
    "DOCUMENT_LEVEL_ID",
    "CheckEngine",
    "CheckFlag",
    "CheckMessage",
    "CheckReport",
    "check",
    "detect_version",
    "load_document",
]
