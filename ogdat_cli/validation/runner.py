"""Check runner: from a file or JSON text to a CheckReport."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from ogdat_cli.document import MetadataDocument, parse_document
from ogdat_cli.messages import CheckReport
from ogdat_cli.probe import UrlProbe
from ogdat_cli.spec.registry import default_registry, resolve_version
from ogdat_cli.validation.engine import CheckEngine, detect_version

logger = logging.getLogger(__name__)


def load_document(source: Path | str | bytes | Mapping[str, Any]) -> MetadataDocument:
    """Parse a document from a path, JSON text/bytes or a decoded object.

    Raises:
        DocumentParseError: If the input is not a JSON object.
        OSError: If a path cannot be read.
    """
    if isinstance(source, Path):
        return parse_document(source.read_bytes(), source=str(source))
    return parse_document(source)


def check(
    source: Path | str | bytes | Mapping[str, Any] | MetadataDocument,
    *,
    version: str | None = None,
    follow_links: bool = False,
    engine: CheckEngine | None = None,
) -> CheckReport:
    """Check one metadata document.

    Args:
        source: Document, or anything load_document() accepts.
        version: Version to check against, in any form resolve_version()
            accepts. Defaults to the version named in schema_name.
        follow_links: Probe http(s) links over the network.
        engine: Engine to use. Defaults to one over the bundled tables.

    Returns:
        CheckReport with all messages.

    Raises:
        UnknownSpecVersionError: If no version is given and the document
            does not declare a supported one.
    """
    document = source if isinstance(source, MetadataDocument) else load_document(source)
    resolved = resolve_version(version) if version else detect_version(document)
    if engine is None:
        engine = CheckEngine(default_registry(), probe=UrlProbe())
    logger.info("Checking %s against %s", document.identifier or "document", resolved)
    return engine.check_report(document, resolved, follow_links=follow_links)
