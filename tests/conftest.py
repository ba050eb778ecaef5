"""Shared pytest fixtures for ogdat CLI tests."""

from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any
from unittest import mock

import pytest

from ogdat_cli.document import default_vocabularies
from ogdat_cli.probe import UrlProbe
from ogdat_cli.spec.registry import SpecRegistry, default_registry
from ogdat_cli.validation import CheckEngine
from ogdat_cli.vocabularies import Vocabularies

# =============================================================================
# Fixture Directory Access
# =============================================================================


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def metadata_dir(fixtures_dir: Path) -> Path:
    """Directory of metadata document fixtures."""
    return fixtures_dir / "metadata"


@pytest.fixture
def fullandok_22(metadata_dir: Path) -> Path:
    """Path to a 2.2 document that passes without errors or warnings."""
    return metadata_dir / "fullandok-2.2.json"


@pytest.fixture
def fullandok_21(metadata_dir: Path) -> Path:
    """Path to a 2.1 document with the two-corner bbox shorthand."""
    return metadata_dir / "fullandok-2.1.json"


@pytest.fixture
def fullandok_23(metadata_dir: Path) -> Path:
    """Path to a 2.3 document using the accepted spelling variants."""
    return metadata_dir / "fullandok-2.3.json"


@pytest.fixture
def allempty_22(metadata_dir: Path) -> Path:
    """Path to a document holding nothing but its schema name."""
    return metadata_dir / "allempty-2.2.json"


@pytest.fixture
def valid_document(fullandok_22: Path) -> dict[str, Any]:
    """Fresh, mutable copy of the passing 2.2 document."""
    return copy.deepcopy(json.loads(fullandok_22.read_text(encoding="utf-8")))


# =============================================================================
# Checker collaborators
# =============================================================================


@pytest.fixture(scope="session")
def registry() -> SpecRegistry:
    """Registry with the bundled 2.1, 2.2 and 2.3 tables."""
    return default_registry()


@pytest.fixture(scope="session")
def vocabularies() -> Vocabularies:
    return default_vocabularies()


@pytest.fixture
def offline_probe() -> UrlProbe:
    """Probe whose session fails every request (no network in unit tests)."""
    session = mock.Mock()
    session.head.side_effect = AssertionError("unexpected HEAD request")
    session.get.side_effect = AssertionError("unexpected GET request")
    return UrlProbe(session=session, timeout=1.0)


@pytest.fixture
def engine(
    registry: SpecRegistry, vocabularies: Vocabularies, offline_probe: UrlProbe
) -> CheckEngine:
    return CheckEngine(registry, vocabularies, offline_probe)
