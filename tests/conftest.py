"""
Attendo · Shared Test-Fixtures.

Alle Tests nutzen ein temporäres Verzeichnis statt ~/.attendo/.
So sind Tests isoliert und reproduzierbar.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from attendo.config import AttendoConfig, ensure_directory_structure
from attendo.utils.logging import clear_context

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def tmp_attendo_home(tmp_path: Path) -> Path:
    """Temporäres Attendo-Home-Verzeichnis."""
    return tmp_path / ".attendo"


@pytest.fixture
def config(tmp_attendo_home: Path) -> AttendoConfig:
    """AttendoConfig mit temporärem Home-Verzeichnis."""
    return AttendoConfig(attendo_home=tmp_attendo_home)


@pytest.fixture
def initialized_config(config: AttendoConfig) -> AttendoConfig:
    """AttendoConfig mit erstellter Verzeichnisstruktur."""
    ensure_directory_structure(config)
    return config


@pytest.fixture(autouse=True)
def _clean_log_context() -> None:
    """Kein Log-Kontext darf zwischen Tests durchsickern."""
    clear_context()
