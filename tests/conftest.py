"""Pytest configuration and shared fixtures.

This module provides fixtures used across test modules for
testing Soar functionality.
"""

from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest
import respx
import yaml
from typer.testing import CliRunner

from soar.config import HttpOptions, SoarConfig, SurfaceConfig
from soar.logging_config import Diagnostics

from helpers import PANEL_URL, USER_ATTRIBUTES, user_attributes


@pytest.fixture(autouse=True)
def isolated_environment(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """Run every test in an empty working directory with a private SOAR_PATH."""
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    monkeypatch.setenv("SOAR_PATH", str(tmp_path / "global"))
    monkeypatch.setenv("NO_COLOR", "1")
    for name in (
        "FORCE_COLOR",
        "SOAR_APP_URL",
        "SOAR_APP_KEY",
        "SOAR_CLIENT_URL",
        "SOAR_CLIENT_KEY",
        "SOAR_LOG_FILE",
        "SOAR_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)
    yield workdir


@pytest.fixture
def global_config_dir(tmp_path: Path) -> Path:
    """Directory SOAR_PATH points at (not created)."""
    return tmp_path / "global"


@pytest.fixture
def config_data() -> dict[str, Any]:
    """Raw configuration mapping with both surfaces configured."""
    return {
        "application": {"url": PANEL_URL, "key": "ptla_application_key"},
        "client": {"url": PANEL_URL, "key": "ptlc_client_key"},
        "http": {"parse_body": True, "parse_indent": True},
        "logs": {"use_color": False, "use_debug": False, "quiet": False},
    }


@pytest.fixture
def write_config() -> Callable[[Path, dict[str, Any]], Path]:
    """Return a helper that writes a YAML config file, creating parents."""

    def _write(path: Path, data: dict[str, Any]) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(data))
        return path

    return _write


@pytest.fixture
def global_config(
    global_config_dir: Path,
    config_data: dict[str, Any],
    write_config: Callable[[Path, dict[str, Any]], Path],
) -> Path:
    """Write the global config file and return its path."""
    return write_config(global_config_dir / "config.yml", config_data)


@pytest.fixture
def sample_config() -> SoarConfig:
    """Create a configured SoarConfig for testing."""
    return SoarConfig(
        application=SurfaceConfig(url=PANEL_URL, key="ptla_application_key"),
        client=SurfaceConfig(url=PANEL_URL, key="ptlc_client_key"),
    )


@pytest.fixture
def compact_config(sample_config: SoarConfig) -> SoarConfig:
    """SoarConfig that keeps envelopes and prints compact JSON."""
    return sample_config.model_copy(
        update={"http": HttpOptions(parse_body=False, parse_indent=False)}
    )


@pytest.fixture
def diagnostics() -> Diagnostics:
    """Create a Diagnostics handle with default options."""
    return Diagnostics()


@pytest.fixture
def panel() -> Generator[respx.MockRouter, None, None]:
    """Mock the panel at PANEL_URL."""
    with respx.mock(base_url=PANEL_URL, assert_all_called=False) as router:
        yield router


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture
def user_envelope() -> dict[str, Any]:
    """Single-resource envelope for one user."""
    return {"object": "user", "attributes": dict(USER_ATTRIBUTES)}


@pytest.fixture
def users_collection() -> dict[str, Any]:
    """Collection envelope with users A, B, C in server order."""
    return {
        "object": "list",
        "data": [
            {"object": "user", "attributes": user_attributes(3, "charlie")},
            {"object": "user", "attributes": user_attributes(1, "alice")},
            {"object": "user", "attributes": user_attributes(2, "bob")},
        ],
        "meta": {"pagination": {"total": 3, "count": 3, "per_page": 50, "current_page": 1}},
    }

