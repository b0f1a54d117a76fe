"""Test configuration ensuring the src package is importable."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

SRC_PATH = Path(__file__).resolve().parents[1] / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

# Environment fallbacks that would leak real credentials into tests
CREDENTIAL_ENV_VARS = ("TCC_USERNAME", "TCC_PASSWORD", "RING_REFRESH_TOKEN", "SHELLY_AUTH_KEY")


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point every store at a temp dir and drop credential fallbacks."""
    for name in CREDENTIAL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("NEXUS_CONFIG_DIR", str(tmp_path / "nexus"))
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    monkeypatch.delenv("CREDENTIALS_PATH", raising=False)
    yield


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "config.json"


@pytest.fixture
def credentials_path(tmp_path: Path) -> Path:
    return tmp_path / ".credentials.json"


@pytest.fixture
def config_store(config_path: Path):
    from nexus_gateway.storage import ConfigStore

    return ConfigStore(config_path)


@pytest.fixture
def credential_store(credentials_path: Path):
    from nexus_gateway.storage import CredentialStore

    return CredentialStore(credentials_path)


# ========== Portal page fixtures ==========


def thermostat_page(
    temp: float = 71,
    humidity: int = 40,
    heat: float = 68,
    cool: float = 76,
    switch: int = 1,
    status_heat: int = 1,
    status_cool: int = 0,
) -> str:
    """Control page fragment carrying the portal's script markers (TEST FIXTURE)."""
    return (
        "<script>\n"
        f"Control.Model.Property.dispTemperature, {temp});\n"
        f"Control.Model.Property.indoorHumidity, {humidity});\n"
        f"Control.Model.Property.heatSetpoint, {heat});\n"
        f"Control.Model.Property.coolSetpoint, {cool});\n"
        "Control.Model.Property.outdoorTemp, 55);\n"
        "Control.Model.Property.outdoorHumidity, 80);\n"
        f"Control.Model.Property.systemSwitchPosition, {switch});\n"
        f"Control.Model.Property.statusHeat, {status_heat});\n"
        f"Control.Model.Property.statusCool, {status_cool});\n"
        "</script>"
    )
