"""
Tests for provider credential storage
"""

import json
import os
import stat

import pytest

from nexus_gateway.storage import Credentials, CredentialsUpdate, CredentialStore


class TestCredentialStore:
    """Credential persistence and lookup"""

    def test_missing_file_means_empty(self, credential_store):
        assert credential_store.stored == Credentials()
        assert credential_store.thermostat() == {"username": None, "password": None}

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions only")
    def test_written_owner_only(self, credential_store, credentials_path):
        credential_store.replace(Credentials(ringToken="token"))

        mode = stat.S_IMODE(credentials_path.stat().st_mode)
        assert mode == 0o600

    def test_partial_update_keeps_other_fields(self, credential_store, credentials_path):
        credential_store.replace(
            Credentials(honeywellEmail="me@example.com", honeywellPassword="old", ringToken="ring")
        )

        credential_store.update(CredentialsUpdate(honeywellPassword="new"))

        saved = json.loads(credentials_path.read_text(encoding="utf-8"))
        assert saved == {
            "honeywellEmail": "me@example.com",
            "honeywellPassword": "new",
            "ringToken": "ring",
        }

    def test_reload_from_disk(self, credential_store, credentials_path):
        credential_store.update(CredentialsUpdate(shellyAuth="key"))

        reloaded = CredentialStore(credentials_path)
        assert reloaded.get("shellyAuth") == "key"

    def test_unreadable_file_means_empty(self, credentials_path):
        credentials_path.write_text("{broken", encoding="utf-8")

        assert CredentialStore(credentials_path).stored == Credentials()

    def test_environment_fallback(self, credential_store, monkeypatch):
        monkeypatch.setenv("TCC_USERNAME", "env@example.com")
        monkeypatch.setenv("TCC_PASSWORD", "env-secret")

        assert credential_store.thermostat() == {
            "username": "env@example.com",
            "password": "env-secret",
        }

    def test_stored_value_beats_environment(self, credential_store, monkeypatch):
        monkeypatch.setenv("RING_REFRESH_TOKEN", "env-token")
        credential_store.update(CredentialsUpdate(ringToken="stored-token"))

        assert credential_store.camera() == {"refresh_token": "stored-token"}

    def test_status_never_exposes_secrets(self, credential_store):
        credential_store.replace(
            Credentials(honeywellEmail="me@example.com", honeywellPassword="hunter2")
        )

        status = credential_store.status()

        assert status == {
            "honeywell": {"configured": True, "email": "me@example.com"},
            "ring": False,
            "shelly": False,
        }
        assert "hunter2" not in json.dumps(status)
