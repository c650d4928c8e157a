"""Tests for the administrative handlers."""

from __future__ import annotations

import json

import pytest

from confsync.admin import AdminFacade
from confsync.audit import read_audit_log
from confsync.controller import LifecycleController
from confsync.engine import SyncEngine
from confsync.records import JsonRecordRepository
from confsync.resolver import ConfigResolver
from confsync.settings import SYNC_REPO, SYNC_TOKEN, SettingsStore


@pytest.fixture
def settings(seeded_home):
    return SettingsStore(seeded_home)


@pytest.fixture
def controller(seeded_home, settings, blob_server):
    engine = SyncEngine(JsonRecordRepository(seeded_home), store_factory=blob_server.factory)
    ctl = LifecycleController(ConfigResolver(settings, environ={}), engine, home=seeded_home)
    ctl.bind()
    yield ctl
    ctl.stop()


@pytest.fixture
def admin(controller):
    return AdminFacade(controller)


class TestStatus:
    def test_not_configured(self, admin, blob_server):
        result = admin.status()
        assert result["success"] is True
        assert result["data"]["enabled"] is False
        assert result["data"]["last_sync_time"] is None
        assert blob_server.calls == []

    def test_token_without_repo(self, admin, settings, controller, blob_server):
        settings.set(SYNC_TOKEN, "tok")
        controller.start()
        assert admin.status()["data"]["enabled"] is False
        assert blob_server.calls == []


class TestTrigger:
    def test_not_configured(self, admin):
        result = admin.trigger()
        assert result["success"] is False
        assert "not configured" in result["message"]

    def test_success(self, admin, settings, blob_server):
        settings.update({SYNC_TOKEN: "tok", SYNC_REPO: "acme/backups"})

        result = admin.trigger()

        assert result["success"] is True
        assert set(blob_server.blobs) == {"tokens.json", "channels.json", "models.json"}
        assert admin.status()["data"]["last_sync_time"] is not None

    def test_failure_message(self, admin, settings, blob_server):
        settings.update({SYNC_TOKEN: "tok", SYNC_REPO: "acme/backups"})
        blob_server.fail_on.add("channels.json")

        result = admin.trigger()

        assert result["success"] is False
        assert result["message"].startswith("Sync failed: channels:")

    def test_invalid_destination(self, admin, settings, blob_server):
        settings.update({SYNC_TOKEN: "tok", SYNC_REPO: "just-a-name"})
        result = admin.trigger()
        assert result["success"] is False
        assert "owner/repo" in result["message"]
        assert blob_server.calls == []


class TestPull:
    def test_restores(self, admin, settings, blob_server, seeded_home):
        settings.update({SYNC_TOKEN: "tok", SYNC_REPO: "acme/backups"})
        blob_server.blobs["tokens.json"] = json.dumps([{"id": 42, "name": "restored"}]).encode()

        result = admin.pull()

        assert result["success"] is True
        tokens = json.loads((seeded_home / "records" / "tokens.json").read_text())
        assert [t["id"] for t in tokens] == [1, 42]

    def test_failure_message(self, admin, settings, blob_server):
        settings.update({SYNC_TOKEN: "tok", SYNC_REPO: "acme/backups"})
        blob_server.blobs["models.json"] = b"not json"
        result = admin.pull()
        assert result["success"] is False
        assert result["message"].startswith("Restore failed: models:")

    def test_not_configured(self, admin):
        assert admin.pull()["success"] is False


class TestUpdateSettings:
    def test_rejects_non_object(self, admin):
        assert admin.update_settings(["sync_token"])["success"] is False

    def test_rejects_unknown_keys(self, admin, settings):
        result = admin.update_settings({"sync_token": "t", "admin_password": "x"})
        assert result["success"] is False
        assert "admin_password" in result["message"]
        assert settings.get(SYNC_TOKEN) == ""

    def test_configuring_arms_loop(self, admin, controller):
        result = admin.update_settings(
            {"sync_token": "tok", "sync_repo": "acme/backups", "sync_interval": 120}
        )
        assert result["success"] is True
        assert controller.running is True
        assert controller.status()["interval_seconds"] == 120

    def test_audited_without_values(self, admin, seeded_home):
        admin.update_settings({"sync_token": "ghp_secret"})
        entries = read_audit_log(seeded_home)
        assert entries[-1].event_type == "SETTINGS"
        assert "ghp_secret" not in entries[-1].model_dump_json()
