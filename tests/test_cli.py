"""Tests for the trunk CLI."""

import json
from argparse import Namespace

import pytest

from trunk.cli.__main__ import main
from trunk.cli.commands import cmd_clear, cmd_events, cmd_status, cmd_sync
from trunk.config import Settings
from trunk.storage.export import build_export


def _seed(persisted_store, ev):
    persisted_store.append(ev.leaf("2025-01-01T08:00:00.000Z"))
    persisted_store.append(ev.planted("2025-01-01T09:00:00.000Z", leaf_id="leaf-1"))
    persisted_store.append(ev.watered("2025-01-02T09:00:00.000Z"))


class TestStatus:
    def test_json(self, persisted_store, db_path, ev, capsys):
        _seed(persisted_store, ev)
        main(["--db", str(db_path), "status", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["soil"] == {"available": 8.05, "capacity": 10.0}
        assert data["sprouts"] == {"active": 1, "completed": 0, "uprooted": 0}
        assert data["leaves"] == 1
        assert data["events"] == 3
        assert data["water"]["capacity"] == 3
        assert data["sun"]["resets_at"].endswith("Z")

    def test_text(self, store, ev, capsys):
        store.append(ev.planted("2025-01-01T09:00:00.000Z"))
        cmd_status(Namespace(json=False), store)
        out = capsys.readouterr().out
        assert "Soil:    8.00 / 10.00" in out
        assert "Sprouts: 1 active, 0 harvested, 0 uprooted" in out


class TestEvents:
    def test_lists_tail(self, store, ev, capsys):
        store.append(ev.leaf("2025-01-01T08:00:00.000Z"))
        store.append(ev.planted("2025-01-01T09:00:00.000Z"))
        cmd_events(Namespace(limit=1, json=False), store)
        out = capsys.readouterr().out.strip().splitlines()
        assert out == ["2025-01-01T09:00:00.000Z  sprout_planted    sprout-1"]

    def test_json(self, store, ev, capsys):
        store.append(ev.planted("2025-01-01T09:00:00.000Z"))
        cmd_events(Namespace(limit=0, json=True), store)
        data = json.loads(capsys.readouterr().out)
        assert data[0]["sproutId"] == "sprout-1"

    def test_empty(self, store, capsys):
        cmd_events(Namespace(limit=20, json=False), store)
        assert capsys.readouterr().out.strip() == "No events."


class TestExportImport:
    def test_round_trip(self, persisted_store, db_path, tmp_path, ev, capsys):
        _seed(persisted_store, ev)
        path = tmp_path / "out.json"
        main(["--db", str(db_path), "export", str(path)])
        assert "Exported 3 events" in capsys.readouterr().out

        other_db = tmp_path / "other.db"
        main(["--db", str(other_db), "import", str(path)])
        assert "Imported 3 events" in capsys.readouterr().out

        main(["--db", str(other_db), "status", "--json"])
        assert json.loads(capsys.readouterr().out)["events"] == 3

    def test_import_needs_yes_over_existing_log(self, persisted_store, db_path, tmp_path, ev, capsys):
        _seed(persisted_store, ev)
        path = tmp_path / "in.json"
        path.write_text(json.dumps(build_export([ev.leaf("2025-02-01T08:00:00.000Z", leaf_id="leaf-2")])))

        main(["--db", str(db_path), "import", str(path)])
        assert "pass --yes" in capsys.readouterr().out

        main(["--db", str(db_path), "import", str(path), "--yes"])
        assert "Imported 1 events" in capsys.readouterr().out

    def test_missing_file(self, db_path, tmp_path, capsys):
        main(["--db", str(db_path), "import", str(tmp_path / "nope.json")])
        assert "File not found" in capsys.readouterr().out

    def test_bad_document_exits(self, db_path, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"_version": 9}))
        with pytest.raises(SystemExit) as exc_info:
            main(["--db", str(db_path), "import", str(path)])
        assert exc_info.value.code == 1


class TestClear:
    def test_requires_yes(self, store, ev, capsys):
        store.append(ev.planted("2025-01-01T09:00:00.000Z"))
        cmd_clear(Namespace(yes=False), store)
        assert "Refusing" in capsys.readouterr().out
        assert store.event_count() == 1

    def test_clear(self, persisted_store, db_path, ev, capsys):
        _seed(persisted_store, ev)
        main(["--db", str(db_path), "clear", "--yes"])
        assert "Cleared 3 events." in capsys.readouterr().out


class TestSync:
    def test_sync(self, store, fake_remote, ev, capsys):
        fake_remote.add_from_other_device(ev.planted("2025-01-01T09:00:00.000Z", client_id="p-1"))
        settings = Settings(_env_file=None, user_id="user-1")
        cmd_sync(Namespace(full=False, json=False), store, remote=fake_remote, settings=settings)
        assert "Synced (full): 1 events" in capsys.readouterr().out
        assert store.event_count() == 1

    def test_sync_json(self, store, fake_remote, capsys):
        settings = Settings(_env_file=None, user_id="user-1")
        cmd_sync(Namespace(full=True, json=True), store, remote=fake_remote, settings=settings)
        data = json.loads(capsys.readouterr().out)
        assert data["status"] == "success"
        assert data["mode"] == "full"
        assert data["pending"] == 0

    def test_not_configured(self, store, capsys):
        settings = Settings(_env_file=None, supabase_url=None, supabase_key=None, user_id="user-1")
        cmd_sync(Namespace(full=False, json=False), store, settings=settings)
        assert "Sync failed: Remote not configured" in capsys.readouterr().out

    def test_not_authenticated(self, store, fake_remote, capsys):
        settings = Settings(_env_file=None, user_id=None)
        cmd_sync(Namespace(full=False, json=False), store, remote=fake_remote, settings=settings)
        assert "Sync failed: Not authenticated" in capsys.readouterr().out
