"""
Tests for the command-line entry point.
"""

import json
from pathlib import Path

import pytest

import finance_tracker.config as config_module
import main
from finance_tracker.database import LocalStore
from finance_tracker.snapshot import list_backups


@pytest.fixture
def cli_env(tmp_path: Path, monkeypatch):
    """Point the CLI at a temp store and backups directory."""
    backups = tmp_path / "backups"
    monkeypatch.setenv("FINANCE_BACKUPS_DIR", str(backups))
    monkeypatch.delenv("FINANCE_REMOTE_URL", raising=False)
    monkeypatch.setattr(config_module, "_config", None)
    return tmp_path / "finance.db", backups


def _seed(db_path: Path) -> None:
    with LocalStore(db_path) as store:
        store.put("clients", {"id": 1, "name": "Acme"})
        store.put("income", {"id": 1, "clientId": 1, "amount": 100})


class TestConfirm:
    """Tests for the two-prompt confirmation."""

    def test_both_answers_yes(self):
        answers = iter(["y", "YES"])
        confirmation = main._confirm("local", 0, ask=lambda prompt: next(answers))
        assert confirmation.is_confirmed

    def test_second_answer_no(self):
        answers = iter(["y", "n"])
        confirmation = main._confirm("local", 0, ask=lambda prompt: next(answers))
        assert confirmation.count == 1
        assert not confirmation.is_confirmed

    def test_first_no_stops_prompting(self):
        prompts = []

        def ask(prompt):
            prompts.append(prompt)
            return ""

        main._confirm("remote", 0, ask=ask)
        assert len(prompts) == 1
        assert "remote" in prompts[0]

    def test_preconfirmed(self):
        def ask(prompt):
            raise AssertionError("should not prompt")

        assert main._confirm("local", 2, ask=ask).is_confirmed

    def test_one_flag_prompts_once(self):
        prompts = []

        def ask(prompt):
            prompts.append(prompt)
            return "y"

        assert main._confirm("local", 1, ask=ask).is_confirmed
        assert len(prompts) == 1


class TestCommands:
    """Tests for main() dispatch."""

    def test_export_writes_backup(self, cli_env, capsys):
        db_path, backups = cli_env
        _seed(db_path)

        assert main.main(["--db-path", str(db_path), "export"]) == 0

        backup = list_backups(backups)[0]
        data = json.loads(backup.path.read_text(encoding="utf-8"))
        assert len(data["clients"]) == 1
        assert "Export SUCCESS" in capsys.readouterr().out

    def test_import_latest_backup(self, cli_env):
        db_path, backups = cli_env
        _seed(db_path)
        main.main(["--db-path", str(db_path), "export"])
        with LocalStore(db_path) as store:
            store.clear("clients")

        assert main.main(["--db-path", str(db_path), "import"]) == 0

        with LocalStore(db_path) as store:
            assert store.count("clients") == 1

    def test_import_without_backups(self, cli_env, capsys):
        db_path, _ = cli_env
        assert main.main(["--db-path", str(db_path), "import"]) == 1
        assert "No backups found" in capsys.readouterr().out

    def test_import_invalid_file(self, cli_env, tmp_path: Path):
        db_path, _ = cli_env
        bad = tmp_path / "bad.json"
        bad.write_text("[]", encoding="utf-8")
        assert main.main(["--db-path", str(db_path), "import", str(bad)]) == 1

    def test_wipe_local_with_flags(self, cli_env):
        db_path, _ = cli_env
        _seed(db_path)

        assert main.main(["--db-path", str(db_path), "wipe-local", "-y", "-y"]) == 0

        with LocalStore(db_path) as store:
            assert sum(store.counts().values()) == 0

    def test_wipe_local_aborted(self, cli_env, monkeypatch):
        db_path, _ = cli_env
        _seed(db_path)
        monkeypatch.setattr("builtins.input", lambda prompt: "n")

        assert main.main(["--db-path", str(db_path), "wipe-local", "-y"]) == 1

        with LocalStore(db_path) as store:
            assert store.count("clients") == 1

    def test_upload_without_remote(self, cli_env, capsys):
        db_path, _ = cli_env
        assert main.main(["--db-path", str(db_path), "upload"]) == 1
        assert "FINANCE_REMOTE_URL" in capsys.readouterr().out

    def test_backups_listing_and_cleanup(self, cli_env, capsys):
        db_path, backups = cli_env
        _seed(db_path)
        for _ in range(3):
            main.main(["--db-path", str(db_path), "export"])

        assert main.main(["--db-path", str(db_path), "backups", "--cleanup", "1"]) == 0

        assert len(list_backups(backups)) == 1
        assert "Deleted 2 old backups" in capsys.readouterr().out

    def test_requires_command(self):
        with pytest.raises(SystemExit):
            main.main([])
