"""Tests for the interactive console.

Tests the console including:
- Folder navigation (mkdir, cd, pwd)
- Adding and reading notes
- Alias resolution
- Error rendering for vault errors
- Locking and re-unlocking
"""

from unittest.mock import patch

import pytest

from coffer.config import Config
from coffer.console import Console


@pytest.fixture
def console(unlocked_vault):
    """Create console with an unlocked vault."""
    c = Console(vault=unlocked_vault)
    c.intro = ""
    return c


def run(console, line):
    """Feed one line through the same path cmdloop uses."""
    return console.onecmd(console.precmd(line))


class TestNavigation:
    def test_starts_at_root(self, console, capsys):
        assert console.cwd is None
        assert console.prompt == "coffer:/> "
        run(console, "pwd")
        assert capsys.readouterr().out.strip() == "/"

    def test_mkdir_and_cd(self, console, capsys):
        run(console, "mkdir Projects")
        run(console, "cd Projects")
        assert console.prompt == "coffer:/Projects> "
        run(console, "mkdir Archive")
        run(console, "cd Archive")
        capsys.readouterr()
        run(console, "pwd")
        assert capsys.readouterr().out.strip() == "/Projects/Archive"

        run(console, "cd ..")
        assert console.prompt == "coffer:/Projects> "
        run(console, "cd /")
        assert console.cwd is None

    def test_cd_into_note_fails(self, console, capsys):
        run(console, "note memo hello")
        capsys.readouterr()
        run(console, "cd memo")
        assert "not a folder" in capsys.readouterr().out
        assert console.cwd is None

    def test_cd_unknown(self, console, capsys):
        run(console, "cd nowhere")
        assert "Item not found" in capsys.readouterr().out


class TestNotes:
    def test_note_lands_in_current_folder(self, console, unlocked_vault):
        run(console, "mkdir Docs")
        run(console, "cd Docs")
        run(console, 'note "Wifi code" abc 123 --tags home,net')

        (docs,) = unlocked_vault.get_vault_items(None)
        (note,) = unlocked_vault.get_vault_items(docs.id)
        assert note.name == "Wifi code"
        assert note.tags == ["home", "net"]
        assert unlocked_vault.get_item_content(note.id) == b"abc 123"

    def test_cat_shows_content(self, console, capsys):
        run(console, "note memo remember-the-milk")
        capsys.readouterr()
        run(console, "show memo")
        assert "remember-the-milk" in capsys.readouterr().out

    def test_note_usage(self, console, capsys):
        run(console, "note lonely")
        assert "Usage: note" in capsys.readouterr().out

    def test_rm_confirmed(self, console, unlocked_vault):
        run(console, "mkdir Old")
        run(console, "cd Old")
        run(console, "note a x")
        run(console, "cd ..")
        with patch("coffer.ui.confirm", return_value=True):
            run(console, "del Old")
        assert unlocked_vault.get_all_vault_items() == []

    def test_rm_declined(self, console, unlocked_vault):
        run(console, "note keep x")
        with patch("coffer.ui.confirm", return_value=False):
            run(console, "rm keep")
        assert len(unlocked_vault.get_all_vault_items()) == 1


class TestSession:
    def test_lock_then_command_unlocks_first(
        self, console, unlocked_vault, master_password, monkeypatch
    ):
        run(console, "lock")
        assert not unlocked_vault.session.is_unlocked

        monkeypatch.setenv(Config.MASTER_PASSWORD_ENV, master_password)
        assert console.precmd("ls") == "unlock"
        run(console, "ls")
        assert unlocked_vault.session.is_unlocked

    def test_wrong_password_is_reported(self, console, unlocked_vault, monkeypatch, capsys):
        run(console, "lock")
        monkeypatch.setenv(Config.MASTER_PASSWORD_ENV, "wrong")
        capsys.readouterr()
        assert run(console, "unlock") is False
        assert "Incorrect master password" in capsys.readouterr().out
        assert not unlocked_vault.session.is_unlocked

    def test_quit_locks(self, console, unlocked_vault):
        assert run(console, "q") is True
        assert not unlocked_vault.session.is_unlocked

    def test_unknown_command(self, console, capsys):
        run(console, "frobnicate now")
        assert "Unknown syntax: frobnicate" in capsys.readouterr().out
