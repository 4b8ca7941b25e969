import json

import pytest

from gatorfeed.cli import main


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("USERPROFILE", str(tmp_path))
    return tmp_path


@pytest.fixture
def configured(home):
    path = home / ".gatorconfig.json"
    path.write_text(
        json.dumps({"db_url": str(home / "gator.db"), "current_user_name": ""}),
        encoding="utf-8",
    )
    return path


def test_missing_config(home, capsys):
    assert main(["users"]) == 1
    assert "error while trying to read the config file" in capsys.readouterr().out


def test_no_arguments(configured, capsys):
    assert main([]) == 1
    assert "no arguments provided" in capsys.readouterr().err


def test_invalid_command(configured, capsys):
    assert main(["bogus"]) == 1
    assert "the command 'bogus' is invalid" in capsys.readouterr().err


def test_register_persists_user(configured, capsys):
    assert main(["register", "alice"]) == 0
    saved = json.loads(configured.read_text(encoding="utf-8"))
    assert saved["current_user_name"] == "alice"
    assert saved["db_url"].endswith("gator.db")
    capsys.readouterr()
    assert main(["users"]) == 0
    assert capsys.readouterr().out == "* alice (current)\n"


def test_login_unknown_user_fails(configured, capsys):
    assert main(["login", "nobody"]) == 1
    assert "no rows" in capsys.readouterr().err
    saved = json.loads(configured.read_text(encoding="utf-8"))
    assert saved["current_user_name"] == ""


def test_addfeed_then_feeds(configured, capsys):
    assert main(["register", "alice"]) == 0
    assert main(["addfeed", "Blog", "https://example.com/rss"]) == 0
    capsys.readouterr()
    assert main(["feeds"]) == 0
    out = capsys.readouterr().out
    assert "FeedName: Blog" in out
    assert "UserName: alice" in out


def test_browse_saves_position(configured):
    assert main(["register", "alice"]) == 0
    assert main(["browse"]) == 0
    saved = json.loads(configured.read_text(encoding="utf-8"))
    assert saved["last_post"]["id"] == 0
    assert "publicated_at" in saved["last_post"]