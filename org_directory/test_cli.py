"""
Pytest tests for the org-directory command line (cli.py), with a fake API client.
"""

import json

import pytest

from org_directory import cli
from org_directory.conftest import FakeOrgAPI


@pytest.fixture
def run_cli(monkeypatch, tmp_path, fake_api):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.setattr(cli, "GitHubAPIClient", lambda *args, **kwargs: fake_api)

    def _run(*argv):
        return cli._cli(["--org", "octo-org", "--token", "tok", "--cache-dir", str(tmp_path / "cache"), *argv])

    return _run


def test_match_json(run_cli, capsys):
    assert run_cli("--json", "match", "oct") == cli.EXIT_OK
    out = json.loads(capsys.readouterr().out)
    assert [m["login"] for m in out["members"]] == ["octocat"]
    assert [t["name"] for t in out["teams"]] == ["octo-team"]


def test_is_member_exit_codes(run_cli, capsys):
    assert run_cli("is-member", "Alice") == cli.EXIT_OK
    assert run_cli("is-member", "dave") == cli.EXIT_FALSE
    assert capsys.readouterr().out.split() == ["yes", "no"]


def test_team_members_text(run_cli, capsys):
    assert run_cli("team-members", "eng") == cli.EXIT_OK
    assert capsys.readouterr().out.split() == ["bob", "dave"]


def test_second_run_uses_cache(run_cli, fake_api):
    run_cli("members")
    n_calls = len(fake_api.calls)
    run_cli("teams")
    assert len(fake_api.calls) == n_calls


def test_whoami(run_cli, capsys):
    assert run_cli("whoami") == cli.EXIT_OK
    assert capsys.readouterr().out.strip() == "alice"


def test_missing_token_is_config_exit(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    assert cli._cli(["--org", "octo-org", "members"]) == cli.EXIT_CONFIG
    assert "token" in capsys.readouterr().err.lower()


def test_remote_failure_exit(monkeypatch, tmp_path, capsys):
    api = FakeOrgAPI(members=[("alice", "")], fail_users=["alice"])
    monkeypatch.setattr(cli, "GitHubAPIClient", lambda *args, **kwargs: api)
    code = cli._cli(["--org", "octo-org", "--token", "tok", "--cache-dir", str(tmp_path), "members"])
    assert code == cli.EXIT_FAILURE
    assert "alice" in capsys.readouterr().err
