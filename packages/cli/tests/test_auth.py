"""Tests for credential resolution."""

import pytest

from presubmit_cli.auth import resolve_credentials
from presubmit_core.errors import ConfigError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "PRESUBMIT_GERRIT_USERNAME",
        "PRESUBMIT_GERRIT_PASSWORD",
        "PRESUBMIT_JENKINS_USERNAME",
        "PRESUBMIT_JENKINS_PASSWORD",
        "NETRC",
    ):
        monkeypatch.delenv(name, raising=False)


def _netrc(tmp_path, content):
    path = tmp_path / ".netrc"
    path.write_text(content)
    path.chmod(0o600)
    return str(path)


def test_env_vars_take_precedence(tmp_path, monkeypatch):
    monkeypatch.setenv("PRESUBMIT_GERRIT_USERNAME", "env-user")
    monkeypatch.setenv("PRESUBMIT_GERRIT_PASSWORD", "env-pass")
    path = _netrc(tmp_path, "machine review.example.com login file-user password file-pass\n")
    assert resolve_credentials("gerrit", "https://review.example.com", netrc_path=path) == ("env-user", "env-pass")


def test_netrc_entry_for_host(tmp_path):
    path = _netrc(tmp_path, "machine review.example.com login file-user password file-pass\n")
    assert resolve_credentials("gerrit", "https://review.example.com/", netrc_path=path) == ("file-user", "file-pass")


def test_netrc_env_var_location(tmp_path, monkeypatch):
    monkeypatch.setenv("NETRC", _netrc(tmp_path, "machine jenkins.local login ci password secret\n"))
    assert resolve_credentials("jenkins", "http://jenkins.local:8080") == ("ci", "secret")


def test_host_without_entry_is_anonymous(tmp_path):
    path = _netrc(tmp_path, "machine other.example.com login u password p\n")
    assert resolve_credentials("gerrit", "https://review.example.com", netrc_path=path) is None


def test_missing_netrc_is_anonymous(tmp_path):
    assert resolve_credentials("gerrit", "https://review.example.com", netrc_path=str(tmp_path / "none")) is None


def test_malformed_netrc_raises(tmp_path):
    path = _netrc(tmp_path, "machine review.example.com bogus value\n")
    with pytest.raises(ConfigError):
        resolve_credentials("gerrit", "https://review.example.com", netrc_path=path)
