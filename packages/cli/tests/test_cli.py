"""Tests for the CLI entry point."""

import importlib.metadata
import json
from unittest.mock import MagicMock

import pytest
from click.testing import CliRunner

from presubmit_cli.cli import _build_jenkins, _build_store, _get_version, main
from presubmit_core.config import PresubmitConfig, load_config
from presubmit_core.errors import GerritError
from presubmit_core.jenkins.client import BuildInfo, JenkinsClient
from presubmit_core.pipeline import ResultSummary
from presubmit_store.json_file import JsonFileStore
from presubmit_store.sqlite import SQLiteStore


def _write_config(tmp_path, body="jenkins_host: http://jenkins.local\n"):
    path = tmp_path / ".presubmit.yml"
    path.write_text(body + f"store_path: {tmp_path / 'presubmit_log'}\nworkspace: {tmp_path}\n")
    return str(path)


def _patch_common(mocker):
    """Keep tests off the network and away from the root logger."""
    mocker.patch("presubmit_cli.cli._configure_logging")
    gerrit = mocker.patch("presubmit_cli.cli._build_gerrit", return_value=MagicMock())
    jenkins = mocker.patch("presubmit_cli.cli._build_jenkins", return_value=MagicMock())
    store = MagicMock(spec=JsonFileStore)
    mocker.patch("presubmit_cli.cli._build_store", return_value=store)
    return gerrit, jenkins, store


def _config(tmp_path, **overrides):
    raw = load_config(str(tmp_path / "missing.yml"), cli_overrides=overrides)
    return PresubmitConfig.from_dict(raw)


class TestQueryCommand:
    def test_calls_run_query_with_overrides(self, mocker, tmp_path):
        _, _, store = _patch_common(mocker)
        mock_run = mocker.patch("presubmit_cli.commands.query.run_query")

        result = CliRunner().invoke(
            main,
            ["--config", _write_config(tmp_path), "--job", "my-presubmit", "query", "--query", "status:open project:x"],
        )

        assert result.exit_code == 0, result.output
        mock_run.assert_called_once()
        config = mock_run.call_args.args[0]
        assert config.job == "my-presubmit"
        assert config.query == "status:open project:x"
        assert config.jenkins_host == "http://jenkins.local"
        assert mock_run.call_args.kwargs["store"] is store
        store.close.assert_called_once()

    def test_log_file_overrides_store_path(self, mocker, tmp_path):
        _patch_common(mocker)
        mock_run = mocker.patch("presubmit_cli.commands.query.run_query")
        log_file = str(tmp_path / "other_log")

        CliRunner().invoke(main, ["--config", _write_config(tmp_path), "query", "--log-file", log_file])

        assert mock_run.call_args.args[0].store_path == log_file

    def test_domain_error_becomes_clean_failure(self, mocker, tmp_path):
        _patch_common(mocker)
        mocker.patch("presubmit_cli.commands.query.run_query", side_effect=GerritError("401 Unauthorized"))

        result = CliRunner().invoke(main, ["--config", _write_config(tmp_path), "query"])

        assert result.exit_code == 1
        assert "401 Unauthorized" in result.output
        assert result.exception is None or isinstance(result.exception, SystemExit)

    def test_invalid_gerrit_url(self, mocker, tmp_path):
        _patch_common(mocker)
        mocker.patch("presubmit_cli.commands.query.run_query")

        result = CliRunner().invoke(main, ["--config", _write_config(tmp_path), "--url", "not-a-url", "query"])

        assert result.exit_code == 1
        assert "invalid gerrit url" in result.output

    def test_invalid_config_file(self, mocker, tmp_path):
        _patch_common(mocker)
        path = tmp_path / "broken.yml"
        path.write_text("job: [unclosed\n")

        result = CliRunner().invoke(main, ["--config", str(path), "query"])

        assert result.exit_code == 1
        assert "cannot parse" in result.output


class TestResultCommand:
    def _invoke(self, tmp_path, *args, body="jenkins_host: http://jenkins.local\n"):
        return CliRunner().invoke(
            main,
            ["--config", _write_config(tmp_path, body), "result", "--refs", "refs/changes/00/1000/1:refs/changes/00/2000/1", *args],
        )

    def test_calls_run_result(self, mocker, tmp_path):
        _patch_common(mocker)
        mock_run = mocker.patch("presubmit_cli.commands.result.run_result", return_value=ResultSummary(success=True))

        result = self._invoke(
            tmp_path, "--build-number", "42", "--projects", "release.go.core:release.js.core", "--tests", "a b"
        )

        assert result.exit_code == 0, result.output
        kwargs = mock_run.call_args.kwargs
        assert kwargs["refs"] == ["refs/changes/00/1000/1", "refs/changes/00/2000/1"]
        assert kwargs["projects"] == ["release.go.core", "release.js.core"]
        assert kwargs["tests"] == "a b"
        assert mock_run.call_args.args[0].build_number == 42

    def test_tests_read_from_environment(self, mocker, tmp_path, monkeypatch):
        _patch_common(mocker)
        mock_run = mocker.patch("presubmit_cli.commands.result.run_result", return_value=ResultSummary(success=True))
        monkeypatch.setenv("TESTS", "vanadium-go-test")

        self._invoke(tmp_path, "--build-number", "42")

        assert mock_run.call_args.kwargs["tests"] == "vanadium-go-test"

    def test_unsuccessful_report_exits_zero(self, mocker, tmp_path):
        _patch_common(mocker)
        mock_run = mocker.patch(
            "presubmit_cli.commands.result.run_result", return_value=ResultSummary(success=False, posted=True)
        )

        result = self._invoke(tmp_path, "--build-number", "42")

        assert result.exit_code == 0, result.output
        mock_run.assert_called_once()

    def test_merge_conflict_is_posted_and_exits_zero(self, mocker, tmp_path):
        gerrit_factory, jenkins_factory, _ = _patch_common(mocker)
        gerrit, jenkins = gerrit_factory.return_value, jenkins_factory.return_value
        gerrit.query.return_value = []
        jenkins.build_info.return_value = BuildInfo(result="SUCCESS", timestamp=0, id="1")
        jenkins.failed_test_cases.return_value = []
        jenkins.build_link.return_value = "http://jenkins.local/job/vanadium-presubmit-test/buildWithParameters"
        sub = tmp_path / "test_results" / "42" / "ARCH=amd64,OS=linux,TEST=vanadium-go-test"
        sub.mkdir(parents=True)
        (sub / "status_vanadium_go_test.json").write_text(
            json.dumps(
                {
                    "TestName": "vanadium-go-test",
                    "Timestamp": 5000,
                    "AxisValues": {"Arch": "amd64", "OS": "linux", "PartIndex": -1},
                    "Result": {"Status": "MERGE_CONFLICT", "MergeConflictCL": "1000"},
                }
            )
        )

        result = self._invoke(tmp_path, "--build-number", "42")

        assert result.exit_code == 0, result.output
        messages = [c.args[1] for c in gerrit.post_review.call_args_list]
        assert len(messages) == 2
        assert all(m.startswith("Possible merge conflict detected in 1000.") for m in messages)
        gerrit.submit.assert_not_called()

    def test_build_number_required(self, mocker, tmp_path):
        _patch_common(mocker)
        mock_run = mocker.patch("presubmit_cli.commands.result.run_result")

        result = self._invoke(tmp_path)

        assert result.exit_code == 2
        assert "--build-number" in result.output
        mock_run.assert_not_called()

    def test_jenkins_host_required(self, mocker, tmp_path):
        _patch_common(mocker)
        mocker.patch("presubmit_cli.cli._build_jenkins", return_value=None)
        mock_run = mocker.patch("presubmit_cli.commands.result.run_result")

        result = self._invoke(tmp_path, "--build-number", "42", body="")

        assert result.exit_code == 2
        mock_run.assert_not_called()


class TestVersionCommand:
    def test_prints_version(self, mocker):
        mocker.patch("presubmit_cli.cli._configure_logging")
        mocker.patch("presubmit_cli.cli._get_version", return_value="1.2.3")

        result = CliRunner().invoke(main, ["version"])

        assert result.exit_code == 0
        assert "[PRESUBMIT] presubmit tool version 1.2.3" in result.output

    def test_version_when_not_installed(self, mocker):
        mocker.patch("importlib.metadata.version", side_effect=importlib.metadata.PackageNotFoundError("presubmit"))
        assert _get_version() == "unknown"


class TestFactories:
    def test_default_store_is_json(self, tmp_path):
        store = _build_store(_config(tmp_path, store_path=str(tmp_path / "log")))
        assert isinstance(store, JsonFileStore)

    def test_sqlite_store(self, tmp_path):
        store = _build_store(_config(tmp_path, store="sqlite", store_path=str(tmp_path / "presubmit.db")))
        assert isinstance(store, SQLiteStore)
        store.close()

    def test_unknown_store(self, tmp_path):
        import click

        with pytest.raises(click.UsageError):
            _build_store(_config(tmp_path, store="redis"))

    def test_no_jenkins_without_host(self, tmp_path):
        assert _build_jenkins(_config(tmp_path, jenkins_host="")) is None

    def test_jenkins_with_host(self, tmp_path, mocker):
        mocker.patch("presubmit_cli.auth.resolve_credentials", return_value=None)
        client = _build_jenkins(_config(tmp_path, jenkins_host="http://jenkins.local/"))
        assert isinstance(client, JenkinsClient)
        assert client.host == "http://jenkins.local"
