"""CLI entry point for presubmit.

Commands:
  query    run one poll cycle: send new changes to the presubmit job
  result   post the results of a finished presubmit build to Gerrit
  version  print the installed version
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.logging import RichHandler

from presubmit_cli.commands.query import query_cmd
from presubmit_cli.commands.result import result_cmd
from presubmit_cli.commands.version import version_cmd
from presubmit_core.errors import PresubmitError
from presubmit_core.output import err_console
from presubmit_store.base import StoreError

logger = logging.getLogger(__name__)


def _get_version() -> str:
    try:
        return importlib.metadata.version("presubmit")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


def _build_store(config):
    """Instantiate the configured snapshot store.

    Store selection:
      store: json   -> JsonFileStore at store_path (default)
      store: sqlite -> SQLiteStore at store_path, scoped by Gerrit URL and query

    This factory lives in cli.py so neither presubmit_core nor presubmit_store
    know about the CLI config format.
    """
    if config.store == "sqlite":
        from presubmit_store.sqlite import SQLiteStore

        return SQLiteStore(db_path=config.store_path, namespace=f"{config.gerrit_url} {config.query}")

    if config.store != "json":
        raise click.UsageError(f"unknown store {config.store!r}; expected 'json' or 'sqlite'.")

    from presubmit_store.json_file import JsonFileStore

    return JsonFileStore(config.store_path)


def _build_gerrit(config):
    from presubmit_cli.auth import resolve_credentials
    from presubmit_core.gerrit.client import GerritClient

    auth = resolve_credentials("gerrit", config.gerrit_url)
    return GerritClient(config.gerrit_url, auth=auth, timeout=config.request_timeout)


def _build_jenkins(config):
    """Return a JenkinsClient, or None when no Jenkins host is configured."""
    if not config.jenkins_host:
        return None

    from presubmit_cli.auth import resolve_credentials
    from presubmit_core.jenkins.client import JenkinsClient

    auth = resolve_credentials("jenkins", config.jenkins_host)
    return JenkinsClient(config.jenkins_host, auth=auth, timeout=config.request_timeout)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


class PresubmitGroup(click.Group):
    """Turns domain errors into clean CLI failures instead of tracebacks."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except (PresubmitError, StoreError) as e:
            logger.debug("command failed", exc_info=True)
            raise click.ClickException(str(e))


@click.group(cls=PresubmitGroup)
@click.version_option(version=_get_version(), prog_name="presubmit")
@click.option(
    "--config",
    "config_path",
    default=".presubmit.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRESUBMIT_CONFIG",
)
@click.option("--url", "gerrit_url", default=None, help="Base URL of the Gerrit instance.")
@click.option("--host", "jenkins_host", default=None, help="Jenkins host; empty disables dispatching.")
@click.option("--job", default=None, help="Name of the presubmit Jenkins job.")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
@click.pass_context
def main(ctx: click.Context, config_path: str, gerrit_url: str | None, jenkins_host: str | None, job: str | None, verbose: bool):
    """Run presubmit tests for Gerrit changes on Jenkins."""
    from presubmit_core.config import load_config

    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config"] = load_config(
        config_path,
        cli_overrides={"gerrit_url": gerrit_url, "jenkins_host": jenkins_host, "job": job},
    )


main.add_command(query_cmd)
main.add_command(result_cmd)
main.add_command(version_cmd)
