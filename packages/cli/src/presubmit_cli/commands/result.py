"""result command: report a finished presubmit build back to Gerrit."""

from __future__ import annotations

import click

from presubmit_core.config import PresubmitConfig
from presubmit_core.pipeline import run_result


def _split(value: str | None) -> list[str]:
    return [v for v in (value or "").split(":") if v]


@click.command("result")
@click.option("--build-number", type=int, default=None, help="Number of the presubmit build to report.")
@click.option("--dashboard-host", default=None, help="Host of the test results dashboard.")
@click.option("--refs", required=True, help="':'-separated references that were tested.")
@click.option("--projects", default="", help="':'-separated projects of the tested references.")
@click.option("--workspace", default=None, help="Jenkins workspace holding the test results. Defaults to $WORKSPACE.")
@click.option("--tests", default="", envvar="TESTS", help="Space-separated tests the build ran.")
@click.pass_context
def result_cmd(
    ctx,
    build_number: int | None,
    dashboard_host: str | None,
    refs: str,
    projects: str,
    workspace: str | None,
    tests: str,
):
    """Post the results of a presubmit build to the tested changes."""
    from presubmit_cli.cli import _build_gerrit, _build_jenkins

    raw = dict(ctx.obj["config"])
    for key, value in (("build_number", build_number), ("dashboard_host", dashboard_host), ("workspace", workspace)):
        if value is not None:
            raw[key] = value
    config = PresubmitConfig.from_dict(raw)
    if config.build_number < 0:
        raise click.UsageError("--build-number is required (or set build_number in the config file).")

    jenkins = _build_jenkins(config)
    if jenkins is None:
        raise click.UsageError("jenkins_host must be set to report results.")

    run_result(
        config,
        gerrit=_build_gerrit(config),
        jenkins=jenkins,
        refs=_split(refs),
        projects=_split(projects),
        tests=tests,
    )
