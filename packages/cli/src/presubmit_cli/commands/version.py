"""version command: print the installed presubmit version."""

import click

from presubmit_core.output import printf


@click.command("version")
def version_cmd():
    """Print the version of presubmit."""
    from presubmit_cli.cli import _get_version

    printf(f"presubmit tool version {_get_version()}")
