"""query command: poll Gerrit and send new changes to the presubmit job."""

from __future__ import annotations

import click

from presubmit_core.config import PresubmitConfig
from presubmit_core.pipeline import run_query
from presubmit_core.projects import ProjectRegistry


@click.command("query")
@click.option("--query", "query", default=None, help="Gerrit query for the changes to test.")
@click.option(
    "--log-file",
    "store_path",
    default=None,
    help="Where the snapshot of open changes is kept between polls.",
)
@click.pass_context
def query_cmd(ctx, query: str | None, store_path: str | None):
    """Send new open changes to the presubmit test job.

    Compares the changes returned by the query with the snapshot saved by the
    previous run, starts a presubmit build for every new change (or complete
    multi-part set), and submits the changes that are ready to go in.
    """
    from presubmit_cli.cli import _build_gerrit, _build_jenkins, _build_store

    raw = dict(ctx.obj["config"])
    if query is not None:
        raw["query"] = query
    if store_path is not None:
        raw["store_path"] = store_path
    config = PresubmitConfig.from_dict(raw)

    store = _build_store(config)
    ctx.call_on_close(store.close)
    run_query(
        config,
        gerrit=_build_gerrit(config),
        jenkins=_build_jenkins(config),
        registry=ProjectRegistry.from_config(config),
        store=store,
    )
