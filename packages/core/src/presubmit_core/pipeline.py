"""The two presubmit pipelines.

run_query:  poll Gerrit, diff against the stored snapshot, dispatch new change
             groups to Jenkins, then submit whatever is ready.
run_result: aggregate the results of one finished presubmit build, post the
             report to the review threads, and submit the tested changes if
             nothing regressed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from presubmit_core.builds import BuildDispatcher, DispatchOutcome, build_params
from presubmit_core.changes import Change
from presubmit_core.diff import reconcile
from presubmit_core.errors import InconsistentGroupError, PresubmitError
from presubmit_core.output import eprintf, printf
from presubmit_core.report import ReportContext, format_report
from presubmit_core.results import (
    AggregateResult,
    AxisValues,
    aggregate,
    build_spec,
    fetch_baselines,
    load_status_files,
    results_dir,
    xunit_report_path,
)
from presubmit_core.snapshot import from_snapshot, to_snapshot
from presubmit_core.submit import ReviewPoster, get_submittable_groups, submit_group, submit_tested_refs
from presubmit_core.xunit import read_failures

logger = logging.getLogger(__name__)


@dataclass
class QuerySummary:
    """What one poll cycle did."""

    skipped_reason: str | None = None
    outcomes: list[DispatchOutcome] = field(default_factory=list)
    sent: int = 0
    submitted: int = 0


@dataclass
class ResultSummary:
    success: bool
    posted: bool = False
    submitted: int = 0
    aggregate: AggregateResult | None = None


def _last_build_failed(config, jenkins) -> bool:
    try:
        info = jenkins.build_info(build_spec(config.job, AxisValues(), "lastCompletedBuild", config.matrix_jobs))
    except PresubmitError as e:
        eprintf(str(e))
        return False
    return info.result == "FAILURE"


def run_query(config, gerrit, jenkins, registry, store) -> QuerySummary:
    """Run one poll cycle.

    The snapshot is overwritten with the current changes before anything is
    dispatched. An empty previous snapshot never dispatches anything, so a
    lost snapshot file cannot flood Jenkins.
    """
    summary = QuerySummary()
    if jenkins is not None and _last_build_failed(config, jenkins):
        printf(f"{config.job} is failing. Skipping this round.")
        summary.skipped_reason = "failing"
        return summary

    previous = from_snapshot(store.load())
    try:
        current = gerrit.query(config.query)
    except PresubmitError as e:
        raise PresubmitError(f"Query({config.query!r}) failed: {e}")
    store.save(to_snapshot(current))

    if jenkins is None:
        printf("Not sending CLs to run presubmit tests due to empty Jenkins host.")
        summary.skipped_reason = "no-jenkins-host"
        return summary
    if not previous:
        printf("Not sending CLs to run presubmit tests due to empty log file.")
        summary.skipped_reason = "empty-snapshot"
        return summary

    poster = ReviewPoster(gerrit)

    def report_inconsistency(change: Change, error: InconsistentGroupError) -> None:
        message = f"failed to process multi-part CL {change.ref}:\n{error}\n"
        eprintf(message)
        try:
            poster.post(message, [change.ref], success=False)
        except PresubmitError as e:
            eprintf(str(e))

    groups = reconcile(previous, current, on_inconsistent=report_inconsistency)
    dispatcher = BuildDispatcher(config, registry, jenkins, gerrit, poster)
    try:
        summary.outcomes = dispatcher.send(groups)
    finally:
        summary.sent = dispatcher.sent
        printf(f"{dispatcher.sent} sent.")

    submittable = get_submittable_groups(current)
    if submittable:
        printf("Submitting CLs...")
    for group in submittable:
        summary.submitted += submit_group(gerrit, poster, group)
    return summary


def run_result(config, gerrit, jenkins, refs: list[str], projects: list[str], tests: str = "") -> ResultSummary:
    """Aggregate the results of build `config.build_number` and post the report."""
    directory = results_dir(config.workspace, config.build_number)
    records = load_status_files(directory)
    if not records:
        printf(f"No test results found in {directory}.")
        return ResultSummary(success=True)

    printf("### Preparing report")
    try:
        master_result = jenkins.build_info(f"{config.job}/{config.build_number}").result
    except PresubmitError as e:
        eprintf(str(e))
        master_result = None

    baselines = fetch_baselines(jenkins, records, config.matrix_jobs)

    def load_failures(record):
        try:
            return read_failures(xunit_report_path(directory, record))
        except PresubmitError as e:
            eprintf(str(e))
            return None

    result = aggregate(records, baselines, load_failures, config.matrix_jobs, master_result)
    if result.master_failed:
        printf(result.terminal_message)
        return ResultSummary(success=False, aggregate=result)

    ctx = ReportContext(
        dashboard_host=config.dashboard_host,
        build_number=config.build_number,
        retry_link=lambda names: jenkins.build_link(config.job, build_params(refs, projects, names.split())),
        all_tests=tests,
        oncall=config.oncall,
    )
    report = format_report(result, ctx)

    printf("### Posting test results to Gerrit")
    poster = ReviewPoster(gerrit)
    poster.post(report, refs, result.success)
    summary = ResultSummary(success=result.success, posted=True, aggregate=result)

    if result.success:
        try:
            summary.submitted = submit_tested_refs(gerrit, poster, refs)
        except PresubmitError as e:
            eprintf(str(e))
    return summary
