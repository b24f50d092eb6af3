"""Result aggregation for a finished presubmit run.

Each test configuration build leaves a status file and, usually, an xUnit
report under the master build's workspace:

    ${WORKSPACE}/test_results/<build number>/
        ARCH=amd64,OS=linux,TEST=vanadium-go-test/
            status_vanadium_go_test.json
            tests_vanadium_go_test.xml
        ARCH=amd64,OS=linux,TEST=vanadium-go-race-part0/
            ...

The status files are turned into TestResultRecords, compared with the most
recent postsubmit builds (the baseline) and folded into an AggregateResult
that presubmit_core.report renders.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum, IntEnum
from pathlib import Path
from typing import Callable, Iterable, Mapping

from presubmit_core.errors import PresubmitError
from presubmit_core.jenkins.client import FailedCase
from presubmit_core.output import printf
from presubmit_core.projects import name_with_part_suffix
from presubmit_core.xunit import XUnitFailure

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = timedelta(minutes=10)
MASTER_BUILD_FAILED_MESSAGE = "SOME TESTS FAILED TO RUN.\nRetrying...\n"
MERGE_CONFLICT_MESSAGE = (
    "Possible merge conflict detected in {}.\n"
    "Presubmit tests will be executed after a new patchset that resolves the conflicts is submitted."
)
TOOLS_BUILD_FAILURE_MESSAGE = "Failed to build required tools. This is likely caused by your changes.\n{}"


class RunStatus(str, Enum):
    """Status a test configuration build writes into its status file."""

    PASSED = "PASSED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"
    TIMED_OUT = "TIMED_OUT"
    MERGE_CONFLICT = "MERGE_CONFLICT"
    TOOLS_BUILD_FAILURE = "TOOLS_BUILD_FAILURE"

    @classmethod
    def parse(cls, value: str) -> "RunStatus":
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.FAILED


class SummaryStatus(IntEnum):
    """Ordered so that max() picks the worst status."""

    UNKNOWN = 0
    SUCCESS = 1
    FAIL = 2

    @property
    def glyph(self) -> str:
        return {SummaryStatus.UNKNOWN: "?", SummaryStatus.SUCCESS: "✔"}.get(self, "✖")

    @classmethod
    def from_build_result(cls, result: str | None) -> "SummaryStatus":
        if result is None or result == "UNKNOWN":
            return cls.UNKNOWN
        if result == "SUCCESS":
            return cls.SUCCESS
        return cls.FAIL


class FailureType(Enum):
    NEW = "NEW FAILURE"
    KNOWN = "KNOWN FAILURE"
    FIXED = "FIXED FAILURE"


@dataclass(frozen=True)
class AxisValues:
    arch: str = ""
    os: str = ""
    part_index: int = -1


@dataclass
class RunResult:
    status: RunStatus
    timeout: timedelta | None = None
    merge_conflict_cl: str = ""
    tools_build_failure_msg: str = ""


@dataclass
class TestResultRecord:
    """Outcome of one test on one axis combination."""

    __test__ = False

    test_name: str  # without the -partN suffix
    result: RunResult
    timestamp: int = 0
    axis_values: AxisValues = field(default_factory=AxisValues)

    @property
    def key(self) -> str:
        """Baseline lookup key: test, OS, architecture and part."""
        a = self.axis_values
        return f"{self.test_name}_{a.os}_{a.arch}_{a.part_index}"

    @property
    def summary_key(self) -> tuple[str, str, str]:
        return self.test_name, self.axis_values.os, self.axis_values.arch

    @property
    def name_with_part(self) -> str:
        return name_with_part_suffix(self.test_name, self.axis_values.part_index)

    @classmethod
    def from_dict(cls, data: dict) -> "TestResultRecord":
        """Build a record from the status-file JSON written by the test runner."""
        result = data.get("Result") or {}
        timeout_ns = result.get("TimeoutValue") or 0
        axes = data.get("AxisValues") or {}
        return cls(
            test_name=data["TestName"],
            timestamp=int(data.get("Timestamp") or 0),
            axis_values=AxisValues(
                arch=axes.get("Arch", ""),
                os=axes.get("OS", ""),
                part_index=int(axes.get("PartIndex", -1)),
            ),
            result=RunResult(
                status=RunStatus.parse(result.get("Status", RunStatus.FAILED.value)),
                timeout=timedelta(microseconds=timeout_ns / 1000) if timeout_ns else None,
                merge_conflict_cl=result.get("MergeConflictCL", ""),
                tools_build_failure_msg=result.get("ToolsBuildFailureMsg", ""),
            ),
        )


@dataclass
class BaselineData:
    """Result and failed cases of the postsubmit build a record is compared with."""

    result: str | None
    failed_cases: list[FailedCase] = field(default_factory=list)


@dataclass
class TestSummary:
    """One summary line: all parts of a test on one OS/architecture."""

    __test__ = False

    name: str  # test name plus sub-job label, e.g. "vanadium-go-test [linux,amd64]"
    last_status: SummaryStatus = SummaryStatus.UNKNOWN
    cur_status: SummaryStatus = SummaryStatus.UNKNOWN
    timeout: timedelta | None = None

    @property
    def failed(self) -> bool:
        return self.cur_status == SummaryStatus.FAIL


@dataclass
class FailedTestCaseInfo:
    class_name: str
    case_name: str
    suite_name: str = ""
    test_name: str = ""
    axis_values: AxisValues = field(default_factory=AxisValues)

    @property
    def identity(self) -> tuple[str, str]:
        return self.class_name, self.case_name


@dataclass
class AggregateResult:
    """Everything the report needs about one presubmit run."""

    terminal_message: str | None = None
    master_failed: bool = False
    summaries: list[TestSummary] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed_tests: list[str] = field(default_factory=list)
    failures: dict[FailureType, list[FailedTestCaseInfo]] = field(
        default_factory=lambda: {t: [] for t in FailureType}
    )

    @property
    def new_failure_count(self) -> int:
        return len(self.failures[FailureType.NEW])

    @property
    def success(self) -> bool:
        """Known and fixed failures do not block; only new ones do."""
        return self.terminal_message is None and self.new_failure_count == 0


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def results_dir(workspace: str, build_number: int) -> Path:
    return Path(workspace) / "test_results" / str(build_number)


def load_status_files(directory: Path) -> list[TestResultRecord]:
    """Read every status_*.json below `directory`, in sorted path order."""
    records = []
    if not directory.is_dir():
        return records
    for path in sorted(directory.rglob("status_*.json")):
        try:
            records.append(TestResultRecord.from_dict(json.loads(path.read_text())))
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise PresubmitError(f"cannot read status file {path}: {e}")
    return records


def xunit_report_path(directory: Path, record: TestResultRecord) -> Path:
    a = record.axis_values
    sub_dir = f"ARCH={a.arch},OS={a.os},TEST={record.name_with_part}"
    return directory / sub_dir / f"tests_{record.test_name.replace('-', '_')}.xml"


# ---------------------------------------------------------------------------
# Jenkins build specs
# ---------------------------------------------------------------------------


def build_spec(job: str, axis_values: AxisValues, suffix: str, matrix_jobs: Mapping) -> str:
    """Return `<job>/<suffix>`, or `<job>/<axes>/<suffix>` for multi-configuration jobs."""
    axis = matrix_jobs.get(job)
    if axis is None:
        return f"{job}/{suffix}"
    parts = []
    if axis.has_arch:
        parts.append(f"ARCH={axis_values.arch}")
    if axis.has_os:
        parts.append(f"OS={axis_values.os}")
    if axis.has_parts:
        parts.append(f"P={axis_values.part_index}")
    return f"{job}/{','.join(parts)}/{suffix}"


def sub_job_label(job: str, axis_values: AxisValues, matrix_jobs: Mapping) -> str:
    """Human readable axis label; the part index is left out on purpose."""
    axis = matrix_jobs.get(job)
    if axis is None:
        return ""
    parts = []
    if axis.has_os and axis.show_os:
        parts.append(axis_values.os)
    if axis.has_arch:
        parts.append(axis_values.arch)
    return ",".join(parts)


def fetch_baselines(jenkins, records: Iterable[TestResultRecord], matrix_jobs: Mapping) -> dict[str, BaselineData]:
    """Find, for each record, the last postsubmit build that ran before it.

    Starting at the last completed build, walk build numbers downwards until a
    build's timestamp is not newer than the record's. Lookup errors are logged
    and leave the record without a baseline.
    """
    data: dict[str, BaselineData] = {}
    for record in records:
        name = record.test_name
        printf(f"Getting postsubmit build info for {record.key!r} before timestamp {record.timestamp}...")
        try:
            last = jenkins.build_info(build_spec(name, record.axis_values, "lastCompletedBuild", matrix_jobs))
            last_id = int(last.id)
        except (PresubmitError, ValueError) as e:
            logger.warning("cannot find last completed build of %s: %s", name, e)
            continue
        for number in range(last_id, -1, -1):
            spec = build_spec(name, record.axis_values, str(number), matrix_jobs)
            try:
                info = jenkins.build_info(spec)
            except PresubmitError as e:
                logger.warning("cannot get build info for %s: %s", spec, e)
                break
            if info.timestamp > record.timestamp:
                continue
            try:
                cases = jenkins.failed_test_cases(spec)
            except PresubmitError as e:
                logger.debug("no test report for %s: %s", spec, e)
                cases = []
            logger.debug("build %d of %s: %s", number, name, info.result)
            data[record.key] = BaselineData(result=info.result, failed_cases=cases)
            break
    return data


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------


def find_systemic_failure(records: Iterable[TestResultRecord]) -> str | None:
    """Return the message for a merge conflict or tools build failure, if any."""
    for record in records:
        result = record.result
        if result.status == RunStatus.MERGE_CONFLICT:
            return MERGE_CONFLICT_MESSAGE.format(result.merge_conflict_cl)
        if result.status == RunStatus.TOOLS_BUILD_FAILURE:
            return TOOLS_BUILD_FAILURE_MESSAGE.format(result.tools_build_failure_msg)
    return None


def summarize(
    records: Iterable[TestResultRecord],
    baselines: Mapping[str, BaselineData],
    matrix_jobs: Mapping,
) -> tuple[list[TestSummary], list[str], list[str]]:
    """Merge records into one summary per (test, OS, architecture).

    Returns the summaries sorted by name, the skipped test names and the
    sorted names (with part suffix) of the failed tests.
    """
    summaries: dict[tuple[str, str, str], TestSummary] = {}
    skipped: list[str] = []
    failed: set[str] = set()
    for record in records:
        result = record.result
        if result.status == RunStatus.SKIPPED:
            skipped.append(record.test_name)
            continue

        summary = summaries.get(record.summary_key)
        if summary is None:
            name = record.test_name
            label = sub_job_label(name, record.axis_values, matrix_jobs)
            if label:
                name += f" [{label}]"
            summary = summaries[record.summary_key] = TestSummary(name=name)

        baseline = baselines.get(record.key)
        last_status = SummaryStatus.from_build_result(baseline.result) if baseline else SummaryStatus.UNKNOWN
        summary.last_status = max(summary.last_status, last_status)

        if result.status == RunStatus.PASSED:
            summary.cur_status = max(summary.cur_status, SummaryStatus.SUCCESS)
        else:
            summary.cur_status = SummaryStatus.FAIL
            failed.add(record.name_with_part)

        if result.status == RunStatus.TIMED_OUT:
            timeout = result.timeout or DEFAULT_TIMEOUT
            if summary.timeout is None or timeout > summary.timeout:
                summary.timeout = timeout

    return sorted(summaries.values(), key=lambda s: s.name), skipped, sorted(failed)


def classify_failures(
    record: TestResultRecord,
    failures: Iterable[XUnitFailure],
    baseline_cases: Iterable[FailedCase],
) -> dict[FailureType, list[FailedTestCaseInfo]]:
    """Split one test's failed cases into new, known and fixed failures.

    A failed case is known when the baseline failed on the same class and
    case name, new otherwise. Baseline failures that did not fail in this run
    are fixed.
    """
    groups: dict[FailureType, list[FailedTestCaseInfo]] = {t: [] for t in FailureType}
    baseline = list(baseline_cases)
    baseline_ids = {(c.class_name, c.name) for c in baseline}
    current_ids: set[tuple[str, str]] = set()
    for failure in failures:
        info = FailedTestCaseInfo(
            class_name=failure.class_name,
            case_name=failure.name,
            suite_name=failure.suite_name,
            test_name=record.test_name,
            axis_values=record.axis_values,
        )
        current_ids.add(info.identity)
        kind = FailureType.KNOWN if info.identity in baseline_ids else FailureType.NEW
        groups[kind].append(info)
    for case in baseline:
        if (case.class_name, case.name) not in current_ids:
            groups[FailureType.FIXED].append(FailedTestCaseInfo(class_name=case.class_name, case_name=case.name))
    return groups


FailureLoader = Callable[[TestResultRecord], "list[XUnitFailure] | None"]


def aggregate(
    records: list[TestResultRecord],
    baselines: Mapping[str, BaselineData],
    load_failures: FailureLoader,
    matrix_jobs: Mapping | None = None,
    master_result: str | None = None,
) -> AggregateResult:
    """Fold a run's records into an AggregateResult.

    `load_failures` returns the failed xUnit cases of a record, or None when
    the record has no report. It is only called when some test failed.
    """
    matrix_jobs = matrix_jobs or {}
    if master_result == "FAILURE":
        return AggregateResult(terminal_message=MASTER_BUILD_FAILED_MESSAGE, master_failed=True)

    systemic = find_systemic_failure(records)
    if systemic is not None:
        return AggregateResult(terminal_message=systemic)

    summaries, skipped, failed_tests = summarize(records, baselines, matrix_jobs)
    result = AggregateResult(summaries=summaries, skipped=skipped, failed_tests=failed_tests)
    if not any(s.failed for s in summaries):
        return result

    for record in records:
        failures = load_failures(record)
        if failures is None:
            continue
        baseline = baselines.get(record.key)
        groups = classify_failures(record, failures, baseline.failed_cases if baseline else [])
        for kind, infos in groups.items():
            result.failures[kind].extend(infos)
    return result
