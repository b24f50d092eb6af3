"""Rendering an AggregateResult into the review comment posted to Gerrit."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Callable
from urllib.parse import urlencode

from presubmit_core.results import AggregateResult, FailedTestCaseInfo, FailureType, TestSummary


@dataclass(frozen=True)
class ReportContext:
    """Where the run came from and how to link back to it."""

    dashboard_host: str
    build_number: int
    # Builds a "start presubmit build" link from a space separated test list.
    retry_link: Callable[[str], str]
    all_tests: str = ""
    oncall: tuple[str, str] | None = None


def format_duration(value: timedelta) -> str:
    """Format like Go's time.Duration: 1h2m3s, 10m0s, 45s, 1.5s."""
    total = value.total_seconds()
    hours, rest = divmod(int(total), 3600)
    minutes, _ = divmod(rest, 60)
    seconds = total - hours * 3600 - minutes * 60
    if seconds == int(seconds):
        sec_str = f"{int(seconds)}s"
    else:
        sec_str = f"{seconds:.9f}".rstrip("0") + "s"
    if hours:
        return f"{hours}h{minutes}m{sec_str}"
    if minutes:
        return f"{minutes}m{sec_str}"
    return sec_str


def summary_line(summary: TestSummary) -> str:
    line = f"{summary.last_status.glyph} ➔ {summary.cur_status.glyph}: {summary.name}"
    if summary.timeout is not None:
        line += f" [TIMED OUT after {format_duration(summary.timeout)}]"
    return line


def case_full_name(class_name: str, case_name: str) -> str:
    # "::" instead of "." keeps mail clients from turning the name into a link.
    return f"{class_name}.{case_name}".replace(".", "::")


def failure_link(info: FailedTestCaseInfo, ctx: ReportContext) -> str:
    a = info.axis_values
    query = urlencode(
        {
            "arch": a.arch,
            "class": info.class_name,
            "job": info.test_name,
            "n": ctx.build_number,
            "os": a.os,
            "part": max(a.part_index, 0),
            "suite": info.suite_name,
            "test": info.case_name,
            "type": "presubmit",
        }
    )
    return f"- {case_full_name(info.class_name, info.case_name)}\n{ctx.dashboard_host}/?{query}"


def format_report(result: AggregateResult, ctx: ReportContext) -> str:
    if result.terminal_message is not None:
        return result.terminal_message

    lines: list[str] = []
    if ctx.oncall is not None:
        lines += ["", f"Current Oncall: {ctx.oncall[0]}, {ctx.oncall[1]}", ""]

    lines.append("Test results:")
    lines += [f"skipped {name}" for name in result.skipped]
    lines += [summary_line(s) for s in result.summaries]

    for kind in (FailureType.NEW, FailureType.KNOWN, FailureType.FIXED):
        infos = result.failures.get(kind) or []
        if not infos:
            continue
        header = kind.value + ("S" if len(infos) > 1 else "")
        lines += ["", f"{header}:"] + [failure_link(info, ctx) for info in infos] + [""]

    lines += ["", "More details at:", f"{ctx.dashboard_host}/?type=presubmit&n={ctx.build_number}"]
    if result.failed_tests:
        lines += [
            "",
            "To re-run FAILED TESTS ONLY without uploading a new patch set:",
            "(click Proceed button on the next screen)",
            ctx.retry_link(" ".join(result.failed_tests)),
            "",
            "To re-run presubmit tests without uploading a new patch set:",
            "(click Proceed button on the next screen)",
            ctx.retry_link(ctx.all_tests),
        ]
    return "\n".join(lines) + "\n"
