"""Tests for report formatting."""

from datetime import timedelta

from presubmit_core.report import ReportContext, case_full_name, format_duration, format_report, summary_line
from presubmit_core.results import (
    AggregateResult,
    AxisValues,
    FailedTestCaseInfo,
    FailureType,
    SummaryStatus,
    TestSummary,
)


def _ctx(**kwargs):
    defaults = dict(
        dashboard_host="https://dashboard.v.io",
        build_number=42,
        retry_link=lambda tests: f"https://jenkins/retry?TESTS={tests}",
        all_tests="vanadium-go-test vanadium-js-test",
    )
    defaults.update(kwargs)
    return ReportContext(**defaults)


class TestFormatDuration:
    def test_minutes(self):
        assert format_duration(timedelta(minutes=10)) == "10m0s"

    def test_hours(self):
        assert format_duration(timedelta(hours=1, minutes=2, seconds=3)) == "1h2m3s"

    def test_fractional_seconds(self):
        assert format_duration(timedelta(seconds=1.5)) == "1.5s"

    def test_seconds(self):
        assert format_duration(timedelta(seconds=45)) == "45s"


class TestSummaryLine:
    def test_glyphs(self):
        summary = TestSummary(name="vanadium-go-test", last_status=SummaryStatus.UNKNOWN, cur_status=SummaryStatus.SUCCESS)
        assert summary_line(summary) == "? ➔ ✔: vanadium-go-test"

    def test_timeout_annotation(self):
        summary = TestSummary(
            name="vanadium-go-test",
            last_status=SummaryStatus.SUCCESS,
            cur_status=SummaryStatus.FAIL,
            timeout=timedelta(minutes=10),
        )
        assert summary_line(summary) == "✔ ➔ ✖: vanadium-go-test [TIMED OUT after 10m0s]"


def test_case_full_name_avoids_dots():
    assert case_full_name("v.io/x/ref.Suite", "TestA") == "v::io/x/ref::Suite::TestA"


class TestFormatReport:
    def test_terminal_message_returned_verbatim(self):
        result = AggregateResult(terminal_message="Possible merge conflict detected in X.\n")
        assert format_report(result, _ctx()) == "Possible merge conflict detected in X.\n"

    def test_passing_report(self):
        result = AggregateResult(
            summaries=[TestSummary(name="vanadium-go-test", cur_status=SummaryStatus.SUCCESS)],
            skipped=["vanadium-js-test"],
        )
        report = format_report(result, _ctx())
        assert report.startswith("Test results:\nskipped vanadium-js-test\n? ➔ ✔: vanadium-go-test\n")
        assert "More details at:\nhttps://dashboard.v.io/?type=presubmit&n=42\n" in report
        assert "re-run" not in report
        assert report.endswith("\n")

    def test_oncall_banner(self):
        report = format_report(AggregateResult(), _ctx(oncall=("alice", "bob")))
        assert report.startswith("\nCurrent Oncall: alice, bob\n\nTest results:")

    def test_failure_sections_and_retry_links(self):
        new = FailedTestCaseInfo(
            class_name="ClassX",
            case_name="n1",
            suite_name="suite",
            test_name="vanadium-go-test",
            axis_values=AxisValues(arch="amd64", os="linux"),
        )
        fixed = [FailedTestCaseInfo(class_name="ClassZ", case_name="n3"), FailedTestCaseInfo(class_name="ClassW", case_name="n4")]
        result = AggregateResult(
            summaries=[TestSummary(name="vanadium-go-test", cur_status=SummaryStatus.FAIL)],
            failed_tests=["vanadium-go-test"],
            failures={FailureType.NEW: [new], FailureType.KNOWN: [], FailureType.FIXED: fixed},
        )

        report = format_report(result, _ctx())

        assert "\nNEW FAILURE:\n- ClassX::n1\nhttps://dashboard.v.io/?" in report
        assert "KNOWN FAILURE" not in report
        assert "\nFIXED FAILURES:\n- ClassZ::n3\n" in report
        assert "type=presubmit" in report and "n=42" in report and "class=ClassX" in report
        assert "https://jenkins/retry?TESTS=vanadium-go-test\n" in report
        assert report.endswith("https://jenkins/retry?TESTS=vanadium-go-test vanadium-js-test\n")
        assert report.index("NEW FAILURE") < report.index("FIXED FAILURES") < report.index("More details at:")
