"""Reading failed test cases out of xUnit XML reports."""

from __future__ import annotations

import html
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path

from presubmit_core.errors import PresubmitError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class XUnitFailure:
    suite_name: str
    class_name: str
    name: str


def parse_failures(content: str | bytes) -> list[XUnitFailure]:
    """Return the failed cases of a report, in document order.

    Class and case names are HTML-unescaped once more because some
    generators escape them twice. A case without a class name takes the
    name of its suite.
    """
    try:
        root = ET.fromstring(content.strip())
    except ET.ParseError as e:
        raise PresubmitError(f"cannot parse xUnit report: {e}")

    suites = [root] if root.tag == "testsuite" else root.iter("testsuite")
    failures = []
    for suite in suites:
        suite_name = suite.get("name", "")
        for case in suite.findall("testcase"):
            if case.find("failure") is None:
                continue
            class_name = html.unescape(case.get("classname", "")) or suite_name
            failures.append(XUnitFailure(suite_name=suite_name, class_name=class_name, name=html.unescape(case.get("name", ""))))
    return failures


def read_failures(path: Path) -> list[XUnitFailure] | None:
    """Parse the report at `path`; None when the report does not exist."""
    try:
        content = path.read_bytes()
    except FileNotFoundError:
        logger.debug("no xUnit report at %s", path)
        return None
    return parse_failures(content)
