"""Thin Jenkins REST client covering what presubmit needs from the CI runner."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import quote, urlencode

import requests

from presubmit_core.errors import JenkinsError

logger = logging.getLogger(__name__)

_FAILED_CASE_STATUSES = {"FAILED", "REGRESSION"}


@dataclass
class QueuedBuild:
    id: int
    params: str  # newline separated NAME=value pairs as reported by the queue


@dataclass
class RunningBuild:
    number: int
    refs: str
    building: bool


@dataclass
class BuildInfo:
    result: str | None
    timestamp: int  # milliseconds since the epoch
    id: str


@dataclass(frozen=True)
class FailedCase:
    class_name: str
    name: str


def parse_refs_param(params: str) -> str:
    """Return the REFS value from a queue item's parameter string, or ""."""
    for line in params.splitlines():
        name, sep, value = line.partition("=")
        if sep and name.strip() == "REFS":
            return value.strip()
    return ""


def _refs_from_actions(actions: list) -> str:
    for action in actions or []:
        for param in (action or {}).get("parameters", []) or []:
            if param.get("name") == "REFS":
                return param.get("value") or ""
    return ""


class JenkinsClient:
    """Jenkins remote-access API wrapper.

    All methods raise JenkinsError on transport or HTTP failures; callers
    decide whether the failure is fatal.
    """

    def __init__(self, host: str, auth: tuple[str, str] | None = None, timeout: float = 30, session=None):
        self.host = host.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        if auth:
            self._session.auth = auth

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.host}/{path.lstrip('/')}"
        try:
            res = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise JenkinsError(f"{method} {url} failed: {e}")
        if not res.ok:
            raise JenkinsError(f"{method} {url} failed: {res.status_code} {res.reason}")
        return res

    def _get_json(self, path: str, **kwargs):
        res = self._request("GET", path, **kwargs)
        try:
            return res.json()
        except ValueError as e:
            raise JenkinsError(f"cannot decode response of {path}: {e}")

    def enqueue_build(self, job: str, params: dict[str, str]) -> None:
        self._request("POST", f"job/{quote(job)}/buildWithParameters", params=params)

    def queued_builds(self, job: str) -> list[QueuedBuild]:
        data = self._get_json("queue/api/json")
        builds = []
        for item in data.get("items", []):
            if (item.get("task") or {}).get("name") != job:
                continue
            builds.append(QueuedBuild(id=item["id"], params=item.get("params") or ""))
        return builds

    def running_builds(self, job: str) -> list[RunningBuild]:
        data = self._get_json(
            f"job/{quote(job)}/api/json",
            params={"tree": "builds[number,building,actions[parameters[name,value]]]"},
        )
        return [
            RunningBuild(
                number=build["number"],
                refs=_refs_from_actions(build.get("actions")),
                building=bool(build.get("building")),
            )
            for build in data.get("builds", [])
        ]

    def cancel_queued(self, build_id: int) -> None:
        self._request("POST", "queue/cancelItem", params={"id": build_id})

    def cancel_running(self, job: str, number: int) -> None:
        self._request("POST", f"job/{quote(job)}/{number}/stop")

    def build_info(self, build_spec: str) -> BuildInfo:
        """Return status data for `<job>[/<axes>]/<number or alias>`."""
        data = self._get_json(f"job/{build_spec}/api/json")
        return BuildInfo(result=data.get("result"), timestamp=int(data.get("timestamp", 0)), id=str(data.get("id", "")))

    def failed_test_cases(self, build_spec: str) -> list[FailedCase]:
        data = self._get_json(f"job/{build_spec}/testReport/api/json")
        cases = []
        for suite in data.get("suites", []):
            for case in suite.get("cases", []):
                if case.get("status") in _FAILED_CASE_STATUSES:
                    cases.append(FailedCase(class_name=case.get("className", ""), name=case.get("name", "")))
        return cases

    def build_link(self, job: str, params: dict[str, str]) -> str:
        """Link that starts a parameterised build when opened in a browser."""
        return f"{self.host}/job/{quote(job)}/buildWithParameters?{urlencode(params)}"
