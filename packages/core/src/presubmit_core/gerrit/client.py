"""Gerrit REST client and the adapter from Gerrit ChangeInfo JSON to Change."""

from __future__ import annotations

import json
import logging
import re

import requests

from presubmit_core.changes import Change, MultiPartInfo, PresubmitTestType, parse_reference
from presubmit_core.errors import GerritError

logger = logging.getLogger(__name__)

_XSSI_GUARD = ")]}'"
_QUERY_OPTIONS = ("CURRENT_REVISION", "CURRENT_COMMIT", "LABELS", "DETAILED_ACCOUNTS")
_LABEL_STATES = ("approved", "rejected", "recommended", "disliked")

_MULTI_PART_RE = re.compile(r"MultiPart:\s*(\d+)\s*/\s*(\d+)")
_PRESUBMIT_TEST_RE = re.compile(r"PresubmitTest:\s*(\S*)")
_AUTO_SUBMIT_RE = re.compile(r"^\s*AutoSubmit\s*$", re.MULTILINE)


def parse_multi_part(message: str, topic: str) -> MultiPartInfo | None:
    match = _MULTI_PART_RE.search(message)
    if match is None:
        return None
    return MultiPartInfo(topic=topic, index=int(match.group(1)), total=int(match.group(2)))


def parse_presubmit_type(message: str) -> PresubmitTestType:
    match = _PRESUBMIT_TEST_RE.search(message)
    if match is not None and match.group(1) == PresubmitTestType.NONE.value:
        return PresubmitTestType.NONE
    return PresubmitTestType.ALL


def change_from_json(info: dict) -> Change:
    """Map one Gerrit ChangeInfo entry onto the canonical Change."""
    revision = (info.get("revisions") or {}).get(info.get("current_revision") or "", {})
    ref = ((revision.get("fetch") or {}).get("http") or {}).get("ref", "")
    message = (revision.get("commit") or {}).get("message", "")
    labels = {
        name: {state for state in _LABEL_STATES if state in (data or {})}
        for name, data in (info.get("labels") or {}).items()
    }
    return Change(
        ref=ref,
        project=info.get("project", ""),
        change_id=info.get("change_id", ""),
        owner_email=(info.get("owner") or {}).get("email", ""),
        labels=labels,
        multi_part=parse_multi_part(message, info.get("topic", "")),
        auto_submit=bool(_AUTO_SUBMIT_RE.search(message)),
        presubmit=parse_presubmit_type(message),
    )


def _strip_xssi(text: str):
    if text.startswith(_XSSI_GUARD):
        text = text[len(_XSSI_GUARD):]
    return json.loads(text)


class GerritClient:
    """Review-server operations used by presubmit: query, review, submit."""

    def __init__(self, base_url: str, auth: tuple[str, str] | None = None, timeout: float = 30, session=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        if auth:
            self._session.auth = auth

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}/a/{path.lstrip('/')}"
        try:
            res = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise GerritError(f"{method} {url} failed: {e}")
        if not res.ok:
            raise GerritError(f"{method} {url} failed: {res.status_code} {res.reason}")
        return res

    def query(self, query: str) -> list[Change]:
        """Return every change matching `query`, following Gerrit's pagination."""
        changes: list[Change] = []
        start = 0
        while True:
            params = [("o", option) for option in _QUERY_OPTIONS] + [("q", query)]
            if start:
                params.append(("S", start))
            res = self._request("GET", "changes/", params=params, headers={"Accept": "application/json"})
            try:
                infos = _strip_xssi(res.text)
            except ValueError as e:
                raise GerritError(f"cannot decode query results for {query!r}: {e}")
            changes.extend(change_from_json(info) for info in infos)
            if not infos or not infos[-1].get("_more_changes"):
                return changes
            start += len(infos)

    def post_review(self, ref: str, message: str, labels: dict[str, str] | None = None) -> None:
        cl, patchset = parse_reference(ref)
        body = {"message": message}
        if labels:
            body["labels"] = labels
        self._request("POST", f"changes/{cl}/revisions/{patchset}/review", json=body)
        logger.debug("review posted for %s with labels %s", ref, labels)

    def submit(self, change_id: str) -> None:
        self._request("POST", f"changes/{change_id}/submit")

    def change_url(self, cl: int, patchset: int) -> str:
        return f"{self.base_url}/c/{cl}/{patchset}"
