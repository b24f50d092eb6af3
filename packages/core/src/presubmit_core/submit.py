"""Posting review messages and deciding which change groups can be submitted."""

from __future__ import annotations

import logging
from typing import Iterable

from presubmit_core.changes import Change, ChangeGroup, Label, group_refs, is_approved
from presubmit_core.diff import build_multi_part_sets
from presubmit_core.errors import PresubmitError
from presubmit_core.output import eprintf, printf

logger = logging.getLogger(__name__)

# Every open change, whatever the configured poll query narrows down to.
OPEN_CHANGES_QUERY = "(status:open -project:experimental)"


class ReviewPoster:
    """Posts messages to review threads, voting on Verified where the change uses it.

    Which references carry the Verified label is looked up once per poster
    with a query over all open changes.
    """

    def __init__(self, gerrit, query: str = OPEN_CHANGES_QUERY):
        self._gerrit = gerrit
        self._query = query
        self._verified_refs: set[str] | None = None

    def _refs_using_verified(self) -> set[str]:
        if self._verified_refs is None:
            changes = self._gerrit.query(self._query)
            self._verified_refs = {c.ref for c in changes if c.has_label(Label.VERIFIED)}
        return self._verified_refs

    def post(self, message: str, refs: Iterable[str], success: bool) -> None:
        value = "1" if success else "-1"
        verified_refs = self._refs_using_verified()
        for ref in refs:
            labels = {Label.VERIFIED.value: value} if ref in verified_refs else {}
            self._gerrit.post_review(ref, message, labels)
            printf(f"review posted for {ref!r} with labels {labels}.")


def get_submittable_groups(changes: Iterable[Change]) -> list[ChangeGroup]:
    """Return the groups that are flagged AutoSubmit and have every label approved.

    Single changes come first in query order; multi-part sets follow, sorted
    by topic, and only when every part is submittable.
    """
    groups: list[ChangeGroup] = []
    multi_part: list[Change] = []
    for change in changes:
        if not change.ref or not change.auto_submit or not is_approved(change):
            continue
        if change.multi_part is None:
            groups.append([change])
        else:
            multi_part.append(change)
    return groups + build_multi_part_sets(multi_part)


def submit_group(gerrit, poster: ReviewPoster, group: ChangeGroup) -> int:
    """Submit every change in the group and return how many were submitted.

    A failure on one change is reported on its review thread and does not stop
    the remaining changes.
    """
    submitted = 0
    for change in group:
        try:
            gerrit.submit(change.change_id)
        except PresubmitError as e:
            eprintf(f"FAIL: submit CL: {change.ref}")
            eprintf(str(e))
            try:
                poster.post(f"Failed to submit CL:\n{e}\n", [change.ref], success=False)
            except PresubmitError as post_error:
                eprintf(str(post_error))
            continue
        printf(f"PASS: submit CL: {change.ref}")
        submitted += 1
    return submitted


def submit_tested_refs(
    gerrit, poster: ReviewPoster, tested_refs: Iterable[str], query: str = OPEN_CHANGES_QUERY
) -> int:
    """Submit the submittable groups made up only of changes that were just tested."""
    tested = set(tested_refs)
    submitted = 0
    for group in get_submittable_groups(gerrit.query(query)):
        if set(group_refs(group)) <= tested:
            submitted += submit_group(gerrit, poster, group)
    return submitted
