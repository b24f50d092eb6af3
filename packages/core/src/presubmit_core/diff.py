"""Diff engine: which change groups are new since the previous poll.

A single change is new when its reference is missing from the previous
snapshot. A multi-part set is new when it is complete in the current poll and
at least one of its parts is missing from the previous snapshot. For example,
if the previous poll saw 3001/1 (part 1/2 of topic T1) and the current poll
also returns 3002/1 (part 2/2), the group [3001/1, 3002/1] is emitted; a later
3002/2 yields [3001/1, 3002/2].
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, Mapping

from presubmit_core.changes import Change, ChangeGroup, MultiPartSet
from presubmit_core.errors import InconsistentGroupError

logger = logging.getLogger(__name__)

InconsistencyHandler = Callable[[Change, InconsistentGroupError], None]


def _log_inconsistency(change: Change, error: InconsistentGroupError) -> None:
    logger.warning("failed to process multi-part CL %s: %s", change.ref, error)


def build_multi_part_sets(
    changes: Iterable[Change],
    on_inconsistent: InconsistencyHandler | None = None,
) -> list[ChangeGroup]:
    """Group multi-part changes by topic and return the complete, consistent sets.

    Groups are ordered by topic. A part that does not fit its set (duplicate
    index, mismatched total or topic, index out of range) is reported through
    `on_inconsistent`, and its whole topic is dropped rather than emitted
    partially.
    """
    handler = on_inconsistent or _log_inconsistency
    sets: dict[str, MultiPartSet] = {}
    broken: set[str] = set()
    for change in changes:
        topic = change.multi_part.topic
        part_set = sets.setdefault(topic, MultiPartSet())
        try:
            part_set.add(change)
        except InconsistentGroupError as e:
            broken.add(topic)
            handler(change, e)

    groups = []
    for topic in sorted(sets):
        part_set = sets[topic]
        if topic in broken or not part_set.complete():
            continue
        groups.append(part_set.changes())
    return groups


def reconcile(
    previous: Mapping[str, Change],
    current: Iterable[Change],
    on_inconsistent: InconsistencyHandler | None = None,
) -> list[ChangeGroup]:
    """Return the change groups in `current` that need a presubmit run.

    Single changes come first in the order they were returned, followed by
    multi-part groups sorted by topic, each ordered by part index.
    """
    singles: list[ChangeGroup] = []
    new_topics: set[str] = set()
    multi_part: list[Change] = []
    for change in current:
        # The reference is empty when the latest patchset has conflicts.
        if not change.ref:
            continue
        if change.multi_part is None:
            if change.ref not in previous:
                singles.append([change])
            continue
        multi_part.append(change)
        if change.ref not in previous:
            new_topics.add(change.multi_part.topic)

    relevant = [c for c in multi_part if c.multi_part.topic in new_topics]
    return singles + build_multi_part_sets(relevant, on_inconsistent)
