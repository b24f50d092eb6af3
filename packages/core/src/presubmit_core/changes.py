"""Canonical change model shared by every stage of the presubmit pipeline.

Gerrit has served several JSON shapes for a change over the years. All of them
are mapped into the single Change dataclass below by presubmit_core.gerrit, so
the diff engine, build reconciler and submission gate only ever see one type.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from presubmit_core.errors import InconsistentGroupError, MalformedReferenceError

APPROVED = "approved"
REJECTED = "rejected"


class Label(str, Enum):
    """Review labels that gate automatic submission when present on a change."""

    CODE_REVIEW = "Code-Review"
    VERIFIED = "Verified"
    NON_AUTHOR_CODE_REVIEW = "Non-Author-Code-Review"
    TO_BE_REVIEWED = "To-Be-Reviewed"


SUBMIT_LABELS: tuple[Label, ...] = tuple(Label)


class PresubmitTestType(str, Enum):
    NONE = "none"
    ALL = "all"


@dataclass(frozen=True)
class MultiPartInfo:
    """Position of a change inside a cross-project set (index is 1-based)."""

    topic: str
    index: int
    total: int


@dataclass
class Change:
    """One revision of one reviewable change."""

    ref: str  # refs/changes/<last two digits>/<cl>/<patchset>, empty on conflicts
    project: str
    change_id: str = ""
    owner_email: str = ""
    labels: dict[str, set[str]] = field(default_factory=dict)
    multi_part: MultiPartInfo | None = None
    auto_submit: bool = False
    presubmit: PresubmitTestType = PresubmitTestType.ALL

    def has_label(self, label: Label | str) -> bool:
        return _label_name(label) in self.labels

    def label_approved(self, label: Label | str) -> bool:
        return APPROVED in self.labels.get(_label_name(label), set())


# A single change or a complete multi-part set, ordered by part index.
ChangeGroup = list[Change]


def _label_name(label: Label | str) -> str:
    return label.value if isinstance(label, Label) else label


def parse_reference(ref: str) -> tuple[int, int]:
    """Split a change reference into (change number, patchset number).

    Raises MalformedReferenceError unless the reference has exactly five
    slash-separated segments with integer fourth and fifth segments.
    """
    parts = ref.split("/")
    if len(parts) != 5:
        raise MalformedReferenceError(f"unexpected number of {ref!r} parts: expected 5, got {len(parts)}")
    try:
        return int(parts[3]), int(parts[4])
    except ValueError:
        raise MalformedReferenceError(f"cannot parse change and patchset numbers from {ref!r}")


def is_same_topic(a: Change, b: Change) -> bool:
    if a.multi_part is None or b.multi_part is None:
        return False
    return a.multi_part.topic == b.multi_part.topic


def is_approved(change: Change, required: tuple[Label, ...] = SUBMIT_LABELS) -> bool:
    """Return True if every recognised label present on the change is approved.

    Labels missing from the change are not required.
    """
    return all(change.label_approved(label) for label in required if change.has_label(label))


def group_refs(group: ChangeGroup) -> list[str]:
    return [c.ref for c in group]


class MultiPartSet:
    """Accumulates the parts of one multi-part topic and checks they agree."""

    def __init__(self):
        self._parts: dict[int, Change] = {}
        self.expected_total = -1
        self.expected_topic = ""

    def add(self, change: Change) -> None:
        info = change.multi_part
        if info is None:
            raise InconsistentGroupError(f"no multi part info found for {change.ref}")
        if self.expected_total < 0:
            self.expected_total = info.total
        if not self.expected_topic:
            self.expected_topic = info.topic
        if info.total != self.expected_total:
            raise InconsistentGroupError(
                f"inconsistent total number of cls in this set: want {self.expected_total}, got {info.total}"
            )
        if info.topic != self.expected_topic:
            raise InconsistentGroupError(
                f"inconsistent cl topics in this set: want {self.expected_topic}, got {info.topic}"
            )
        if not 1 <= info.index <= info.total:
            raise InconsistentGroupError(f"cl part {info.index} is outside 1..{info.total}")
        existing = self._parts.get(info.index)
        if existing is not None:
            raise InconsistentGroupError(
                f"duplicated cl part {info.index} found: {change.ref} conflicts with {existing.ref}"
            )
        self._parts[info.index] = change

    def complete(self) -> bool:
        return len(self._parts) == self.expected_total

    def changes(self) -> ChangeGroup:
        return [self._parts[index] for index in sorted(self._parts)]
