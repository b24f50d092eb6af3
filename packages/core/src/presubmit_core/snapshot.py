"""Conversion between Change objects and the JSON snapshot kept by the store.

The store only ever sees plain dicts keyed by change reference; this module
owns the mapping in both directions.
"""

from __future__ import annotations

from typing import Iterable, Mapping

from presubmit_core.changes import Change, MultiPartInfo, PresubmitTestType


def change_to_dict(change: Change) -> dict:
    data = {
        "ref": change.ref,
        "project": change.project,
        "change_id": change.change_id,
        "owner_email": change.owner_email,
        "labels": {name: sorted(states) for name, states in change.labels.items()},
        "auto_submit": change.auto_submit,
        "presubmit": change.presubmit.value,
    }
    if change.multi_part is not None:
        data["multi_part"] = {
            "topic": change.multi_part.topic,
            "index": change.multi_part.index,
            "total": change.multi_part.total,
        }
    return data


def change_from_dict(data: dict) -> Change:
    multi_part = data.get("multi_part")
    try:
        presubmit = PresubmitTestType(data.get("presubmit", PresubmitTestType.ALL.value))
    except ValueError:
        presubmit = PresubmitTestType.ALL
    return Change(
        ref=data.get("ref", ""),
        project=data.get("project", ""),
        change_id=data.get("change_id", ""),
        owner_email=data.get("owner_email", ""),
        labels={name: set(states) for name, states in (data.get("labels") or {}).items()},
        multi_part=MultiPartInfo(**multi_part) if multi_part else None,
        auto_submit=bool(data.get("auto_submit", False)),
        presubmit=presubmit,
    )


def to_snapshot(changes: Iterable[Change]) -> dict[str, dict]:
    """Index changes by reference, ready to hand to a store."""
    return {c.ref: change_to_dict(c) for c in changes}


def from_snapshot(snapshot: Mapping[str, dict]) -> dict[str, Change]:
    return {ref: change_from_dict(data) for ref, data in snapshot.items()}
