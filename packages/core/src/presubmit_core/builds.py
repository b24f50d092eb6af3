"""Build reconciler: gate, de-duplicate and dispatch change groups to Jenkins.

Each group goes through the gates below in order and ends in exactly one
DispatchOutcome. Nothing is retried within a poll cycle.

    unknown project -> presubmit=none -> no tests -> untrusted owner
                    -> cancel outdated builds -> dispatch
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping

from presubmit_core.changes import ChangeGroup, PresubmitTestType, parse_reference
from presubmit_core.errors import PresubmitError
from presubmit_core.jenkins.client import parse_refs_param
from presubmit_core.output import eprintf, printf

logger = logging.getLogger(__name__)

# Change number -> patchset number.
CLMap = dict[int, int]


class DispatchOutcome(str, Enum):
    DISPATCHED = "dispatched"
    FAILED = "failed"
    SKIPPED_EMPTY = "skipped-empty"
    SKIPPED_MALFORMED = "skipped-malformed"
    SKIPPED_UNKNOWN_PROJECT = "skipped-unknown-project"
    SKIPPED_POLICY = "skipped-policy"
    SKIPPED_NO_TESTS = "skipped-no-tests"
    SKIPPED_NON_OWNER = "skipped-non-owner"


def parse_refs(refs: str) -> CLMap:
    """Parse a ':'-separated list of references into a CLMap."""
    cls: CLMap = {}
    for ref in refs.split(":"):
        cl, patchset = parse_reference(ref)
        cls[cl] = patchset
    return cls


def is_build_outdated(cur_cls: Mapping[int, int], new_cls: Mapping[int, int]) -> bool:
    """Return True if a build for `cur_cls` is superseded by a request for `new_cls`.

    With the same change numbers on both sides, the build is outdated unless
    some patchset went backwards, so an identical request also supersedes it.
    With different change numbers, the build is outdated as soon as one shared
    change has the same or a newer patchset (e.g. {1000/1} vs {1000/2, 2000/1}
    where 1000 became part of a multi-part set).
    """
    if set(cur_cls) != set(new_cls):
        return any(cl in new_cls and new_cls[cl] >= patchset for cl, patchset in cur_cls.items())
    return all(new_cls[cl] >= cur_cls[cl] for cl in new_cls)


def _refs_outdated(refs: str, new_cls: Mapping[int, int]) -> bool:
    return is_build_outdated(parse_refs(refs), new_cls)


def remove_outdated_builds(jenkins, job: str, new_cls: Mapping[int, int]) -> list[Exception]:
    """Cancel queued and running builds superseded by `new_cls`.

    Best effort: errors are collected and returned, never raised.
    """
    errors: list[Exception] = []
    for remove in (_remove_queued_outdated_builds, _remove_running_outdated_builds):
        try:
            remove(jenkins, job, new_cls, errors)
        except PresubmitError as e:
            errors.append(e)
    return errors


def _remove_queued_outdated_builds(jenkins, job, new_cls, errors) -> None:
    for build in jenkins.queued_builds(job):
        refs = parse_refs_param(build.params)
        if not refs:
            continue
        try:
            if not _refs_outdated(refs, new_cls):
                continue
            jenkins.cancel_queued(build.id)
        except PresubmitError as e:
            errors.append(e)
            continue
        printf(f"Cancelled build {refs} as it is no longer current.")


def _remove_running_outdated_builds(jenkins, job, new_cls, errors) -> None:
    for build in jenkins.running_builds(job):
        if not build.building or not build.refs:
            continue
        try:
            if not _refs_outdated(build.refs, new_cls):
                continue
            jenkins.cancel_running(job, build.number)
        except PresubmitError as e:
            errors.append(e)
            continue
        printf(f"Cancelled build {build.refs} as it is no longer current.")


@dataclass
class GroupInfo:
    """Facts about a change group that the dispatch gates look at."""

    cls: CLMap = field(default_factory=dict)
    links: list[str] = field(default_factory=list)
    refs: list[str] = field(default_factory=list)
    projects: list[str] = field(default_factory=list)
    skip_presubmit: bool = False
    has_untrusted_owner: bool = False

    @property
    def description(self) -> str:
        return ", ".join(self.links)


class BuildDispatcher:
    """Sends change groups to the presubmit job, one build per group.

    `sent` accumulates the number of changes dispatched successfully.
    """

    def __init__(self, config, registry, jenkins, gerrit, poster):
        self.config = config
        self.registry = registry
        self.jenkins = jenkins
        self.gerrit = gerrit
        self.poster = poster
        self.sent = 0

    def group_info(self, group: ChangeGroup) -> GroupInfo:
        info = GroupInfo()
        for change in group:
            cl, patchset = parse_reference(change.ref)
            info.cls[cl] = patchset
            info.links.append(self.gerrit.change_url(cl, patchset))
            info.refs.append(change.ref)
            info.projects.append(change.project)
            if change.presubmit == PresubmitTestType.NONE:
                info.skip_presubmit = True
            if not change.owner_email.endswith(self.config.trusted_owner_domain):
                info.has_untrusted_owner = True
        return info

    def _post(self, message: str, refs: list[str], success: bool) -> None:
        try:
            self.poster.post(message, refs, success)
        except PresubmitError as e:
            eprintf(str(e))

    def _unknown_projects(self, group: ChangeGroup) -> list[str]:
        unknown = []
        for change in group:
            if not self.registry.resolve(change.project):
                printf(f"project={change.project!r} ({change.ref}) not found. Skipped.")
                unknown.append(change.project)
        return unknown

    def send(self, groups: Iterable[ChangeGroup]) -> list[DispatchOutcome]:
        return [self.send_group(group) for group in groups]

    def send_group(self, group: ChangeGroup) -> DispatchOutcome:
        if not group:
            printf("SKIP: Empty CL set")
            return DispatchOutcome.SKIPPED_EMPTY

        try:
            info = self.group_info(group)
        except PresubmitError as e:
            eprintf(str(e))
            return DispatchOutcome.SKIPPED_MALFORMED

        # A set that mixes tracked and untracked projects is never sent partially.
        if self._unknown_projects(group):
            printf(f"SKIP: Add {info.description} (unknown project)")
            return DispatchOutcome.SKIPPED_UNKNOWN_PROJECT

        if info.skip_presubmit:
            self._post("Presubmit tests skipped.\n", info.refs, True)
            printf(f"SKIP: Add {info.description} (presubmit=none)")
            return DispatchOutcome.SKIPPED_POLICY

        tests = self.registry.tests_for(info.projects)
        if not tests:
            self._post("No tests found.\n", info.refs, True)
            printf(f"SKIP: Add {info.description} (no tests found)")
            return DispatchOutcome.SKIPPED_NO_TESTS

        params = build_params(info.refs, info.projects, tests)
        if info.has_untrusted_owner:
            link = self.jenkins.build_link(self.config.job, params)
            message = f"A team member will manually trigger presubmit tests for this change:\n{link}\n"
            self._post(message, info.refs, False)
            printf(f"SKIP: Add {info.description} (non-trusted owner)")
            return DispatchOutcome.SKIPPED_NON_OWNER

        for error in remove_outdated_builds(self.jenkins, self.config.job, info.cls):
            eprintf(str(error))

        try:
            self.jenkins.enqueue_build(self.config.job, params)
        except PresubmitError as e:
            printf(f"FAIL: Add {info.description}")
            eprintf(f"adding presubmit test build failed: {e}")
            return DispatchOutcome.FAILED
        printf(f"PASS: Add {info.description}")
        self.sent += len(group)
        return DispatchOutcome.DISPATCHED


def build_params(refs: list[str], projects: list[str], tests: list[str]) -> dict[str, str]:
    """Parameters of one presubmit build; TESTS is space separated for the matrix axis plugin."""
    return {
        "REFS": ":".join(refs),
        "PROJECTS": ":".join(projects),
        "TESTS": " ".join(tests),
    }
