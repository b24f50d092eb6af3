"""Project manifest: which projects are tracked and which tests they need."""

from __future__ import annotations

from typing import Iterable, Mapping


def name_with_part_suffix(test_name: str, part_index: int) -> str:
    """Return test_name with a -partN suffix, or unchanged for a negative index."""
    if part_index < 0:
        return test_name
    return f"{test_name}-part{part_index}"


class ProjectRegistry:
    """Answers "is this project tracked" and "which tests cover these projects"."""

    def __init__(self, project_tests: Mapping[str, Iterable[str]], test_parts: Mapping[str, Iterable[str]] | None = None):
        self._project_tests = {name: list(tests) for name, tests in project_tests.items()}
        self._test_parts = {name: list(parts) for name, parts in (test_parts or {}).items()}

    @classmethod
    def from_config(cls, config) -> "ProjectRegistry":
        return cls(config.projects, config.test_parts)

    def resolve(self, project: str) -> bool:
        return project in self._project_tests

    def tests_for(self, projects: Iterable[str]) -> list[str]:
        """Return the sorted, de-duplicated tests for the given projects.

        Tests split into parts are expanded to one entry per part; the
        trailing part catches everything the listed parts do not.
        """
        tests: set[str] = set()
        for project in projects:
            for test in self._project_tests.get(project, []):
                parts = self._test_parts.get(test)
                if parts:
                    tests.update(name_with_part_suffix(test, i) for i in range(len(parts) + 1))
                else:
                    tests.add(test)
        return sorted(tests)
