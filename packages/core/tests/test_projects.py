"""Tests for the project registry."""

from presubmit_core.projects import ProjectRegistry, name_with_part_suffix


def _registry():
    return ProjectRegistry(
        {
            "release.go.core": ["vanadium-go-test", "vanadium-go-race"],
            "release.js.core": ["vanadium-js-test", "vanadium-go-test"],
            "www": [],
        },
        {"vanadium-go-race": ["v.io/x/ref/services/...", "v.io/x/ref/runtime/..."]},
    )


def test_resolve_tracked_project():
    assert _registry().resolve("release.go.core") is True
    assert _registry().resolve("www") is True


def test_resolve_unknown_project():
    assert _registry().resolve("experimental") is False


def test_tests_sorted_and_deduplicated():
    tests = _registry().tests_for(["release.js.core", "release.go.core"])
    assert tests == sorted(set(tests))
    assert tests.count("vanadium-go-test") == 1


def test_parts_expanded_with_catch_all_part():
    tests = _registry().tests_for(["release.go.core"])
    assert tests == [
        "vanadium-go-race-part0",
        "vanadium-go-race-part1",
        "vanadium-go-race-part2",
        "vanadium-go-test",
    ]


def test_project_without_tests():
    assert _registry().tests_for(["www"]) == []


def test_name_with_part_suffix():
    assert name_with_part_suffix("vanadium-go-race", 1) == "vanadium-go-race-part1"
    assert name_with_part_suffix("vanadium-go-race", -1) == "vanadium-go-race"
