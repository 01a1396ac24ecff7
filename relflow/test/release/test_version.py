"""Tests for relflow.release.version."""

from __future__ import annotations

import pytest

from relflow.core.result import Err, Ok
from relflow.release.version import (
    Version,
    add_snapshot,
    format_version,
    increment,
    next_hotfix,
    parse_hotfix_version,
    parse_release_version,
    parse_version,
    previous_release,
    strip_snapshot,
    tag_name,
    version_from_tag,
)


def v(text: str) -> Version:
    parsed = parse_version(text)
    assert isinstance(parsed, Ok), text
    return parsed.value


class TestParse:
    @pytest.mark.parametrize(
        "text",
        ["0.0.0", "2.0.15", "2.0.16-SNAPSHOT", "2.0.15.1", "2.0.15.3-SNAPSHOT", "10.20.30"],
    )
    def test_format_parse_round_trip(self, text: str) -> None:
        assert format_version(v(text)) == text
        assert v(format_version(v(text))) == v(text)

    def test_fields(self) -> None:
        assert v("2.0.15.1-SNAPSHOT") == Version(2, 0, 15, hotfix=1, snapshot=True)

    @pytest.mark.parametrize(
        "text",
        ["", "2.0", "2.0.x", "v2.0.15", "02.0.15", "2.0.15.0", "2.0.15-snapshot", "2.0.15-RC1"],
    )
    def test_rejects(self, text: str) -> None:
        result = parse_version(text)
        assert isinstance(result, Err)
        assert result.error.kind == "invalid_version"
        assert result.error.category == "PreconditionError"

    def test_release_rules_reject_hotfix_component(self) -> None:
        result = parse_release_version("2.0.15.1")
        assert isinstance(result, Err)
        assert "hotfix" in result.error.message

    def test_hotfix_rules_accept_both_forms(self) -> None:
        assert isinstance(parse_hotfix_version("2.0.15.1"), Ok)
        assert isinstance(parse_hotfix_version("2.0.16"), Ok)

    def test_invalid_components_raise(self) -> None:
        with pytest.raises(ValueError):
            Version(1, -1, 0)
        with pytest.raises(ValueError):
            Version(1, 0, 0, hotfix=0)


class TestIncrement:
    def test_major(self) -> None:
        assert increment(v("2.3.4.1"), "major") == v("3.0.0-SNAPSHOT")

    def test_minor_resets_patch_and_hotfix(self) -> None:
        assert increment(v("2.0.16"), "minor") == v("2.1.0-SNAPSHOT")
        assert increment(v("2.0.15.2"), "minor") == v("2.1.0-SNAPSHOT")

    def test_patch_resets_hotfix_only(self) -> None:
        assert increment(v("2.0.15.2-SNAPSHOT"), "patch") == v("2.0.16-SNAPSHOT")

    @pytest.mark.parametrize("text", ["0.0.0", "2.0.16", "1.9.9.3-SNAPSHOT"])
    def test_patch_never_touches_major_minor(self, text: str) -> None:
        base = v(text)
        bumped = increment(base, "patch")
        assert (bumped.major, bumped.minor) == (base.major, base.minor)

    def test_result_is_always_snapshot(self) -> None:
        for field in ("major", "minor", "patch"):
            assert increment(v("1.2.3"), field).snapshot


class TestSnapshotAndHotfix:
    def test_strip_and_add(self) -> None:
        assert strip_snapshot(v("2.0.16-SNAPSHOT")) == v("2.0.16")
        assert add_snapshot(v("2.0.16")) == v("2.0.16-SNAPSHOT")
        assert strip_snapshot(v("2.0.16")) == v("2.0.16")

    def test_next_hotfix(self) -> None:
        assert next_hotfix(v("2.0.15")) == v("2.0.15.1")
        assert next_hotfix(v("2.0.15.1")) == v("2.0.15.2")

    @pytest.mark.parametrize(
        ("text", "expected"),
        [("2.0.15.2", "2.0.15.1"), ("2.0.15.1", "2.0.15"), ("2.0.16-SNAPSHOT", "2.0.15")],
    )
    def test_previous_release(self, text: str, expected: str) -> None:
        assert previous_release(v(text)) == v(expected)

    def test_previous_release_of_first_patch(self) -> None:
        assert previous_release(v("3.0.0")) is None


class TestTags:
    def test_tag_name_strips_snapshot(self) -> None:
        assert tag_name("v", v("2.0.16-SNAPSHOT")) == "v2.0.16"
        assert tag_name("", v("2.0.15.1")) == "2.0.15.1"

    def test_version_from_tag(self) -> None:
        assert version_from_tag(tag="v2.0.15", prefix="v") == Ok(v("2.0.15"))

    def test_version_from_tag_wrong_prefix(self) -> None:
        result = version_from_tag(tag="release-2.0.15", prefix="v")
        assert isinstance(result, Err)

    def test_snapshot_tags_rejected(self) -> None:
        result = version_from_tag(tag="v2.0.15-SNAPSHOT", prefix="v")
        assert isinstance(result, Err)
        assert "snapshot" in result.error.message
