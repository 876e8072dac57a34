from __future__ import annotations

import pytest

from monorel.services.release.semver import (
    SemVer,
    bump_version_string,
    is_valid_version,
    parse_version,
)


@pytest.mark.parametrize(
    ("current", "kind", "expected"),
    [
        ("1.2.3", "patch", "1.2.4"),
        ("1.2.3", "minor", "1.3.0"),
        ("1.2.3", "major", "2.0.0"),
        ("0.9.9", "patch", "0.9.10"),
        ("2.0.0-rc.1", "patch", "2.0.1"),
        ("1.0.0+build.5", "minor", "1.1.0"),
    ],
)
def test_bump(current: str, kind: str, expected: str) -> None:
    assert bump_version_string(current, kind) == expected  # type: ignore[arg-type]


def test_parse_full_version() -> None:
    v = parse_version("1.2.3-beta.2+sha.abc")
    assert v == SemVer(1, 2, 3, prerelease="beta.2", build="sha.abc")
    assert v is not None and v.is_prerelease
    assert str(v) == "1.2.3-beta.2+sha.abc"


def test_parse_strips_whitespace() -> None:
    assert parse_version(" 1.2.3\n") == SemVer(1, 2, 3)


@pytest.mark.parametrize("text", ["1.2", "v1.2.3", "01.2.3", "1.2.3-", "1.2.3-01", "latest", ""])
def test_invalid_versions(text: str) -> None:
    assert parse_version(text) is None
    assert not is_valid_version(text)
    assert bump_version_string(text, "patch") is None


def test_valid_versions() -> None:
    for text in ("0.0.0", "10.20.30", "1.0.0-alpha", "1.0.0-0.3.7", "1.0.0+20130313144700"):
        assert is_valid_version(text)


def test_trailing_newline_is_not_valid() -> None:
    assert not is_valid_version("1.2.4\n")
    assert not is_valid_version(" 1.2.4")
