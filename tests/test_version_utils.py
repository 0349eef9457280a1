# Test file for combined "name@version" utilities

import pytest
from campack.core.version_utils import (
    concrete,
    coerce,
    combine,
    compare_combined,
    decombine,
    normalize_id,
    parse_range,
    satisfy_combined,
    sort_key,
    to_version,
    valid,
)


@pytest.mark.parametrize(
    "version,expected",
    [
        ("1.2.3", "1.2.3"),
        ("v1.2.3", "1.2.3"),
        ("=1.0.0", "1.0.0"),
        ("1.0", None),
        ("latest", None),
        (None, None),
    ],
)
def test_valid(version, expected):
    """Test semantic version validation"""
    assert valid(version) == expected


@pytest.mark.parametrize(
    "version,expected",
    [
        ("v1.2", "1.2.0"),
        ("3", "3.0.0"),
        ("release-2.4.1-final", "2.4.1"),
        ("1.2.3.4", "1.2.3"),
        ("*", ""),
        ("", ""),
    ],
)
def test_coerce(version, expected):
    """Test coercing loose strings into versions"""
    assert coerce(version) == expected


def test_normalize_id_strips_every_invalid_character():
    """Test that ids keep only letters, digits and -_.@"""
    assert normalize_id("my plot!") == "myplot"
    assert normalize_id("a/b c#d") == "abcd"
    assert normalize_id("line-chart_2.x") == "line-chart_2.x"
    assert normalize_id(None) == ""


def test_combine():
    """Test combining names and versions"""
    assert combine("plot", "1.0") == "plot@1.0.0"
    assert combine("plot", "") == "plot"
    assert combine("com/plot", "^1.0.0", coerce_version=False) == "com/plot@^1.0.0"


def test_decombine():
    """Test splitting combined strings on the last @"""
    assert decombine("plot@1.2.3") == ("plot", "1.2.3")
    assert decombine("plot") == ("plot", "")
    assert decombine("plot", coerce_version=False) == ("plot", "*")
    assert decombine("com/plot@^1.0.0", coerce_version=False) == ("com/plot", "^1.0.0")


def test_parse_range():
    """Test parsing npm-style ranges"""
    assert parse_range("^1.0.0").match(to_version("1.9.0"))
    assert not parse_range("^1.0.0").match(to_version("2.0.0"))
    assert parse_range("").match(to_version("5.0.0"))
    # Malformed ranges fall back to an exact version
    assert parse_range("version 1.2").match(to_version("1.2.0"))
    assert parse_range("nothing") is None


def test_to_version_treats_invalid_as_zero():
    """Test that unusable versions order first"""
    assert str(to_version("garbage")) == "0.0.0"
    assert str(to_version("1.2.3")) == "1.2.3"


def test_sort_key_uses_semantic_precedence():
    """Test ordering by name, then by version precedence"""
    ids = ["plot@1.10.0", "chart@2.0.0", "plot@1.2.0", "plot@1.9.1"]
    assert sorted(ids, key=sort_key) == [
        "chart@2.0.0",
        "plot@1.2.0",
        "plot@1.9.1",
        "plot@1.10.0",
    ]


def test_compare_combined():
    """Test the classic comparator"""
    assert compare_combined("plot@1.0.0", "plot@2.0.0") < 0
    assert compare_combined("plot@2.0.0", "plot@1.0.0") > 0
    assert compare_combined("plot@1.0.0", "plot@1.0") == 0


@pytest.mark.parametrize(
    "combined,requirement,expected",
    [
        ("com/plot@1.2.0", "com/plot@^1.0.0", True),
        ("com/plot@2.0.0", "com/plot@^1.0.0", False),
        ("com/plot@2.0.0", "com/plot", True),
        ("com/plot@1.0.0", "pkg/plot", False),
        ("com/plot@1.0.0", "com/plot@1.0.0", True),
        ("com/plot@1.0.0", "com/plot@<1.0.0||>1.0.0", False),
        ("com/plot@0.9.0", "com/plot@<1.0.0||>1.0.0", True),
        ("com/plot", "com/plot", False),
    ],
)
def test_satisfy_combined(combined, requirement, expected):
    """Test matching combined strings against combined requirements"""
    assert satisfy_combined(combined, requirement) is expected


def test_satisfy_combined_case_insensitive():
    """Test the case-insensitive comparison"""
    assert not satisfy_combined("Plot@1.0.0", "plot@1.0.0")
    assert satisfy_combined("Plot@1.0.0", "plot@1.0.0", case_insensitive=True)



def test_concrete_keeps_prerelease():
    """Test that valid versions are kept whole and the rest is coerced"""
    assert concrete("1.0.0-beta.1") == "1.0.0-beta.1"
    assert concrete("v1.2") == "1.2.0"
    assert concrete("*") == ""
    assert decombine("plot@1.0.0-beta.1") == ("plot", "1.0.0-beta.1")
    assert combine("plot", "1.0.0-rc.2") == "plot@1.0.0-rc.2"


def test_prerelease_precedence():
    """Test that a prerelease orders before its release and is distinct"""
    ids = ["plot@1.0.0", "plot@1.0.0-beta.1", "plot@1.0.0-alpha", "plot@0.9.0"]
    assert sorted(ids, key=sort_key) == [
        "plot@0.9.0",
        "plot@1.0.0-alpha",
        "plot@1.0.0-beta.1",
        "plot@1.0.0",
    ]
    assert compare_combined("plot@1.0.0-beta.1", "plot@1.0.0") < 0
    assert not satisfy_combined("plot@1.0.0-beta.1", "plot@1.0.0")
    assert satisfy_combined("plot@1.0.0-beta.1", "plot@1.0.0-beta.1")
    assert satisfy_combined("plot@1.0.0-beta.1", "plot")
