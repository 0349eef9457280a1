"""Version utilities for combined "name@version" identifiers"""

import re
from typing import Optional, Tuple

from semantic_version import NpmSpec, Version


# First numeric "major[.minor[.patch]]" run inside an arbitrary string
COERCE_PATTERN = re.compile(r"(\d{1,16})(?:\.(\d{1,16}))?(?:\.(\d{1,16}))?")

# Characters allowed in a component or package id
INVALID_ID_CHARS = re.compile(r"[^a-zA-Z0-9\-_.@]")

ZERO_VERSION = Version("0.0.0")


def valid(version: Optional[str]) -> Optional[str]:
    """
    Validate a semantic version string

    Args:
        version: Version string, a leading "v" or "=" is tolerated

    Returns:
        Optional[str]: The cleaned version, or None if it is not valid
    """
    if version is None:
        return None
    cleaned = str(version).strip().lstrip("=v").strip()
    try:
        return str(Version(cleaned))
    except ValueError:
        return None


def coerce(version: Optional[str]) -> str:
    """
    Coerce any string into a semantic version

    The first "major[.minor[.patch]]" run found is used and missing parts
    are filled with zeros, so "v1.2" becomes "1.2.0".

    Args:
        version: String to coerce

    Returns:
        str: The coerced version, or an empty string if nothing numeric is found
    """
    match = COERCE_PATTERN.search(str(version or ""))
    if not match:
        return ""
    major, minor, patch = (int(part or 0) for part in match.groups())
    return str(Version(major=major, minor=minor, patch=patch))


def concrete(version: Optional[str]) -> str:
    """
    Get the concrete version of a string

    A valid semantic version is kept as is, prerelease and build parts
    included. Anything else is coerced.
    """
    return valid(version) or coerce(version)


def normalize_id(identifier: Optional[str]) -> str:
    """Strip every character that cannot appear in an id"""
    return INVALID_ID_CHARS.sub("", str(identifier or ""))


def combine(name: str, version: Optional[str], coerce_version: bool = True) -> str:
    """
    Combine a name and a version by putting @ in the middle

    Args:
        name: The name
        version: The version or range
        coerce_version: Whether to make the version part concrete

    Returns:
        str: "name@version", or just "name" if the version is empty
    """
    name = str(name or "").strip()
    version = concrete(version) if coerce_version else str(version or "").strip()
    return f"{name}@{version}" if version else name


def decombine(combined: str, coerce_version: bool = True) -> Tuple[str, str]:
    """
    Split a combined string into its name and version parts

    The version is everything after the last @, and "*" when there is none.

    Args:
        combined: The combined string
        coerce_version: Whether to make the version part concrete

    Returns:
        Tuple[str, str]: Name and version, the version is empty when
        nothing concrete can be made of it (e.g. for "*")
    """
    splits = str(combined or "").strip().split("@")
    version = splits.pop() if len(splits) > 1 else "*"
    name = "@".join(splits)
    return name, concrete(version) if coerce_version else version


def parse_range(requirement: Optional[str]) -> Optional[NpmSpec]:
    """
    Parse a semantic version range

    Malformed ranges are coerced to an exact version.

    Args:
        requirement: Range expression such as "^1.0.0" or "<1.0.0||>1.0.0"

    Returns:
        Optional[NpmSpec]: The parsed range, or None if nothing can be made of it
    """
    requirement = str(requirement or "").strip() or "*"
    try:
        return NpmSpec(requirement)
    except ValueError:
        coerced = coerce(requirement)
        return NpmSpec(coerced) if coerced else None


def to_version(version: Optional[str]) -> Version:
    """Parse a version, treating empty or invalid strings as 0.0.0"""
    cleaned = valid(version)
    return Version(cleaned) if cleaned else ZERO_VERSION


def sort_key(combined: str) -> Tuple[str, Version]:
    """Key ordering combined strings by name, then by semantic precedence"""
    name, version = decombine(combined)
    return name, to_version(version)


def compare_combined(combined_a: str, combined_b: str) -> int:
    """
    Compare two combined strings

    Returns:
        int: Negative, zero or positive, like a classic comparator
    """
    key_a, key_b = sort_key(combined_a), sort_key(combined_b)
    return (key_a > key_b) - (key_a < key_b)


def satisfy_combined(
    combined: str, requirement: str, case_insensitive: bool = False
) -> bool:
    """
    Check if a combined string satisfies the given requirement

    A satisfying string has the same name and a version inside the range.

    Args:
        combined: The combined string, e.g. "com/plot@1.2.0"
        requirement: The combined requirement, e.g. "com/plot@^1.0.0"
        case_insensitive: Whether to compare case-insensitively

    Returns:
        bool: Whether the requirement is satisfied
    """
    combined, requirement = str(combined or ""), str(requirement or "")
    if case_insensitive:
        combined, requirement = combined.lower(), requirement.lower()

    name, version = decombine(combined)
    name_r, range_r = decombine(requirement, coerce_version=False)
    if name != name_r or not version:
        return False
    # A bare name matches every version, prereleases included
    if range_r.strip() in ("", "*"):
        return True

    spec = parse_range(range_r)
    return spec is not None and spec.match(Version(version))

