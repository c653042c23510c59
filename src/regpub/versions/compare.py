# regpub - versions - comparison
# Copyright (C) 2025  Clyso GmbH
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.

# Ordering follows the one used by the Bazel Central Registry tooling: a
# version is made of release identifiers and, optionally, of prerelease
# identifiers. This is not strict semantic versioning; any number of
# identifiers is allowed, and identifiers may be alphanumeric.

from __future__ import annotations

import functools
import re
from typing import override

from regpub.versions import MalformedVersionError
from regpub.versions import logger as parent_logger

logger = parent_logger.getChild("compare")


_VERSION_RE = re.compile(
    r"""
    ^
    (?P<release>[a-zA-Z0-9.]+)          # mandatory release identifiers
    (?:-(?P<prerelease>[a-zA-Z0-9.-]+))? # optional prerelease identifiers
    (?:\+[a-zA-Z0-9.-]+)?               # optional build metadata, ignored
    $
    """,
    re.VERBOSE,
)

_TAG_PREFIX_RE = re.compile(r"^[^0-9]*")


@functools.total_ordering
class Identifier:
    """A single dot-separated version identifier, either numeric or not."""

    value: int | str

    def __init__(self, value: str) -> None:
        self.value = int(value) if value.isdigit() and value.isascii() else value

    @property
    def is_numeric(self) -> bool:
        return isinstance(self.value, int)

    def compare(self, other: Identifier) -> int:
        if self.is_numeric != other.is_numeric:
            # numeric identifiers always sort below non-numeric ones
            return -1 if self.is_numeric else 1

        if self.value == other.value:
            return 0
        return -1 if self.value < other.value else 1  # pyright: ignore[reportOperatorIssue]

    @override
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Identifier):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: Identifier) -> bool:
        return self.compare(other) < 0

    @override
    def __hash__(self) -> int:
        return hash(self.value)

    @override
    def __repr__(self) -> str:
        return f"Identifier({self.value!r})"


def _compare_identifiers(a: list[Identifier], b: list[Identifier]) -> int:
    for lhs, rhs in zip(a, b, strict=False):
        if res := lhs.compare(rhs):
            return res

    if len(a) == len(b):
        return 0
    return 1 if len(a) > len(b) else -1


class Version:
    """A parsed module version."""

    raw: str
    release: list[Identifier]
    prerelease: list[Identifier]

    def __init__(self, version: str) -> None:
        m = _VERSION_RE.match(version)
        if not m:
            logger.debug(f"malformed version '{version}'")
            raise MalformedVersionError(version)

        release = m.group("release")
        prerelease = m.group("prerelease")

        # empty identifiers, such as in '1..2' or '1.', are not valid
        if any(not p for p in release.split(".")) or (
            prerelease is not None and any(not p for p in prerelease.split("."))
        ):
            raise MalformedVersionError(version)

        self.raw = version
        self.release = [Identifier(i) for i in release.split(".")]
        self.prerelease = (
            [Identifier(i) for i in prerelease.split(".")] if prerelease else []
        )

    def compare(self, other: Version) -> int:
        if res := _compare_identifiers(self.release, other.release):
            return res

        # a release sorts after any of its prereleases
        if not self.prerelease and not other.prerelease:
            return 0
        if not self.prerelease:
            return 1
        if not other.prerelease:
            return -1

        return _compare_identifiers(self.prerelease, other.prerelease)

    @override
    def __repr__(self) -> str:
        return f"Version({self.raw!r})"


def compare_versions(a: str, b: str) -> int:
    """
    Compare two module versions.

    Returns -1 if `a` sorts before `b`, 1 if it sorts after, and 0 if both are
    equivalent. Raises `MalformedVersionError` if either version can't be parsed.
    """
    return Version(a).compare(Version(b))


version_sort_key = functools.cmp_to_key(compare_versions)


def is_valid_version(version: str) -> bool:
    try:
        _ = Version(version)
    except MalformedVersionError:
        return False
    return True


def get_version_from_tag(tag: str) -> str:
    """Obtain a version from a release tag, stripping any non-numeric prefix."""
    version = _TAG_PREFIX_RE.sub("", tag, count=1)
    return version if version else tag
