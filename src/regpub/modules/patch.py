# regpub - modules - unified diffs
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

# Parse, apply, and create unified diffs. Hunks must apply cleanly: context and
# removed lines have to match the content exactly, although a hunk may be found
# at an offset from where its header places it.

from __future__ import annotations

import difflib
import re
from typing import override

from regpub.errors import UserFacingError
from regpub.modules import logger as parent_logger

logger = parent_logger.getChild("patch")


NO_NEWLINE_MARKER = "\\ No newline at end of file"

_HUNK_HEADER_RE = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))? "
    + r"\+(?P<new_start>\d+)(?:,(?P<new_count>\d+))? @@"
)


class PatchError(UserFacingError):
    pass


class PatchParseError(PatchError):
    @override
    def __str__(self) -> str:
        return "Malformed patch" + (f": {self.msg}" if self.msg else "")


class PatchApplyError(PatchError):
    @override
    def __str__(self) -> str:
        return "Unable to apply patch" + (f": {self.msg}" if self.msg else "")


class Hunk:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: list[str]

    def __init__(
        self, old_start: int, old_count: int, new_start: int, new_count: int
    ) -> None:
        self.old_start = old_start
        self.old_count = old_count
        self.new_start = new_start
        self.new_count = new_count
        self.lines = []

    def old_lines(self) -> list[str]:
        return _hunk_side(self.lines, " -")

    def new_lines(self) -> list[str]:
        return _hunk_side(self.lines, " +")


class FilePatch:
    """The changes to a single file, as described by a unified diff."""

    old_file: str
    new_file: str
    hunks: list[Hunk]

    def __init__(self, old_file: str, new_file: str) -> None:
        self.old_file = old_file
        self.new_file = new_file
        self.hunks = []

    def targets(self, path: str, *, strip: int = 1) -> bool:
        """Check whether both sides of the patch refer to `path`."""
        return (
            strip_path(self.old_file, strip) == path
            and strip_path(self.new_file, strip) == path
        )

    @override
    def __repr__(self) -> str:
        return f"FilePatch({self.old_file} -> {self.new_file}, hunks={len(self.hunks)})"


def _split_lines(text: str) -> list[str]:
    """Split `text` into lines, keeping line endings; only '\\n' ends a line."""
    parts = text.split("\n")
    lines = [f"{p}\n" for p in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def _hunk_side(lines: list[str], prefixes: str) -> list[str]:
    res: list[str] = []
    prev_in_side = False
    for ln in lines:
        if ln.startswith("\\"):
            # previous line has no trailing newline
            if prev_in_side:
                res[-1] = res[-1].removesuffix("\n")
            continue
        prev_in_side = ln[0] in prefixes
        if prev_in_side:
            res.append(ln[1:])
    return res


def strip_path(path: str, strip: int) -> str:
    """Drop the `strip` leading components from `path`, like `patch -p`."""
    if path == "/dev/null":
        return path
    parts = path.split("/")
    return "/".join(parts[strip:])


def _parse_file_name(line: str, prefix: str) -> str:
    name = line[len(prefix) :]
    # drop any timestamp following the file name
    return name.split("\t", 1)[0].strip()


def parse_patch(text: str, *, allow_empty: bool = False) -> list[FilePatch]:
    """
    Parse a, possibly multi-file, unified diff.

    Git patches that only rename files, change their mode, or carry binary
    changes have no textual file changes. These result in an empty list when
    `allow_empty` is set, and in a `PatchParseError` otherwise.
    """
    lines = text.split("\n")
    if lines and lines[-1] == "":
        _ = lines.pop()

    patches: list[FilePatch] = []
    idx = 0
    while idx < len(lines):
        line = lines[idx]
        if not line.startswith("--- "):
            # 'diff --git', 'index', and other extended headers
            idx += 1
            continue

        if idx + 1 >= len(lines) or not lines[idx + 1].startswith("+++ "):
            raise PatchParseError(f"missing '+++' line after '{line}'")

        patch = FilePatch(
            _parse_file_name(line, "--- "),
            _parse_file_name(lines[idx + 1], "+++ "),
        )
        idx += 2

        while idx < len(lines) and lines[idx].startswith("@@"):
            m = _HUNK_HEADER_RE.match(lines[idx])
            if not m:
                raise PatchParseError(f"malformed hunk header '{lines[idx]}'")

            hunk = Hunk(
                int(m.group("old_start")),
                int(m.group("old_count") or "1"),
                int(m.group("new_start")),
                int(m.group("new_count") or "1"),
            )
            idx += 1

            n_old = n_new = 0
            while idx < len(lines):
                ln = lines[idx]
                if ln.startswith("\\"):
                    hunk.lines.append(ln)
                    idx += 1
                    continue
                if n_old >= hunk.old_count and n_new >= hunk.new_count:
                    break
                # some tools drop the space from empty context lines
                ln = ln if ln else " "
                match ln[0]:
                    case " ":
                        n_old += 1
                        n_new += 1
                    case "-":
                        n_old += 1
                    case "+":
                        n_new += 1
                    case _:
                        raise PatchParseError(f"unexpected line in hunk: '{ln}'")
                hunk.lines.append(f"{ln}\n")
                idx += 1

            if n_old != hunk.old_count or n_new != hunk.new_count:
                raise PatchParseError(
                    f"hunk for '{patch.new_file}' does not match its header"
                )
            patch.hunks.append(hunk)

        patches.append(patch)

    if not patches and not allow_empty:
        raise PatchParseError("no file changes found")

    return patches


def _matches_at(lines: list[str], expected: list[str], pos: int) -> bool:
    return lines[pos : pos + len(expected)] == expected


def apply_patch(content: str, patch: FilePatch) -> str:
    """Apply `patch` to `content`, raising `PatchApplyError` on any mismatch."""
    lines = _split_lines(content)
    delta = 0
    min_pos = 0

    for hunk in patch.hunks:
        old = hunk.old_lines()
        new = hunk.new_lines()

        expected_pos = (hunk.old_start - 1 if old else hunk.old_start) + delta
        expected_pos = max(expected_pos, min_pos)

        pos: int | None = None
        max_offset = max(expected_pos - min_pos, len(lines) - expected_pos)
        for offset in range(max_offset + 1):
            for candidate in (expected_pos + offset, expected_pos - offset):
                if min_pos <= candidate <= len(lines) - len(old) and _matches_at(
                    lines, old, candidate
                ):
                    pos = candidate
                    break
            if pos is not None:
                break

        if pos is None:
            msg = (
                f"hunk at line {hunk.old_start} of '{patch.old_file}' "
                + "does not match the content"
            )
            logger.debug(msg)
            raise PatchApplyError(msg)

        if pos != expected_pos:
            logger.debug(f"hunk applied with offset {pos - expected_pos}")

        lines[pos : pos + len(old)] = new
        delta += len(new) - len(old)
        min_pos = pos + len(new)

    return "".join(lines)


def create_patch(
    old_content: str, new_content: str, file_name: str, *, strip: int = 1
) -> str:
    """
    Create a unified diff between two contents of `file_name`.

    File names are prefixed so that the diff applies with `patch -p<strip>`:
    the usual 'a/' and 'b/' for a strip of 1, none for a strip of 0.
    """
    old_prefix = "a/" * strip
    new_prefix = "b/" * strip
    out: list[str] = []
    for line in difflib.unified_diff(
        _split_lines(old_content),
        _split_lines(new_content),
        fromfile=f"{old_prefix}{file_name}",
        tofile=f"{new_prefix}{file_name}",
    ):
        out.append(line)
        if not line.endswith("\n"):
            out.append(f"\n{NO_NEWLINE_MARKER}\n")
    return "".join(out)
