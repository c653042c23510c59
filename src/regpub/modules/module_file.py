# regpub - modules - MODULE.bazel files
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

import re
from pathlib import Path
from typing import override

from regpub.errors import UserFacingError
from regpub.modules import logger as parent_logger
from regpub.modules.patch import FilePatch, PatchApplyError, apply_patch

logger = parent_logger.getChild("module_file")


MODULE_FILE_NAME = "MODULE.bazel"

# see bazel's RepositoryName for the allowed module names.
_NAME_RE = re.compile(
    r'module\([^)]*?\bname\s*=\s*"(?P<name>[a-z](?:[a-z0-9._-]*[a-z0-9])?)"', re.S
)
_VERSION_RE = re.compile(r'module\([^)]*?\bversion\s*=\s*"(?P<version>[^"]*)"', re.S)
_MODULE_CALL_END_RE = re.compile(r"(?P<head>module\([^)]*?),?(?P<ws>\s*)\)", re.S)


class ModuleNameError(UserFacingError):
    path: Path

    def __init__(self, path: Path) -> None:
        super().__init__(f"Failed to parse module name from '{path}'")
        self.path = path


class PatchModuleError(UserFacingError):
    def __init__(self, reason: str | None = None) -> None:
        super().__init__(
            f"Failed to apply patch to {MODULE_FILE_NAME} file"
            + (f": {reason}" if reason else "")
        )


class ModuleFile:
    """
    An in-memory `MODULE.bazel` file.

    Modifications, either by stamping a new version or by applying patches, are
    only persisted once `save()` is called.
    """

    path: Path
    _content: str

    def __init__(self, path: Path) -> None:
        self.path = path
        self._content = path.read_text(encoding="utf-8")

    @property
    def content(self) -> str:
        return self._content

    @property
    def module_name(self) -> str:
        m = _NAME_RE.search(self._content)
        if m is None:
            logger.error(f"unable to find module name in '{self.path}'")
            raise ModuleNameError(self.path)
        return m.group("name")

    @property
    def version(self) -> str | None:
        m = _VERSION_RE.search(self._content)
        return m.group("version") if m else None

    def stamp_version(self, version: str) -> None:
        """Set the module's version, adding the attribute if it doesn't exist."""
        if m := _VERSION_RE.search(self._content):
            start, end = m.span("version")
            self._content = self._content[:start] + version + self._content[end:]
            return

        m = _MODULE_CALL_END_RE.search(self._content)
        if m is None:
            raise ModuleNameError(self.path)

        start, end = m.span()
        stamped = f'{m.group("head")},\n    version = "{version}",\n)'
        self._content = self._content[:start] + stamped + self._content[end:]

    def patch_content(self, patch: FilePatch) -> None:
        try:
            self._content = apply_patch(self._content, patch)
        except PatchApplyError as e:
            logger.error(f"unable to patch '{self.path}': {e}")
            raise PatchModuleError(e.msg) from e

    def save(self, dest_path: Path) -> None:
        _ = dest_path.write_text(self._content, encoding="utf-8")

    @override
    def __repr__(self) -> str:
        return f"ModuleFile({self.path})"
