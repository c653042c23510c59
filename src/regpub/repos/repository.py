# regpub - repositories - repository
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

from __future__ import annotations

import shutil
import tempfile
from pathlib import Path
from typing import override

from regpub.repos import InvalidCanonicalNameError, RepositoryNotCheckedOutError
from regpub.repos import logger as parent_logger
from regpub.utils.git import GitClient

logger = parent_logger.getChild("repository")


class Repository:
    """A GitHub repository, which may be checked out to a temporary directory."""

    name: str
    owner: str
    _disk_path: Path | None
    _tmp_dir: Path | None

    def __init__(self, name: str, owner: str) -> None:
        self.name = name
        self.owner = owner
        self._disk_path = None
        self._tmp_dir = None

    @classmethod
    def from_canonical_name(cls, canonical_name: str) -> Repository:
        owner, sep, name = canonical_name.strip().partition("/")
        if not sep or not owner or not name or "/" in name:
            raise InvalidCanonicalNameError(canonical_name)
        return cls(name, owner)

    @property
    def canonical_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def url(self) -> str:
        return f"https://github.com/{self.canonical_name}.git"

    @property
    def is_checked_out(self) -> bool:
        return self._disk_path is not None

    @property
    def disk_path(self) -> Path:
        if self._disk_path is None:
            raise RepositoryNotCheckedOutError(self.canonical_name)
        return self._disk_path

    async def checkout(
        self,
        git: GitClient,
        ref: str | None = None,
        *,
        scratch: Path | None = None,
        shallow: bool = True,
    ) -> Path:
        """
        Check out the repository at `ref`, or at its default branch.

        The first checkout clones the repository into a new temporary directory,
        optionally under `scratch`; further checkouts reuse it. Only the checked
        out commit is cloned unless `shallow` is unset, which is needed to push
        new commits from the clone.
        """
        if self._disk_path is None:
            if scratch is not None:
                scratch.mkdir(parents=True, exist_ok=True)
            tmp_dir = Path(tempfile.mkdtemp(prefix=f"{self.name}-", dir=scratch))
            disk_path = tmp_dir / self.name
            try:
                clone = git.shallow_clone if shallow else git.blobless_clone
                await clone(self.url, disk_path, ref)
            except Exception:
                shutil.rmtree(tmp_dir, ignore_errors=True)
                raise

            self._tmp_dir = tmp_dir
            self._disk_path = disk_path
        elif ref is not None:
            await git.checkout(self._disk_path, ref)

        logger.debug(f"checked out '{self.canonical_name}' at '{self._disk_path}'")
        return self._disk_path

    def cleanup(self) -> None:
        if self._tmp_dir is not None:
            shutil.rmtree(self._tmp_dir, ignore_errors=True)
        self._tmp_dir = None
        self._disk_path = None

    @override
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Repository):
            return NotImplemented
        return self.name == other.name and self.owner == other.owner

    @override
    def __hash__(self) -> int:
        return hash((self.name, self.owner))

    @override
    def __repr__(self) -> str:
        return f"Repository({self.canonical_name})"
