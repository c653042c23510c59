# regpub - utils - git
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

import errno
from pathlib import Path
from typing import override

from regpub.errors import RegPubError
from regpub.utils import CmdArgs, MaybeSecure, async_run_cmd
from regpub.utils import logger as parent_logger

logger = parent_logger.getChild("git")


class GitError(RegPubError):
    retcode: int

    def __init__(self, retcode: int, msg: str) -> None:
        super().__init__(msg)
        self.retcode = retcode

    @override
    def __str__(self) -> str:
        return f"git error: {self.msg} (retcode: {self.retcode})"


async def run_git(args: CmdArgs, *, path: Path | None = None) -> str:
    """
    Run a git command within the repository.

    If `path` is provided, run the command in `path`. Otherwise, run in the current
    directory.
    """
    cmd: CmdArgs = ["git"]
    if path is not None:
        cmd.extend(["-C", path.resolve().as_posix()])

    cmd.extend(args)
    try:
        rc, stdout, stderr = await async_run_cmd(cmd)
    except Exception as e:
        msg = f"unexpected error running command: {e}"
        logger.error(msg)
        raise GitError(errno.ENOTRECOVERABLE, msg) from e

    if rc != 0:
        logger.error(f"unable to obtain result from git '{args}': {stderr}")
        raise GitError(rc, stderr)

    return stdout


class GitClient:
    """Thin wrapper over the `git` executable, as needed to publish an entry."""

    async def _clone(
        self,
        url: MaybeSecure,
        dest_path: Path,
        branch_or_tag: str | None,
        clone_args: CmdArgs,
    ) -> None:
        cmd: CmdArgs = ["clone", "--quiet", *clone_args]
        if branch_or_tag is not None:
            cmd.extend(["--branch", branch_or_tag, "--single-branch"])
        cmd.extend([url, dest_path.resolve().as_posix()])

        logger.info(f"cloning '{url}' to '{dest_path}' (ref: {branch_or_tag})")
        try:
            _ = await run_git(cmd)
        except GitError as e:
            msg = f"unable to clone '{url}' to '{dest_path}': {e}"
            logger.error(msg)
            raise GitError(e.retcode, msg) from e

    async def shallow_clone(
        self, url: MaybeSecure, dest_path: Path, branch_or_tag: str | None = None
    ) -> None:
        """
        Clone a single commit of `url` into `dest_path`.

        If `branch_or_tag` is provided, clone the tip of that branch, or the
        commit the tag points to. Otherwise, clone the default branch's tip.
        """
        await self._clone(url, dest_path, branch_or_tag, ["--depth", "1"])

    async def blobless_clone(
        self, url: MaybeSecure, dest_path: Path, branch_or_tag: str | None = None
    ) -> None:
        """
        Clone the history of `url`, without file contents besides the checkout's.

        Unlike a shallow clone, new commits can be pushed to remotes that are
        missing some of that history, e.g. forks behind their source.
        """
        await self._clone(url, dest_path, branch_or_tag, ["--filter=blob:none"])

    async def checkout(self, repo_path: Path, ref: str) -> None:
        try:
            _ = await run_git(["checkout", "--quiet", ref], path=repo_path)
        except GitError as e:
            msg = f"unable to checkout '{ref}' in '{repo_path}': {e}"
            logger.error(msg)
            raise GitError(e.retcode, msg) from e

    async def set_user_name_and_email(
        self, repo_path: Path, name: str, email: str
    ) -> None:
        _ = await run_git(["config", "user.name", name], path=repo_path)
        _ = await run_git(["config", "user.email", email], path=repo_path)

    async def checkout_new_branch_from_head(self, repo_path: Path, branch: str) -> None:
        try:
            _ = await run_git(["checkout", "--quiet", "-b", branch], path=repo_path)
        except GitError as e:
            msg = f"unable to create branch '{branch}' in '{repo_path}': {e}"
            logger.error(msg)
            raise GitError(e.retcode, msg) from e

    async def commit_changes(self, repo_path: Path, commit_msg: str) -> None:
        """Stage every change in the repository, and commit it."""
        try:
            _ = await run_git(["add", "--all", "."], path=repo_path)
            _ = await run_git(["commit", "--quiet", "-m", commit_msg], path=repo_path)
        except GitError as e:
            msg = f"unable to commit changes in '{repo_path}': {e}"
            logger.error(msg)
            raise GitError(e.retcode, msg) from e

    async def has_remote(self, repo_path: Path, remote: str) -> bool:
        val = await run_git(["remote"], path=repo_path)
        return remote in val.split()

    async def add_remote(self, repo_path: Path, remote: str, url: MaybeSecure) -> None:
        try:
            _ = await run_git(["remote", "add", remote, url], path=repo_path)
        except GitError as e:
            msg = f"unable to add remote '{remote}' to '{repo_path}': {e}"
            logger.error(msg)
            raise GitError(e.retcode, msg) from e

    async def push(self, repo_path: Path, remote: str, branch: str) -> None:
        logger.debug(f"push branch '{branch}' to remote '{remote}'")
        try:
            _ = await run_git(["push", "--quiet", remote, branch], path=repo_path)
        except GitError as e:
            msg = f"unable to push '{branch}' to '{remote}': {e}"
            logger.error(msg)
            raise GitError(e.retcode, msg) from e
