# regpub - registry entries - create entries
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

import asyncio
import posixpath
import secrets
import shutil
from pathlib import Path
from typing import NamedTuple

from regpub.artifacts.archive import ReleaseArchive
from regpub.artifacts.artifact import DownloadOptions
from regpub.artifacts.integrity import compute_integrity_hash
from regpub.artifacts.retry import RetryPolicy, retry_async
from regpub.entry import PushError, VersionAlreadyPublishedError
from regpub.entry import logger as parent_logger
from regpub.modules.module_file import MODULE_FILE_NAME, ModuleFile
from regpub.modules.patch import create_patch, parse_patch
from regpub.repos.repository import Repository
from regpub.repos.ruleset import ModuleTemplates, RulesetRepository
from regpub.templates.attestations import AttestationsTemplate
from regpub.templates.metadata import MetadataFile
from regpub.templates.source import SourceTemplate
from regpub.templates.substitution import SubstitutableVar, SubstitutionVars
from regpub.users import User
from regpub.utils.git import GitClient, GitError
from regpub.utils.github import GitHubClient
from regpub.versions.compare import get_version_from_tag

logger = parent_logger.getChild("create")


VERSION_PATCH_NAME = "module_dot_bazel_version.patch"
DEFAULT_PATCH_STRIP = 1
DEFAULT_PUSH_ATTEMPTS = 5
DEFAULT_PUSH_DELAY_FACTOR = 10.0
AUTHED_FORK_REMOTE = "authed-fork"


class NewEntry(NamedTuple):
    branch: str
    module_names: list[str]


def substitution_vars_for(repository: Repository, tag: str) -> SubstitutionVars:
    return {
        SubstitutableVar.OWNER: repository.owner,
        SubstitutableVar.REPO: repository.name,
        SubstitutableVar.TAG: tag,
        SubstitutableVar.VERSION: get_version_from_tag(tag),
    }


def _merge_metadata(
    template: MetadataFile, registry_metadata: MetadataFile | None, version: str
) -> MetadataFile:
    """
    Merge the template's metadata with what the registry already knows about.

    The versions listed in the template, if any, are ignored: the registry is
    the authority on what has been published, and yanked.
    """
    template.clear_versions()
    template.clear_yanked_versions()

    if registry_metadata is not None:
        template.add_versions(*registry_metadata.versions)
        template.add_yanked_versions(registry_metadata.yanked_versions)

    template.add_versions(version)
    return template


class CreateEntryService:
    """Creates registry entries for a ruleset's release, and pushes them to a fork."""

    _git: GitClient
    _github: GitHubClient | None
    _download_options: DownloadOptions
    _push_policy: RetryPolicy

    def __init__(
        self,
        git: GitClient,
        github: GitHubClient | None = None,
        *,
        download_options: DownloadOptions | None = None,
        push_attempts: int = DEFAULT_PUSH_ATTEMPTS,
        push_delay_factor: float = DEFAULT_PUSH_DELAY_FACTOR,
    ) -> None:
        self._git = git
        self._github = github
        self._download_options = (
            download_options if download_options is not None else DownloadOptions()
        )
        self._push_policy = RetryPolicy(
            max_retries=max(push_attempts - 1, 0), delay_factor=push_delay_factor
        )

    async def create_entry_files_from_templates(
        self,
        templates: ModuleTemplates,
        registry_path: Path,
        version: str,
        subst_vars: SubstitutionVars,
    ) -> str:
        """
        Create the registry entry for one module, from its template files.

        Nothing is written to the registry until the module's version is known
        not to have been published yet. Returns the module's name.
        """
        source_template = templates.source_template().substitute(subst_vars)
        source_template.validate_fully_substituted()

        attestations_template = templates.attestations_template()
        if attestations_template is not None:
            _ = attestations_template.substitute(subst_vars)
            attestations_template.validate_fully_substituted()

        metadata_template = templates.metadata_template()

        logger.info(f"fetching release archive from '{source_template.url}'")
        archive = await ReleaseArchive.fetch(
            source_template.url, source_template.strip_prefix, self._download_options
        )
        try:
            module_file = await archive.extract_module_file(templates.module_root)
            source_template.set_integrity_hash(archive.compute_integrity_hash())
            module_name = module_file.module_name

            entry_path = registry_path / "modules" / module_name
            metadata_path = entry_path / "metadata.json"
            registry_metadata = (
                MetadataFile(metadata_path) if metadata_path.exists() else None
            )
            if registry_metadata is not None and registry_metadata.has_version(
                version
            ):
                logger.error(f"version {version} of '{module_name}' already published")
                raise VersionAlreadyPublishedError(version)

            version_path = entry_path / version
            version_path.mkdir(parents=True, exist_ok=True)

            metadata = _merge_metadata(metadata_template, registry_metadata, version)

            self._add_patches(
                templates, source_template, module_file, version_path
            )

            if attestations_template is not None:
                await attestations_template.compute_integrity_hashes(
                    self._download_options
                )

            source_template.validate_fully_substituted()

            metadata.save(metadata_path)
            source_template.save(version_path / "source.json")
            module_file.save(version_path / MODULE_FILE_NAME)
            _ = shutil.copyfile(
                templates.presubmit_path, version_path / "presubmit.yml"
            )
            if attestations_template is not None:
                attestations_template.save(version_path / "attestations.json")
        finally:
            archive.cleanup()

        logger.info(f"created entry for '{module_name}@{version}' in '{version_path}'")
        return module_name

    def _add_patches(
        self,
        templates: ModuleTemplates,
        source_template: SourceTemplate,
        module_file: ModuleFile,
        version_path: Path,
    ) -> None:
        patch_strip = (
            source_template.patch_strip
            if source_template.patch_strip is not None
            else DEFAULT_PATCH_STRIP
        )
        patches_dest = version_path / "patches"
        module_path = posixpath.normpath(
            posixpath.join(templates.module_root, MODULE_FILE_NAME)
        )

        user_patches = (
            sorted(templates.patches_path.glob("*.patch"))
            if templates.patches_path.is_dir()
            else []
        )
        for patch_path in user_patches:
            patches_dest.mkdir(parents=True, exist_ok=True)
            dest = patches_dest / patch_path.name
            _ = shutil.copyfile(patch_path, dest)
            source_template.add_patch(
                patch_path.name, compute_integrity_hash(dest), patch_strip
            )

            # keep the saved module file identical to the patched one.
            patch_text = patch_path.read_text(encoding="utf-8", errors="replace")
            for file_patch in parse_patch(patch_text, allow_empty=True):
                if file_patch.targets(module_path, strip=patch_strip):
                    logger.debug(f"applying '{patch_path.name}' to module file")
                    module_file.patch_content(file_patch)

        version = version_path.name
        if module_file.version == version:
            return

        logger.info(
            f"module file version '{module_file.version}' does not match release "
            + f"version '{version}', generating '{VERSION_PATCH_NAME}'"
        )
        old_content = module_file.content
        module_file.stamp_version(version)
        patch = create_patch(
            old_content, module_file.content, module_path, strip=patch_strip
        )

        patches_dest.mkdir(parents=True, exist_ok=True)
        dest = patches_dest / VERSION_PATCH_NAME
        _ = dest.write_text(patch, encoding="utf-8")
        source_template.add_patch(
            VERSION_PATCH_NAME, compute_integrity_hash(dest), patch_strip
        )

    async def create_entry_files(
        self,
        ruleset_repo: RulesetRepository,
        registry_repo: Repository,
        tag: str,
        module_root: str,
    ) -> str:
        return await self.create_entry_files_from_templates(
            ruleset_repo.templates(module_root),
            registry_repo.disk_path,
            get_version_from_tag(tag),
            substitution_vars_for(ruleset_repo, tag),
        )

    async def create_entry_files_for_all_roots(
        self, ruleset_repo: RulesetRepository, registry_repo: Repository, tag: str
    ) -> list[str]:
        module_names: list[str] = []
        for module_root in ruleset_repo.module_roots:
            module_names.append(
                await self.create_entry_files(
                    ruleset_repo, registry_repo, tag, module_root
                )
            )
        return module_names

    async def commit_entry_files(
        self,
        ruleset_repo: Repository,
        registry_repo: Repository,
        tag: str,
        module_names: list[str],
        author: User,
    ) -> str:
        """Commit the new entries to a new branch, named after the release."""
        version = get_version_from_tag(tag)
        branch = f"{ruleset_repo.canonical_name}@{tag}-{secrets.token_hex(4)}"
        modules = ", ".join(f"{name}@{version}" for name in module_names)
        commit_msg = f"{modules}\n\nRelease: {ruleset_repo.canonical_name}@{tag}"

        email = (
            author.email
            if author.email
            else f"{author.username}@users.noreply.github.com"
        )
        await self._git.set_user_name_and_email(
            registry_repo.disk_path, author.display_name, email
        )
        await self._git.checkout_new_branch_from_head(registry_repo.disk_path, branch)
        await self._git.commit_changes(registry_repo.disk_path, commit_msg)

        logger.info(f"committed {modules} to branch '{branch}'")
        return branch

    async def push_entry_to_fork(
        self, fork: Repository, registry_repo: Repository, branch: str
    ) -> None:
        """Push `branch` to `fork`, retrying with exponential backoff."""
        if self._github is None:
            raise PushError("no github client to authenticate the push with")

        repo_path = registry_repo.disk_path
        if not await self._git.has_remote(repo_path, AUTHED_FORK_REMOTE):
            remote_url = await self._github.get_authenticated_remote_url(fork)
            await self._git.add_remote(repo_path, AUTHED_FORK_REMOTE, remote_url)

        async def _push() -> None:
            await self._git.push(repo_path, AUTHED_FORK_REMOTE, branch)

        try:
            await retry_async(_push, self._push_policy)
        except GitError as e:
            msg = f"unable to push '{branch}' to '{fork.canonical_name}': {e}"
            logger.error(msg)
            raise PushError(msg) from e

    async def new_entry(
        self,
        ruleset_repo: RulesetRepository,
        registry_repo: Repository,
        fork: Repository,
        tag: str,
        author: User,
        *,
        registry_branch: str | None = None,
        scratch: Path | None = None,
    ) -> NewEntry:
        """
        Create, commit, and push entries for every module root of a release.

        The ruleset is checked out at the release tag, the registry at
        `registry_branch`, or its default branch.
        """
        _ = await asyncio.gather(
            ruleset_repo.checkout(self._git, tag, scratch=scratch),
            registry_repo.checkout(
                self._git, registry_branch, scratch=scratch, shallow=False
            ),
        )

        module_names = await self.create_entry_files_for_all_roots(
            ruleset_repo, registry_repo, tag
        )
        branch = await self.commit_entry_files(
            ruleset_repo, registry_repo, tag, module_names, author
        )
        await self.push_entry_to_fork(fork, registry_repo, branch)
        return NewEntry(branch, module_names)
