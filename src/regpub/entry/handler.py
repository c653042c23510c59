# regpub - registry entries - release event handler
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

from pathlib import Path

import pydantic

from regpub.entry import NoCandidateForksError
from regpub.entry import logger as parent_logger
from regpub.entry.create import CreateEntryService
from regpub.entry.forks import FindRegistryForkService
from regpub.entry.publish import PublishEntryService
from regpub.notifications import NotificationsService
from regpub.repos import RulesetRepoError
from regpub.repos.repository import Repository
from regpub.repos.ruleset import RulesetRepository
from regpub.templates.metadata import Maintainer, MetadataFile
from regpub.users import User, UserService
from regpub.utils.git import GitClient
from regpub.utils.github import GitHubClient

logger = parent_logger.getChild("handler")


class ReleaseEvent(pydantic.BaseModel):
    """A release was published for `owner/repo`, at `tag`, by `releaser`."""

    owner: str
    repo: str
    tag: str
    releaser: str
    release_url: str | None = None

    @property
    def canonical_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def get_release_url(self) -> str:
        if self.release_url:
            return self.release_url
        return f"https://github.com/{self.canonical_name}/releases/tag/{self.tag}"


class ReleaseEventHandler:
    """
    Publishes a release to the registry, through the first fork that works.

    Handling an event never raises. Failures are reported through the
    notifications service, if any, and logged.
    """

    _git: GitClient
    _github: GitHubClient
    _users: UserService
    _find_forks: FindRegistryForkService
    _create_entry: CreateEntryService
    _publish_entry: PublishEntryService
    _notifications: NotificationsService | None
    registry: Repository
    registry_branch: str
    app_slug: str
    bot_login: str
    bot_email: str | None
    scratch: Path | None

    def __init__(
        self,
        *,
        git: GitClient,
        github: GitHubClient,
        users: UserService,
        find_forks: FindRegistryForkService,
        create_entry: CreateEntryService,
        publish_entry: PublishEntryService,
        notifications: NotificationsService | None,
        registry: Repository,
        registry_branch: str = "main",
        app_slug: str,
        bot_login: str,
        bot_email: str | None = None,
        scratch: Path | None = None,
    ) -> None:
        self._git = git
        self._github = github
        self._users = users
        self._find_forks = find_forks
        self._create_entry = create_entry
        self._publish_entry = publish_entry
        self._notifications = notifications
        self.registry = registry
        self.registry_branch = registry_branch
        self.app_slug = app_slug
        self.bot_login = bot_login
        self.bot_email = bot_email
        self.scratch = scratch

    async def handle(self, event: ReleaseEvent) -> int | None:
        """Handle a release event, returning the opened pull request's number."""
        logger.info(
            f"release published: {event.canonical_name}@{event.tag} "
            + f"by @{event.releaser}"
        )

        ruleset_repo = RulesetRepository(event.repo, event.owner)
        releaser = User(username=event.releaser)
        maintainers: list[Maintainer] = []

        try:
            await self._prepare_ruleset(ruleset_repo, event.tag)
            maintainers = ruleset_repo.get_all_maintainers()
            releaser = await self._get_releaser(ruleset_repo, event.releaser)

            candidates = await self._find_forks.find_candidate_forks(
                ruleset_repo, event.releaser
            )
            if not candidates:
                logger.error(f"no candidate forks for '{event.canonical_name}'")
                raise NoCandidateForksError(
                    event.canonical_name,
                    self.registry.canonical_name,
                    self.app_slug,
                )

            errors: list[Exception] = []
            for fork in candidates:
                logger.info(f"selecting fork '{fork.canonical_name}'")
                try:
                    pr = await self._publish_with_fork(
                        event, ruleset_repo, fork, releaser, maintainers
                    )
                except Exception as e:
                    logger.exception(
                        f"failed to publish using fork '{fork.canonical_name}'"
                    )
                    errors.append(e)
                    continue

                logger.info(
                    f"created pull request #{pr} against "
                    + f"'{self.registry.canonical_name}'"
                )
                return pr

            await self._notify(releaser, maintainers, ruleset_repo, event.tag, errors)

        except Exception as e:
            logger.exception(
                f"unable to publish {event.canonical_name}@{event.tag}: {e}"
            )
            if not maintainers and isinstance(e, RulesetRepoError):
                maintainers = self._emergency_maintainers(ruleset_repo, e)
            await self._notify(releaser, maintainers, ruleset_repo, event.tag, [e])

        finally:
            ruleset_repo.cleanup()

        return None

    async def _prepare_ruleset(self, ruleset_repo: RulesetRepository, tag: str) -> None:
        _ = await ruleset_repo.checkout(self._git, tag, scratch=self.scratch)
        ruleset_repo.validate()

    def _emergency_maintainers(
        self, ruleset_repo: RulesetRepository, e: RulesetRepoError
    ) -> list[Maintainer]:
        if e.module_root is None or not ruleset_repo.is_checked_out:
            return []
        path = ruleset_repo.templates(e.module_root).metadata_template_path
        return MetadataFile.emergency_parse_maintainers(path)

    async def _get_releaser(
        self, ruleset_repo: RulesetRepository, username: str
    ) -> User:
        fixed = ruleset_repo.config.fixed_releaser
        if fixed is not None:
            logger.info(f"publishing as fixed releaser '{fixed.login}'")
            return User(username=fixed.login, email=fixed.email)
        return await self._users.get_user(username)

    async def _get_author(self, releaser: User) -> User:
        if UserService.is_github_actions_bot(releaser):
            logger.info(f"releaser is '{releaser.username}', committing as the bot")
            return await self._users.get_bot_user(self.bot_login, self.bot_email)
        return releaser

    async def _publish_with_fork(
        self,
        event: ReleaseEvent,
        ruleset_repo: RulesetRepository,
        fork: Repository,
        releaser: User,
        maintainers: list[Maintainer],
    ) -> int:
        registry_repo = Repository(self.registry.name, self.registry.owner)
        try:
            author = await self._get_author(releaser)
            entry = await self._create_entry.new_entry(
                ruleset_repo,
                registry_repo,
                fork,
                event.tag,
                author,
                registry_branch=self.registry_branch,
                scratch=self.scratch,
            )
            logger.info(
                f"pushed entry to fork '{fork.canonical_name}' on '{entry.branch}'"
            )

            pr = await self._publish_entry.send_request(
                event.tag,
                fork,
                self.registry,
                self.registry_branch,
                entry.branch,
                releaser,
                maintainers,
                entry.module_names,
                event.get_release_url(),
            )
        finally:
            registry_repo.cleanup()

        try:
            await self._github.enable_auto_merge(self.registry, pr)
        except Exception as e:
            logger.warning(f"unable to enable auto-merge on #{pr}: {e}")

        return pr

    async def _notify(
        self,
        releaser: User,
        maintainers: list[Maintainer],
        repository: Repository,
        tag: str,
        errors: list[Exception],
    ) -> None:
        if self._notifications is None:
            logger.warning("notifications not configured, not reporting errors")
            return

        try:
            await self._notifications.notify_error(
                releaser, maintainers, repository, tag, errors
            )
        except Exception as e:
            logger.exception(f"unable to send error notifications: {e}")
