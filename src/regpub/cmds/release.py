# regpub - commands - handle releases
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

import asyncio
import errno
import sys

import click

from regpub.artifacts.artifact import DownloadOptions
from regpub.cmds import perror, psuccess, with_config
from regpub.cmds import logger as parent_logger
from regpub.config import Config
from regpub.entry.create import CreateEntryService
from regpub.entry.forks import FindRegistryForkService
from regpub.entry.handler import ReleaseEvent, ReleaseEventHandler
from regpub.entry.publish import PublishEntryService
from regpub.errors import RegPubError
from regpub.notifications import NotificationsService
from regpub.repos.repository import Repository
from regpub.users import UserService
from regpub.utils.email import EmailClient
from regpub.utils.git import GitClient
from regpub.utils.github import GitHubClient, InstallationTokenCache
from regpub.utils.secrets import SecretsClient, get_secrets_client

logger = parent_logger.getChild("release")


GITHUB_APP_TOKEN_SECRET = "github-app-token"


def build_handler(config: Config, secrets: SecretsClient) -> ReleaseEventHandler:
    """Assemble a release event handler, and its collaborators, from `config`."""

    async def _app_token() -> str:
        return await secrets.access_secret(GITHUB_APP_TOKEN_SECRET)

    git = GitClient()
    github = GitHubClient(
        api_url=config.github.api_url,
        app_token=_app_token,
        token_cache=InstallationTokenCache(),
    )
    users = UserService(github)
    registry = Repository.from_canonical_name(config.registry)

    notifications: NotificationsService | None = None
    if config.notifications is not None:
        notifications = NotificationsService(
            EmailClient(config.notifications.smtp_host, config.notifications.smtp_port),
            secrets,
            users,
            sender=config.notifications.sender,
            debug_email=config.notifications.debug_email,
        )

    return ReleaseEventHandler(
        git=git,
        github=github,
        users=users,
        find_forks=FindRegistryForkService(github, registry),
        create_entry=CreateEntryService(
            git,
            github,
            download_options=DownloadOptions(
                backoff_delay_factor=config.backoff_delay_factor
            ),
            push_attempts=config.push_retries,
            push_delay_factor=config.backoff_delay_factor,
        ),
        publish_entry=PublishEntryService(github),
        notifications=notifications,
        registry=registry,
        registry_branch=config.registry_branch,
        app_slug=config.github.app_slug,
        bot_login=config.github.bot_username,
        bot_email=config.github.bot_email,
        scratch=config.scratch,
    )


@click.command("handle-release", help="Publish a release to the registry.")
@click.argument("repository", metavar="OWNER/REPO", type=str, required=True)
@click.argument("tag", metavar="TAG", type=str, required=True)
@click.option(
    "--releaser",
    type=str,
    required=True,
    help="GitHub login of who published the release.",
)
@click.option(
    "--release-url",
    type=str,
    required=False,
    help="URL of the release's page.",
)
@with_config
def cmd_handle_release(
    config: Config,
    repository: str,
    tag: str,
    releaser: str,
    release_url: str | None,
) -> None:
    try:
        repo = Repository.from_canonical_name(repository)
        handler = build_handler(config, get_secrets_client(config.secrets))
    except RegPubError as e:
        perror(str(e))
        sys.exit(errno.EINVAL)

    event = ReleaseEvent(
        owner=repo.owner,
        repo=repo.name,
        tag=tag,
        releaser=releaser,
        release_url=release_url,
    )
    pr = asyncio.run(handler.handle(event))
    if pr is None:
        perror(f"unable to publish {repository}@{tag}")
        sys.exit(1)

    psuccess(f"opened pull request #{pr} against {config.registry}")
