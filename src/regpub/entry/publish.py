# regpub - registry entries - publish entries
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

from regpub.entry import logger as parent_logger
from regpub.repos.repository import Repository
from regpub.templates.metadata import Maintainer
from regpub.users import User
from regpub.utils.github import GitHubClient
from regpub.versions.compare import get_version_from_tag

logger = parent_logger.getChild("publish")


def pull_request_body(
    tag: str,
    release_url: str,
    releaser: User,
    maintainers: list[Maintainer],
) -> str:
    # only maintainers with a github handle can be tagged.
    to_tag = list(
        dict.fromkeys(
            f"@{m.github}"
            for m in maintainers
            if m.github and m.github != releaser.username
        )
    )

    body = f"Release: [{tag}]({release_url})\n\nAuthor: @{releaser.username}\n"
    if to_tag:
        body += f"\nfyi: {', '.join(to_tag)}\n"
    return body


class PublishEntryService:
    _github: GitHubClient

    def __init__(self, github: GitHubClient) -> None:
        self._github = github

    async def send_request(
        self,
        tag: str,
        fork: Repository,
        registry: Repository,
        registry_branch: str,
        branch: str,
        releaser: User,
        maintainers: list[Maintainer],
        module_names: list[str],
        release_url: str,
    ) -> int:
        """Open a pull request from `branch` in `fork` against the registry."""
        version = get_version_from_tag(tag)
        title = ", ".join(f"{name}@{version}" for name in module_names)
        body = pull_request_body(tag, release_url, releaser, maintainers)

        logger.info(
            f"opening pull request '{title}' from '{fork.owner}:{branch}' "
            + f"against '{registry.canonical_name}'"
        )
        return await self._github.create_pull_request(
            fork, branch, registry, registry_branch, title, body
        )
