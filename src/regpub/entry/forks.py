# regpub - registry entries - find registry forks
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

from regpub.entry import logger as parent_logger
from regpub.repos.repository import Repository
from regpub.utils.github import GitHubClient

logger = parent_logger.getChild("forks")


class FindRegistryForkService:
    _github: GitHubClient
    registry: Repository

    def __init__(self, github: GitHubClient, registry: Repository) -> None:
        self._github = github
        self.registry = registry

    async def find_candidate_forks(
        self, ruleset_repo: Repository, releaser: str
    ) -> list[Repository]:
        """
        Find the registry forks we may push a release's entry to.

        Forks owned by the ruleset's owner come first, followed by those owned by
        the releaser. Only forks named like the registry, forked from it, and with
        the app installed are considered.
        """
        owners = list(dict.fromkeys([ruleset_repo.owner, releaser]))

        forks_by_owner = await asyncio.gather(
            *(self._github.get_forked_repositories_by_owner(o) for o in owners)
        )
        named_forks = [
            fork
            for forks in forks_by_owner
            for fork in forks
            if fork.name == self.registry.name
        ]
        logger.debug(
            f"forks named '{self.registry.name}' owned by {owners}: {named_forks}"
        )

        sources = await asyncio.gather(
            *(self._github.get_source_repository(fork) for fork in named_forks)
        )
        sourced_forks = [
            fork
            for fork, source in zip(named_forks, sources, strict=True)
            if source is not None and source == self.registry
        ]

        installed = await asyncio.gather(
            *(self._github.has_app_installation(fork) for fork in sourced_forks)
        )
        candidates = [
            fork for fork, ok in zip(sourced_forks, installed, strict=True) if ok
        ]

        logger.info(
            f"candidate forks for '{ruleset_repo.canonical_name}': "
            + f"{[c.canonical_name for c in candidates]}"
        )
        return candidates
