# regpub - tests - publish
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

from unittest.mock import AsyncMock

from regpub.entry.forks import FindRegistryForkService
from regpub.entry.publish import PublishEntryService, pull_request_body
from regpub.repos.repository import Repository
from regpub.templates.metadata import Maintainer
from regpub.users import User
from regpub.utils.github import GitHubClient

REGISTRY = Repository("bazel-central-registry", "bazelbuild")


def _github(
    forks: dict[str, list[Repository]],
    sources: dict[Repository, Repository | None],
    installed: set[Repository],
) -> AsyncMock:
    github = AsyncMock(spec=GitHubClient)

    async def _forks(owner: str) -> list[Repository]:
        return forks.get(owner, [])

    async def _source(repo: Repository) -> Repository | None:
        return sources.get(repo)

    async def _installed(repo: Repository) -> bool:
        return repo in installed

    github.get_forked_repositories_by_owner.side_effect = _forks
    github.get_source_repository.side_effect = _source
    github.has_app_installation.side_effect = _installed
    return github


class TestFindRegistryForks:
    async def test_owner_forks_first(self) -> None:
        acme_fork = Repository("bazel-central-registry", "acme")
        jane_fork = Repository("bazel-central-registry", "jane")
        github = _github(
            {
                "acme": [Repository("other", "acme"), acme_fork],
                "jane": [jane_fork],
            },
            {acme_fork: REGISTRY, jane_fork: REGISTRY},
            {acme_fork, jane_fork},
        )

        svc = FindRegistryForkService(github, REGISTRY)
        candidates = await svc.find_candidate_forks(
            Repository("rules_foo", "acme"), "jane"
        )
        assert candidates == [acme_fork, jane_fork]

        # only forks named like the registry are looked at any further
        assert github.get_source_repository.await_count == 2

    async def test_releaser_is_owner(self) -> None:
        fork = Repository("bazel-central-registry", "jane")
        github = _github({"jane": [fork]}, {fork: REGISTRY}, {fork})

        svc = FindRegistryForkService(github, REGISTRY)
        candidates = await svc.find_candidate_forks(
            Repository("rules_foo", "jane"), "jane"
        )
        assert candidates == [fork]
        github.get_forked_repositories_by_owner.assert_awaited_once_with("jane")

    async def test_filters_forks(self) -> None:
        wrong_source = Repository("bazel-central-registry", "acme")
        not_installed = Repository("bazel-central-registry", "jane")
        github = _github(
            {"acme": [wrong_source], "jane": [not_installed]},
            {
                wrong_source: Repository("bazel-central-registry", "someone"),
                not_installed: REGISTRY,
            },
            {wrong_source},
        )

        svc = FindRegistryForkService(github, REGISTRY)
        candidates = await svc.find_candidate_forks(
            Repository("rules_foo", "acme"), "jane"
        )
        assert candidates == []


class TestPublish:
    def test_pull_request_body(self) -> None:
        body = pull_request_body(
            "v1.2.3",
            "https://github.com/acme/rules_foo/releases/tag/v1.2.3",
            User(username="jane"),
            [
                Maintainer(name="Jane", github="jane"),
                Maintainer(name="Bob", github="bob"),
                Maintainer(name="Carol", email="carol@example.com"),
                Maintainer(name="Bob again", github="bob"),
            ],
        )
        assert body == (
            "Release: [v1.2.3](https://github.com/acme/rules_foo/releases/tag/v1.2.3)"
            + "\n\nAuthor: @jane\n\nfyi: @bob\n"
        )

    def test_pull_request_body_without_maintainers(self) -> None:
        body = pull_request_body(
            "v1.0.0", "https://example.com/release", User(username="jane"), []
        )
        assert body == (
            "Release: [v1.0.0](https://example.com/release)\n\nAuthor: @jane\n"
        )

    async def test_send_request(self) -> None:
        github = AsyncMock(spec=GitHubClient)
        github.create_pull_request.return_value = 42
        fork = Repository("bazel-central-registry", "jane")

        svc = PublishEntryService(github)
        pr = await svc.send_request(
            "v1.2.3",
            fork,
            REGISTRY,
            "main",
            "acme/rules_foo@v1.2.3-abcd1234",
            User(username="jane"),
            [],
            ["rules_foo", "rules_foo_sub"],
            "https://example.com/release",
        )

        assert pr == 42
        github.create_pull_request.assert_awaited_once()
        args = github.create_pull_request.await_args.args
        assert args[:4] == (fork, "acme/rules_foo@v1.2.3-abcd1234", REGISTRY, "main")
        assert args[4] == "rules_foo@1.2.3, rules_foo_sub@1.2.3"
        assert args[5].startswith("Release: [v1.2.3](https://example.com/release)")
