# regpub - users
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

import pydantic

from regpub.logger import logger as root_logger
from regpub.utils.github import GITHUB_ACTIONS_BOT_LOGIN, GitHubClient, GitHubUser

logger = root_logger.getChild("users")


class User(pydantic.BaseModel):
    username: str
    email: str | None = None
    id: int | None = None
    name: str | None = None

    @property
    def display_name(self) -> str:
        return self.name if self.name else self.username


def bot_noreply_email(user_id: int, login: str) -> str:
    """Obtain the e-mail address GitHub attributes commits by `login` to."""
    return f"{user_id}+{login}@users.noreply.github.com"


class UserService:
    _github: GitHubClient

    def __init__(self, github: GitHubClient) -> None:
        self._github = github

    @staticmethod
    def is_github_actions_bot(user: User) -> bool:
        return user.username == GITHUB_ACTIONS_BOT_LOGIN

    @staticmethod
    def from_github_user(user: GitHubUser) -> User:
        return User(
            username=user.login, email=user.email, id=user.id, name=user.name
        )

    async def get_user(self, username: str) -> User:
        user = await self._github.get_user_by_username(username)
        return UserService.from_github_user(user)

    async def get_bot_user(self, bot_login: str, bot_email: str | None = None) -> User:
        """
        Obtain the identity of the app's bot account.

        Unless `bot_email` is provided, the bot's no-reply address is derived
        from its GitHub user id.
        """
        if bot_email is not None:
            return User(username=bot_login, email=bot_email, name=bot_login)

        user = await self._github.get_user_by_username(bot_login)
        logger.debug(f"resolved bot user '{bot_login}' with id {user.id}")
        return User(
            username=user.login,
            email=bot_noreply_email(user.id, user.login),
            id=user.id,
            name=user.login,
        )
