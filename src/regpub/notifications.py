# regpub - notifications
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
import traceback

from regpub.errors import UserFacingError
from regpub.logger import logger as root_logger
from regpub.repos.repository import Repository
from regpub.templates.metadata import Maintainer
from regpub.users import User, UserService
from regpub.utils.email import EmailClient, EmailError
from regpub.utils.github import GitHubError
from regpub.utils.secrets import SecretsClient

logger = root_logger.getChild("notifications")


SUBJECT = "Publishing to the registry failed"
UNKNOWN_ERROR_MSG = (
    "An unknown error occurred. The developers have been notified, "
    + "if they could be."
)


class NotificationsService:
    """
    Reports a release that could not be published.

    Releasers and maintainers only ever see the messages of user-facing errors.
    Anything else goes to the developers' debug address, when configured.
    """

    _email: EmailClient
    _secrets: SecretsClient
    _users: UserService
    sender: str
    debug_email: str | None
    _authenticated: bool

    def __init__(
        self,
        email: EmailClient,
        secrets: SecretsClient,
        users: UserService,
        *,
        sender: str,
        debug_email: str | None = None,
    ) -> None:
        self._email = email
        self._secrets = secrets
        self._users = users
        self.sender = sender
        self.debug_email = debug_email
        self._authenticated = False

    async def _set_auth(self) -> None:
        if self._authenticated:
            return

        user, password = await asyncio.gather(
            self._secrets.access_secret("notifications-email-user"),
            self._secrets.access_secret("notifications-email-password"),
        )
        self._email.set_auth(user, password)
        self._authenticated = True

    async def _recipients(
        self, releaser: User, maintainers: list[Maintainer]
    ) -> list[str]:
        recipients: list[str] = []
        if releaser.email:
            recipients.append(releaser.email)

        recipients.extend(m.email for m in maintainers if m.email)

        # maintainers with only a github handle, and a public e-mail address.
        handles = [m.github for m in maintainers if m.github and not m.email]
        users = await asyncio.gather(
            *(self._users.get_user(h) for h in handles), return_exceptions=True
        )
        for handle, user in zip(handles, users, strict=True):
            match user:
                case User(email=str() as email) if email:
                    recipients.append(email)
                case GitHubError():
                    logger.warning(f"unable to look up maintainer '{handle}': {user}")
                case BaseException():
                    raise user
                case _:
                    pass

        return list(dict.fromkeys(recipients))

    async def notify_error(
        self,
        releaser: User,
        maintainers: list[Maintainer],
        repository: Repository,
        tag: str,
        errors: list[Exception],
    ) -> None:
        await self._set_auth()

        recipients = await self._recipients(releaser, maintainers)
        release = f"{repository.canonical_name}@{tag}"

        # the developers still hear about internal errors if the users can't
        user_error: EmailError | None = None
        if recipients:
            try:
                await self._send_error_email(recipients, release, errors)
            except EmailError as e:
                logger.error(f"unable to notify {recipients} about {release}: {e}")
                user_error = e
        else:
            logger.warning(f"no one to notify about failure publishing {release}")

        if self.debug_email:
            await self._send_error_email_to_devs(releaser, release, errors)

        if user_error is not None:
            raise user_error

    async def _send_error_email(
        self, recipients: list[str], release: str, errors: list[Exception]
    ) -> None:
        content = f"Failed to publish an entry for {release} to the registry.\n\n"

        user_errors = [e for e in errors if isinstance(e, UserFacingError)]
        for error in user_errors:
            content += f"{error}\n\n"

        if not user_errors:
            content += UNKNOWN_ERROR_MSG

        logger.info(f"sending error e-mail to {recipients}")
        logger.debug(f"content:\n{content}")
        await self._email.send_email(recipients, self.sender, SUBJECT, content)

    async def _send_error_email_to_devs(
        self, releaser: User, release: str, errors: list[Exception]
    ) -> None:
        assert self.debug_email is not None

        unknown_errors = [e for e in errors if not isinstance(e, UserFacingError)]
        if not unknown_errors:
            return

        content = (
            f"User {releaser.username} <{releaser.email}> encountered "
            + f"{len(unknown_errors)} unknown error(s) publishing {release}.\n\n"
        )
        for error in unknown_errors:
            content += "".join(traceback.format_exception(error)) + "\n"

        await self._email.send_email(
            [self.debug_email], self.sender, f"{SUBJECT}: {release}", content
        )
