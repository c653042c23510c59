# regpub - utils - email
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
import smtplib
import ssl
from email.message import EmailMessage
from typing import override

from regpub.errors import RegPubError
from regpub.utils import Password
from regpub.utils import logger as parent_logger

logger = parent_logger.getChild("email")


class EmailError(RegPubError):
    @override
    def __str__(self) -> str:
        return "email error" + (f": {self.msg}" if self.msg else "")


class EmailClient:
    """Sends plain text e-mails through an SMTP server over TLS."""

    host: str
    port: int
    _user: str | None
    _password: Password | None

    def __init__(self, host: str, port: int = 465) -> None:
        self.host = host
        self.port = port
        self._user = None
        self._password = None

    def set_auth(self, user: str, password: str) -> None:
        self._user = user
        self._password = Password(password)

    def _send(self, msg: EmailMessage) -> None:
        ctx = ssl.create_default_context()
        with smtplib.SMTP_SSL(self.host, self.port, context=ctx) as smtp:
            if self._user is not None and self._password is not None:
                _ = smtp.login(self._user, self._password.value)
            _ = smtp.send_message(msg)

    async def send_email(
        self, to: list[str], sender: str, subject: str, text: str
    ) -> None:
        msg = EmailMessage()
        msg["To"] = ", ".join(to)
        msg["From"] = sender
        msg["Subject"] = subject
        msg.set_content(text)

        logger.debug(f"sending '{subject}' to {to} via {self.host}:{self.port}")
        try:
            await asyncio.to_thread(self._send, msg)
        except (smtplib.SMTPException, OSError) as e:
            msg_str = f"unable to send e-mail '{subject}' to {to}: {e}"
            logger.error(msg_str)
            raise EmailError(msg_str) from e
