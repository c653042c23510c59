# regpub - utilities
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

import abc
import asyncio
import os
from asyncio.streams import StreamReader
from io import StringIO
from pathlib import Path
from typing import override

from regpub.errors import RegPubError
from regpub.logger import logger as root_logger

logger = root_logger.getChild("utils")


class CommandError(RegPubError):
    @override
    def __str__(self) -> str:
        return "command error" + (f": {self.msg}" if self.msg else "")


class SecureArg(abc.ABC):
    @property
    @abc.abstractmethod
    def value(self) -> str:
        pass


class Password(SecureArg):
    _value: str

    def __init__(self, value: str) -> None:
        super().__init__()
        self._value = value

    @override
    def __str__(self) -> str:
        return "<CENSORED>"

    @override
    def __repr__(self) -> str:
        return "Password(<CENSORED>)"

    @property
    @override
    def value(self) -> str:
        return self._value


class SecureURL(SecureArg):
    _url: str
    _args: dict[str, str | SecureArg]

    def __init__(self, _url: str, **kwargs: str | SecureArg) -> None:
        super().__init__()
        self._url = _url
        self._args = kwargs

    @override
    def __str__(self) -> str:
        return self._url.format(**self._args)

    @override
    def __repr__(self) -> str:
        return f"SecureURL({self!s})"

    @override
    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SecureURL):
            return NotImplemented
        return self.value == other.value

    @override
    def __hash__(self) -> int:
        return hash(self.value)

    @property
    @override
    def value(self) -> str:
        _args = {name: self._get_value(arg) for name, arg in self._args.items()}
        return self._url.format(**_args)

    def _get_value(self, v: str | SecureArg) -> str:
        return v if isinstance(v, str) else v.value


MaybeSecure = str | SecureArg
CmdArgs = list[MaybeSecure]


def get_maybe_secure_arg(value: MaybeSecure) -> str:
    return value if isinstance(value, str) else value.value


def _sanitize_cmd(cmd: CmdArgs) -> list[str]:
    return [str(c) for c in cmd]


def get_unsecured_cmd(orig: CmdArgs) -> list[str]:
    return [get_maybe_secure_arg(c) for c in orig]


async def async_run_cmd(
    cmd: CmdArgs,
    *,
    timeout: float | None = None,
    cwd: Path | None = None,
    extra_env: dict[str, str] | None = None,
) -> tuple[int, str, str]:
    logger.debug(f"async run '{_sanitize_cmd(cmd)}', cwd: {cwd}")

    env: dict[str, str] = os.environ.copy()
    if extra_env:
        env.update(extra_env)

    try:
        p = await asyncio.create_subprocess_exec(
            *(get_unsecured_cmd(cmd)),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=env,
        )
    except OSError as e:
        logger.error(f"error running '{_sanitize_cmd(cmd)}': {e}")
        raise CommandError(f"unable to run '{_sanitize_cmd(cmd)[0]}': {e}") from e

    async def read_stream(stream: StreamReader | None) -> str:
        collected = StringIO()

        if not stream:
            return ""

        async for line in stream:
            _ = collected.write(line.decode("utf-8"))

        return collected.getvalue()

    async def monitor() -> tuple[str, str]:
        stdout, stderr = await asyncio.gather(
            read_stream(p.stdout),
            read_stream(p.stderr),
        )
        return stdout, stderr

    try:
        retcode, (stdout, stderr) = await asyncio.wait_for(
            asyncio.gather(p.wait(), monitor()), timeout=timeout
        )
    except (TimeoutError, asyncio.CancelledError):
        logger.error("async subprocess timed out or was cancelled")
        p.kill()
        _ = await p.wait()
        raise

    return retcode, stdout, stderr
