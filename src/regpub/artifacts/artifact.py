# regpub - artifacts - downloadable artifacts
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

import shutil
import tempfile
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse

import aiofiles
import httpx

from regpub.artifacts import (
    ArtifactAlreadyDownloadedError,
    ArtifactDownloadError,
    ArtifactNoResponseError,
    ArtifactNotDownloadedError,
    ArtifactRequestError,
)
from regpub.artifacts import logger as parent_logger
from regpub.artifacts.integrity import compute_integrity_hash
from regpub.artifacts.retry import RetryHook, RetryPolicy, retry_async

logger = parent_logger.getChild("artifact")


# Three retries with a default delay factor of 10 seconds gives at least 70
# seconds for a release archive to be uploaded after the release is published.
DOWNLOAD_RETRIES = 3
DEFAULT_BACKOFF_DELAY_FACTOR = 10.0
DEFAULT_TIMEOUT = 60.0

_CHUNK_SIZE = 0x10000


class DownloadOptions:
    backoff_delay_factor: float
    timeout: float
    on_retry: RetryHook | None
    transport: httpx.AsyncBaseTransport | None

    def __init__(
        self,
        *,
        backoff_delay_factor: float = DEFAULT_BACKOFF_DELAY_FACTOR,
        timeout: float = DEFAULT_TIMEOUT,
        on_retry: RetryHook | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.backoff_delay_factor = backoff_delay_factor
        self.timeout = timeout
        self.on_retry = on_retry
        self.transport = transport


def is_retryable_download_error(e: BaseException) -> bool:
    """
    Check whether a failed download should be retried.

    Besides network errors and server-side errors, HTTP 404 is retried too:
    automated release workflows may upload their artifacts shortly after the
    release is published.
    """
    if isinstance(e, httpx.HTTPStatusError):
        status = e.response.status_code
        return status == 404 or status == 429 or status >= 500
    return isinstance(e, httpx.TransportError)


def download_retry_policy(options: DownloadOptions) -> RetryPolicy:
    return RetryPolicy(
        max_retries=DOWNLOAD_RETRIES,
        delay_factor=options.backoff_delay_factor,
        retryable=is_retryable_download_error,
    )


def _filename_from_url(url: str) -> str:
    name = PurePosixPath(unquote(urlparse(url).path)).name
    return name if name else "artifact"


async def _copy_file(src: Path, dest: Path) -> None:
    async with (
        aiofiles.open(src, "rb") as src_f,
        aiofiles.open(dest, "wb") as dest_f,
    ):
        while chunk := await src_f.read(_CHUNK_SIZE):
            _ = await dest_f.write(chunk)


class Artifact:
    """An artifact that can be downloaded and have its integrity hash computed."""

    url: str
    _disk_path: Path | None
    _tmp_dir: Path | None

    def __init__(self, url: str) -> None:
        self.url = url
        self._disk_path = None
        self._tmp_dir = None

    @property
    def is_downloaded(self) -> bool:
        return self._disk_path is not None

    @property
    def disk_path(self) -> Path:
        if self._disk_path is None:
            raise ArtifactNotDownloadedError(self.url)
        return self._disk_path

    async def download(self, options: DownloadOptions | None = None) -> Path:
        """Download the artifact to a new temporary directory."""
        if self._disk_path is not None:
            raise ArtifactAlreadyDownloadedError(self.url, str(self._disk_path))

        options = options if options is not None else DownloadOptions()

        tmp_dir = Path(tempfile.mkdtemp(prefix="artifact-"))
        dest = tmp_dir / _filename_from_url(self.url)

        try:
            if self.url.startswith("file://"):
                # allows swapping in a local path, e.g. for hermetic testing.
                src = Path(unquote(urlparse(self.url).path))
                logger.debug(f"copy artifact from '{src}' to '{dest}'")
                await _copy_file(src, dest)
            else:
                await self._download_http(dest, options)
        except Exception:
            shutil.rmtree(tmp_dir, ignore_errors=True)
            raise

        self._tmp_dir = tmp_dir
        self._disk_path = dest
        return dest

    async def _download_http(self, dest: Path, options: DownloadOptions) -> None:
        logger.info(f"downloading artifact from '{self.url}'")

        async with httpx.AsyncClient(
            transport=options.transport,
            follow_redirects=True,
            timeout=options.timeout,
        ) as client:

            async def _attempt() -> None:
                # a fresh request, with a fresh timeout, on every attempt.
                async with client.stream("GET", self.url) as res:
                    _ = res.raise_for_status()
                    async with aiofiles.open(dest, "wb") as f:
                        async for chunk in res.aiter_bytes(_CHUNK_SIZE):
                            _ = await f.write(chunk)

            try:
                await retry_async(
                    _attempt,
                    download_retry_policy(options),
                    on_retry=options.on_retry,
                )
            except httpx.HTTPStatusError as e:
                logger.error(
                    f"unable to download '{self.url}': "
                    + f"status {e.response.status_code}"
                )
                raise ArtifactDownloadError(self.url, e.response.status_code) from e
            except (
                httpx.ConnectError,
                httpx.ConnectTimeout,
                httpx.UnsupportedProtocol,
            ) as e:
                logger.error(f"unable to send request to '{self.url}': {e}")
                raise ArtifactRequestError(self.url, str(e)) from e
            except httpx.TransportError as e:
                logger.error(f"no response downloading '{self.url}': {e}")
                raise ArtifactNoResponseError(self.url, str(e)) from e
            except httpx.HTTPError as e:
                logger.error(f"unable to download '{self.url}': {e}")
                raise ArtifactRequestError(self.url, str(e)) from e

    def compute_integrity_hash(self) -> str:
        if self._disk_path is None:
            raise ArtifactNotDownloadedError(self.url)
        return compute_integrity_hash(self._disk_path)

    def cleanup(self) -> None:
        if self._tmp_dir is not None:
            shutil.rmtree(self._tmp_dir, ignore_errors=True)
        self._tmp_dir = None
        self._disk_path = None
