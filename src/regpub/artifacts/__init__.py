# regpub - artifacts
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

from typing import override

from regpub.errors import RegPubError, UserFacingError
from regpub.logger import logger as root_logger

logger = root_logger.getChild("artifacts")


class ArtifactError(RegPubError):
    url: str

    def __init__(self, url: str, msg: str) -> None:
        super().__init__(msg)
        self.url = url

    @override
    def __str__(self) -> str:
        return f"artifact error: {self.msg}"


class ArtifactDownloadError(UserFacingError):
    """The server answered a download request with a non-retryable status."""

    url: str
    status_code: int

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(
            f"Failed to download artifact from {url}. Received status {status_code}"
        )
        self.url = url
        self.status_code = status_code


class ArtifactNoResponseError(ArtifactError):
    """The request was sent, but no response was received."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(url, f"GET {url} failed; no response received: {reason}")


class ArtifactRequestError(ArtifactError):
    """The request could not be sent at all."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(url, f"failed to GET {url}: {reason}")


class ArtifactAlreadyDownloadedError(ArtifactError):
    def __init__(self, url: str, path: str) -> None:
        super().__init__(url, f"artifact {url} already downloaded to '{path}'")


class ArtifactNotDownloadedError(ArtifactError):
    def __init__(self, url: str) -> None:
        super().__init__(url, f"artifact {url} has not been downloaded yet")
