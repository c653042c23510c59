# regpub - registry entries
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

logger = root_logger.getChild("entry")


class EntryError(RegPubError):
    @override
    def __str__(self) -> str:
        return "entry error" + (f": {self.msg}" if self.msg else "")


class VersionAlreadyPublishedError(UserFacingError):
    version: str

    def __init__(self, version: str) -> None:
        super().__init__(f"Version {version} has already been published.")
        self.version = version


class NoCandidateForksError(UserFacingError):
    canonical_name: str

    def __init__(self, canonical_name: str, registry: str, app_slug: str) -> None:
        super().__init__(
            f"Cannot find a source of {registry} to push to for {canonical_name}.\n"
            + f"Please make sure that {canonical_name}'s owner, or the releaser, "
            + f"owns a fork of {registry} named like it, with the {app_slug} "
            + "app installed."
        )
        self.canonical_name = canonical_name


class PushError(EntryError):
    pass
