# regpub - repositories
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

logger = root_logger.getChild("repos")


class RepositoryError(RegPubError):
    @override
    def __str__(self) -> str:
        return "repository error" + (f": {self.msg}" if self.msg else "")


class RepositoryNotCheckedOutError(RepositoryError):
    def __init__(self, canonical_name: str) -> None:
        super().__init__(f"repository '{canonical_name}' is not checked out")


class InvalidCanonicalNameError(RepositoryError):
    def __init__(self, canonical_name: str) -> None:
        super().__init__(
            f"invalid repository name '{canonical_name}', expected 'owner/name'"
        )


class RulesetRepoError(UserFacingError):
    """A ruleset repository is not set up correctly for publishing."""

    canonical_name: str
    module_root: str | None

    def __init__(
        self, canonical_name: str, module_root: str | None, reason: str
    ) -> None:
        super().__init__(reason)
        self.canonical_name = canonical_name
        self.module_root = module_root
