# regpub - errors
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


class RegPubError(Exception):
    msg: str | None

    def __init__(self, msg: str | None = None) -> None:
        super().__init__()
        self.msg = msg

    @override
    def __str__(self) -> str:
        return "regpub error" + (f": {self.msg}" if self.msg is not None else "")


class UserFacingError(RegPubError):
    """
    An error caused by something the releaser can fix.

    The message of these errors is forwarded, verbatim, to the releaser and the
    module's maintainers. Any other error is considered internal, and is only
    reported to the developers' debug address, if configured.
    """

    @override
    def __str__(self) -> str:
        return self.msg if self.msg is not None else "unknown error"
