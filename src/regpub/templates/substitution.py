# regpub - templates - variable substitution
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

import enum
from collections.abc import Mapping


class SubstitutableVar(enum.StrEnum):
    OWNER = "OWNER"
    REPO = "REPO"
    TAG = "TAG"
    VERSION = "VERSION"


SubstitutionVars = Mapping[SubstitutableVar, str]


def substitute_vars(text: str, subst_vars: SubstitutionVars) -> str:
    """Replace each `{KEY}` in `text` for every supplied key; leave others alone."""
    for key, value in subst_vars.items():
        text = text.replace(f"{{{key.value}}}", value)
    return text


def get_unsubstituted_vars(text: str) -> set[SubstitutableVar]:
    """Obtain the substitutable variables still present in `text`."""
    return {var for var in SubstitutableVar if f"{{{var.value}}}" in text}
