# regpub - templates - source template
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

# pyright: reportAny=false, reportExplicitAny=false
# pyright: reportUnknownMemberType=false, reportUnknownVariableType=false

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, override

from regpub.templates import TemplateError
from regpub.templates import logger as parent_logger
from regpub.templates.substitution import (
    SubstitutableVar,
    SubstitutionVars,
    get_unsubstituted_vars,
    substitute_vars,
)

logger = parent_logger.getChild("source")


class InvalidSourceTemplateError(TemplateError):
    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(path, f"Invalid source template file '{path}': {reason}")


class UnsubstitutedVarsError(TemplateError):
    unsubstituted: set[SubstitutableVar]

    def __init__(self, path: Path, unsubstituted: set[SubstitutableVar]) -> None:
        names = ", ".join(f"{{{v.value}}}" for v in sorted(unsubstituted))
        super().__init__(
            path, f"Template file '{path}' has unsubstituted variables: {names}"
        )
        self.unsubstituted = unsubstituted


class SourceTemplate:
    """
    The `source.template.json` file of a module.

    Only the fields we care about are validated. Everything else is kept as-is,
    and written back when the template is saved.
    """

    path: Path
    _json: dict[str, Any]

    def __init__(self, path: Path) -> None:
        self.path = path
        try:
            self._json = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.debug(f"unable to parse source template at '{path}': {e}")
            raise InvalidSourceTemplateError(path, "cannot parse file as json") from e

        if not isinstance(self._json, dict):
            raise InvalidSourceTemplateError(path, "expected a json object")

        if "strip_prefix" in self._json and not isinstance(
            self._json["strip_prefix"], str
        ):
            raise InvalidSourceTemplateError(path, "invalid strip_prefix field")

        if not self._json.get("url"):
            raise InvalidSourceTemplateError(path, "missing url field")

        if not isinstance(self._json["url"], str):
            raise InvalidSourceTemplateError(path, "invalid url field")

        if "patch_strip" in self._json and not isinstance(
            self._json["patch_strip"], int
        ):
            raise InvalidSourceTemplateError(path, "invalid patch_strip field")

    def substitute(self, subst_vars: SubstitutionVars) -> SourceTemplate:
        for field in ("url", "strip_prefix"):
            if field in self._json:
                self._json[field] = substitute_vars(self._json[field], subst_vars)
        return self

    def validate_fully_substituted(self) -> None:
        unsubstituted: set[SubstitutableVar] = set()
        for field in ("url", "strip_prefix"):
            if field in self._json:
                unsubstituted |= get_unsubstituted_vars(self._json[field])

        if unsubstituted:
            logger.error(f"unsubstituted vars in '{self.path}': {unsubstituted}")
            raise UnsubstitutedVarsError(self.path, unsubstituted)

    def set_integrity_hash(self, integrity_hash: str) -> None:
        self._json["integrity"] = integrity_hash

    def add_patch(
        self, patch_name: str, patch_integrity: str, patch_strip: int
    ) -> None:
        patches: dict[str, str] = self._json.setdefault("patches", {})
        patches[patch_name] = patch_integrity
        self._json["patch_strip"] = patch_strip

    def save(self, dest_path: Path) -> None:
        _ = dest_path.write_text(
            json.dumps(self._json, indent=4) + "\n", encoding="utf-8"
        )

    @property
    def url(self) -> str:
        return self._json["url"]

    @property
    def strip_prefix(self) -> str:
        return self._json.get("strip_prefix") or ""

    @property
    def integrity(self) -> str | None:
        return self._json.get("integrity")

    @property
    def patches(self) -> dict[str, str]:
        return dict(self._json.get("patches", {}))

    @property
    def patch_strip(self) -> int | None:
        return self._json.get("patch_strip")

    @override
    def __repr__(self) -> str:
        return f"SourceTemplate({self.path})"
