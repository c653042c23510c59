# regpub - templates - module metadata
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

import pydantic

from regpub.templates import TemplateError
from regpub.templates import logger as parent_logger
from regpub.versions.compare import is_valid_version, version_sort_key

logger = parent_logger.getChild("metadata")


class MetadataParseError(TemplateError):
    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(path, f"Could not read metadata file at '{path}': {reason}")


class Maintainer(pydantic.BaseModel):
    """A module maintainer. Only the name is required."""

    model_config = pydantic.ConfigDict(extra="allow")

    name: str
    email: str | None = None
    github: str | None = None


class MetadataFile:
    """
    A module's `metadata.json` file, or its template.

    Unknown fields are preserved verbatim. The list of versions is always kept
    sorted, comparable versions last and in version order, everything else
    first and in lexicographic order.
    """

    path: Path
    _json: dict[str, Any]

    def __init__(self, path: Path) -> None:
        self.path = path
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise MetadataParseError(path, str(e)) from e

        if not isinstance(data, dict):
            raise MetadataParseError(path, "expected a json object")

        versions = data.get("versions")
        if not isinstance(versions, list) or not all(
            isinstance(v, str) for v in versions
        ):
            raise MetadataParseError(path, "could not parse 'versions'")

        yanked = data.get("yanked_versions")
        if not isinstance(yanked, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in yanked.items()
        ):
            raise MetadataParseError(path, "could not parse 'yanked_versions'")

        maintainers = data.get("maintainers")
        if maintainers is not None and (
            not isinstance(maintainers, list)
            or not all(isinstance(m, dict) for m in maintainers)
        ):
            raise MetadataParseError(path, "could not parse 'maintainers'")

        self._json = data
        self._sort_versions()

    @property
    def versions(self) -> list[str]:
        return list(self._json["versions"])

    @property
    def yanked_versions(self) -> dict[str, str]:
        return dict(self._json["yanked_versions"])

    @property
    def maintainers(self) -> list[Maintainer]:
        res: list[Maintainer] = []
        for entry in self._json.get("maintainers", []):
            try:
                res.append(Maintainer.model_validate(entry))
            except pydantic.ValidationError:
                logger.warning(f"ignoring malformed maintainer in '{self.path}'")
        return res

    def has_version(self, version: str) -> bool:
        return version in self._json["versions"]

    def clear_versions(self) -> None:
        self._json["versions"] = []

    def clear_yanked_versions(self) -> None:
        self._json["yanked_versions"] = {}

    def add_versions(self, *versions: str) -> None:
        self._json["versions"].extend(versions)
        self._sort_versions()

    def add_yanked_versions(self, yanked_versions: dict[str, str]) -> None:
        self._json["yanked_versions"] = {
            **self._json["yanked_versions"],
            **yanked_versions,
        }

    def save(self, dest_path: Path) -> None:
        _ = dest_path.write_text(
            json.dumps(self._json, indent=4) + "\n", encoding="utf-8"
        )

    def _sort_versions(self) -> None:
        versions: list[str] = self._json["versions"]
        comparable = [v for v in versions if is_valid_version(v)]
        other = [v for v in versions if not is_valid_version(v)]
        self._json["versions"] = sorted(other) + sorted(
            comparable, key=version_sort_key
        )

    @staticmethod
    def emergency_parse_maintainers(path: Path) -> list[Maintainer]:
        """
        Obtain as many maintainers as possible from a metadata file.

        Used when things have already gone wrong, so that we still know whom to
        notify. Validation is skipped as much as possible, and errors are ignored.
        """
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            return []

        if not isinstance(data, dict) or not isinstance(data.get("maintainers"), list):
            return []

        res: list[Maintainer] = []
        for entry in data["maintainers"]:
            if isinstance(entry, dict) and isinstance(entry.get("name"), str):
                try:
                    res.append(Maintainer.model_validate(entry))
                except pydantic.ValidationError:
                    continue
        return res

    @override
    def __repr__(self) -> str:
        return f"MetadataFile({self.path})"
