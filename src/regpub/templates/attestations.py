# regpub - templates - attestations
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

# pyright: reportExplicitAny=false, reportAny=false

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

from regpub.artifacts import ArtifactDownloadError
from regpub.artifacts.artifact import Artifact, DownloadOptions
from regpub.errors import UserFacingError
from regpub.templates import TemplateError
from regpub.templates import logger as parent_logger
from regpub.templates.source import UnsubstitutedVarsError
from regpub.templates.substitution import (
    SubstitutableVar,
    SubstitutionVars,
    get_unsubstituted_vars,
    substitute_vars,
)

logger = parent_logger.getChild("attestations")


ATTESTATIONS_TEMPLATE_FILE_NAME = "attestations.template.json"


class AttestationsTemplateError(TemplateError):
    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(path, f"Invalid attestations template '{path}': {reason}")


class AttestationDownloadError(UserFacingError):
    url: str
    status_code: int

    def __init__(self, url: str, status_code: int) -> None:
        msg = (
            f"Failed to download attestation from {url}. "
            + f"Received status {status_code}."
        )
        if status_code == 404:
            msg += (
                "\n\nDouble check that the `url` in your ruleset's "
                + f".bcr/{ATTESTATIONS_TEMPLATE_FILE_NAME} is correct."
            )
        super().__init__(msg)
        self.url = url
        self.status_code = status_code


class AttestationsTemplate:
    """
    The optional `attestations.template.json` file of a module.

    Only each attestation's `url` is validated; everything else in the
    document is preserved as written by the ruleset's authors.
    """

    path: Path
    _json: dict[str, Any]

    def __init__(self, path: Path) -> None:
        self.path = path
        try:
            self._json = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.debug(f"unable to parse attestations template '{path}': {e}")
            raise AttestationsTemplateError(path, str(e)) from e

        if not isinstance(self._json, dict):  # pyright: ignore[reportUnnecessaryIsInstance]
            raise AttestationsTemplateError(path, "expected a json object")

        if not self._json.get("attestations"):
            raise AttestationsTemplateError(path, "missing attestations field")

        attestations = self._json["attestations"]
        if not isinstance(attestations, dict):
            raise AttestationsTemplateError(path, "invalid attestations field")

        for key, attestation in attestations.items():
            if not isinstance(attestation, dict):
                raise AttestationsTemplateError(
                    path, f"invalid attestation with key {key}"
                )
            if not attestation.get("url"):
                raise AttestationsTemplateError(
                    path, f"attestation with key {key} is missing url"
                )
            if not isinstance(attestation["url"], str):
                raise AttestationsTemplateError(
                    path, f"attestation with key {key} has invalid url"
                )

    @classmethod
    def try_load(cls, path: Path) -> AttestationsTemplate | None:
        """Load the template at `path`, if it exists."""
        if not path.exists():
            return None
        return cls(path)

    @property
    def attestations(self) -> dict[str, dict[str, Any]]:
        return self._json["attestations"]

    @property
    def urls(self) -> dict[str, str]:
        return {key: a["url"] for key, a in self.attestations.items()}

    def substitute(self, subst_vars: SubstitutionVars) -> AttestationsTemplate:
        """Substitute variables in both the attestations' urls and their keys."""
        substituted: dict[str, dict[str, Any]] = {}
        for key, attestation in self.attestations.items():
            attestation["url"] = substitute_vars(attestation["url"], subst_vars)
            substituted[substitute_vars(key, subst_vars)] = attestation

        self._json["attestations"] = substituted
        return self

    def validate_fully_substituted(self) -> None:
        unsubstituted: set[SubstitutableVar] = set()
        for key, attestation in self.attestations.items():
            unsubstituted |= get_unsubstituted_vars(key)
            unsubstituted |= get_unsubstituted_vars(attestation["url"])

        if unsubstituted:
            logger.error(f"unsubstituted vars in '{self.path}': {unsubstituted}")
            raise UnsubstitutedVarsError(self.path, unsubstituted)

    async def compute_integrity_hashes(
        self, options: DownloadOptions | None = None
    ) -> None:
        """Download every attestation, concurrently, and record its integrity."""
        artifacts = {key: Artifact(url) for key, url in self.urls.items()}

        try:
            # wait for every download to settle, so none outlives the cleanup.
            results = await asyncio.gather(
                *(a.download(options) for a in artifacts.values()),
                return_exceptions=True,
            )
            for res in results:
                match res:
                    case ArtifactDownloadError():
                        logger.error(f"unable to download attestation '{res.url}'")
                        raise AttestationDownloadError(
                            res.url, res.status_code
                        ) from res
                    case BaseException():
                        raise res
                    case _:
                        pass

            for key, artifact in artifacts.items():
                self.attestations[key]["integrity"] = (
                    artifact.compute_integrity_hash()
                )
        finally:
            for artifact in artifacts.values():
                artifact.cleanup()

    def save(self, dest_path: Path) -> None:
        _ = dest_path.write_text(
            json.dumps(self._json, indent=4) + "\n", encoding="utf-8"
        )
