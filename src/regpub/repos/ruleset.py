# regpub - repositories - ruleset repositories
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

from __future__ import annotations

from pathlib import Path
from typing import Annotated, ClassVar, override

import pydantic
import yaml

from regpub.repos import RulesetRepoError
from regpub.repos import logger as parent_logger
from regpub.repos.repository import Repository
from regpub.templates.attestations import (
    ATTESTATIONS_TEMPLATE_FILE_NAME,
    AttestationsTemplate,
    AttestationsTemplateError,
)
from regpub.templates.metadata import Maintainer, MetadataFile, MetadataParseError
from regpub.templates.source import InvalidSourceTemplateError, SourceTemplate

logger = parent_logger.getChild("ruleset")


BCR_TEMPLATE_DIR = ".bcr"
SOURCE_TEMPLATE_FILE_NAME = "source.template.json"
METADATA_TEMPLATE_FILE_NAME = "metadata.template.json"
PRESUBMIT_FILE_NAME = "presubmit.yml"
PATCHES_DIR_NAME = "patches"
CONFIG_FILE_NAMES = ("config.yaml", "config.yml")

DEFAULT_MODULE_ROOTS = ["."]


class MissingFilesError(RulesetRepoError):
    missing_files: list[str]

    def __init__(
        self, canonical_name: str, module_root: str, missing_files: list[str]
    ) -> None:
        files = "\n".join(f"  {f}" for f in missing_files)
        super().__init__(
            canonical_name,
            module_root,
            f"Could not locate the following required files in {canonical_name}:\n"
            + f"{files}\n"
            + "Did you forget to add them to your ruleset repository?",
        )
        self.missing_files = missing_files


class InvalidRulesetSourceTemplateError(RulesetRepoError):
    def __init__(self, canonical_name: str, module_root: str, reason: str) -> None:
        super().__init__(
            canonical_name,
            module_root,
            f"Invalid {SOURCE_TEMPLATE_FILE_NAME} file in {canonical_name}: {reason}",
        )


class InvalidMetadataTemplateError(RulesetRepoError):
    def __init__(self, canonical_name: str, module_root: str, reason: str) -> None:
        super().__init__(
            canonical_name,
            module_root,
            f"Invalid {METADATA_TEMPLATE_FILE_NAME} file in {canonical_name}: "
            + reason,
        )


class InvalidAttestationsTemplateError(RulesetRepoError):
    def __init__(self, canonical_name: str, module_root: str, reason: str) -> None:
        super().__init__(
            canonical_name,
            module_root,
            f"Invalid {ATTESTATIONS_TEMPLATE_FILE_NAME} file in {canonical_name}: "
            + reason,
        )


class InvalidPresubmitFileError(RulesetRepoError):
    def __init__(self, canonical_name: str, module_root: str, path: Path) -> None:
        super().__init__(
            canonical_name,
            module_root,
            f"Invalid presubmit file {path}: cannot parse file as yaml",
        )


class InvalidConfigFileError(RulesetRepoError):
    def __init__(self, canonical_name: str, reason: str) -> None:
        super().__init__(
            canonical_name,
            None,
            f"Invalid config file in {canonical_name}: {reason}",
        )


class FixedReleaser(pydantic.BaseModel):
    """Identity to publish all of a ruleset's releases as."""

    login: str
    email: str


class RulesetConfig(pydantic.BaseModel):
    """The optional `config.yml` file of a ruleset's template directory."""

    model_config: ClassVar[pydantic.ConfigDict] = pydantic.ConfigDict(
        validate_by_alias=True,
        validate_by_name=True,
        serialize_by_alias=True,
    )

    module_roots: Annotated[
        list[str],
        pydantic.Field(
            alias="moduleRoots", default_factory=lambda: list(DEFAULT_MODULE_ROOTS)
        ),
    ]
    fixed_releaser: Annotated[
        FixedReleaser | None, pydantic.Field(alias="fixedReleaser", default=None)
    ]

    @classmethod
    def find_config_file(cls, templates_dir: Path) -> Path | None:
        for name in CONFIG_FILE_NAMES:
            path = templates_dir / name
            if path.exists():
                return path
        return None

    @classmethod
    def load(cls, templates_dir: Path, *, canonical_name: str = "") -> RulesetConfig:
        """Load the config in `templates_dir`, defaulting if there is none."""
        path = cls.find_config_file(templates_dir)
        if path is None:
            return RulesetConfig()

        try:
            raw = yaml.safe_load(path.read_text()) or {}  # pyright: ignore[reportAny]
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"unable to parse config file at '{path}': {e}")
            raise InvalidConfigFileError(
                canonical_name, "cannot parse file as yaml"
            ) from e

        if not isinstance(raw, dict):
            raise InvalidConfigFileError(canonical_name, "expected a yaml mapping")

        try:
            config = RulesetConfig.model_validate(raw)
        except pydantic.ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            reason = ", ".join(f"could not parse '{f}'" for f in fields)
            logger.error(f"invalid config file at '{path}': {e}")
            raise InvalidConfigFileError(
                canonical_name, reason or "invalid config"
            ) from e

        if not config.module_roots:
            raise InvalidConfigFileError(
                canonical_name, "could not parse 'moduleRoots'"
            )

        return config


class ModuleTemplates:
    """The template files for a single module root, within a template directory."""

    templates_dir: Path
    module_root: str

    def __init__(self, templates_dir: Path, module_root: str) -> None:
        self.templates_dir = templates_dir
        self.module_root = module_root

    @property
    def root_dir(self) -> Path:
        return (self.templates_dir / self.module_root).resolve()

    @property
    def source_template_path(self) -> Path:
        return self.root_dir / SOURCE_TEMPLATE_FILE_NAME

    @property
    def metadata_template_path(self) -> Path:
        return self.root_dir / METADATA_TEMPLATE_FILE_NAME

    @property
    def presubmit_path(self) -> Path:
        return self.root_dir / PRESUBMIT_FILE_NAME

    @property
    def attestations_template_path(self) -> Path:
        return self.root_dir / ATTESTATIONS_TEMPLATE_FILE_NAME

    @property
    def patches_path(self) -> Path:
        return self.root_dir / PATCHES_DIR_NAME

    def missing_files(self) -> list[str]:
        """Obtain the required files that don't exist, relative to the templates."""
        required = [
            self.metadata_template_path,
            self.presubmit_path,
            self.source_template_path,
        ]
        return [
            Path(self.templates_dir.name, self.module_root, p.name).as_posix()
            for p in required
            if not p.exists()
        ]

    # a new instance on every call; templates are mutated while creating entries.
    def source_template(self) -> SourceTemplate:
        return SourceTemplate(self.source_template_path)

    def metadata_template(self) -> MetadataFile:
        return MetadataFile(self.metadata_template_path)

    def attestations_template(self) -> AttestationsTemplate | None:
        return AttestationsTemplate.try_load(self.attestations_template_path)

    def validate(self, canonical_name: str) -> None:
        missing = self.missing_files()
        if missing:
            logger.error(f"missing files in '{canonical_name}': {missing}")
            raise MissingFilesError(canonical_name, self.module_root, missing)

        try:
            _ = self.source_template()
        except InvalidSourceTemplateError as e:
            raise InvalidRulesetSourceTemplateError(
                canonical_name, self.module_root, str(e)
            ) from e

        try:
            _ = self.metadata_template()
        except MetadataParseError as e:
            raise InvalidMetadataTemplateError(
                canonical_name, self.module_root, str(e)
            ) from e

        try:
            _ = self.attestations_template()
        except AttestationsTemplateError as e:
            raise InvalidAttestationsTemplateError(
                canonical_name, self.module_root, str(e)
            ) from e

        try:
            _ = yaml.safe_load(self.presubmit_path.read_text())  # pyright: ignore[reportAny]
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"unable to parse '{self.presubmit_path}': {e}")
            raise InvalidPresubmitFileError(
                canonical_name, self.module_root, self.presubmit_path
            ) from e


class RulesetRepository(Repository):
    """A repository whose releases are published to the registry."""

    _config: RulesetConfig | None

    def __init__(self, name: str, owner: str) -> None:
        super().__init__(name, owner)
        self._config = None

    @property
    def templates_dir(self) -> Path:
        return self.disk_path / BCR_TEMPLATE_DIR

    @property
    def config(self) -> RulesetConfig:
        if self._config is None:
            self._config = RulesetConfig.load(
                self.templates_dir, canonical_name=self.canonical_name
            )
        return self._config

    @property
    def module_roots(self) -> list[str]:
        return self.config.module_roots

    def templates(self, module_root: str) -> ModuleTemplates:
        return ModuleTemplates(self.templates_dir, module_root)

    def validate(self) -> None:
        """Check the checked out repository holds everything needed to publish."""
        logger.debug(f"validating ruleset repository '{self.canonical_name}'")
        for module_root in self.module_roots:
            self.templates(module_root).validate(self.canonical_name)

    def get_all_maintainers(self) -> list[Maintainer]:
        """Obtain the maintainers of every module root, without duplicates."""
        seen: set[str] = set()
        res: list[Maintainer] = []
        for module_root in self.module_roots:
            path = self.templates(module_root).metadata_template_path
            for m in MetadataFile.emergency_parse_maintainers(path):
                key = m.github or m.email or m.name
                if key in seen:
                    continue
                seen.add(key)
                res.append(m)
        return res

    @override
    def cleanup(self) -> None:
        super().cleanup()
        self._config = None
