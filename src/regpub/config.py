# regpub - config
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

import json
import os
from pathlib import Path
from typing import Annotated, ClassVar, Literal

import pydantic
import yaml

from regpub.artifacts.artifact import DEFAULT_BACKOFF_DELAY_FACTOR
from regpub.errors import RegPubError
from regpub.logger import logger as root_logger
from regpub.utils.github import DEFAULT_API_URL

logger = root_logger.getChild("config")


DEFAULT_REGISTRY = "bazelbuild/bazel-central-registry"


class ConfigError(RegPubError):
    pass


class VaultUserPassConfig(pydantic.BaseModel):
    username: str
    password: str


class VaultAppRoleConfig(pydantic.BaseModel):
    model_config: ClassVar[pydantic.ConfigDict] = pydantic.ConfigDict(
        validate_by_alias=True,
        validate_by_name=True,
        serialize_by_alias=True,
    )

    role_id: Annotated[str, pydantic.Field(alias="role-id")]
    secret_id: Annotated[str, pydantic.Field(alias="secret-id")]


class VaultConfig(pydantic.BaseModel):
    model_config: ClassVar[pydantic.ConfigDict] = pydantic.ConfigDict(
        validate_by_alias=True,
        validate_by_name=True,
        serialize_by_alias=True,
    )

    vault_addr: Annotated[str, pydantic.Field(alias="vault-addr")]
    auth_user: Annotated[
        VaultUserPassConfig | None, pydantic.Field(alias="auth-user", default=None)
    ]
    auth_approle: Annotated[
        VaultAppRoleConfig | None, pydantic.Field(alias="auth-approle", default=None)
    ]
    auth_token: Annotated[str | None, pydantic.Field(alias="auth-token", default=None)]
    mount_point: Annotated[str, pydantic.Field(alias="mount-point", default="kv")]
    secrets_path: Annotated[
        str, pydantic.Field(alias="secrets-path", default="regpub")
    ]


class SecretsConfig(pydantic.BaseModel):
    model_config: ClassVar[pydantic.ConfigDict] = pydantic.ConfigDict(
        validate_by_alias=True,
        validate_by_name=True,
        serialize_by_alias=True,
    )

    backend: Literal["env", "vault"] = "env"
    env_prefix: Annotated[
        str, pydantic.Field(alias="env-prefix", default="REGPUB_SECRET_")
    ]
    vault: VaultConfig | None = None

    @pydantic.model_validator(mode="after")
    def _check_vault(self) -> SecretsConfig:
        if self.backend == "vault" and self.vault is None:
            raise ValueError("'vault' backend requires a 'vault' section")  # noqa: TRY003
        return self


class GitHubConfig(pydantic.BaseModel):
    model_config: ClassVar[pydantic.ConfigDict] = pydantic.ConfigDict(
        validate_by_alias=True,
        validate_by_name=True,
        serialize_by_alias=True,
    )

    api_url: Annotated[str, pydantic.Field(alias="api-url", default=DEFAULT_API_URL)]
    app_slug: Annotated[str, pydantic.Field(alias="app-slug", default="regpub")]
    bot_login: Annotated[str | None, pydantic.Field(alias="bot-login", default=None)]
    bot_email: Annotated[str | None, pydantic.Field(alias="bot-email", default=None)]

    @property
    def bot_username(self) -> str:
        return self.bot_login if self.bot_login else f"{self.app_slug}[bot]"


class NotificationsConfig(pydantic.BaseModel):
    model_config: ClassVar[pydantic.ConfigDict] = pydantic.ConfigDict(
        validate_by_alias=True,
        validate_by_name=True,
        serialize_by_alias=True,
    )

    sender: str
    debug_email: Annotated[
        str | None, pydantic.Field(alias="debug-email", default=None)
    ]
    smtp_host: Annotated[str, pydantic.Field(alias="smtp-host")]
    smtp_port: Annotated[int, pydantic.Field(alias="smtp-port", default=465)]


class Config(pydantic.BaseModel):
    model_config: ClassVar[pydantic.ConfigDict] = pydantic.ConfigDict(
        populate_by_name=True,
        validate_by_alias=True,
        serialize_by_alias=True,
    )

    registry: str = DEFAULT_REGISTRY
    registry_branch: Annotated[
        str, pydantic.Field(alias="registry-branch", default="main")
    ]
    backoff_delay_factor: Annotated[
        float,
        pydantic.Field(
            alias="backoff-delay-factor", default=DEFAULT_BACKOFF_DELAY_FACTOR, ge=0
        ),
    ]
    push_retries: Annotated[
        int, pydantic.Field(alias="push-retries", default=5, ge=1)
    ]
    scratch: Path | None = None
    github: GitHubConfig = pydantic.Field(default_factory=GitHubConfig)
    secrets: SecretsConfig = pydantic.Field(default_factory=SecretsConfig)
    notifications: NotificationsConfig | None = None

    @classmethod
    def load(cls, path: Path) -> Config:
        if not path.exists() or not path.is_file():
            raise ConfigError(f"config file '{path}' does not exist or is not a file")

        try:
            raw_data = path.read_text()
            if path.suffix.lower() in (".yaml", ".yml"):
                config = Config.model_validate(yaml.safe_load(raw_data) or {})
            else:
                config = Config.model_validate_json(raw_data)

        except (yaml.YAMLError, pydantic.ValidationError) as e:
            msg = f"error loading config at '{path}': {e}"
            logger.error(msg)
            raise ConfigError(msg) from e
        except Exception as e:
            msg = f"unexpected error loading config at '{path}': {e}"
            logger.error(msg)
            raise ConfigError(msg) from e

        return config

    def store(self, path: Path) -> None:
        """Store config to specified path in YAML format."""
        try:
            # let pydantic's json serializer handle the Path objects first.
            json_dict = json.loads(self.model_dump_json())  # pyright: ignore[reportAny]
            raw_data = yaml.safe_dump(json_dict, indent=2)
            _ = path.write_text(raw_data)
        except Exception as e:
            msg = f"error storing config to '{path}': {e}"
            logger.error(msg)
            raise ConfigError(msg) from e

    def with_env_overrides(self) -> Config:
        """Obtain a copy of this config, overridden by environment variables."""
        factor = os.getenv("REGPUB_BACKOFF_DELAY_FACTOR")
        if not factor:
            return self

        try:
            value = float(factor)
            if value < 0:
                raise ValueError(factor)  # noqa: TRY301
        except ValueError as e:
            msg = f"invalid REGPUB_BACKOFF_DELAY_FACTOR '{factor}'"
            logger.error(msg)
            raise ConfigError(msg) from e

        return self.model_copy(update={"backoff_delay_factor": value})
