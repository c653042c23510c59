# regpub - utils - secrets
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

# pyright: reportUnknownMemberType=false
# pyright: reportExplicitAny=false
# pyright: reportUnknownVariableType=false

import abc
import asyncio
import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import override

import hvac
import hvac.exceptions

from regpub.config import SecretsConfig, VaultConfig
from regpub.errors import RegPubError
from regpub.utils import logger as parent_logger

logger = parent_logger.getChild("secrets")


class SecretsError(RegPubError):
    @override
    def __str__(self) -> str:
        return f"secrets error: {self.msg}"


class SecretNotFoundError(SecretsError):
    def __init__(self, name: str) -> None:
        super().__init__(f"secret '{name}' not found")


class SecretsClient(abc.ABC):
    """Provides named secrets, e.g. the app's credentials."""

    @abc.abstractmethod
    async def access_secret(self, name: str) -> str:
        pass


class EnvSecretsClient(SecretsClient):
    """
    Secrets from environment variables.

    Secret `github-app-token` is read from `<prefix>GITHUB_APP_TOKEN`.
    """

    prefix: str

    def __init__(self, prefix: str = "REGPUB_SECRET_") -> None:
        self.prefix = prefix

    def env_var_for(self, name: str) -> str:
        return self.prefix + name.upper().replace("-", "_")

    @override
    async def access_secret(self, name: str) -> str:
        value = os.getenv(self.env_var_for(name))
        if not value:
            logger.error(f"secret '{name}' not set in '{self.env_var_for(name)}'")
            raise SecretNotFoundError(name)
        return value


class Vault(abc.ABC):
    addr: str

    def __init__(self, addr: str) -> None:
        self.addr = addr
        if not self.addr:
            raise SecretsError(msg="missing vault address")

    @abc.abstractmethod
    @contextmanager
    def client(self) -> Generator[hvac.Client]:
        pass

    def read_secret(self, path: str, *, mount_point: str) -> dict[str, str]:
        try:
            with self.client() as client:
                res = client.secrets.kv.v2.read_secret_version(
                    path=path,
                    mount_point=mount_point,
                    raise_on_deleted_version=False,
                )
                logger.debug(f"obtained secret '{path}' from vault")
        except hvac.exceptions.Forbidden:
            raise SecretsError(msg="permission denied obtaining secret") from None
        except hvac.exceptions.InvalidPath:
            raise SecretsError(msg=f"secret path '{path}' not found") from None
        except SecretsError:
            raise
        except Exception as e:
            raise SecretsError(msg=f"error obtaining secret: {e}") from e

        try:
            entry = res["data"]["data"]
        except KeyError as e:
            raise SecretsError(msg=f"error obtaining secret's entry: {e}") from None

        return entry


class VaultAppRoleBackend(Vault):
    role_id: str
    secret_id: str

    def __init__(self, addr: str, role_id: str, secret_id: str) -> None:
        super().__init__(addr)
        if not role_id:
            raise SecretsError(msg="missing role id")
        if not secret_id:
            raise SecretsError(msg="missing secret id")
        self.role_id = role_id
        self.secret_id = secret_id

    @override
    @contextmanager
    def client(self) -> Generator[hvac.Client]:
        client = hvac.Client(url=self.addr)
        try:
            client.auth.approle.login(
                role_id=self.role_id,
                secret_id=self.secret_id,
                use_token=True,
            )
            logger.debug("approle logged in to vault")
        except hvac.exceptions.Forbidden:
            raise SecretsError(msg="permission denied logging in to vault") from None
        except Exception:
            raise SecretsError(msg="error logging in to vault") from None

        yield client


class VaultUserPassBackend(Vault):
    username: str
    password: str

    def __init__(self, addr: str, username: str, password: str) -> None:
        super().__init__(addr)
        if not username:
            raise SecretsError(msg="missing username")
        if not password:
            raise SecretsError(msg="missing password")
        self.username = username
        self.password = password

    @override
    @contextmanager
    def client(self) -> Generator[hvac.Client]:
        client = hvac.Client(url=self.addr)
        try:
            client.auth.userpass.login(
                username=self.username, password=self.password, use_token=True
            )
            logger.debug("userpass logged in to vault")
        except hvac.exceptions.Forbidden:
            raise SecretsError(msg="permission denied logging in to vault") from None
        except Exception:
            raise SecretsError(msg="error logging in to vault") from None

        yield client


class VaultTokenBackend(Vault):
    token: str

    def __init__(self, addr: str, token: str) -> None:
        super().__init__(addr)
        if not token:
            raise SecretsError(msg="missing token")
        self.token = token

    @override
    @contextmanager
    def client(self) -> Generator[hvac.Client]:
        client = hvac.Client(url=self.addr, token=self.token)
        yield client


def get_vault_from_config(vault_config: VaultConfig) -> Vault:
    if vault_config.auth_approle:
        return VaultAppRoleBackend(
            addr=vault_config.vault_addr,
            role_id=vault_config.auth_approle.role_id,
            secret_id=vault_config.auth_approle.secret_id,
        )
    elif vault_config.auth_user:
        return VaultUserPassBackend(
            addr=vault_config.vault_addr,
            username=vault_config.auth_user.username,
            password=vault_config.auth_user.password,
        )
    elif vault_config.auth_token:
        return VaultTokenBackend(
            addr=vault_config.vault_addr,
            token=vault_config.auth_token,
        )
    else:
        raise SecretsError(msg="no authentication method configured for vault")


class VaultSecretsClient(SecretsClient):
    """
    Secrets from a single Vault KV v2 entry, one key per secret.

    The entry is read on every access.
    """

    vault: Vault
    mount_point: str
    path: str

    def __init__(self, vault: Vault, *, mount_point: str, path: str) -> None:
        self.vault = vault
        self.mount_point = mount_point
        self.path = path

    @override
    async def access_secret(self, name: str) -> str:
        entry = await asyncio.to_thread(
            self.vault.read_secret, self.path, mount_point=self.mount_point
        )
        value = entry.get(name)
        if not value:
            logger.error(f"secret '{name}' not found in vault at '{self.path}'")
            raise SecretNotFoundError(name)
        return value


def get_secrets_client(config: SecretsConfig) -> SecretsClient:
    match config.backend:
        case "env":
            return EnvSecretsClient(config.env_prefix)
        case "vault":
            if config.vault is None:
                raise SecretsError(msg="vault secrets backend not configured")
            return VaultSecretsClient(
                get_vault_from_config(config.vault),
                mount_point=config.vault.mount_point,
                path=config.vault.secrets_path,
            )
