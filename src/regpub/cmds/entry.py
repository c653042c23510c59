# regpub - commands - create entries
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

import asyncio
import errno
import json
import sys
from pathlib import Path

import click

from regpub.artifacts.artifact import DownloadOptions
from regpub.cmds import console, perror, psuccess, with_config
from regpub.cmds import logger as parent_logger
from regpub.config import Config
from regpub.entry.create import CreateEntryService
from regpub.errors import RegPubError
from regpub.repos.repository import Repository
from regpub.repos.ruleset import ModuleTemplates, RulesetConfig
from regpub.templates.substitution import SubstitutableVar
from regpub.utils.git import GitClient

logger = parent_logger.getChild("entry")


async def create_entry(
    config: Config,
    templates_dir: Path,
    local_registry: Path,
    module_version: str,
    github_repository: str | None,
    tag: str | None,
) -> list[tuple[str, Path]]:
    """Create entries for every module root in `templates_dir`."""
    subst_vars: dict[SubstitutableVar, str] = {
        SubstitutableVar.VERSION: module_version,
    }
    if github_repository is not None:
        repo = Repository.from_canonical_name(github_repository)
        subst_vars[SubstitutableVar.OWNER] = repo.owner
        subst_vars[SubstitutableVar.REPO] = repo.name
    if tag is not None:
        subst_vars[SubstitutableVar.TAG] = tag

    ruleset_config = RulesetConfig.load(templates_dir)
    if len(ruleset_config.module_roots) > 1:
        console.print(f"detected module roots: {ruleset_config.module_roots}")

    svc = CreateEntryService(
        GitClient(),
        download_options=DownloadOptions(
            backoff_delay_factor=config.backoff_delay_factor
        ),
    )

    entries: list[tuple[str, Path]] = []
    for module_root in ruleset_config.module_roots:
        templates = ModuleTemplates(templates_dir, module_root)
        console.print(f"loading template files from '{templates.root_dir}'")
        templates.validate(github_repository or templates_dir.as_posix())

        module_name = await svc.create_entry_files_from_templates(
            templates, local_registry, module_version, subst_vars
        )
        psuccess(f"created entry for {module_name}@{module_version}")
        entries.append(
            (module_name, local_registry / "modules" / module_name / module_version)
        )

    return entries


@click.command("create-entry", help="Create registry entries in a local registry.")
@click.option(
    "-t",
    "--templates-dir",
    type=click.Path(
        exists=True, file_okay=False, dir_okay=True, resolve_path=True, path_type=Path
    ),
    default=".bcr",
    show_default=True,
    help="Directory holding the template files.",
)
@click.option(
    "-r",
    "--local-registry",
    type=click.Path(
        exists=True, file_okay=False, dir_okay=True, resolve_path=True, path_type=Path
    ),
    required=True,
    help="Path to a checkout of the registry.",
)
@click.option(
    "-m",
    "--module-version",
    type=str,
    required=True,
    help="Version of the module to create the entry for.",
)
@click.option(
    "--github-repository",
    type=str,
    metavar="OWNER/REPO",
    required=False,
    help="Repository to substitute {OWNER} and {REPO} with.",
)
@click.option(
    "--tag",
    type=str,
    required=False,
    help="Release tag to substitute {TAG} with.",
)
@with_config
def cmd_create_entry(
    config: Config,
    templates_dir: Path,
    local_registry: Path,
    module_version: str,
    github_repository: str | None,
    tag: str | None,
) -> None:
    try:
        entries = asyncio.run(
            create_entry(
                config,
                templates_dir,
                local_registry,
                module_version,
                github_repository,
                tag,
            )
        )
    except RegPubError as e:
        perror(str(e))
        sys.exit(errno.ENOTRECOVERABLE)

    click.echo(
        json.dumps(
            {
                "modules": [
                    {"name": name, "entryPath": str(path)} for name, path in entries
                ]
            },
            indent=2,
        )
    )
