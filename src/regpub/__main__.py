# regpub - main
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

from pathlib import Path

import click

from regpub.cmds import Ctx, console, entry, pass_ctx, release
from regpub.cmds import logger as parent_logger
from regpub.logger import get_level_name, setup_logging

logger = parent_logger.getChild("main")


@click.group()
@click.option(
    "-d", "--debug", help="Enable debug output", is_flag=True, envvar="REGPUB_DEBUG"
)
@click.option(
    "-c",
    "--config",
    "config_path",
    help="Path to configuration file.",
    type=click.Path(
        exists=True,
        dir_okay=False,
        file_okay=True,
        readable=True,
        resolve_path=True,
        path_type=Path,
    ),
    envvar="REGPUB_CONFIG",
    required=False,
)
@click.option(
    "--log-file",
    help="Additionally log, at debug level, to this file.",
    type=click.Path(dir_okay=False, file_okay=True, path_type=Path),
    required=False,
)
@pass_ctx
def cmd_main(
    ctx: Ctx, debug: bool, config_path: Path | None, log_file: Path | None
) -> None:
    setup_logging(
        get_level_name(debug),
        log_file=log_file.as_posix() if log_file is not None else None,
        console=console,
    )
    ctx.config_path = config_path


cmd_main.add_command(entry.cmd_create_entry)
cmd_main.add_command(release.cmd_handle_release)


if __name__ == "__main__":
    cmd_main()
