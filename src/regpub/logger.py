# regpub - logging
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

# pyright: reportExplicitAny=false

import logging
import logging.config
import os
from typing import Any

from rich.console import Console

logger = logging.getLogger("regpub")
logger.setLevel(logging.INFO if not os.getenv("REGPUB_DEBUG") else logging.DEBUG)

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_level_name(debug: bool = False) -> str:
    level = logging.DEBUG if debug or os.getenv("REGPUB_DEBUG") else logging.INFO
    return logging.getLevelName(level)


def setup_logging(
    level: str, *, log_file: str | None = None, console: Console | None = None
) -> None:
    """
    Configure the `regpub` logger to write to `console`, through rich.

    If `log_file` is provided, everything is additionally logged, at debug
    level, to a rotating log file.
    """
    file_handler: dict[str, Any] | None = None

    if log_file is not None:
        file_handler = {
            "level": "DEBUG",
            "class": "logging.handlers.RotatingFileHandler",
            "formatter": "simple",
            "filename": log_file,
            "maxBytes": 10485760,
            "backupCount": 1,
        }

    cfg: dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "simple": {
                "format": "%(asctime)s %(levelname)s [%(module)s(%(name)s)] %(message)s",  # noqa: E501
                "datefmt": DATE_FORMAT,
            },
            "rich": {
                "format": "%(message)s",
                "datefmt": DATE_FORMAT,
            },
        },
        "handlers": {
            "console": {
                "level": level,
                "class": "rich.logging.RichHandler",
                "formatter": "rich",
                "rich_tracebacks": True,
            },
        },
    }

    handlers: list[str] = ["console"]

    if console is not None:
        cfg["handlers"]["console"]["console"] = console

    if file_handler is not None:
        cfg["handlers"]["log_file"] = file_handler
        handlers.append("log_file")

    cfg["loggers"] = {
        "regpub": {
            "level": "DEBUG" if file_handler is not None else level,
            "handlers": handlers,
            "propagate": False,
        },
    }

    logging.config.dictConfig(cfg)
