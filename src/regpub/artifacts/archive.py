# regpub - artifacts - release archives
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

import asyncio
import enum
import posixpath
import shutil
import tarfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import override
from urllib.parse import urlparse

from regpub.artifacts import ArtifactDownloadError
from regpub.artifacts import logger as parent_logger
from regpub.artifacts.artifact import Artifact, DownloadOptions
from regpub.artifacts.xzdec import decompress_file
from regpub.errors import UserFacingError
from regpub.modules.module_file import MODULE_FILE_NAME, ModuleFile

logger = parent_logger.getChild("archive")


class ArchiveFormat(enum.StrEnum):
    TAR = "tar"
    TAR_GZ = "tar.gz"
    TAR_XZ = "tar.xz"
    ZIP = "zip"


_SUFFIXES: list[tuple[str, ArchiveFormat]] = [
    (".tar.gz", ArchiveFormat.TAR_GZ),
    (".tgz", ArchiveFormat.TAR_GZ),
    (".tar.xz", ArchiveFormat.TAR_XZ),
    (".txz", ArchiveFormat.TAR_XZ),
    (".tar", ArchiveFormat.TAR),
    (".zip", ArchiveFormat.ZIP),
]


class UnsupportedArchiveFormat(UserFacingError):
    url: str
    extension: str

    def __init__(self, url: str, extension: str) -> None:
        super().__init__(
            f"Unsupported release archive format '{extension}' for {url}. "
            + "Supported formats: "
            + ", ".join(f"'{s}'" for s, _ in _SUFFIXES)
        )
        self.url = url
        self.extension = extension


class ArchiveDownloadError(ArtifactDownloadError):
    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(url, status_code)
        self.msg = (
            f"Failed to download release archive from {url}. "
            + f"Received status {status_code}."
        )
        if status_code == 404:
            self.msg += (
                "\n\nDouble check that the `url` in your ruleset's "
                + ".bcr/source.template.json is correct. Are you using the "
                + "correct release tag or archive name?"
            )


class ArchiveExtractError(UserFacingError):
    @override
    def __str__(self) -> str:
        return "Failed to extract release archive" + (
            f": {self.msg}" if self.msg else ""
        )


class MissingModuleFileError(UserFacingError):
    path: str
    strip_prefix: str

    def __init__(self, path: str, strip_prefix: str) -> None:
        super().__init__(
            f"Could not find {MODULE_FILE_NAME} in the release archive at '{path}'. "
            + f"Is the strip prefix ('{strip_prefix}') in source.template.json "
            + "correct, and does it match the layout of the release archive?"
        )
        self.path = path
        self.strip_prefix = strip_prefix


def detect_archive_format(url: str) -> ArchiveFormat:
    name = PurePosixPath(urlparse(url).path).name.lower()
    for suffix, fmt in _SUFFIXES:
        if name.endswith(suffix):
            return fmt

    extension = name.split(".", 1)[1] if "." in name else ""
    raise UnsupportedArchiveFormat(url, extension)


def _normalize_member(name: str) -> str:
    return posixpath.normpath(name).lstrip("/")


def _extract_tar_member(tar_path: Path, member_path: str, dest: Path) -> bool:
    """Extract a single regular file from a tarball. Returns whether it was found."""
    with tarfile.open(tar_path, mode="r:*") as tf:
        for member in tf:
            if _normalize_member(member.name) != member_path:
                continue
            src = tf.extractfile(member)
            if src is None:
                # not a regular file
                return False
            dest.parent.mkdir(parents=True, exist_ok=True)
            with src, dest.open("wb") as out:
                shutil.copyfileobj(src, out)
            return True
    return False


def _extract_zip(
    zip_path: Path, member_path: str, contents_dir: Path, dest: Path
) -> bool:
    """Extract a whole zip archive, then copy a single file out of it."""
    with zipfile.ZipFile(zip_path) as zf:
        # 'extractall()' sanitizes member paths escaping the destination.
        zf.extractall(contents_dir)

    src = contents_dir / member_path
    if not src.is_file():
        return False
    dest.parent.mkdir(parents=True, exist_ok=True)
    _ = shutil.copyfile(src, dest)
    return True


class ReleaseArchive:
    """
    A downloaded release archive.

    Owns the downloaded artifact and the directory the archive is extracted to.
    Both are removed by `cleanup()`, which must always be called.
    """

    url: str
    strip_prefix: str
    artifact: Artifact
    _extract_dir: Path | None

    def __init__(self, artifact: Artifact, strip_prefix: str) -> None:
        self.url = artifact.url
        self.strip_prefix = strip_prefix
        self.artifact = artifact
        self._extract_dir = None

    @classmethod
    async def fetch(
        cls, url: str, strip_prefix: str, options: DownloadOptions | None = None
    ) -> ReleaseArchive:
        artifact = Artifact(url)
        try:
            _ = await artifact.download(options)
        except ArtifactDownloadError as e:
            raise ArchiveDownloadError(e.url, e.status_code) from e

        return cls(artifact, strip_prefix)

    @property
    def disk_path(self) -> Path:
        return self.artifact.disk_path

    @property
    def extract_dir(self) -> Path | None:
        return self._extract_dir

    def compute_integrity_hash(self) -> str:
        return self.artifact.compute_integrity_hash()

    async def extract_module_file(self, module_root: str = ".") -> ModuleFile:
        """Extract the `MODULE.bazel` file for `module_root` from the archive."""
        fmt = detect_archive_format(self.url)
        member_path = _normalize_member(
            posixpath.join(self.strip_prefix, module_root, MODULE_FILE_NAME)
        )

        archive_path = self.disk_path
        extract_dir = archive_path.parent / f"{archive_path.name}.extracted"
        extract_dir.mkdir(parents=True, exist_ok=True)
        self._extract_dir = extract_dir

        dest = extract_dir / _normalize_member(
            posixpath.join(module_root, MODULE_FILE_NAME)
        )
        logger.debug(
            f"extract '{member_path}' from '{archive_path}' ({fmt}) to '{dest}'"
        )

        try:
            match fmt:
                case ArchiveFormat.TAR | ArchiveFormat.TAR_GZ:
                    found = await asyncio.to_thread(
                        _extract_tar_member, archive_path, member_path, dest
                    )
                case ArchiveFormat.TAR_XZ:
                    tar_path = extract_dir / "archive.tar"
                    await decompress_file(archive_path, tar_path)
                    found = await asyncio.to_thread(
                        _extract_tar_member, tar_path, member_path, dest
                    )
                    tar_path.unlink()
                case ArchiveFormat.ZIP:
                    found = await asyncio.to_thread(
                        _extract_zip,
                        archive_path,
                        member_path,
                        extract_dir / "contents",
                        dest,
                    )
        except (tarfile.TarError, zipfile.BadZipFile, OSError) as e:
            msg = f"unable to extract '{self.url}': {e}"
            logger.error(msg)
            raise ArchiveExtractError(msg) from e

        if not found:
            logger.error(f"'{member_path}' not found in '{self.url}'")
            raise MissingModuleFileError(member_path, self.strip_prefix)

        return ModuleFile(dest)

    def cleanup(self) -> None:
        if self._extract_dir is not None:
            shutil.rmtree(self._extract_dir, ignore_errors=True)
            self._extract_dir = None
        self.artifact.cleanup()
