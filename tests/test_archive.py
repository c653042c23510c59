# regpub - tests - archive
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

import io
import lzma
import tarfile
import zipfile
from pathlib import Path

import httpx
import pytest

from conftest import MODULE_CONTENT, make_tarball
from regpub.artifacts.archive import (
    ArchiveDownloadError,
    ArchiveFormat,
    MissingModuleFileError,
    ReleaseArchive,
    UnsupportedArchiveFormat,
    detect_archive_format,
)
from regpub.artifacts.artifact import DownloadOptions
from regpub.artifacts.integrity import compute_integrity_hash

FILES = {
    "rules_foo-1.0.0/MODULE.bazel": MODULE_CONTENT,
    "rules_foo-1.0.0/sub/MODULE.bazel": 'module(name = "rules_foo_sub")\n',
    "rules_foo-1.0.0/BUILD.bazel": "",
}


def _make_zip(path: Path, files: dict[str, str]) -> Path:
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return path


def _make_tar_xz(path: Path, files: dict[str, str]) -> Path:
    tar_path = make_tarball(path.with_suffix(""), files, mode="w")
    _ = path.write_bytes(lzma.compress(tar_path.read_bytes()))
    tar_path.unlink()
    return path


@pytest.mark.parametrize(
    ("url", "fmt"),
    [
        ("https://example.com/a/rules_foo-1.0.0.tar.gz", ArchiveFormat.TAR_GZ),
        ("https://example.com/rules_foo.tgz", ArchiveFormat.TAR_GZ),
        ("https://example.com/rules_foo.tar.xz", ArchiveFormat.TAR_XZ),
        ("https://example.com/rules_foo.tar", ArchiveFormat.TAR),
        ("https://example.com/rules_foo.ZIP?raw=true", ArchiveFormat.ZIP),
    ],
)
def test_detect_archive_format(url: str, fmt: ArchiveFormat) -> None:
    assert detect_archive_format(url) == fmt


def test_unsupported_archive_format() -> None:
    with pytest.raises(UnsupportedArchiveFormat) as exc:
        _ = detect_archive_format("https://example.com/rules_foo.tar.bz2")
    assert exc.value.extension == "tar.bz2"
    assert "'.tar.gz'" in str(exc.value)


@pytest.fixture(params=["tar", "tar.gz", "tar.xz", "zip"])
def archive_path(request: pytest.FixtureRequest, tmp_path: Path) -> Path:
    path = tmp_path / f"rules_foo-1.0.0.{request.param}"
    match request.param:
        case "tar":
            return make_tarball(path, FILES, mode="w")
        case "tar.gz":
            return make_tarball(path, FILES, mode="w:gz")
        case "tar.xz":
            return _make_tar_xz(path, FILES)
        case _:
            return _make_zip(path, FILES)


async def test_extract_module_file(archive_path: Path) -> None:
    archive = await ReleaseArchive.fetch(archive_path.as_uri(), "rules_foo-1.0.0")
    try:
        module_file = await archive.extract_module_file()
        assert module_file.content == MODULE_CONTENT
        assert module_file.module_name == "rules_foo"
        assert archive.compute_integrity_hash() == compute_integrity_hash(archive_path)

        sub = await archive.extract_module_file("sub")
        assert sub.module_name == "rules_foo_sub"
    finally:
        archive.cleanup()

    assert archive.extract_dir is None
    assert not module_file.path.exists()


async def test_missing_module_file(archive_path: Path) -> None:
    archive = await ReleaseArchive.fetch(archive_path.as_uri(), "rules_foo-2.0.0")
    try:
        with pytest.raises(MissingModuleFileError) as exc:
            _ = await archive.extract_module_file()
    finally:
        archive.cleanup()

    assert exc.value.path == "rules_foo-2.0.0/MODULE.bazel"
    assert exc.value.strip_prefix == "rules_foo-2.0.0"
    assert "('rules_foo-2.0.0')" in str(exc.value)


async def test_strip_prefix_with_trailing_slash(tmp_path: Path) -> None:
    path = make_tarball(tmp_path / "a.tar.gz", FILES)
    archive = await ReleaseArchive.fetch(path.as_uri(), "rules_foo-1.0.0/")
    try:
        module_file = await archive.extract_module_file(".")
        assert module_file.module_name == "rules_foo"
    finally:
        archive.cleanup()


async def test_no_strip_prefix(tmp_path: Path) -> None:
    path = tmp_path / "flat.tar.gz"
    with tarfile.open(path, "w:gz") as tf:
        data = MODULE_CONTENT.encode()
        info = tarfile.TarInfo("./MODULE.bazel")
        info.size = len(data)
        tf.addfile(info, io.BytesIO(data))

    archive = await ReleaseArchive.fetch(path.as_uri(), "")
    try:
        module_file = await archive.extract_module_file()
        assert module_file.module_name == "rules_foo"
    finally:
        archive.cleanup()


async def test_fetch_not_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    with pytest.raises(ArchiveDownloadError) as exc:
        _ = await ReleaseArchive.fetch(
            "https://github.com/acme/rules_foo/archive/v1.0.0.tar.gz",
            "rules_foo-1.0.0",
            DownloadOptions(
                backoff_delay_factor=0.0, transport=httpx.MockTransport(handler)
            ),
        )
    assert exc.value.status_code == 404
    assert "source.template.json" in str(exc.value)
