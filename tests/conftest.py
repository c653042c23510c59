# regpub - tests - shared fixtures
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
import json
import tarfile
from collections.abc import Callable
from pathlib import Path

import pytest

MODULE_CONTENT = """module(
    name = "rules_foo",
    version = "0.0.0",
    compatibility_level = 1,
)

bazel_dep(name = "platforms", version = "0.0.10")
"""


def make_tarball(
    path: Path, files: dict[str, str], *, mode: str = "w:gz"
) -> Path:
    with tarfile.open(path, mode) as tf:
        for name, content in files.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
    return path


def write_json(path: Path, data: object) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    _ = path.write_text(json.dumps(data, indent=4) + "\n")
    return path


@pytest.fixture
def release_archive(tmp_path: Path) -> Path:
    """A release archive, with the module rooted at 'rules_foo-4.5.6/'."""
    return make_tarball(
        tmp_path / "rules_foo-4.5.6.tar.gz",
        {
            "rules_foo-4.5.6/MODULE.bazel": MODULE_CONTENT,
            "rules_foo-4.5.6/BUILD.bazel": "",
        },
    )


TemplatesFactory = Callable[..., Path]


@pytest.fixture
def make_templates(tmp_path: Path) -> TemplatesFactory:
    """Create a '.bcr' template directory for a single module root."""

    def _make(
        archive_url: str,
        *,
        base: Path | None = None,
        module_root: str = ".",
        strip_prefix: str = "rules_foo-{VERSION}",
        maintainers: list[dict[str, str]] | None = None,
    ) -> Path:
        templates_dir = (base if base is not None else tmp_path) / ".bcr"
        root = templates_dir / module_root
        root.mkdir(parents=True, exist_ok=True)

        _ = write_json(
            root / "source.template.json",
            {
                "url": archive_url,
                "strip_prefix": strip_prefix,
                "integrity": "",
            },
        )
        _ = write_json(
            root / "metadata.template.json",
            {
                "homepage": "https://github.com/acme/rules_foo",
                "maintainers": maintainers
                if maintainers is not None
                else [
                    {"name": "Jane", "email": "jane@example.com", "github": "jane"}
                ],
                "repository": ["github:acme/rules_foo"],
                "versions": [],
                "yanked_versions": {},
            },
        )
        _ = (root / "presubmit.yml").write_text(
            "bcr_test_module:\n  module_path: e2e\n"
        )
        return templates_dir

    return _make
