# regpub - tests - templates
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

import json
from pathlib import Path

import pytest

from conftest import write_json
from regpub.errors import UserFacingError
from regpub.templates.metadata import MetadataFile, MetadataParseError
from regpub.templates.source import (
    InvalidSourceTemplateError,
    SourceTemplate,
    UnsubstitutedVarsError,
)
from regpub.templates.substitution import (
    SubstitutableVar,
    get_unsubstituted_vars,
    substitute_vars,
)

SUBST_VARS = {
    SubstitutableVar.OWNER: "acme",
    SubstitutableVar.REPO: "rules_foo",
    SubstitutableVar.TAG: "v1.2.3",
    SubstitutableVar.VERSION: "1.2.3",
}


def test_substitute_vars() -> None:
    text = (
        "https://github.com/{OWNER}/{REPO}/releases/download"
        + "/{TAG}/{REPO}-{VERSION}.tar.gz"
    )
    assert substitute_vars(text, SUBST_VARS) == (
        "https://github.com/acme/rules_foo/releases/download"
        + "/v1.2.3/rules_foo-1.2.3.tar.gz"
    )


def test_substitute_vars_leaves_unknown_placeholders() -> None:
    text = "{OWNER}/{UNKNOWN}/{TAG}"
    res = substitute_vars(text, {SubstitutableVar.OWNER: "acme"})
    assert res == "acme/{UNKNOWN}/{TAG}"
    assert get_unsubstituted_vars(res) == {SubstitutableVar.TAG}


class TestSourceTemplate:
    def test_substitute(self, tmp_path: Path) -> None:
        path = write_json(
            tmp_path / "source.template.json",
            {
                "url": "https://github.com/{OWNER}/{REPO}/archive/{TAG}.tar.gz",
                "strip_prefix": "{REPO}-{VERSION}",
                "integrity": "",
                "docs_url": "https://example.com/{TAG}",
            },
        )
        template = SourceTemplate(path).substitute(SUBST_VARS)
        template.validate_fully_substituted()

        assert template.url == "https://github.com/acme/rules_foo/archive/v1.2.3.tar.gz"
        assert template.strip_prefix == "rules_foo-1.2.3"

        template.set_integrity_hash("sha256-abc")
        dest = tmp_path / "source.json"
        template.save(dest)

        saved = json.loads(dest.read_text())
        assert saved["integrity"] == "sha256-abc"
        # unknown fields are preserved as-is
        assert saved["docs_url"] == "https://example.com/{TAG}"

    def test_unsubstituted_vars(self, tmp_path: Path) -> None:
        path = write_json(
            tmp_path / "source.template.json",
            {"url": "https://example.com/{OWNER}/{TAG}.zip"},
        )
        template = SourceTemplate(path).substitute(
            {SubstitutableVar.OWNER: "acme"}
        )
        with pytest.raises(UnsubstitutedVarsError) as exc:
            template.validate_fully_substituted()

        assert exc.value.unsubstituted == {SubstitutableVar.TAG}
        assert "{TAG}" in str(exc.value)
        assert isinstance(exc.value, UserFacingError)

    def test_missing_strip_prefix(self, tmp_path: Path) -> None:
        path = write_json(tmp_path / "s.json", {"url": "https://example.com/a.zip"})
        template = SourceTemplate(path)
        assert template.strip_prefix == ""
        assert template.patch_strip is None
        assert template.patches == {}

    @pytest.mark.parametrize(
        "data",
        [
            {},
            {"url": ""},
            {"url": 42},
            {"url": "https://example.com/a.zip", "strip_prefix": 1},
            {"url": "https://example.com/a.zip", "patch_strip": "1"},
            ["https://example.com/a.zip"],
        ],
    )
    def test_invalid(self, tmp_path: Path, data: object) -> None:
        path = write_json(tmp_path / "source.template.json", data)
        with pytest.raises(InvalidSourceTemplateError):
            _ = SourceTemplate(path)

    def test_not_json(self, tmp_path: Path) -> None:
        path = tmp_path / "source.template.json"
        _ = path.write_text("url: foo")
        with pytest.raises(InvalidSourceTemplateError):
            _ = SourceTemplate(path)

    def test_add_patch(self, tmp_path: Path) -> None:
        path = write_json(tmp_path / "s.json", {"url": "https://example.com/a.zip"})
        template = SourceTemplate(path)
        template.add_patch("fix.patch", "sha256-aaa", 1)
        template.add_patch("version.patch", "sha256-bbb", 1)

        assert template.patches == {
            "fix.patch": "sha256-aaa",
            "version.patch": "sha256-bbb",
        }
        assert template.patch_strip == 1


class TestMetadataFile:
    def _write(self, tmp_path: Path, **kwargs: object) -> Path:
        data: dict[str, object] = {
            "homepage": "https://example.com",
            "maintainers": [{"name": "Jane", "github": "jane"}],
            "versions": [],
            "yanked_versions": {},
        }
        data.update(kwargs)
        return write_json(tmp_path / "metadata.json", data)

    def test_versions_are_sorted(self, tmp_path: Path) -> None:
        path = self._write(
            tmp_path, versions=["1.10.0", "1.2.0", "not_a.version!", "1.2.0-rc1"]
        )
        metadata = MetadataFile(path)
        assert metadata.versions == ["not_a.version!", "1.2.0-rc1", "1.2.0", "1.10.0"]

        metadata.add_versions("1.9.0", "0.1.0")
        assert metadata.versions == [
            "not_a.version!",
            "0.1.0",
            "1.2.0-rc1",
            "1.2.0",
            "1.9.0",
            "1.10.0",
        ]
        assert metadata.has_version("1.9.0")
        assert not metadata.has_version("2.0.0")

    def test_clear_and_merge(self, tmp_path: Path) -> None:
        path = self._write(
            tmp_path, versions=["1.0.0"], yanked_versions={"1.0.0": "broken"}
        )
        metadata = MetadataFile(path)
        metadata.clear_versions()
        metadata.clear_yanked_versions()
        assert metadata.versions == []
        assert metadata.yanked_versions == {}

        metadata.add_yanked_versions({"0.9.0": "security"})
        metadata.add_yanked_versions({"0.8.0": "old"})
        assert metadata.yanked_versions == {"0.9.0": "security", "0.8.0": "old"}

    def test_save_preserves_unknown_fields(self, tmp_path: Path) -> None:
        path = self._write(tmp_path, deprecated="use rules_bar")
        metadata = MetadataFile(path)
        metadata.add_versions("1.0.0")

        dest = tmp_path / "out.json"
        metadata.save(dest)
        saved = json.loads(dest.read_text())
        assert saved["deprecated"] == "use rules_bar"
        assert saved["versions"] == ["1.0.0"]

    def test_maintainers(self, tmp_path: Path) -> None:
        path = self._write(
            tmp_path,
            maintainers=[
                {"name": "Jane", "email": "jane@example.com", "github": "jane"},
                {"name": "Bob", "github_user_id": 1234},
            ],
        )
        maintainers = MetadataFile(path).maintainers
        assert [m.name for m in maintainers] == ["Jane", "Bob"]
        assert maintainers[0].email == "jane@example.com"
        assert maintainers[1].github is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"versions": "1.0.0"},
            {"versions": [1]},
            {"yanked_versions": []},
            {"yanked_versions": {"1.0.0": 1}},
            {"maintainers": "jane"},
        ],
    )
    def test_invalid(self, tmp_path: Path, overrides: dict[str, object]) -> None:
        path = self._write(tmp_path, **overrides)
        with pytest.raises(MetadataParseError):
            _ = MetadataFile(path)

    def test_emergency_parse_maintainers(self, tmp_path: Path) -> None:
        path = write_json(
            tmp_path / "metadata.template.json",
            {
                "maintainers": [
                    {"name": "Jane", "email": "jane@example.com"},
                    {"email": "nameless@example.com"},
                    "garbage",
                ],
                "versions": "not a list",
            },
        )
        maintainers = MetadataFile.emergency_parse_maintainers(path)
        assert [m.name for m in maintainers] == ["Jane"]

    def test_emergency_parse_maintainers_unreadable(self, tmp_path: Path) -> None:
        path = tmp_path / "metadata.template.json"
        _ = path.write_text("{")
        assert MetadataFile.emergency_parse_maintainers(path) == []
        assert MetadataFile.emergency_parse_maintainers(tmp_path / "missing") == []
