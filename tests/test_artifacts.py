# regpub - tests - artifacts
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

import base64
import hashlib
from pathlib import Path
from typing import Any

import aiofiles
import httpx
import pytest

from regpub.artifacts import (
    ArtifactAlreadyDownloadedError,
    ArtifactDownloadError,
    ArtifactNotDownloadedError,
    ArtifactRequestError,
)
from regpub.artifacts.artifact import (
    DOWNLOAD_RETRIES,
    Artifact,
    DownloadOptions,
    is_retryable_download_error,
)
from regpub.artifacts.integrity import (
    compute_integrity_hash,
    compute_integrity_hash_for,
)
from regpub.artifacts.retry import RetryPolicy, retry_async

URL = "https://github.com/acme/rules_foo/releases/download/v1.0.0/rules_foo.tar.gz"


class _Sleeps:
    delays: list[float]

    def __init__(self) -> None:
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def test_integrity_hash(tmp_path: Path) -> None:
    data = b"hello world\n" * 10000
    path = tmp_path / "data"
    _ = path.write_bytes(data)

    expected = "sha256-" + base64.b64encode(hashlib.sha256(data).digest()).decode()
    assert compute_integrity_hash(path) == expected
    assert compute_integrity_hash_for(data) == expected


class TestRetry:
    def test_delay_bounds(self) -> None:
        policy = RetryPolicy(max_retries=3, delay_factor=10.0, jitter=0.2)
        for retry, base in enumerate([10.0, 20.0, 40.0]):
            for _ in range(20):
                assert base <= policy.delay(retry) <= base * 1.2

    def test_negative_retries(self) -> None:
        with pytest.raises(ValueError):
            _ = RetryPolicy(max_retries=-1, delay_factor=1.0)

    async def test_succeeds_after_retries(self) -> None:
        attempts = 0
        hooks: list[tuple[int, float]] = []
        sleeps = _Sleeps()

        async def _fn() -> str:
            nonlocal attempts
            attempts += 1
            if attempts < 3:
                raise RuntimeError("not yet")
            return "done"

        res = await retry_async(
            _fn,
            RetryPolicy(max_retries=3, delay_factor=1.0, jitter=0.0),
            on_retry=lambda retry, _e, delay: hooks.append((retry, delay)),
            sleep=sleeps,
        )
        assert res == "done"
        assert attempts == 3
        assert hooks == [(0, 1.0), (1, 2.0)]
        assert sleeps.delays == [1.0, 2.0]

    async def test_exhausted(self) -> None:
        attempts = 0
        sleeps = _Sleeps()

        async def _fn() -> None:
            nonlocal attempts
            attempts += 1
            raise RuntimeError(f"attempt {attempts}")

        with pytest.raises(RuntimeError, match="attempt 3"):
            await retry_async(
                _fn, RetryPolicy(max_retries=2, delay_factor=1.0), sleep=sleeps
            )
        assert attempts == 3
        assert len(sleeps.delays) == 2

    async def test_not_retryable(self) -> None:
        attempts = 0

        async def _fn() -> None:
            nonlocal attempts
            attempts += 1
            raise KeyError("nope")

        with pytest.raises(KeyError):
            await retry_async(
                _fn,
                RetryPolicy(
                    max_retries=5,
                    delay_factor=1.0,
                    retryable=lambda e: not isinstance(e, KeyError),
                ),
                sleep=_Sleeps(),
            )
        assert attempts == 1


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", URL)
    return httpx.HTTPStatusError(
        "error", request=request, response=httpx.Response(status, request=request)
    )


@pytest.mark.parametrize(
    ("error", "retryable"),
    [
        (_status_error(404), True),
        (_status_error(429), True),
        (_status_error(502), True),
        (_status_error(401), False),
        (_status_error(403), False),
        (httpx.ReadTimeout("timeout"), True),
        (ValueError("bug"), False),
    ],
)
def test_is_retryable_download_error(error: Exception, retryable: bool) -> None:
    assert is_retryable_download_error(error) is retryable


class TestArtifact:
    async def test_download(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url) == URL
            return httpx.Response(200, content=b"archive contents")

        artifact = Artifact(URL)
        path = await artifact.download(
            DownloadOptions(transport=httpx.MockTransport(handler))
        )
        try:
            assert artifact.is_downloaded
            assert path.name == "rules_foo.tar.gz"
            assert path.read_bytes() == b"archive contents"
            assert artifact.compute_integrity_hash() == compute_integrity_hash_for(
                b"archive contents"
            )
        finally:
            artifact.cleanup()

        assert not path.exists()
        assert not artifact.is_downloaded

    async def test_download_streams_to_async_file(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        body = b"x" * (0x10000 * 3 + 1)
        opened: list[tuple[Path, str]] = []
        aiofiles_open = aiofiles.open

        def _open(path: Path, mode: str = "r", **kwargs: Any) -> Any:
            opened.append((Path(path), mode))
            return aiofiles_open(path, mode, **kwargs)

        monkeypatch.setattr(aiofiles, "open", _open)

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body)

        artifact = Artifact(URL)
        path = await artifact.download(
            DownloadOptions(transport=httpx.MockTransport(handler))
        )
        try:
            assert opened == [(path, "wb")]
            assert path.read_bytes() == body
        finally:
            artifact.cleanup()

    async def test_download_retries_not_found(self) -> None:
        """A release archive may only be uploaded after the release is published."""
        calls = 0
        retries: list[tuple[int, float]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            if calls <= 3:
                return httpx.Response(404)
            return httpx.Response(200, content=b"finally")

        artifact = Artifact(URL)
        _ = await artifact.download(
            DownloadOptions(
                backoff_delay_factor=0.001,
                on_retry=lambda retry, _e, delay: retries.append((retry, delay)),
                transport=httpx.MockTransport(handler),
            )
        )
        try:
            assert artifact.disk_path.read_bytes() == b"finally"
        finally:
            artifact.cleanup()

        assert calls == 4
        assert [r for r, _ in retries] == [0, 1, 2]
        for retry, delay in retries:
            base = 2**retry * 0.001
            assert base <= delay <= base * 1.2

    async def test_download_not_found(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(404)

        artifact = Artifact(URL)
        with pytest.raises(ArtifactDownloadError) as exc:
            _ = await artifact.download(
                DownloadOptions(
                    backoff_delay_factor=0.0, transport=httpx.MockTransport(handler)
                )
            )
        assert exc.value.status_code == 404
        assert calls == DOWNLOAD_RETRIES + 1
        assert not artifact.is_downloaded

    async def test_download_unauthorized_is_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(401)

        artifact = Artifact(URL)
        with pytest.raises(ArtifactDownloadError) as exc:
            _ = await artifact.download(
                DownloadOptions(transport=httpx.MockTransport(handler))
            )
        assert exc.value.status_code == 401
        assert calls == 1

    async def test_download_connect_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        artifact = Artifact(URL)
        with pytest.raises(ArtifactRequestError):
            _ = await artifact.download(
                DownloadOptions(
                    backoff_delay_factor=0.0, transport=httpx.MockTransport(handler)
                )
            )

    async def test_download_twice(self, tmp_path: Path) -> None:
        src = tmp_path / "rules_foo.zip"
        _ = src.write_bytes(b"zip")

        artifact = Artifact(src.as_uri())
        _ = await artifact.download()
        try:
            with pytest.raises(ArtifactAlreadyDownloadedError):
                _ = await artifact.download()
        finally:
            artifact.cleanup()

    async def test_download_file_url(self, tmp_path: Path) -> None:
        src = tmp_path / "rules_foo.zip"
        _ = src.write_bytes(b"zip contents")

        artifact = Artifact(src.as_uri())
        path = await artifact.download()
        try:
            assert path != src
            assert path.name == "rules_foo.zip"
            assert path.read_bytes() == b"zip contents"
        finally:
            artifact.cleanup()
        assert src.exists()

    def test_not_downloaded(self) -> None:
        artifact = Artifact(URL)
        with pytest.raises(ArtifactNotDownloadedError):
            _ = artifact.disk_path
        with pytest.raises(ArtifactNotDownloadedError):
            _ = artifact.compute_integrity_hash()
