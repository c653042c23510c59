# regpub - artifacts - streaming xz decompression
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

# Decompresses xz archives in bounded memory. Input and output are handled in
# fixed-size chunks, and output is only pulled from the decoder once the
# previous chunk has been accepted by the destination.

import lzma
from pathlib import Path
from typing import Protocol, override

import aiofiles

from regpub.artifacts import logger as parent_logger
from regpub.errors import UserFacingError

logger = parent_logger.getChild("xzdec")


BUF_SIZE = 0x10000  # 64 KiB

# 128 MiB, large enough for archives compressed with `xz -9`, plus some margin.
MEM_LIMIT = 0x8000000


class XzDecodeError(UserFacingError):
    @override
    def __str__(self) -> str:
        return "Failed to decompress xz archive" + (f": {self.msg}" if self.msg else "")


class AsyncSource(Protocol):
    """Where compressed data is read from, e.g. a file opened with `aiofiles`."""

    async def read(self, size: int = -1, /) -> bytes: ...


class AsyncSink(Protocol):
    """A destination for decompressed data, e.g. an `asyncio.StreamWriter`."""

    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...


class AsyncFile(Protocol):
    async def write(self, b: bytes, /) -> int: ...


class FileSink:
    """Write to a file opened with `aiofiles`, once drained."""

    _f: AsyncFile
    _pending: list[bytes]

    def __init__(self, f: AsyncFile) -> None:
        self._f = f
        self._pending = []

    def write(self, data: bytes) -> None:
        self._pending.append(bytes(data))

    async def drain(self) -> None:
        pending, self._pending = self._pending, []
        for chunk in pending:
            _ = await self._f.write(chunk)


class XzDecoder:
    """
    An xz stream decoder with fixed-size buffers.

    Input is provided with `set_input()`, one chunk of at most `BUF_SIZE` bytes
    at a time, and only once the decoder reports its input as empty. Output is
    obtained with `next_output()`, at most `BUF_SIZE` bytes at a time. Once all
    input has been provided, `finish()` returns any remaining output and checks
    that the stream was complete.

    Concatenated xz streams, as well as stream padding, are supported.
    """

    _memlimit: int
    _dec: lzma.LZMADecompressor | None
    _pending: bytes
    _streams: int

    def __init__(self, *, memlimit: int = MEM_LIMIT) -> None:
        self._memlimit = memlimit
        self._dec = self._new_decoder()
        self._pending = b""
        self._streams = 0

    def _new_decoder(self) -> lzma.LZMADecompressor:
        return lzma.LZMADecompressor(format=lzma.FORMAT_XZ, memlimit=self._memlimit)

    def _next_stream(self) -> None:
        """Move on past a finished stream, keeping any data that follows it."""
        leftover = self._pending
        if self._dec is not None:
            leftover = self._dec.unused_data + leftover
            self._streams += 1

        # stream padding is made of null bytes
        self._pending = leftover.lstrip(b"\0")
        self._dec = self._new_decoder() if self._pending else None

    def input_empty(self) -> bool:
        if self._pending:
            return False
        if self._dec is None:
            return True
        if self._dec.eof:
            return not self._dec.unused_data.lstrip(b"\0")
        return self._dec.needs_input

    def set_input(self, data: bytes) -> None:
        if not self.input_empty():
            raise XzDecodeError("input set before previous input was consumed")
        if len(data) > BUF_SIZE:
            raise XzDecodeError(f"input chunk larger than {BUF_SIZE} bytes")
        self._pending = data

    def next_output(self) -> bytes:
        if self._dec is None or self._dec.eof:
            self._next_stream()
            if self._dec is None:
                return b""

        data, self._pending = self._pending, b""
        try:
            return self._dec.decompress(data, max_length=BUF_SIZE)
        except lzma.LZMAError as e:
            logger.error(f"error decoding xz stream: {e}")
            raise XzDecodeError(str(e)) from e

    def finish(self) -> bytes:
        while not self.input_empty():
            if out := self.next_output():
                return out

        if self._dec is not None and not self._dec.eof:
            msg = "compressed data ended before the end-of-stream marker"
            logger.error(f"error decoding xz stream: {msg}")
            raise XzDecodeError(msg)

        return b""


async def decompress(
    src: AsyncSource, dst: AsyncSink, *, memlimit: int = MEM_LIMIT
) -> None:
    """Decompress the xz data read from `src`, writing it to `dst`."""
    decoder = XzDecoder(memlimit=memlimit)

    while chunk := await src.read(BUF_SIZE):
        decoder.set_input(chunk)
        while not decoder.input_empty():
            out = decoder.next_output()
            if out:
                dst.write(out)
                await dst.drain()

    while out := decoder.finish():
        dst.write(out)
        await dst.drain()


async def decompress_file(src_path: Path, dst_path: Path) -> None:
    logger.debug(f"decompressing '{src_path}' to '{dst_path}'")
    async with (
        aiofiles.open(src_path, "rb") as src,
        aiofiles.open(dst_path, "wb") as dst,
    ):
        await decompress(src, FileSink(dst))
