# regpub - artifacts - integrity hashes
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

_CHUNK_SIZE = 0x10000


def compute_integrity_hash(path: Path) -> str:
    """Compute a Subresource Integrity style sha256 hash for the file at `path`."""
    h = hashlib.sha256()
    with path.open("rb") as f:
        while chunk := f.read(_CHUNK_SIZE):
            h.update(chunk)
    return f"sha256-{base64.b64encode(h.digest()).decode('ascii')}"


def compute_integrity_hash_for(data: bytes) -> str:
    """Compute a Subresource Integrity style sha256 hash for `data`."""
    digest = hashlib.sha256(data).digest()
    return f"sha256-{base64.b64encode(digest).decode('ascii')}"
