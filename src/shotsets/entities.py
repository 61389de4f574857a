from __future__ import annotations

import asyncio
import base64
import mimetypes
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

ACCEPTED_CONTENT_TYPE = "image/png"


def data_uri(data: bytes, content_type: str = ACCEPTED_CONTENT_TYPE) -> str:
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_uri(uri: str) -> bytes:
    """Return the payload of a base64 ``data:`` URI."""
    header, _, payload = uri.partition(",")
    if not header.startswith("data:") or not header.endswith(";base64"):
        raise ValueError("not a base64 data URI")
    return base64.b64decode(payload)


def _cache_busted(src: str) -> str:
    # Server paths are re-fetched on every load, never served from a stale cache
    if src.startswith("/"):
        sep = "&" if "?" in src else "?"
        return f"{src}{sep}{int(time.time() * 1000)}"
    return src


@dataclass
class Blob:
    """Raw image bytes waiting to be uploaded, held in memory or on disk."""

    name: str
    content_type: str
    data: Optional[bytes] = None
    path: Optional[str] = None

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "Blob":
        p = Path(path)
        content_type, _ = mimetypes.guess_type(p.name)
        return cls(name=p.name, content_type=content_type or "application/octet-stream", path=str(p))

    @property
    def is_image(self) -> bool:
        return self.content_type == ACCEPTED_CONTENT_TYPE

    async def read(self) -> bytes:
        if self.data is not None:
            return self.data
        if self.path is None:
            return b""
        return await asyncio.to_thread(Path(self.path).read_bytes)


@dataclass
class ScreenshotFile:
    id: Optional[str] = None
    is_new: bool = False
    pending_blob: Optional[Blob] = None
    src: str = ""
    changed: bool = False

    def __post_init__(self) -> None:
        if self.pending_blob is not None:
            self.is_new = True

    @property
    def is_empty(self) -> bool:
        """True for a cell with nothing on the server and nothing to upload."""
        return self.id is None and self.pending_blob is None


@dataclass
class ScreenshotSet:
    id: Optional[str] = None
    name: str = ""
    files: Dict[str, ScreenshotFile] = field(default_factory=dict)
    changed: bool = False

    def __post_init__(self) -> None:
        self.files = {platform: make_file(f) for platform, f in (self.files or {}).items()}

    @property
    def is_dirty(self) -> bool:
        return self.changed or any(f.changed for f in self.files.values())

    def clone(self) -> "ScreenshotSet":
        # File objects are shared; only the mapping is copied so cell edits don't leak
        return ScreenshotSet(id=self.id, name=self.name, files=dict(self.files), changed=self.changed)


FileLike = Union[ScreenshotFile, Mapping[str, Any], None]
SetLike = Union[ScreenshotSet, Mapping[str, Any], None]


def make_file(obj: FileLike = None) -> ScreenshotFile:
    """Build a ScreenshotFile from a partial mapping, or return an existing one untouched."""
    if isinstance(obj, ScreenshotFile):
        return obj
    opts = dict(obj or {})
    return ScreenshotFile(
        id=opts.get("id"),
        is_new=bool(opts.get("is_new", False)),
        pending_blob=opts.get("pending_blob"),
        src=_cache_busted(opts.get("src") or ""),
        changed=bool(opts.get("changed", False)),
    )


def make_set(obj: SetLike = None) -> ScreenshotSet:
    """Build a ScreenshotSet (and its files) from a partial mapping; idempotent."""
    if isinstance(obj, ScreenshotSet):
        return obj
    opts = dict(obj or {})
    return ScreenshotSet(
        id=opts.get("id"),
        name=opts.get("name") or "",
        files=dict(opts.get("files") or {}),
        changed=bool(opts.get("changed", False)),
    )
