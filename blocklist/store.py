"""
store.py - Atomic publishing of the compiled artifact

The published file is the only state shared with the serving component, so
it is only ever replaced by rename:

    1. Resolve the target and refuse anything outside the working directory
    2. Write the content to <target>.<random>.tmp in the same directory
    3. Check the temp file's size against the encoded content
    4. os.replace() the temp file over the target

Readers therefore see either the complete old file or the complete new one.
A failure at any step removes the temp file and leaves the target untouched.
"""
from __future__ import annotations

import os
import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import NamedTuple

import aiofiles

from blocklist.errors import PathTraversal, SizeMismatch, WriteFailure
from blocklist.log import get_logger

logger = get_logger(__name__)

#: Owner read/write, everyone else read-only
ARTIFACT_MODE = 0o644


class ArtifactMeta(NamedTuple):
    """Stat snapshot of the published artifact."""
    exists: bool
    last_modified: datetime | None = None
    size_bytes: int = 0


def secure_path(path: str | os.PathLike[str], root: Path) -> Path:
    """
    Resolve ``path`` against ``root`` and reject anything outside it.

    Raises:
        PathTraversal: The resolved path escapes ``root``
    """
    resolved = (root / path).resolve()
    if resolved == root or not resolved.is_relative_to(root):
        raise PathTraversal(path, root)
    return resolved


class ArtifactStore:
    """Owns the published blocklist file."""

    def __init__(self, path: str | os.PathLike[str], root: str | os.PathLike[str] | None = None):
        self.root = Path(root if root is not None else os.getcwd()).resolve()
        self.path = secure_path(path, self.root)

    async def atomic_publish(
        self, content: str, path: str | os.PathLike[str] | None = None
    ) -> ArtifactMeta:
        """
        Atomically replace the artifact with ``content``.

        Args:
            content: Complete artifact text
            path: Alternative target, still confined to the store root

        Returns:
            Metadata of the freshly published file

        Raises:
            PathTraversal: Target outside the working directory
            WriteFailure: Temp file could not be written or renamed
            SizeMismatch: Temp file size differs from the encoded content
        """
        target = self.path if path is None else secure_path(path, self.root)
        data = content.encode("utf-8")
        tmp = target.with_name(f"{target.name}.{secrets.token_hex(8)}.tmp")

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(tmp, "xb") as f:
                await f.write(data)
                await f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp, ARTIFACT_MODE)

            written = os.stat(tmp).st_size
            if written != len(data):
                raise SizeMismatch(len(data), written)

            os.replace(tmp, target)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise WriteFailure(f"Failed to write output file {target}: {e}") from e
        except BaseException:
            # Cancellation mid-write must not leave temp files behind
            tmp.unlink(missing_ok=True)
            raise

        logger.info("Published %s (%d bytes)", target, len(data))
        return self.current_meta(target)

    def current_meta(self, path: Path | None = None) -> ArtifactMeta:
        """Return existence, UTC modification time and size of the artifact."""
        target = path or self.path
        try:
            st = target.stat()
        except FileNotFoundError:
            return ArtifactMeta(exists=False)
        return ArtifactMeta(
            exists=True,
            last_modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            size_bytes=st.st_size,
        )

    def read(self) -> tuple[str, datetime] | None:
        """Return the artifact content and its UTC modification time, or None."""
        try:
            with open(self.path, "rb") as f:
                st = os.fstat(f.fileno())
                content = f.read().decode("utf-8", errors="replace")
        except FileNotFoundError:
            return None
        return content, datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)
