"""Local filesystem storage."""

from pathlib import Path

import aiofiles
import aiofiles.os

from snipdrop.config import ADMIN_UPLOADS_DIRNAME, UPLOADS_DIRNAME
from snipdrop.storage.base import StorageBackend


class LocalStorage(StorageBackend):
    """Store uploads on local disk under <root>/uploads and <root>/uploads_admin."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()

    def directory(self, is_admin: bool) -> Path:
        return self.root / (ADMIN_UPLOADS_DIRNAME if is_admin else UPLOADS_DIRNAME)

    def _path(self, filename: str, is_admin: bool) -> Path:
        """Prevent path traversal."""
        base = self.directory(is_admin)
        path = (base / filename).resolve()
        if path.parent != base.resolve():
            raise ValueError("Invalid storage filename")
        return path

    async def save(self, content: bytes, filename: str, is_admin: bool) -> Path:
        path = self._path(filename, is_admin)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
                await f.flush()
        except OSError:
            # Never leave a partial file behind.
            path.unlink(missing_ok=True)
            raise
        return path

    async def delete(self, path: Path) -> bool:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        return True

    async def exists(self, path: Path) -> bool:
        return await aiofiles.os.path.isfile(path)

    async def stat_size(self, path: Path) -> int:
        stat = await aiofiles.os.stat(path)
        return stat.st_size
