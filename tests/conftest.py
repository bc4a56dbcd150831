"""Pytest configuration and fixtures."""
import fnmatch
import time
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from snipdrop.config import CDNConfig, StorageConfig, get_config
from snipdrop.main import app
from snipdrop.storage import LocalStorage, MetadataStore, get_metadata_store

TEST_HOSTNAME = "cdn.test"


class InMemoryMetadataStore(MetadataStore):
    """Dict-backed metadata store with the same semantics as the Redis one (TTL included)."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.expiry: dict[str, float] = {}

    def _purge_expired(self) -> None:
        now = time.monotonic()
        for key in [k for k, at in self.expiry.items() if at <= now]:
            self.data.pop(key, None)
            self.expiry.pop(key, None)

    async def get(self, key: str) -> str | None:
        self._purge_expired()
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value
        self.expiry.pop(key, None)

    async def set_if_absent(self, key: str, value: str, ttl: int | None = None) -> bool:
        self._purge_expired()
        if key in self.data:
            return False
        self.data[key] = value
        if ttl is not None:
            self.expiry[key] = time.monotonic() + ttl
        return True

    async def exists(self, key: str) -> bool:
        self._purge_expired()
        return key in self.data

    async def keys(self, pattern: str) -> list[str]:
        self._purge_expired()
        return [k for k in self.data if fnmatch.fnmatchcase(k, pattern)]

    async def mget(self, keys: list[str]) -> list[str | None]:
        self._purge_expired()
        return [self.data.get(k) for k in keys]

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
            self.expiry.pop(key, None)
        return removed


@pytest.fixture
def store() -> InMemoryMetadataStore:
    return InMemoryMetadataStore()


@pytest.fixture
def config(tmp_path: Path) -> CDNConfig:
    """Public uploads limited to 1 KiB, admin unlimited, admin secret set."""
    cfg = CDNConfig(
        hostname=TEST_HOSTNAME,
        upload_path=str(tmp_path),
        admin_secret="s3cret-admin-key",
        storage=StorageConfig(filesize_limit=1, admin_filesize_limit=None),
    )
    assert cfg.verify() == []
    return cfg


@pytest.fixture
def storage(config: CDNConfig) -> LocalStorage:
    return LocalStorage(config.upload_root)


@pytest_asyncio.fixture
async def client(config: CDNConfig, store: InMemoryMetadataStore):
    """ASGI client wired to the test config and in-memory store (no lifespan, no Redis)."""
    app.dependency_overrides[get_config] = lambda: config
    app.dependency_overrides[get_metadata_store] = lambda: store
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def uploaded_files(config: CDNConfig):
    """Return the files currently on disk in the public or admin upload directory."""

    def _list(is_admin: bool = False) -> list[Path]:
        directory = config.get_path(is_admin)
        if not directory.exists():
            return []
        return sorted(p for p in directory.iterdir() if p.is_file())

    return _list
