# Storage backends

from fastapi import Depends

from snipdrop.config import CDNConfig, get_config, settings
from snipdrop.storage.base import MetadataStore, StorageBackend
from snipdrop.storage.local_storage import LocalStorage
from snipdrop.storage.metadata import RedisMetadataStore

metadata_store: MetadataStore = RedisMetadataStore(settings.redis_url)


def get_metadata_store() -> MetadataStore:
    return metadata_store


def get_storage(config: CDNConfig = Depends(get_config)) -> StorageBackend:
    return LocalStorage(config.upload_root)


__all__ = [
    "LocalStorage",
    "MetadataStore",
    "StorageBackend",
    "get_metadata_store",
    "get_storage",
    "metadata_store",
]
