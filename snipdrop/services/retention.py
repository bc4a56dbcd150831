"""Retention policy: how long a non-admin upload survives before purge."""

import time

from snipdrop.config import CDNConfig
from snipdrop.schemas.record import CodeRecord, FileRecord, ShortRecord
from snipdrop.storage.base import StorageBackend

SECONDS_PER_DAY = 86400


def compute_max_age(file_size: int, size_limit: int, min_age: float, max_age: float) -> float:
    """
    Maximum age for a file of file_size bytes, in the same unit as min_age/max_age.

    Cubic curve from max_age (empty file) down to min_age (file at the limit):
        min_age + (min_age - max_age) * (file_size / size_limit - 1) ** 3
    The size ratio is clamped to [0, 1], so files above the limit (the limit may
    have been lowered after upload) get min_age and the result is never negative.
    """
    if size_limit <= 0:
        return float(min_age)
    ratio = min(max(file_size / size_limit, 0.0), 1.0)
    return min_age + (min_age - max_age) * (ratio - 1.0) ** 3


async def is_expired(
    record: ShortRecord | FileRecord | CodeRecord,
    config: CDNConfig,
    storage: StorageBackend,
    now: float | None = None,
) -> bool:
    """
    Short links and admin uploads never expire, nor does anything when no size limit
    applies to its audience. A record whose file is already gone is expired.
    Raises OSError for disk errors other than a missing file.
    """
    if isinstance(record, ShortRecord):
        return False
    if record.is_admin:
        return False
    size_limit = config.get_limit(record.is_admin)
    if size_limit is None:
        return False

    try:
        file_size = await storage.stat_size(record.path)
    except FileNotFoundError:
        return True

    now = time.time() if now is None else now
    max_age = compute_max_age(
        file_size,
        size_limit,
        config.retention.min_age * SECONDS_PER_DAY,
        config.retention.max_age * SECONDS_PER_DAY,
    )
    file_age = max(now - record.time_added, 0)
    return file_age > max_age
