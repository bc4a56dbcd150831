"""Purge sweep: delete expired non-admin uploads, file first, then metadata key."""

import asyncio
import logging
import time
from dataclasses import dataclass, field

from snipdrop.config import CDNConfig
from snipdrop.core.errors import CDNError
from snipdrop.schemas.record import parse_record, record_path
from snipdrop.services.retention import is_expired
from snipdrop.storage.base import MetadataStore, StorageBackend

logger = logging.getLogger(__name__)

# One sweep at a time, whether started by the scheduler or by hand.
_purge_lock = asyncio.Lock()


@dataclass
class PurgeReport:
    skipped: bool = False
    scanned: int = 0
    expired: list[str] = field(default_factory=list)
    deleted: int = 0
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


async def purge_expired(
    config: CDNConfig,
    store: MetadataStore,
    storage: StorageBackend,
    now: float | None = None,
) -> PurgeReport:
    """
    Run one sweep over every record key.

    A record that cannot be parsed or checked is reported in ``errors`` and left
    alone; the rest of the sweep continues. Expired files are deleted before
    their keys so an interruption leaves a key without a file (served as 410 and
    cleaned up by the next sweep), never a file without a key. Store failures
    while listing or deleting keys propagate as StoreUnavailable.
    """
    report = PurgeReport()
    if not config.retention.enable:
        report.skipped = True
        return report

    now = time.time() if now is None else now
    keys = await store.keys(f"{config.key_prefix}*")
    if not keys:
        logger.info("Purge: no records stored")
        return report

    values = await store.mget(keys)
    expired_keys: list[str] = []
    for key, raw in zip(keys, values):
        if raw is None:
            # Deleted between SCAN and MGET.
            continue
        report.scanned += 1
        try:
            record = parse_record(raw)
        except CDNError as e:
            logger.error("Purge: skipping %s: %s", key, e.message)
            report.errors[key] = e.message
            continue
        try:
            expired = await is_expired(record, config, storage, now=now)
        except OSError as e:
            logger.error("Purge: could not check %s: %s", key, e)
            report.errors[key] = str(e)
            continue
        if not expired:
            continue

        path = record_path(record)
        if path is not None:
            try:
                await storage.delete(path)
            except OSError as e:
                # Keep the key so the file is retried on the next sweep.
                logger.error("Purge: failed to delete %s: %s", path, e)
                report.errors[key] = str(e)
                continue
        expired_keys.append(key)
        report.expired.append(key.removeprefix(config.key_prefix))

    if expired_keys:
        report.deleted = await store.delete(*expired_keys)
    logger.info(
        "Purge: scanned %d, deleted %d, errors %d",
        report.scanned,
        report.deleted,
        len(report.errors),
    )
    return report


async def run_purge_job(config: CDNConfig, store: MetadataStore, storage: StorageBackend) -> PurgeReport | None:
    """Scheduler entry point; never raises, so the next scheduled run still happens."""
    if _purge_lock.locked():
        logger.warning("Purge already running, skipping this run")
        return None
    async with _purge_lock:
        logger.info("Running purge task...")
        try:
            return await purge_expired(config, store, storage)
        except Exception as e:
            logger.exception("Purge task failed: %s", e)
            return None
