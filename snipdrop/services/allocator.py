"""Short random identifiers, unique among live metadata keys."""

import logging
import secrets
import string

from snipdrop.config import CDNConfig
from snipdrop.core.errors import AllocationFailure, StoreUnavailable
from snipdrop.storage.base import MetadataStore

logger = logging.getLogger(__name__)

ALPHABET = string.ascii_lowercase
MAX_ALLOCATION_ATTEMPTS = 64
RESERVATION_TTL_SECONDS = 300


def random_identifier(length: int) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


async def allocate_identifier(
    store: MetadataStore,
    config: CDNConfig,
    length: int | None = None,
) -> str:
    """
    Pick an identifier whose record key is free and reserve it.

    The reservation is a set-if-absent key with a TTL and is taken before the
    record key is checked: an upload writes its record before releasing its
    reservation, so once we hold the reservation a missing record key stays
    missing. Callers write the record and then call release_identifier().
    Raises AllocationFailure when the store is unreachable or no free
    identifier was found.
    """
    length = length or config.filename_length
    for attempt in range(1, MAX_ALLOCATION_ATTEMPTS + 1):
        identifier = random_identifier(length)
        reservation = config.reservation_key(identifier)
        try:
            if not await store.set_if_absent(reservation, "1", ttl=RESERVATION_TTL_SECONDS):
                continue
            if await store.exists(config.record_key(identifier)):
                await store.delete(reservation)
                continue
        except StoreUnavailable as e:
            raise AllocationFailure(f"Failed to generate a name: {e.message}") from e
        if attempt > 1:
            logger.debug("Allocated %s after %d attempts", identifier, attempt)
        return identifier
    raise AllocationFailure(
        f"Failed to generate a name: no free identifier after {MAX_ALLOCATION_ATTEMPTS} attempts"
    )


async def release_identifier(store: MetadataStore, config: CDNConfig, identifier: str) -> None:
    """Drop the reservation; it also expires on its own, so failures are only logged."""
    try:
        await store.delete(config.reservation_key(identifier))
    except StoreUnavailable:
        logger.warning("Could not release reservation for %s", identifier)
