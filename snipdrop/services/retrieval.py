"""Serve object records by identifier: paste page, raw text, streamed file or redirect."""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from pathlib import Path

import aiofiles
from fastapi import Response
from fastapi.responses import RedirectResponse, StreamingResponse

from snipdrop.config import CDNConfig
from snipdrop.core.errors import Gone, IoFailure, NotFound
from snipdrop.core.upload_validation import mimetype_for_extension
from snipdrop.schemas.record import CodeRecord, FileRecord, ShortRecord, parse_record
from snipdrop.storage.base import MetadataStore, StorageBackend

logger = logging.getLogger(__name__)

RELAY_CHUNK_SIZE = 64 * 1024
# Chunks held between the disk reader and the response; bounds memory per download.
RELAY_BUFFER_CHUNKS = 1

_RELAY_END = b""

PasteRenderer = Callable[[str, str, str], Response]


def split_identifier(id_path: str) -> tuple[str, str]:
    """'abc.rs' -> ('abc', 'rs'); 'abc' -> ('abc', '')."""
    if "." in id_path:
        identifier, ext = id_path.rsplit(".", 1)
        return identifier, ext
    return id_path, ""


def _not_found(id_path: str) -> NotFound:
    return NotFound(f"Could not find file '{id_path}'.")


def _gone(id_path: str) -> Gone:
    return Gone(f"File '{id_path}' has been removed from the server.")


def _read_failed(id_path: str) -> IoFailure:
    return IoFailure(f"Failed to read file '{id_path}'.")


async def load_record(
    id_path: str,
    config: CDNConfig,
    store: MetadataStore,
) -> tuple[str, str, ShortRecord | FileRecord | CodeRecord]:
    identifier, ext = split_identifier(id_path)
    raw = await store.get(config.record_key(identifier))
    if raw is None:
        logger.info("No data found for ID: %s", identifier)
        raise _not_found(id_path)
    return identifier, ext, parse_record(raw)


async def _file_present(storage: StorageBackend, path: Path, id_path: str) -> bool:
    try:
        return await storage.exists(path)
    except OSError as e:
        logger.error("Failed to check %s: %s", path, e)
        raise _read_failed(id_path) from e


async def _pump(path: Path, queue: "asyncio.Queue[bytes]") -> None:
    # Errors end the relay early; the response is already under way.
    try:
        async with aiofiles.open(path, "rb") as f:
            while True:
                chunk = await f.read(RELAY_CHUNK_SIZE)
                if not chunk:
                    break
                await queue.put(chunk)
    except OSError as e:
        logger.error("Relay of %s stopped: %s", path, e)
    await queue.put(_RELAY_END)


async def relay_file(path: Path) -> AsyncIterator[bytes]:
    """Copy the file from disk in a background task through a bounded queue."""
    queue: asyncio.Queue[bytes] = asyncio.Queue(maxsize=RELAY_BUFFER_CHUNKS)
    task = asyncio.create_task(_pump(path, queue))
    try:
        while True:
            chunk = await queue.get()
            if chunk == _RELAY_END:
                break
            yield chunk
    finally:
        # Client went away or the copy finished; either way stop the reader.
        task.cancel()


async def _serve_file(
    record: FileRecord,
    id_path: str,
    method: str,
    storage: StorageBackend,
) -> Response:
    try:
        size = await storage.stat_size(record.path)
    except FileNotFoundError:
        logger.warning("File not found: %s", record.path)
        raise _gone(id_path)
    except OSError as e:
        logger.error("Failed to read file %s: %s", record.path, e)
        raise _read_failed(id_path) from e

    disposition = "attachment"
    if record.mimetype.startswith("image/") or record.mimetype.startswith("video/"):
        disposition = "inline"
    headers = {
        "Content-Length": str(size),
        "Content-Disposition": f'{disposition}; filename="{record.path.name}"',
    }
    if method == "HEAD":
        return Response(status_code=200, headers=headers, media_type=record.mimetype)
    return StreamingResponse(relay_file(record.path), headers=headers, media_type=record.mimetype)


async def _read_code(record: CodeRecord, id_path: str) -> bytes:
    try:
        async with aiofiles.open(record.path, "rb") as f:
            return await f.read()
    except FileNotFoundError:
        logger.warning("File not found: %s", record.path)
        raise _gone(id_path)
    except OSError as e:
        logger.error("Failed to read file %s: %s", record.path, e)
        raise _read_failed(id_path) from e


async def resolve(
    id_path: str,
    method: str,
    *,
    config: CDNConfig,
    store: MetadataStore,
    storage: StorageBackend,
    render_paste: PasteRenderer,
) -> Response:
    """Rendered route: GET|HEAD /{id_path}."""
    identifier, ext, record = await load_record(id_path, config, store)

    if isinstance(record, ShortRecord):
        return RedirectResponse(record.target, status_code=307)

    if isinstance(record, FileRecord):
        return await _serve_file(record, id_path, method, storage)

    if isinstance(record, CodeRecord):
        if method == "HEAD":
            present = await _file_present(storage, record.path, id_path)
            return Response(status_code=200 if present else 410, media_type="text/html")
        content = await _read_code(record, id_path)
        code_type = ext or record.mimetype
        return render_paste(code_type, content.decode("utf-8", errors="replace"), identifier)

    raise TypeError(f"Unhandled record type: {type(record).__name__}")


async def resolve_raw(
    id_path: str,
    method: str,
    *,
    config: CDNConfig,
    store: MetadataStore,
    storage: StorageBackend,
) -> Response:
    """Raw route: GET|HEAD /{id_path}/raw, pastes only."""
    _, _, record = await load_record(id_path, config, store)

    if isinstance(record, (ShortRecord, FileRecord)):
        raise _not_found(id_path)

    if isinstance(record, CodeRecord):
        mimetype = mimetype_for_extension(record.mimetype)
        if method == "HEAD":
            present = await _file_present(storage, record.path, id_path)
            return Response(status_code=200 if present else 410, media_type=mimetype)
        content = await _read_code(record, id_path)
        return Response(
            content=content,
            media_type=mimetype,
            headers={"Content-Disposition": f'attachment; filename="{record.path.name}"'},
        )

    raise TypeError(f"Unhandled record type: {type(record).__name__}")
