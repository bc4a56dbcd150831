"""Upload and shorten pipelines: validate, store bytes, persist the object record."""

import logging
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum

from pydantic import AnyUrl, TypeAdapter, ValidationError
from python_multipart import MultipartParser
from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import parse_options_header

from snipdrop.config import CDNConfig
from snipdrop.core.errors import CDNError, IoFailure, InvalidUrl, MissingField, PayloadTooLarge
from snipdrop.core.formatting import humanize_bytes
from snipdrop.core.upload_validation import (
    DEFAULT_EXTENSION,
    SNIFF_WINDOW,
    canonical_extension,
    is_textual,
    sniff_mimetype,
    split_extension,
    validate_declared,
    validate_sniffed,
)
from snipdrop.schemas.record import CodeRecord, FileRecord, ShortRecord, dump_record
from snipdrop.services.allocator import allocate_identifier, release_identifier
from snipdrop.storage.base import MetadataStore, StorageBackend

logger = logging.getLogger(__name__)

FILE_FIELD = "file"
MISSING_FIELD_MESSAGE = 'Missing form field "file": nothing was uploaded.'

_url_adapter = TypeAdapter(AnyUrl)


@dataclass
class UploadResult:
    identifier: str
    url: str
    record: ShortRecord | FileRecord | CodeRecord


@dataclass
class AcceptedFile:
    """A fully received and validated file part, still only in memory."""

    content: bytes
    mimetype: str
    declared_extension: str
    filename: str


class _PartEvent(Enum):
    HEADERS = 1
    DATA = 2
    END = 3


@dataclass
class _PartHeaders:
    name: str = ""
    filename: str | None = None
    content_type: str | None = None
    raw: list[tuple[bytes, bytes]] = field(default_factory=list)


class _MultipartReader:
    """Push parser wrapper; feed() returns the part events produced by one chunk."""

    def __init__(self, boundary: bytes) -> None:
        self._events: list[tuple[_PartEvent, object]] = []
        self._headers = _PartHeaders()
        self._header_name = b""
        self._header_value = b""
        self._parser = MultipartParser(
            boundary,
            {
                "on_part_begin": self._on_part_begin,
                "on_part_data": self._on_part_data,
                "on_part_end": self._on_part_end,
                "on_header_field": self._on_header_field,
                "on_header_value": self._on_header_value,
                "on_header_end": self._on_header_end,
                "on_headers_finished": self._on_headers_finished,
            },
        )

    def _on_part_begin(self) -> None:
        self._headers = _PartHeaders()

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._events.append((_PartEvent.DATA, data[start:end]))

    def _on_part_end(self) -> None:
        self._events.append((_PartEvent.END, None))

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_name += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._headers.raw.append((self._header_name.lower(), self._header_value))
        self._header_name = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        headers = dict(self._headers.raw)
        _, options = parse_options_header(headers.get(b"content-disposition", b""))
        self._headers.name = options.get(b"name", b"").decode("utf-8", errors="replace")
        if b"filename" in options:
            self._headers.filename = options[b"filename"].decode("utf-8", errors="replace")
        if b"content-type" in headers:
            self._headers.content_type = headers[b"content-type"].decode("latin-1").strip()
        self._events.append((_PartEvent.HEADERS, self._headers))

    def feed(self, chunk: bytes) -> list[tuple[_PartEvent, object]]:
        self._parser.write(chunk)
        events, self._events = self._events, []
        return events


def _boundary_from(content_type: str | None) -> bytes:
    if not content_type:
        raise MissingField(MISSING_FIELD_MESSAGE)
    ctype, params = parse_options_header(content_type)
    if ctype != b"multipart/form-data" or b"boundary" not in params:
        raise MissingField(MISSING_FIELD_MESSAGE)
    return params[b"boundary"]


async def read_file_field(
    body: AsyncIterator[bytes],
    content_type: str | None,
    config: CDNConfig,
    is_admin: bool,
) -> AcceptedFile:
    """
    Consume the multipart body until the "file" part is complete.

    Declared content type and extension are checked as soon as the part headers
    arrive; the sniffed type is checked once SNIFF_WINDOW bytes (or the whole
    part, if shorter) are in; the size limit is checked on every chunk. Nothing
    touches the disk here; on rejection the buffered bytes are simply dropped.
    """
    reader = _MultipartReader(_boundary_from(content_type))
    size_limit = config.get_limit(is_admin)

    in_file = False
    headers = _PartHeaders()
    declared_extension = DEFAULT_EXTENSION
    buffer = bytearray()
    mimetype: str | None = None

    try:
        async for chunk in body:
            for event, payload in reader.feed(chunk):
                if event is _PartEvent.HEADERS:
                    headers = payload  # type: ignore[assignment]
                    if headers.name != FILE_FIELD:
                        continue
                    declared_extension = split_extension(headers.filename)
                    validate_declared(config, headers.content_type, declared_extension)
                    in_file = True
                elif event is _PartEvent.DATA and in_file:
                    buffer.extend(payload)  # type: ignore[arg-type]
                    if mimetype is None and len(buffer) >= SNIFF_WINDOW:
                        mimetype = sniff_mimetype(bytes(buffer[:SNIFF_WINDOW]))
                        validate_sniffed(config, mimetype)
                    if size_limit is not None and len(buffer) > size_limit:
                        raise PayloadTooLarge(
                            f"File too big (Maximum allowed is {humanize_bytes(size_limit)})"
                        )
                elif event is _PartEvent.END and in_file:
                    if mimetype is None:
                        mimetype = sniff_mimetype(bytes(buffer))
                        validate_sniffed(config, mimetype)
                    return AcceptedFile(
                        content=bytes(buffer),
                        mimetype=mimetype,
                        declared_extension=declared_extension,
                        filename=headers.filename or "",
                    )
    except MultipartParseError as e:
        logger.warning("Malformed multipart body: %s", e)
        raise MissingField(MISSING_FIELD_MESSAGE) from e
    raise MissingField(MISSING_FIELD_MESSAGE)


async def ingest_upload(
    body: AsyncIterator[bytes],
    content_type: str | None,
    *,
    is_admin: bool,
    config: CDNConfig,
    store: MetadataStore,
    storage: StorageBackend,
) -> UploadResult:
    """Validate the uploaded file, write it to disk, then persist its record."""
    try:
        accepted = await read_file_field(body, content_type, config, is_admin)
    except CDNError as e:
        logger.warning("Upload rejected (%d): %s", e.status_code, e.message)
        raise

    is_code = is_textual(accepted.mimetype)
    if is_code and accepted.declared_extension != DEFAULT_EXTENSION:
        # Pastes keep the extension the client gave; it drives highlighting.
        extension = accepted.declared_extension
    else:
        extension = canonical_extension(accepted.mimetype, accepted.declared_extension)

    identifier = await allocate_identifier(store, config)
    filename = f"{identifier}.{extension}"
    try:
        try:
            path = await storage.save(accepted.content, filename, is_admin)
        except (OSError, ValueError) as e:
            logger.error("Failed to save file %s: %s", filename, e)
            raise IoFailure(f"Failed to save data to '{filename}'") from e

        now = int(time.time())
        if is_code:
            record: ShortRecord | FileRecord | CodeRecord = CodeRecord(
                is_admin=is_admin, path=path, mimetype=extension, time_added=now
            )
        else:
            record = FileRecord(
                is_admin=is_admin, path=path, mimetype=accepted.mimetype, time_added=now
            )

        try:
            await store.set(config.record_key(identifier), dump_record(record))
        except CDNError:
            # Without a key the file could never be served or purged.
            await storage.delete(path)
            raise
    finally:
        await release_identifier(store, config, identifier)

    logger.info(
        "Stored %s (%s, %d bytes, admin=%s)",
        filename,
        record.type,
        len(accepted.content),
        is_admin,
    )
    return UploadResult(identifier=identifier, url=config.make_url(filename), record=record)


def validate_url(raw_url: str | None) -> str:
    if raw_url is None:
        raise MissingField('Missing form field "url".')
    candidate = raw_url.strip()
    try:
        return str(_url_adapter.validate_python(candidate))
    except ValidationError as e:
        raise InvalidUrl(f"Invalid URL format provided: '{candidate}'") from e


async def shorten_url(
    raw_url: str | None,
    *,
    config: CDNConfig,
    store: MetadataStore,
) -> UploadResult:
    target = validate_url(raw_url)
    identifier = await allocate_identifier(store, config)
    record = ShortRecord(target=target)
    try:
        await store.set(config.record_key(identifier), dump_record(record))
    finally:
        await release_identifier(store, config, identifier)
    logger.info("Shortened %s -> %s", identifier, target)
    return UploadResult(identifier=identifier, url=config.make_url(identifier), record=record)
