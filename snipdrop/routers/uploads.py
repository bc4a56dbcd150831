"""Upload API: files, pastes and short links."""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Form, Request
from fastapi.responses import PlainTextResponse

from snipdrop.config import CDNConfig, get_config
from snipdrop.core.admin import is_admin_request
from snipdrop.core.ip_filter import extract_ip_addresses
from snipdrop.services.ingestion import UploadResult, ingest_upload, shorten_url
from snipdrop.services.notifier import dispatch_notifications
from snipdrop.storage import MetadataStore, StorageBackend, get_metadata_store, get_storage

router = APIRouter(tags=["uploads"])


def _queue_notifications(
    background_tasks: BackgroundTasks,
    request: Request,
    result: UploadResult,
    config: CDNConfig,
) -> None:
    background_tasks.add_task(
        dispatch_notifications,
        result.url,
        result.record,
        config,
        extract_ip_addresses(request.headers),
        request.headers.get("referer"),
        request.headers.get("user-agent"),
    )


@router.post("/upload", response_class=PlainTextResponse)
async def upload_file(
    request: Request,
    background_tasks: BackgroundTasks,
    config: Annotated[CDNConfig, Depends(get_config)],
    store: Annotated[MetadataStore, Depends(get_metadata_store)],
    storage: Annotated[StorageBackend, Depends(get_storage)],
    is_admin: Annotated[bool, Depends(is_admin_request)],
) -> PlainTextResponse:
    """
    Upload one file in the multipart field "file".
    Text files become pastes, everything else is served as a file. Returns the URL.
    """
    result = await ingest_upload(
        request.stream(),
        request.headers.get("content-type"),
        is_admin=is_admin,
        config=config,
        store=store,
        storage=storage,
    )
    _queue_notifications(background_tasks, request, result, config)
    return PlainTextResponse(result.url)


@router.post("/short", response_class=PlainTextResponse)
async def short_url(
    request: Request,
    background_tasks: BackgroundTasks,
    config: Annotated[CDNConfig, Depends(get_config)],
    store: Annotated[MetadataStore, Depends(get_metadata_store)],
    url: Annotated[str | None, Form()] = None,
) -> PlainTextResponse:
    """Shorten the URL in form field "url". Returns the short URL."""
    result = await shorten_url(url, config=config, store=store)
    _queue_notifications(background_tasks, request, result, config)
    return PlainTextResponse(result.url)
