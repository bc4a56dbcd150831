"""Read API: view, download or follow an uploaded object."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response

from snipdrop.config import CDNConfig, get_config
from snipdrop.services.retrieval import resolve, resolve_raw
from snipdrop.storage import MetadataStore, StorageBackend, get_metadata_store, get_storage
from snipdrop.templating import render_paste

router = APIRouter(tags=["reader"])


@router.api_route("/{id_path}", methods=["GET", "HEAD"])
async def read_file(
    id_path: str,
    request: Request,
    config: Annotated[CDNConfig, Depends(get_config)],
    store: Annotated[MetadataStore, Depends(get_metadata_store)],
    storage: Annotated[StorageBackend, Depends(get_storage)],
) -> Response:
    """Paste page, inline/attachment file, or redirect for short links."""
    return await resolve(
        id_path,
        request.method,
        config=config,
        store=store,
        storage=storage,
        render_paste=lambda code_type, code_data, file_id: render_paste(
            request, code_type, code_data, file_id
        ),
    )


@router.api_route("/{id_path}/raw", methods=["GET", "HEAD"])
async def read_file_raw(
    id_path: str,
    request: Request,
    config: Annotated[CDNConfig, Depends(get_config)],
    store: Annotated[MetadataStore, Depends(get_metadata_store)],
    storage: Annotated[StorageBackend, Depends(get_storage)],
) -> Response:
    """Raw paste contents as an attachment. Files and short links are not available here."""
    return await resolve_raw(id_path, request.method, config=config, store=store, storage=storage)
