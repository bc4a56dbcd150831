"""HTML pages: landing page and paste viewer."""

import logging
from pathlib import Path

from fastapi import Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates
from jinja2 import TemplateError

from snipdrop.config import CDNConfig
from snipdrop.core.errors import RenderFailure
from snipdrop.core.formatting import humanize_bytes

logger = logging.getLogger(__name__)

_TEMPLATE_DIR = Path(__file__).parent / "templates"

templates = Jinja2Templates(directory=str(_TEMPLATE_DIR))
templates.env.filters["humanize_bytes"] = humanize_bytes


def _render(request: Request, name: str, context: dict) -> HTMLResponse:
    try:
        return templates.TemplateResponse(request, name, context)
    except TemplateError as e:
        logger.error("Failed to render %s: %s", name, e)
        raise RenderFailure(f"Failed to render template. Error: {e}") from e


def render_index(request: Request, config: CDNConfig) -> HTMLResponse:
    retention = None
    if config.retention.enable:
        retention = {"min_age": config.retention.min_age, "max_age": config.retention.max_age}
    return _render(
        request,
        "index.html",
        {
            "base_url": config.make_url("").rstrip("/"),
            "filesize_limit": config.get_limit(False),
            "blocked_extensions": config.blocklist.extensions,
            "blocked_content_types": config.blocklist.content_types,
            "retention": retention,
        },
    )


def render_paste(request: Request, code_type: str, code_data: str, file_id: str) -> HTMLResponse:
    return _render(
        request,
        "paste.html",
        {"code_type": code_type, "code_data": code_data, "file_id": file_id},
    )
