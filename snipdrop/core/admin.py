"""Shared admin secret check for uploads."""

from typing import Annotated

from fastapi import Depends, Header

from snipdrop.config import CDNConfig, get_config


async def is_admin_request(
    config: Annotated[CDNConfig, Depends(get_config)],
    x_admin_key: Annotated[str | None, Header()] = None,
) -> bool:
    """True when the request carries the configured admin secret in x-admin-key."""
    return config.verify_admin_secret(x_admin_key)
