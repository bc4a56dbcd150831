"""Outbound notifications after an upload: Discord webhook and Plausible analytics.

Both run as background tasks after the response is sent. Delivery is best
effort; failures are logged and never reach the client.
"""

import logging

import httpx

from snipdrop.config import CDNConfig
from snipdrop.core.ip_filter import IPAddress
from snipdrop.schemas.record import CodeRecord, FileRecord, ShortRecord, record_is_admin

logger = logging.getLogger(__name__)

USER_AGENT = "snipdrop/0.1.0"
NOTIFY_TIMEOUT = 10.0


def _join_ips(ip_addresses: list[IPAddress]) -> str:
    return ", ".join(str(ip) for ip in ip_addresses)


def build_discord_message(
    final_url: str,
    record: ShortRecord | FileRecord | CodeRecord,
    ip_addresses: list[IPAddress],
) -> dict:
    lines = [f"Uploader IPs: **{_join_ips(ip_addresses) or 'Unknown IP'}**"]
    if isinstance(record, ShortRecord):
        lines.append(f"Short URL: **<{final_url}>**")
    else:
        lines.append(f"File: **<{final_url}>**")
    lines.append(f"Is Admin? **{'Yes' if record_is_admin(record) else 'No'}**")
    return {
        "content": "\n".join(lines),
        "username": "snipdrop Notificator",
        "tts": False,
    }


def build_plausible_event(
    final_url: str,
    record: ShortRecord | FileRecord | CodeRecord,
    domain: str,
    referrer: str | None = None,
) -> dict:
    return {
        "name": "pageview",
        "url": final_url,
        "domain": domain,
        "referrer": referrer,
        "interactive": False,
        "props": {"kind": record.type, "is_admin_upload": record_is_admin(record)},
    }


async def notify_discord(
    final_url: str,
    record: ShortRecord | FileRecord | CodeRecord,
    config: CDNConfig,
    ip_addresses: list[IPAddress],
    client: httpx.AsyncClient | None = None,
) -> bool:
    """Post the upload to the Discord webhook. Returns whether a message was delivered."""
    if not config.notifier.enable:
        return False
    webhook_url = config.notifier.discord_webhook
    if not webhook_url:
        logger.warning("Discord webhook URL is not set. Skipping notification.")
        return False

    payload = build_discord_message(final_url, record, ip_addresses)
    try:
        async with client or httpx.AsyncClient(timeout=NOTIFY_TIMEOUT) as http:
            resp = await http.post(webhook_url, json=payload, headers={"User-Agent": USER_AGENT})
            resp.raise_for_status()
    except httpx.HTTPError as e:
        logger.error("Failed to send Discord notification: %s", e)
        return False
    logger.info("Discord notification sent successfully.")
    return True


async def report_to_plausible(
    final_url: str,
    record: ShortRecord | FileRecord | CodeRecord,
    config: CDNConfig,
    ip_addresses: list[IPAddress],
    referrer: str | None = None,
    user_agent: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> bool:
    if not config.plausible.is_enabled():
        return False

    event = build_plausible_event(final_url, record, config.plausible.domain or "", referrer)
    ips = _join_ips(ip_addresses)
    headers = {"User-Agent": user_agent or USER_AGENT}
    if ips:
        headers["X-Forwarded-For"] = ips
    try:
        async with client or httpx.AsyncClient(timeout=NOTIFY_TIMEOUT) as http:
            resp = await http.post(config.plausible.event_url(), json=event, headers=headers)
            resp.raise_for_status()
    except httpx.HTTPError as e:
        logger.error("Failed to report to Plausible: %s", e)
        return False
    logger.debug("Plausible event sent for %s", final_url)
    return True


async def dispatch_notifications(
    final_url: str,
    record: ShortRecord | FileRecord | CodeRecord,
    config: CDNConfig,
    ip_addresses: list[IPAddress],
    referrer: str | None = None,
    user_agent: str | None = None,
) -> None:
    """Background task run after /upload and /short responses."""
    try:
        await notify_discord(final_url, record, config, ip_addresses)
        await report_to_plausible(final_url, record, config, ip_addresses, referrer, user_agent)
    except Exception as e:
        logger.exception("Notification dispatch failed for %s: %s", final_url, e)
