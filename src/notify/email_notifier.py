"""Email notification for monitoring cycles.

Sends a plain-text summary through an HTTP email-send action (Gmail via
Composio by default). A notification is sent every cycle: a status mail
when nothing changed, an alert otherwise. Delivery problems are returned
as a failed DeliveryResult, never raised.
"""

import logging
from typing import List, Optional

import httpx

from src.api.schemas import DeliveryResult, DiffSummary, MonitoringStats
from src.monitor.config import MonitorConfig

logger = logging.getLogger(__name__)

URGENT_THRESHOLD = 10
IMPORTANT_THRESHOLD = 5
MAX_LINES_PER_SECTION = 20


def build_subject(diff: DiffSummary, stats: Optional[MonitoringStats]) -> str:
    day = stats.monitoring_days if stats else "N"
    if not diff.has_changes:
        return f"eBay seller monitor: all quiet (day {day})"

    counts = {
        "price changes": len(diff.price_changes),
        "new listings": len(diff.new_listings),
        "removed listings": len(diff.removed_listings),
    }
    total = sum(counts.values())

    if total >= URGENT_THRESHOLD:
        level = "URGENT"
    elif total >= IMPORTANT_THRESHOLD:
        level = "Important"
    else:
        level = "Update"

    highlights = ", ".join(f"{n} {label}" for label, n in counts.items() if n)
    if not highlights:
        highlights = "listing details changed"
    return f"[{level}] eBay seller monitor: {highlights}"


def _section(title: str, lines: List[str]) -> List[str]:
    if not lines:
        return []
    out = [f"{title} ({len(lines)})"]
    out.extend(f"  - {line}" for line in lines[:MAX_LINES_PER_SECTION])
    if len(lines) > MAX_LINES_PER_SECTION:
        out.append(f"  ... and {len(lines) - MAX_LINES_PER_SECTION} more")
    out.append("")
    return out


def build_body(diff: DiffSummary, stats: Optional[MonitoringStats]) -> str:
    lines = []
    if stats:
        lines.append(f"Monitoring day {stats.monitoring_days}, check #{stats.total_checks}")
        recent = stats.recent_stats
        lines.append(
            f"Last 7 days: {recent.total_changes} changes "
            f"({recent.price_changes} price, {recent.new_listings} new, "
            f"{recent.removed_listings} removed)"
        )
        lines.append("")

    if not diff.has_changes:
        lines.append("No changes detected since the last check.")
        return "\n".join(lines)

    lines += _section("Price changes", [
        f"{c.title} [{c.seller}]: {c.old_price} -> {c.new_price} ({c.percent_change}%) {c.url or ''}".rstrip()
        for c in diff.price_changes
    ])
    lines += _section("New listings", [
        f"{c.title} [{c.seller}] {c.price} {c.url or ''}".rstrip() for c in diff.new_listings
    ])
    lines += _section("Removed listings", [
        f"{c.title} [{c.seller}] {c.price}" for c in diff.removed_listings
    ])
    lines += _section("Title changes", [
        f"{c.old_title!r} -> {c.new_title!r} [{c.seller}]" for c in diff.title_changes
    ])
    lines += _section("Image changes", [
        f"{c.title} [{c.seller}]" for c in diff.image_changes
    ])
    lines += _section("Seller rating changes", [
        f"{c.seller}: {c.old_rating} -> {c.new_rating} ({c.change})" for c in diff.rating_changes
    ])
    return "\n".join(lines).rstrip() + "\n"


class EmailNotifier:
    """Posts monitoring summaries to an email-send API."""

    def __init__(self, config: MonitorConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport

    async def notify(self, diff: DiffSummary, stats: Optional[MonitoringStats]) -> DeliveryResult:
        if not self.config.email_api_key:
            logger.error("EMAIL_API_KEY not configured, skipping notification")
            return DeliveryResult(success=False, error="EMAIL_API_KEY not configured")
        if not self.config.recipients:
            logger.error("No notification recipients configured")
            return DeliveryResult(success=False, error="No recipients configured")

        payload = {
            "recipient_email": self.config.recipients[0],
            "extra_recipients": self.config.recipients[1:],
            "subject": build_subject(diff, stats),
            "body": build_body(diff, stats),
            "is_html": False,
        }
        headers = {"X-API-Key": self.config.email_api_key}

        try:
            async with httpx.AsyncClient(timeout=self.config.http_timeout, transport=self._transport) as client:
                response = await client.post(self.config.email_api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error("Notification request failed: %s", e)
            return DeliveryResult(success=False, error=str(e))

        if response.status_code >= 300:
            logger.error("Email API returned %d: %s", response.status_code, response.text[:200])
            return DeliveryResult(
                success=False, error=f"Email API returned {response.status_code}",
            )

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        inner = data.get("data")
        message_id = (inner.get("id") if isinstance(inner, dict) else None) or data.get("message_id")
        logger.info("Notification sent (%s), message id %s",
                    "alert" if diff.has_changes else "status", message_id)
        return DeliveryResult(
            success=True, message_id=str(message_id) if message_id is not None else None,
        )
