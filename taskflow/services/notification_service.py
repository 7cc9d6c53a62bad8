"""Outbound WhatsApp notifications for task events.

Delivery is best effort: every function returns a NotificationResult and
never raises, so a broken gateway cannot fail a task mutation.
"""

import re
from dataclasses import dataclass
from datetime import datetime

import httpx

from taskflow.config import get_settings
from taskflow.logging_config import get_logger

logger = get_logger(__name__)

PRIORITY_LABELS = {
    "low": "🟢 Low",
    "medium": "🟡 Medium",
    "high": "🟠 High",
    "urgent": "🔴 Urgent",
}

STATUS_LABELS = {
    "pending": "⏳ Pending",
    "in_progress": "🔄 In progress",
    "completed": "✅ Completed",
}


@dataclass
class NotificationResult:
    success: bool
    error: str | None = None


def clean_phone(phone: str, country_code: str | None = None) -> str:
    """Strip formatting and make sure the number carries a country code."""
    code = country_code or get_settings().whatsapp_country_code
    digits = re.sub(r"\D", "", phone)
    if digits.startswith(code):
        return digits
    return f"{code}{digits}"


async def send_whatsapp_message(
    phone: str,
    message: str,
    client: httpx.AsyncClient | None = None,
) -> NotificationResult:
    """Send a text message through the configured WhatsApp gateway."""
    settings = get_settings()
    if not settings.whatsapp_enabled:
        logger.debug("whatsapp_disabled", phone=phone)
        return NotificationResult(False, "WhatsApp notifications disabled")

    if not settings.whatsapp_api_url or not settings.whatsapp_api_token:
        logger.warning("whatsapp_not_configured")
        return NotificationResult(False, "WhatsApp not configured")

    number = clean_phone(phone)
    url = f"{settings.whatsapp_api_url.rstrip('/')}/message/sendText/{settings.whatsapp_instance}"
    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.whatsapp_timeout_seconds)

    try:
        response = await client.post(
            url,
            json={"number": number, "text": message},
            headers={"apikey": settings.whatsapp_api_token},
        )
        if response.status_code >= 400:
            logger.error(
                "whatsapp_send_failed",
                status_code=response.status_code,
                body=response.text[:200],
            )
            return NotificationResult(False, f"HTTP {response.status_code}")
    except httpx.HTTPError as e:
        logger.error("whatsapp_send_error", error=str(e))
        return NotificationResult(False, str(e))
    finally:
        if owns_client:
            await client.aclose()

    logger.info("whatsapp_sent", number=number)
    return NotificationResult(True)


async def notify_task_assigned(
    phone: str,
    assignee_name: str,
    task_title: str,
    priority: str,
    due_date: datetime | None = None,
    client: httpx.AsyncClient | None = None,
) -> NotificationResult:
    due_line = f"\n📅 Due: {due_date:%Y-%m-%d}" if due_date else ""
    message = (
        "📋 *New task assigned*\n\n"
        f"Hi {assignee_name}!\n\n"
        "You have a new task:\n"
        f"*{task_title}*\n\n"
        f"Priority: {PRIORITY_LABELS.get(priority, priority)}{due_line}"
    )
    return await send_whatsapp_message(phone, message, client=client)


async def notify_status_changed(
    phone: str,
    assignee_name: str,
    task_title: str,
    new_status: str,
    changed_by_name: str,
    client: httpx.AsyncClient | None = None,
) -> NotificationResult:
    message = (
        "🔔 *Task status updated*\n\n"
        f"Hi {assignee_name}!\n\n"
        f"*{task_title}* is now:\n"
        f"{STATUS_LABELS.get(new_status, new_status)}\n\n"
        f"Changed by: {changed_by_name}"
    )
    return await send_whatsapp_message(phone, message, client=client)
