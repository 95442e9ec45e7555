"""Operator alerts posted to a Telegram chat."""

import os
from typing import Optional

import httpx

from flowbot.logging_config import get_logger

logger = get_logger("alert_service")

ALERT_BOT_TOKEN = os.environ.get("ALERT_BOT_TOKEN")
ALERT_CHAT_ID = os.environ.get("ALERT_CHAT_ID")

LEVEL_MARKERS = {"INFO": "[i]", "WARNING": "[!]", "ERROR": "[x]", "CRITICAL": "[!!!]"}


def send_alert(level: str, message: str, context: Optional[dict] = None) -> bool:
    """Send alert to Telegram.

    Args:
        level: INFO, WARNING, ERROR, CRITICAL
        message: Alert message
        context: Optional context dict

    Returns:
        True if sent successfully
    """
    if not ALERT_BOT_TOKEN or not ALERT_CHAT_ID:
        logger.warning(f"Alert not configured: {level} - {message}", extra={"context": context or {}})
        return False

    text = f"{LEVEL_MARKERS.get(level, '[-]')} flowbot {level}\n\n{message}"
    if context:
        text += "\n\n" + "\n".join(f"{k}: {v}" for k, v in context.items())

    try:
        with httpx.Client(timeout=10) as client:
            response = client.post(
                f"https://api.telegram.org/bot{ALERT_BOT_TOKEN}/sendMessage",
                json={"chat_id": ALERT_CHAT_ID, "text": text},
            )
            return response.status_code == 200
    except httpx.HTTPError as e:
        logger.error(f"Failed to send alert: {e}")
        return False


def alert_critical(message: str, context: Optional[dict] = None) -> bool:
    return send_alert("CRITICAL", message, context)
