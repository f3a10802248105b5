"""
Push Notification Service

Sends in-app push notifications to the user through the Expo Push API:
- Supportive check-in after a WARNING-level message
- Confirmation that trusted contacts were reached after a crisis alert
- Follow-up check-ins on open crisis events

Messages are warm and non-clinical. They never reveal the risk
classification or quote the user's message.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)


# ============================================================================
# REUSABLE EXPO PUSH HELPER FUNCTION
# ============================================================================

async def send_expo_push(
    push_token: str,
    title: str,
    message: str,
    data: Optional[Dict[str, Any]] = None,
    *,
    url: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """
    Send a push notification to a single device via Expo Push API.

    Args:
        push_token: Expo push token (e.g., "ExponentPushToken[xxx]")
        title: Notification title
        message: Notification body
        data: Optional extra data to include

    Returns:
        Dict with:
        - success: bool
        - expo_response: dict or None
        - error: str or None
        - token_used: str (truncated for privacy)
    """
    result = {
        "success": False,
        "expo_response": None,
        "error": None,
        "token_used": push_token[:30] + "..." if push_token else None
    }

    if not push_token:
        result["error"] = "No push token provided"
        logger.warning("send_expo_push: No push token provided")
        return result

    if not push_token.startswith("ExponentPushToken"):
        result["error"] = "Invalid push token format (must start with ExponentPushToken)"
        logger.warning(f"send_expo_push: Invalid token format: {push_token[:20]}...")
        return result

    # High priority so Android delivers immediately
    expo_message = {
        "to": push_token,
        "sound": "default",
        "title": title,
        "body": message,
        "data": data or {},
        "priority": "high",
        "channelId": "default",
    }

    try:
        async with httpx.AsyncClient(timeout=timeout or settings.PROVIDER_TIMEOUT_SECONDS) as client:
            response = await client.post(
                url or settings.EXPO_PUSH_URL,
                json=expo_message,
                headers={
                    "Accept": "application/json",
                    "Accept-Encoding": "gzip, deflate",
                    "Content-Type": "application/json",
                }
            )

            if response.status_code == 200:
                expo_data = response.json()
                result["expo_response"] = expo_data

                # Single message -> dict ticket, batch -> list of tickets
                data_field = expo_data.get("data")
                if isinstance(data_field, dict):
                    ticket = data_field
                elif isinstance(data_field, list) and len(data_field) > 0:
                    ticket = data_field[0]
                else:
                    ticket = None

                if ticket:
                    ticket_status = ticket.get("status")
                    if ticket_status == "ok":
                        result["success"] = True
                        logger.info(f"Push sent successfully to {push_token[:25]}...")
                    else:
                        error_msg = ticket.get("message") or ticket.get("details", {}).get("error") or f"Status: {ticket_status}"
                        result["error"] = error_msg
                        logger.warning(f"Expo ticket error: {error_msg}")
                else:
                    result["success"] = True  # No error reported
                    logger.info(f"Push sent to {push_token[:25]}...")
            else:
                result["error"] = f"Expo API returned {response.status_code}: {response.text[:200]}"
                logger.error(f"Expo API error: {response.status_code}")

    except httpx.TimeoutException:
        result["error"] = "Expo API request timed out"
        logger.error("send_expo_push: Request timed out")
    except httpx.HTTPError as e:
        result["error"] = str(e)
        logger.error(f"send_expo_push error: {e}")

    return result


class ExpoPushSender:
    """PushSender backed by ``send_expo_push``."""

    def __init__(self, *, url: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.url = url
        self.timeout = timeout

    async def send(
        self, token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        return await send_expo_push(token, title, body, data, url=self.url, timeout=self.timeout)
