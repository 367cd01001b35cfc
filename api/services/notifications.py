import logging
from typing import Optional, Dict, Any

import aiohttp

from lib.error_handler import Outcome

logger = logging.getLogger(__name__)

class NotificationDispatcher:
    """Fire-and-forget low stock webhook (Make.com). No retry, no backoff."""

    def __init__(self, webhook_url: Optional[str] = None):
        self.webhook_url = webhook_url
        if not webhook_url:
            logger.info("Low stock webhook not configured, notifications disabled")

    def build_payload(self, item: Dict[str, Any], qty_inventory: int, message: Optional[str] = None) -> Dict[str, Any]:
        payload = {
            'id': item.get('id'),
            'player_name': item.get('player_name'),
            'edition': item.get('edition'),
            'size': item.get('size'),
            'qty_inventory': qty_inventory,
        }
        if message:
            payload['message'] = message
        return payload

    async def notify_low_stock(self, item: Dict[str, Any], qty_inventory: int, message: Optional[str] = None) -> Outcome:
        """POST the low stock payload. Never raises"""
        if not self.webhook_url:
            return Outcome.skip()

        payload = self.build_payload(item, qty_inventory, message)
        try:
            logger.info(f"Sending low stock alert for {payload['player_name']} ({payload['qty_inventory']} left)")
            async with aiohttp.ClientSession() as session:
                async with session.post(self.webhook_url, json=payload) as response:
                    if response.status >= 300:
                        error_text = await response.text()
                        logger.error(f"Low stock webhook returned {response.status}: {error_text}")
                        return Outcome.failure(f"Webhook returned {response.status}", value=payload)
            return Outcome.success(payload)
        except Exception as e:
            logger.error(f"Low stock webhook failed: {str(e)}")
            return Outcome.failure(e, value=payload)
