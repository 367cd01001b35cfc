import json
import logging
from typing import Any, Dict, Tuple

import aiohttp

logger = logging.getLogger(__name__)

DRY_RUN_RESPONSE = {'ok': True, 'session_id': 'dry_run_session', 'transcript': ''}

def parse_body(text: str) -> Any:
    """Provider bodies are relayed as JSON when possible, else wrapped as raw text"""
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return {'raw': text}

class CallProvider:
    """Voiceflow outbound call API. Holds the credential server-side."""

    def __init__(self, api_url: str, api_key: str):
        self.api_url = api_url
        self.api_key = api_key

    async def place_call(self, call_log_id: str, order_details: Dict[str, Any], callback_url: str) -> Tuple[int, Any]:
        payload = {
            'call_log_id': call_log_id,
            'order_details': order_details,
            'callback_url': callback_url,
        }
        headers = {
            'Content-Type': 'application/json',
            'Authorization': f"Bearer {self.api_key}",
        }
        logger.info(f"Placing call for call log {call_log_id} (callback {callback_url})")
        async with aiohttp.ClientSession() as session:
            async with session.post(self.api_url, json=payload, headers=headers) as response:
                text = await response.text()
                status = response.status

        if status >= 300:
            logger.error(f"Call provider returned {status}: {text}")
        else:
            logger.info(f"Call provider accepted call log {call_log_id}")
        return status, parse_body(text)
