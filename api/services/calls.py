import logging
from typing import Any, Dict, Optional

import aiohttp

from api.models import CallStatus
from api.services.provider import parse_body
from api.services.storage import StorageService
from lib.error_handler import CallProxyError, ValidationError

logger = logging.getLogger(__name__)

CALLBACK_TEXT_FIELDS = ('status', 'transcript', 'order_details', 'error_message', 'voiceflow_session_id')

def callback_update(body: Dict[str, Any]) -> Dict[str, Any]:
    """Pick the fields a provider callback is allowed to write.

    Text/object fields are written only when truthy, ``duration_seconds`` only
    when numeric and ``order_placed`` only when boolean.
    """
    update = {field: body[field] for field in CALLBACK_TEXT_FIELDS if body.get(field)}
    duration = body.get('duration_seconds')
    if isinstance(duration, (int, float)) and not isinstance(duration, bool):
        update['duration_seconds'] = duration
    if isinstance(body.get('order_placed'), bool):
        update['order_placed'] = body['order_placed']
    return update

class CallOrchestrator:
    """Drives one reorder call: initiated -> in_progress -> (callback) final status.

    Nothing here prevents two overlapping calls for the same item, and a call
    whose callback never arrives stays in_progress.
    """

    def __init__(self, storage: StorageService, proxy_url: str):
        self.storage = storage
        if not proxy_url.startswith(('http://', 'https://')):
            proxy_url = f"https://{proxy_url}"
        self.start_call_url = f"{proxy_url.rstrip('/')}/api/start-call"

    async def start_call(
        self,
        item: Dict[str, Any],
        quantity: int = 1,
        priority: str = 'medium',
        initiated_by: Optional[str] = None,
        extra_details: Optional[Dict[str, Any]] = None,
        dry_run: bool = False
    ) -> Dict[str, Any]:
        order_details = {
            'player_name': item['player_name'],
            'edition': item['edition'],
            'size': item['size'],
            'quantity': quantity,
            'priority': priority,
            **(extra_details or {}),
        }

        # No call is attempted without a log record, so insert failures propagate
        call_log = await self.storage.create_call_log(item, initiated_by, order_details)
        call_log_id = call_log['id']

        await self.storage.update_call_log(call_log_id, {'status': CallStatus.IN_PROGRESS.value})
        call_log['status'] = CallStatus.IN_PROGRESS.value

        try:
            data = await self._post_to_proxy(call_log_id, order_details, dry_run)
        except Exception as e:
            message = e.message if isinstance(e, CallProxyError) else f"Call proxy unreachable: {str(e)}"
            await self._mark_failed(call_log_id, message)
            if isinstance(e, CallProxyError):
                raise
            raise CallProxyError(message) from e

        updates = {}
        session_id = data.get('session_id') or data.get('voiceflow_session_id')
        if session_id:
            updates['voiceflow_session_id'] = session_id
        if data.get('transcript'):
            updates['transcript'] = data['transcript']
        if updates:
            await self.storage.update_call_log(call_log_id, updates)
            call_log.update(updates)

        logger.info(f"Call {call_log_id} in progress for {item['player_name']} {item['edition']} {item['size']}")
        return call_log

    async def _post_to_proxy(self, call_log_id: str, order_details: Dict[str, Any], dry_run: bool) -> Dict[str, Any]:
        body = {'call_log_id': call_log_id, 'order_details': order_details}
        if dry_run:
            body['dry_run'] = True

        logger.info(f"Requesting call {call_log_id} from {self.start_call_url}")
        async with aiohttp.ClientSession() as session:
            async with session.post(self.start_call_url, json=body) as response:
                text = await response.text()
                if response.status >= 300:
                    data = parse_body(text)
                    error = data.get('error') if isinstance(data, dict) else None
                    raise CallProxyError(
                        f"Call proxy returned {response.status}: {error or text}",
                        status_code=response.status,
                        details=data
                    )
        data = parse_body(text)
        return data if isinstance(data, dict) else {'raw': data}

    async def _mark_failed(self, call_log_id: str, message: str) -> None:
        try:
            await self.storage.update_call_log(call_log_id, {
                'status': CallStatus.FAILED.value,
                'error_message': message,
            })
        except Exception as e:
            logger.error(f"Could not mark call {call_log_id} as failed: {str(e)}")

async def apply_callback(storage: StorageService, body: Dict[str, Any]) -> Dict[str, Any]:
    """Patch the call log named by ``call_log_id`` with the provider's report"""
    call_log_id = body.get('call_log_id')
    if not call_log_id:
        raise ValidationError("Missing call_log_id")
    update = callback_update(body)
    if not update:
        logger.info(f"Callback for {call_log_id} carried no updatable fields")
        return update
    return await storage.update_call_log(call_log_id, update)
