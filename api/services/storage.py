import logging
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from lib.error_handler import StoreError, Outcome
from api.models import CallStatus

logger = logging.getLogger(__name__)

SETTINGS_ROW_ID = 1
DEFAULT_LOW_STOCK_THRESHOLD = 1

def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

class StorageService:
    """Typed accessor over the Supabase tables. Every write is last-write-wins."""

    def __init__(self, supabase_client):
        self.supabase = supabase_client
        self.items_table = 'jerseys'
        self.settings_table = 'settings'
        self.activity_table = 'activity_logs'
        self.calls_table = 'call_logs'
        self.preferences_table = 'user_preferences'
        logger.info("Storage service initialized")

    def _execute(self, query, action: str):
        try:
            result = query.execute()
        except Exception as e:
            logger.error(f"Failed to {action}: {str(e)}")
            raise StoreError(f"Failed to {action}: {str(e)}") from e
        if hasattr(result, 'error') and result.error:
            logger.error(f"Supabase error while trying to {action}: {result.error}")
            raise StoreError(f"Supabase error: {result.error}")
        return result

    # Inventory items

    async def list_items(self, order_by: Optional[str] = 'player_name', descending: bool = False) -> List[Dict[str, Any]]:
        query = self.supabase.table(self.items_table).select('*')
        if order_by:
            query = query.order(order_by, desc=descending)
        result = self._execute(query, 'load inventory')
        return result.data or []

    async def get_item(self, item_id: str) -> Optional[Dict[str, Any]]:
        query = self.supabase.table(self.items_table).select('*').eq('id', item_id).limit(1)
        result = self._execute(query, f"load item {item_id}")
        return result.data[0] if result.data else None

    async def insert_item(self, item: Dict[str, Any], actor: Optional[str] = None) -> Dict[str, Any]:
        data = {**item, 'updated_at': utcnow_iso(), 'updated_by': actor}
        logger.info(f"Inserting inventory item: {data}")
        result = self._execute(self.supabase.table(self.items_table).insert(data), 'add jersey')
        if not result.data:
            raise StoreError("Insert returned no row")
        return result.data[0]

    async def update_item(self, item_id: str, fields: Dict[str, Any], actor: Optional[str] = None) -> Dict[str, Any]:
        """Write ``fields`` and stamp updated_at/updated_by in the same update"""
        data = {**fields, 'updated_at': utcnow_iso(), 'updated_by': actor}
        logger.info(f"Updating item {item_id}: {data}")
        query = self.supabase.table(self.items_table).update(data).eq('id', item_id)
        self._execute(query, f"update item {item_id}")
        return data

    # Settings and preferences

    async def get_threshold(self) -> int:
        query = self.supabase.table(self.settings_table).select('low_stock_threshold').eq('id', SETTINGS_ROW_ID).limit(1)
        result = self._execute(query, 'load settings')
        if not result.data or result.data[0].get('low_stock_threshold') is None:
            return DEFAULT_LOW_STOCK_THRESHOLD
        return int(result.data[0]['low_stock_threshold'])

    async def save_settings(self, settings: Dict[str, Any]) -> Dict[str, Any]:
        data = {'id': SETTINGS_ROW_ID, **settings}
        self._execute(self.supabase.table(self.settings_table).upsert(data), 'save settings')
        return data

    async def get_preferences(self, user_id: str) -> Optional[Dict[str, Any]]:
        query = self.supabase.table(self.preferences_table).select('*').eq('user_id', user_id).limit(1)
        result = self._execute(query, f"load preferences for {user_id}")
        return result.data[0] if result.data else None

    async def save_preferences(self, preferences: Dict[str, Any]) -> Dict[str, Any]:
        data = {**preferences, 'updated_at': utcnow_iso()}
        self._execute(
            self.supabase.table(self.preferences_table).upsert(data, on_conflict='user_id'),
            'save preferences'
        )
        return data

    # Activity log (append-only)

    async def append_activity(self, actor: Optional[str], action: str, details: Dict[str, Any]) -> Outcome:
        """Append one activity entry. Failures are returned, never raised"""
        try:
            data = {'actor': actor, 'action': action, 'details': details}
            result = self._execute(self.supabase.table(self.activity_table).insert(data), f"log {action}")
            return Outcome.success(result.data[0] if result.data else data)
        except StoreError as e:
            return Outcome.failure(e.message)

    async def list_activity(self, limit: int = 100) -> List[Dict[str, Any]]:
        query = self.supabase.table(self.activity_table).select('*').order('created_at', desc=True).limit(limit)
        return self._execute(query, 'load activity logs').data or []

    # Call logs

    async def create_call_log(self, item: Dict[str, Any], initiated_by: Optional[str], order_details: Dict[str, Any]) -> Dict[str, Any]:
        data = {
            'player_name': item['player_name'],
            'edition': item['edition'],
            'size': item['size'],
            'status': CallStatus.INITIATED.value,
            'initiated_by': initiated_by,
            'order_placed': False,
            'order_details': order_details,
        }
        logger.info(f"Creating call log: {data}")
        result = self._execute(self.supabase.table(self.calls_table).insert(data), 'create call log')
        if not result.data:
            raise StoreError("Call log insert returned no row")
        return result.data[0]

    async def update_call_log(self, call_log_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        logger.info(f"Updating call log {call_log_id}: {fields}")
        query = self.supabase.table(self.calls_table).update(fields).eq('id', call_log_id)
        self._execute(query, f"update call log {call_log_id}")
        return fields

    async def list_call_logs(self, limit: int = 50) -> List[Dict[str, Any]]:
        query = self.supabase.table(self.calls_table).select('*').order('created_at', desc=True).limit(limit)
        return self._execute(query, 'load call logs').data or []
