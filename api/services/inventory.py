import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from api.models import EDITIONS, InventoryItemCreate, InventoryItemUpdate
from api.services.calls import CallOrchestrator
from api.services.drafts import DraftGenerator
from api.services.notifications import NotificationDispatcher
from api.services.storage import StorageService
from lib.error_handler import ConfigurationError, ErrorHandler, NotFoundError, Outcome, StoreError, ValidationError
from lib.optimistic import optimistic_update

logger = logging.getLogger(__name__)

QUANTITY_FIELDS = ('qty_inventory', 'qty_due_lva')

def filter_rows(rows: List[Dict[str, Any]], search: str = '', edition: str = '') -> List[Dict[str, Any]]:
    """Search matches a player name substring (any case) or a size substring"""
    needle = (search or '').lower()
    filtered = []
    for row in rows:
        matches_search = (
            needle in (row.get('player_name') or '').lower() or search in (row.get('size') or '')
        ) if search else True
        matches_edition = row.get('edition') == edition if edition else True
        if matches_search and matches_edition:
            filtered.append(row)
    return filtered

class InventoryService:
    """Inventory mutations and their side effects.

    ``rows`` is the transient in-memory copy of the jerseys table. Mutations
    are applied to it optimistically and reverted if the store write fails.
    """

    def __init__(
        self,
        storage: StorageService,
        notifier: NotificationDispatcher,
        drafts: DraftGenerator,
        orchestrator: Optional[CallOrchestrator] = None,
        unit_value: int = 75
    ):
        self.storage = storage
        self.notifier = notifier
        self.drafts = drafts
        self.orchestrator = orchestrator
        self.unit_value = unit_value
        self.rows: Dict[str, Dict[str, Any]] = {}

    async def load(self, search: str = '', edition: str = '') -> List[Dict[str, Any]]:
        rows = await self.storage.list_items(order_by='player_name')
        self.rows = {row['id']: row for row in rows}
        return filter_rows(rows, search, edition)

    async def get(self, item_id: str) -> Dict[str, Any]:
        row = self.rows.get(item_id)
        if row is None:
            row = await self.storage.get_item(item_id)
            if row is None:
                raise NotFoundError(f"Jersey {item_id} not found")
            self.rows[item_id] = row
        return row

    async def add_item(self, fields: Optional[Dict[str, Any]] = None, actor: Optional[str] = None) -> Dict[str, Any]:
        try:
            item = InventoryItemCreate(**(fields or {}))
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid jersey: {e.errors()[0]['msg']}")
        row = await self.storage.insert_item(item.model_dump(mode='json'), actor)
        self.rows[row['id']] = row
        logger.info(f"Added jersey {row['id']}")
        return row

    async def update_item(self, item_id: str, fields: Dict[str, Any], actor: Optional[str] = None) -> Dict[str, Any]:
        """Write a partial update, then run the low stock check and activity logging"""
        try:
            changes = InventoryItemUpdate(**fields).changed_fields()
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid update: {e.errors()[0]['msg']}")
        if not changes:
            raise ValidationError("No fields to update")

        row = await self.get(item_id)
        with optimistic_update(row, changes):
            stamped = await self.storage.update_item(item_id, changes, actor)
        row['updated_at'] = stamped.get('updated_at')
        row['updated_by'] = actor

        effective_qty = changes.get('qty_inventory', row.get('qty_inventory', 0))
        low_stock = await self._check_low_stock(row, effective_qty, actor)

        ErrorHandler.log_outcome(
            'inventory_update log',
            await self.storage.append_activity(actor, 'inventory_update', {'id': item_id, 'fields': changes})
        )
        return {'item': dict(row), 'low_stock': low_stock.ok and bool(low_stock.value), 'changes': changes}

    async def _check_low_stock(self, row: Dict[str, Any], qty_inventory: int, actor: Optional[str]) -> Outcome:
        try:
            threshold = await self.storage.get_threshold()
        except StoreError as e:
            return ErrorHandler.log_outcome('low stock check', Outcome.failure(e.message))

        if qty_inventory > threshold:
            return Outcome.success(False)

        ErrorHandler.log_outcome('low stock webhook', await self.notifier.notify_low_stock(row, qty_inventory))
        details = {
            'id': row['id'],
            'player_name': row.get('player_name'),
            'edition': row.get('edition'),
            'size': row.get('size'),
            'qty_inventory': qty_inventory,
        }
        ErrorHandler.log_outcome(
            'low_stock_alert log',
            await self.storage.append_activity(actor, 'low_stock_alert', details)
        )
        return Outcome.success(True)

    async def adjust(self, item_id: str, field: str, delta: int, actor: Optional[str] = None) -> Dict[str, Any]:
        if field not in QUANTITY_FIELDS:
            raise ValidationError(f"Cannot adjust {field}")
        row = await self.get(item_id)
        return await self.update_item(item_id, {field: max(0, row.get(field, 0) + delta)}, actor)

    async def turn_in_one(self, item_id: str, actor: Optional[str] = None) -> Dict[str, Any]:
        """Move a single jersey from inventory to due-to-affiliate"""
        return await self.send_to_league(item_id, 1, actor)

    async def send_to_league(self, item_id: str, amount: int, actor: Optional[str] = None) -> Dict[str, Any]:
        if amount < 1:
            raise ValidationError("Amount must be at least 1")
        row = await self.get(item_id)
        moved = min(amount, row.get('qty_inventory', 0))
        if moved == 0:
            raise ValidationError("No inventory left to send")
        return await self.update_item(item_id, {
            'qty_inventory': row['qty_inventory'] - moved,
            'qty_due_lva': row.get('qty_due_lva', 0) + moved,
        }, actor)

    def find_match(self, player_name: str, edition: str, size: Optional[str] = None) -> Optional[Dict[str, Any]]:
        for row in self.rows.values():
            if (
                (row.get('player_name') or '').lower() == (player_name or '').lower()
                and (row.get('edition') or '').lower() == (edition or '').lower()
                and (not size or row.get('size') == size)
            ):
                return row
        return None

    async def apply_voice_intent(self, intent: Dict[str, Any], actor: Optional[str] = None) -> Dict[str, Any]:
        if intent.get('type') not in ('adjust', 'order'):
            return {'intent': intent, 'applied': False}

        if not self.rows:
            await self.load()
        match = self.find_match(intent.get('player_name', ''), intent.get('edition', ''), intent.get('size'))
        if match is None:
            logger.info(f"No jersey matches voice intent {intent}")
            return {'intent': intent, 'applied': False}

        if intent['type'] == 'adjust':
            fields = {}
            for field in QUANTITY_FIELDS:
                delta = intent.get(f"{field}_delta")
                if delta:
                    fields[field] = max(0, match.get(field, 0) + delta)
            if not fields:
                return {'intent': intent, 'applied': False}
            result = await self.update_item(match['id'], fields, actor)
            return {'intent': intent, 'applied': True, **result}

        if self.orchestrator is None:
            raise ConfigurationError("Reorder calls are not configured")
        details = intent.get('order_details') or {}
        call_log = await self.orchestrator.start_call(
            match,
            quantity=intent.get('order_quantity', 1),
            priority=details.get('priority', 'medium'),
            initiated_by=actor,
            extra_details=details
        )
        return {'intent': intent, 'applied': True, 'call_log': call_log}

    async def reorder_draft(self, item_id: str) -> Dict[str, Any]:
        row = await self.get(item_id)
        return await self.drafts.draft_for(row)

    async def place_call(self, item_id: str, quantity: int = 1, priority: str = 'medium', actor: Optional[str] = None, dry_run: bool = False) -> Dict[str, Any]:
        if self.orchestrator is None:
            raise ConfigurationError("Reorder calls are not configured")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        row = await self.get(item_id)
        return await self.orchestrator.start_call(row, quantity=quantity, priority=priority, initiated_by=actor, dry_run=dry_run)

    async def dashboard(self) -> Dict[str, Any]:
        rows = await self.load()
        threshold = await self.storage.get_threshold()
        editions = Counter(row.get('edition') for row in rows)
        activity = await self.storage.list_activity(limit=10)
        calls = await self.storage.list_call_logs(limit=5)
        return {
            'total_jerseys': len(rows),
            'low_stock_items': sum(1 for row in rows if row.get('qty_inventory', 0) <= threshold),
            'total_value': sum(row.get('qty_inventory', 0) * self.unit_value for row in rows),
            'recent_activity': len(activity),
            'editions': {edition: editions.get(edition, 0) for edition in EDITIONS},
            'recent_calls': calls,
            'low_stock_threshold': threshold,
        }
