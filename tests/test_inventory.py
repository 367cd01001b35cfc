import pytest
from unittest.mock import AsyncMock, MagicMock

from api.services.inventory import InventoryService, filter_rows
from lib.error_handler import NotFoundError, StoreError, ValidationError

ACTOR = 'equipment@rockets.example.com'

def activity(fake_supabase, action):
    return [entry for entry in fake_supabase.tables.get('activity_logs', []) if entry['action'] == action]

@pytest.mark.asyncio
async def test_update_at_threshold_alerts_once(inventory, fake_supabase, notifier):
    result = await inventory.update_item('j-1', {'qty_inventory': 1}, ACTOR)

    assert result['low_stock'] is True
    notifier.notify_low_stock.assert_awaited_once()
    assert len(activity(fake_supabase, 'low_stock_alert')) == 1
    assert activity(fake_supabase, 'low_stock_alert')[0]['details']['qty_inventory'] == 1
    assert len(activity(fake_supabase, 'inventory_update')) == 1

@pytest.mark.asyncio
async def test_update_above_threshold_does_not_alert(inventory, fake_supabase, notifier):
    result = await inventory.update_item('j-1', {'qty_inventory': 2}, ACTOR)

    assert result['low_stock'] is False
    notifier.notify_low_stock.assert_not_awaited()
    assert activity(fake_supabase, 'low_stock_alert') == []
    assert activity(fake_supabase, 'inventory_update')[0]['details'] == {'id': 'j-1', 'fields': {'qty_inventory': 2}}

@pytest.mark.asyncio
async def test_non_quantity_edit_uses_current_quantity_for_threshold(inventory, fake_supabase, notifier):
    await inventory.update_item('j-2', {'player_name': 'Alperen Sengun'}, ACTOR)

    notifier.notify_low_stock.assert_awaited_once()
    assert len(activity(fake_supabase, 'low_stock_alert')) == 1

@pytest.mark.asyncio
async def test_update_stamps_actor_and_timestamp(inventory, fake_supabase):
    await inventory.update_item('j-1', {'qty_due_lva': 4}, ACTOR)

    write = fake_supabase.writes('jerseys', 'update')[0]
    assert write['qty_due_lva'] == 4
    assert write['updated_by'] == ACTOR
    assert write['updated_at']

@pytest.mark.asyncio
async def test_failed_write_reverts_and_raises(inventory, fake_supabase, notifier):
    await inventory.load()
    fake_supabase.fail('jerseys', 'update')

    with pytest.raises(StoreError):
        await inventory.update_item('j-1', {'qty_inventory': 0}, ACTOR)

    assert inventory.rows['j-1']['qty_inventory'] == 3
    notifier.notify_low_stock.assert_not_awaited()
    assert fake_supabase.tables.get('activity_logs', []) == []

@pytest.mark.asyncio
async def test_activity_log_failure_does_not_fail_update(inventory, fake_supabase):
    fake_supabase.fail('activity_logs', 'insert')

    result = await inventory.update_item('j-1', {'qty_inventory': 5}, ACTOR)

    assert result['item']['qty_inventory'] == 5

@pytest.mark.asyncio
async def test_negative_quantities_are_clamped(inventory, fake_supabase):
    result = await inventory.adjust('j-3', 'qty_inventory', -4, ACTOR)
    assert result['item']['qty_inventory'] == 0

    result = await inventory.update_item('j-1', {'qty_due_lva': -7}, ACTOR)
    assert result['item']['qty_due_lva'] == 0

@pytest.mark.asyncio
async def test_invalid_edition_is_rejected(inventory):
    with pytest.raises(ValidationError):
        await inventory.update_item('j-1', {'edition': 'Throwback'}, ACTOR)

@pytest.mark.asyncio
async def test_turn_in_one(inventory):
    result = await inventory.turn_in_one('j-1', ACTOR)

    assert result['item']['qty_inventory'] == 2
    assert result['item']['qty_due_lva'] == 1

@pytest.mark.asyncio
async def test_send_to_league_moves_at_most_what_is_on_hand(inventory):
    result = await inventory.send_to_league('j-1', 10, ACTOR)

    assert result['item']['qty_inventory'] == 0
    assert result['item']['qty_due_lva'] == 3

@pytest.mark.asyncio
async def test_send_to_league_with_empty_inventory(inventory):
    with pytest.raises(ValidationError):
        await inventory.send_to_league('j-3', 1, ACTOR)

@pytest.mark.asyncio
async def test_missing_item(inventory):
    with pytest.raises(NotFoundError):
        await inventory.update_item('nope', {'qty_inventory': 1}, ACTOR)

@pytest.mark.asyncio
async def test_add_item_defaults(inventory, fake_supabase):
    row = await inventory.add_item(actor=ACTOR)

    assert row['edition'] == 'Icon'
    assert row['size'] == '48'
    assert row['qty_inventory'] == 0
    assert row['updated_by'] == ACTOR
    assert len(fake_supabase.tables['jerseys']) == 4

@pytest.mark.asyncio
async def test_voice_adjust_updates_matching_row(inventory):
    result = await inventory.apply_voice_intent({
        'type': 'adjust', 'player_name': 'jalen', 'edition': 'Icon', 'size': '48', 'qty_inventory_delta': -5,
    }, ACTOR)

    assert result['applied'] is True
    assert result['item']['qty_inventory'] == 0

@pytest.mark.asyncio
async def test_voice_adjust_without_match_is_a_no_op(inventory, fake_supabase):
    result = await inventory.apply_voice_intent({
        'type': 'adjust', 'player_name': 'jalen', 'edition': 'City', 'size': '48', 'qty_inventory_delta': 1,
    }, ACTOR)

    assert result['applied'] is False
    assert fake_supabase.writes('jerseys', 'update') == []

@pytest.mark.asyncio
async def test_voice_order_starts_call(storage, notifier):
    orchestrator = MagicMock()
    orchestrator.start_call = AsyncMock(return_value={'id': 'call-1', 'status': 'in_progress'})
    inventory = InventoryService(storage, notifier, MagicMock(), orchestrator=orchestrator)

    result = await inventory.apply_voice_intent({
        'type': 'order', 'player_name': 'alperen', 'edition': 'Statement', 'size': '52',
        'order_quantity': 2, 'order_details': {'quantity': 2, 'priority': 'high'},
    }, ACTOR)

    assert result['call_log']['id'] == 'call-1'
    kwargs = orchestrator.start_call.call_args[1]
    assert kwargs['quantity'] == 2
    assert kwargs['priority'] == 'high'
    assert orchestrator.start_call.call_args[0][0]['id'] == 'j-2'

@pytest.mark.asyncio
async def test_dashboard(inventory):
    stats = await inventory.dashboard()

    assert stats['total_jerseys'] == 3
    assert stats['low_stock_items'] == 2
    assert stats['total_value'] == 4 * 75
    assert stats['editions'] == {'Icon': 1, 'Statement': 1, 'Association': 0, 'City': 1}

def test_filter_rows():
    rows = [
        {'player_name': 'Jalen Green', 'edition': 'Icon', 'size': '48'},
        {'player_name': 'Fred VanVleet', 'edition': 'City', 'size': '50'},
    ]

    assert filter_rows(rows, search='green') == [rows[0]]
    assert filter_rows(rows, search='50') == [rows[1]]
    assert filter_rows(rows, edition='City') == [rows[1]]
    assert filter_rows(rows, search='jalen', edition='City') == []
    assert filter_rows(rows) == rows

@pytest.mark.asyncio
async def test_update_coerces_numeric_size(inventory):
    result = await inventory.update_item('j-1', {'size': 52}, ACTOR)

    assert result['changes'] == {'size': '52'}
    assert result['item']['size'] == '52'

@pytest.mark.asyncio
async def test_add_item_with_null_size(inventory):
    row = await inventory.add_item({'player_name': 'Amen', 'size': None}, ACTOR)

    assert row['size'] == '48'
