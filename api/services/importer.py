import csv
import io
import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError as PydanticValidationError

from api.models import InventoryItemCreate
from api.services.inventory import InventoryService
from lib.error_handler import StoreError, ValidationError

logger = logging.getLogger(__name__)

CSV_COLUMNS = ['player_name', 'edition', 'size', 'qty_inventory', 'qty_due_lva']

def export_csv(rows: List[Dict[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS + ['updated_at', 'updated_by'], extrasaction='ignore')
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue()

def parse_csv(text: str) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Validate CSV rows. Returns (valid rows, errors); bad rows are skipped"""
    reader = csv.DictReader(io.StringIO(text.lstrip('\ufeff')))
    if not reader.fieldnames or 'player_name' not in [name.strip() for name in reader.fieldnames]:
        raise ValidationError("CSV must have a header row with at least a player_name column")

    valid, errors = [], []
    # Line 1 is the header
    for line_number, raw in enumerate(reader, start=2):
        row = {(key or '').strip(): (value or '').strip() for key, value in raw.items() if key}
        if not row.get('player_name'):
            errors.append({'line': line_number, 'error': 'player_name is required'})
            continue
        fields = {column: row[column] for column in CSV_COLUMNS if row.get(column)}
        try:
            valid.append(InventoryItemCreate(**fields).model_dump(mode='json'))
        except PydanticValidationError as e:
            first = e.errors()[0]
            location = '.'.join(str(part) for part in first['loc'])
            errors.append({'line': line_number, 'error': f"{location}: {first['msg']}"})
    return valid, errors

async def import_csv(inventory: InventoryService, text: str, actor: Optional[str] = None) -> Dict[str, Any]:
    valid, errors = parse_csv(text)
    created = 0
    for row in valid:
        try:
            await inventory.add_item(row, actor)
            created += 1
        except StoreError as e:
            errors.append({'player_name': row['player_name'], 'error': e.message})
    logger.info(f"CSV import finished: {created} created, {len(errors)} errors")
    return {'created': created, 'skipped': len(errors), 'errors': errors}
