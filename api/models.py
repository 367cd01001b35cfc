from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, field_validator

class Edition(str, Enum):
    ICON = 'Icon'
    STATEMENT = 'Statement'
    ASSOCIATION = 'Association'
    CITY = 'City'

    @classmethod
    def parse(cls, value: str) -> "Edition":
        """Case-insensitive lookup, raises ValueError for unknown editions"""
        for edition in cls:
            if edition.value.lower() == str(value).strip().lower():
                return edition
        raise ValueError(f"Unknown edition: {value}")

EDITIONS = [edition.value for edition in Edition]

class CallStatus(str, Enum):
    INITIATED = 'initiated'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    FAILED = 'failed'
    CANCELLED = 'cancelled'

class InventoryItemCreate(BaseModel):
    player_name: str = ''
    edition: Edition = Edition.ICON
    size: str = '48'
    qty_inventory: int = Field(0, ge=0)
    qty_due_lva: int = Field(0, ge=0)

    @field_validator('edition', mode='before')
    @classmethod
    def _normalize_edition(cls, value):
        return Edition.parse(value) if isinstance(value, str) else value

    @field_validator('size', mode='before')
    @classmethod
    def _size_as_string(cls, value):
        return '48' if value is None else str(value).strip()

class InventoryItemUpdate(BaseModel):
    """Partial update. Quantities are clamped at zero rather than rejected."""
    player_name: Optional[str] = None
    edition: Optional[Edition] = None
    size: Optional[str] = None
    qty_inventory: Optional[int] = None
    qty_due_lva: Optional[int] = None

    @field_validator('edition', mode='before')
    @classmethod
    def _normalize_edition(cls, value):
        return Edition.parse(value) if isinstance(value, str) else value

    @field_validator('size', mode='before')
    @classmethod
    def _size_as_string(cls, value):
        return None if value is None else str(value).strip()

    @field_validator('qty_inventory', 'qty_due_lva')
    @classmethod
    def _clamp(cls, value):
        return None if value is None else max(0, value)

    def changed_fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True, mode='json')

class InventorySettings(BaseModel):
    low_stock_threshold: int = Field(1, ge=0)

class UserPreferences(BaseModel):
    user_id: str
    email_notifications: bool = True
    low_stock_notifications: bool = True
    call_notifications: bool = True
    default_edition: Optional[Edition] = None
    rows_per_page: int = Field(50, ge=1, le=500)
