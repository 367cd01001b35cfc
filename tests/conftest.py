import pytest
from unittest.mock import AsyncMock, MagicMock
from datetime import datetime, timezone
from types import SimpleNamespace
from uuid import uuid4
import sys
from pathlib import Path

# Add project root to Python path
project_root = str(Path(__file__).parent.parent)
sys.path.append(project_root)

from lib.config import Settings
from lib.error_handler import Outcome
from api.routes import create_app
from api.services.drafts import DraftGenerator
from api.services.inventory import InventoryService
from api.services.storage import StorageService

TEST_USER_EMAIL = 'equipment@rockets.example.com'
TEST_TOKEN = 'test-token'

class FakeResult:
    def __init__(self, data):
        self.data = data
        self.error = None

class FakeQuery:
    """Just enough of the postgrest query builder for StorageService"""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.op = 'select'
        self.payload = None
        self.filters = []
        self.order_key = None
        self.descending = False
        self.limit_count = None
        self.on_conflict = 'id'

    def select(self, *columns):
        self.op = 'select'
        return self

    def insert(self, payload):
        self.op, self.payload = 'insert', payload
        return self

    def update(self, payload):
        self.op, self.payload = 'update', payload
        return self

    def upsert(self, payload, on_conflict='id'):
        self.op, self.payload, self.on_conflict = 'upsert', payload, on_conflict
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def order(self, column, desc=False):
        self.order_key, self.descending = column, desc
        return self

    def limit(self, count):
        self.limit_count = count
        return self

    def _matches(self, row):
        return all(str(row.get(column)) == str(value) for column, value in self.filters)

    def execute(self):
        self.db.calls.append((self.table, self.op, self.payload, list(self.filters)))
        if (self.table, self.op) in self.db.failures:
            raise Exception(f"{self.table} {self.op} failed")

        rows = self.db.tables.setdefault(self.table, [])
        if self.op == 'insert':
            row = {'id': str(uuid4()), 'created_at': datetime.now(timezone.utc).isoformat(), **self.payload}
            rows.append(row)
            return FakeResult([dict(row)])

        if self.op == 'upsert':
            key = self.on_conflict
            existing = next((row for row in rows if row.get(key) == self.payload.get(key)), None)
            if existing:
                existing.update(self.payload)
            else:
                existing = dict(self.payload)
                rows.append(existing)
            return FakeResult([dict(existing)])

        matched = [row for row in rows if self._matches(row)]
        if self.op == 'update':
            for row in matched:
                row.update(self.payload)
            return FakeResult([dict(row) for row in matched])

        if self.order_key:
            matched = sorted(matched, key=lambda row: row.get(self.order_key) or '', reverse=self.descending)
        if self.limit_count is not None:
            matched = matched[:self.limit_count]
        return FakeResult([dict(row) for row in matched])

class FakeAuth:
    def __init__(self, users):
        self.users = users

    def get_user(self, token):
        if token not in self.users:
            raise Exception("invalid JWT")
        return SimpleNamespace(user=self.users[token])

class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.calls = []
        self.failures = set()
        self.auth = FakeAuth({
            TEST_TOKEN: SimpleNamespace(id='user-1', email=TEST_USER_EMAIL),
            'outsider-token': SimpleNamespace(id='user-2', email='fan@gmail.com'),
        })

    def table(self, name):
        return FakeQuery(self, name)

    def fail(self, table, op):
        self.failures.add((table, op))

    def writes(self, table, op):
        return [payload for name, kind, payload, _ in self.calls if name == table and kind == op]

def jersey(item_id, player_name, edition='Icon', size='48', qty_inventory=3, qty_due_lva=0):
    return {
        'id': item_id,
        'player_name': player_name,
        'edition': edition,
        'size': size,
        'qty_inventory': qty_inventory,
        'qty_due_lva': qty_due_lva,
        'updated_at': '2024-01-01T00:00:00+00:00',
        'updated_by': None,
    }

@pytest.fixture
def fake_supabase():
    db = FakeSupabase()
    db.tables['jerseys'] = [
        jersey('j-1', 'Jalen', qty_inventory=3),
        jersey('j-2', 'Alperen', edition='Statement', size='52', qty_inventory=1),
        jersey('j-3', 'Fred', edition='City', size='50', qty_inventory=0, qty_due_lva=2),
    ]
    db.tables['settings'] = [{'id': 1, 'low_stock_threshold': 1}]
    return db

@pytest.fixture
def settings():
    return Settings(
        supabase_url='https://project.supabase.co',
        supabase_key='anon-key',
        allowed_email_domains='rockets.example.com',
        voiceflow_call_api_url='https://voiceflow.example.com/call',
        voiceflow_call_api_key='vf-secret',
        voiceflow_api_url='',
        voiceflow_api_key='',
        call_proxy_url='https://inventory.example.com',
        make_webhook_url='',
        openai_api_key='',
    )

@pytest.fixture
def storage(fake_supabase):
    return StorageService(fake_supabase)

@pytest.fixture
def notifier():
    mock = MagicMock()
    mock.notify_low_stock = AsyncMock(return_value=Outcome.success())
    return mock

@pytest.fixture
def inventory(storage, notifier):
    return InventoryService(storage=storage, notifier=notifier, drafts=DraftGenerator())

@pytest.fixture
def app(settings, fake_supabase):
    app = create_app(settings, supabase_client=fake_supabase)
    app.config['TESTING'] = True
    return app

@pytest.fixture
def test_client(app):
    return app.test_client()

@pytest.fixture
def auth_headers():
    return {'Authorization': f"Bearer {TEST_TOKEN}"}

@pytest.fixture
def aiohttp_response():
    """Build an async context manager standing in for ``session.post(...)``"""
    def build(status=200, text='{}', json_data=None):
        mock_response = MagicMock()
        mock_response.status = status
        mock_response.text = AsyncMock(return_value=text)
        mock_response.json = AsyncMock(return_value=json_data)

        class AsyncContextManager:
            async def __aenter__(self):
                return mock_response
            async def __aexit__(self, exc_type, exc_val, exc_tb):
                pass

        return AsyncContextManager()
    return build
