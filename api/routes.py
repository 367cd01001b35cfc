from flask import Flask, request, Response, jsonify, g
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from supabase import create_client

from api.models import InventorySettings, UserPreferences
from api.services.calls import CallOrchestrator, apply_callback
from api.services.drafts import DraftGenerator
from api.services.importer import export_csv, import_csv
from api.services.inventory import InventoryService
from api.services.notifications import NotificationDispatcher
from api.services.provider import CallProvider, DRY_RUN_RESPONSE
from api.services.storage import StorageService
from api.services.voice import VoiceInterpreter
from lib.auth import require_user
from lib.config import Settings, get_settings
from lib.error_handler import AppError, StoreError, ValidationError
from lib.openai_client import OpenAIClient

logger = logging.getLogger(__name__)

def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stdout,
        force=True  # Ensure our config takes precedence
    )

class Services:
    """Everything the routes need, built once per process from one Settings object"""

    def __init__(self, settings: Settings, supabase_client=None, call_provider: Optional[CallProvider] = None, openai_client: Optional[OpenAIClient] = None):
        self.settings = settings

        logger.info("Initializing Supabase client...")
        if supabase_client is None and settings.store_configured:
            try:
                supabase_client = create_client(settings.supabase_url, settings.supabase_key)
                logger.info("Supabase client initialized successfully")
            except Exception as e:
                logger.error(f"Error initializing Supabase client: {str(e)}")
                supabase_client = None
        elif supabase_client is None:
            logger.warning("Supabase not configured, store-backed endpoints will return 500")
        self.supabase = supabase_client
        self.storage = StorageService(supabase_client) if supabase_client is not None else None

        if call_provider is None and settings.call_provider_configured:
            call_provider = CallProvider(settings.voiceflow_call_api_url, settings.voiceflow_call_api_key)
        self.provider = call_provider

        if openai_client is None and settings.openai_api_key:
            logger.info("Initializing OpenAI client...")
            openai_client = OpenAIClient(settings.openai_api_key, settings.openai_model)
        self.notifier = NotificationDispatcher(settings.make_webhook_url)
        self.drafts = DraftGenerator(openai_client)
        self.voice = VoiceInterpreter(settings.voiceflow_api_url, settings.voiceflow_api_key)
        self.orchestrator = CallOrchestrator(self.storage, settings.call_proxy_url) if self.storage else None

    def inventory(self) -> InventoryService:
        """A fresh inventory session, so each request works on its own row copies"""
        return InventoryService(
            storage=self.storage,
            notifier=self.notifier,
            drafts=self.drafts,
            orchestrator=self.orchestrator,
            unit_value=self.settings.inventory_unit_value
        )

def _json_body() -> Dict[str, Any]:
    body = request.get_json(silent=True)
    if body is None:
        try:
            body = json.loads(request.get_data(as_text=True) or '{}')
        except ValueError:
            body = {}
    return body if isinstance(body, dict) else {}

def _int(body: Dict[str, Any], key: str, default: Optional[int] = None) -> int:
    value = body.get(key, default)
    if value is None:
        raise ValidationError(f"{key} is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{key} must be an integer")

def call_stats(calls: List[Dict[str, Any]]) -> Dict[str, Any]:
    durations = [call['duration_seconds'] for call in calls if call.get('duration_seconds')]
    return {
        'total': len(calls),
        'completed': sum(1 for call in calls if call.get('status') == 'completed'),
        'failed': sum(1 for call in calls if call.get('status') == 'failed'),
        'average_duration_seconds': round(sum(durations) / len(durations)) if durations else None,
    }

def create_app(settings: Optional[Settings] = None, **overrides) -> Flask:
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    app = Flask(__name__)
    services = Services(settings, **overrides)
    app.extensions['services'] = services
    logger.info("All services initialized successfully")

    @app.errorhandler(AppError)
    def handle_app_error(e: AppError):
        logger.error(f"{e.__class__.__name__}: {e.message}")
        return jsonify({'error': e.message}), e.status_code

    @app.route('/', methods=['GET'])
    def root():
        """Basic health check"""
        return {
            'status': 'healthy',
            'store_configured': services.storage is not None,
            'call_provider_configured': services.provider is not None,
        }

    @app.route('/api/start-call', methods=['POST'])
    async def start_call():
        """Forward a call request to the provider with a callback URL"""
        body = _json_body()
        call_log_id = body.get('call_log_id')
        order_details = body.get('order_details')
        if not call_log_id or not order_details:
            return jsonify({'error': 'Missing call_log_id or order_details'}), 400

        if body.get('dry_run') is True:
            logger.info(f"Dry run for call log {call_log_id}")
            return jsonify(DRY_RUN_RESPONSE), 200

        if services.provider is None:
            return jsonify({'error': 'Server call API not configured (VOICEFLOW_CALL_API_URL/KEY missing)'}), 500

        host = request.headers.get('X-Forwarded-Host') or request.host
        protocol = request.headers.get('X-Forwarded-Proto') or 'https'
        callback_url = f"{protocol}://{host}/api/call-callback"

        try:
            status, data = await services.provider.place_call(call_log_id, order_details, callback_url)
        except Exception as e:
            logger.error(f"Start call error: {str(e)}", exc_info=True)
            return jsonify({'error': str(e) or 'Unknown server error'}), 500

        if status >= 300:
            return jsonify({'error': 'Provider call failed', 'details': data}), status
        return jsonify(data), 200

    @app.route('/api/call-callback', methods=['POST'])
    async def call_callback():
        """Apply a provider status report to its call log. The caller is not authenticated."""
        body = _json_body()
        logger.info(f"Call callback received: {body}")
        if not body.get('call_log_id'):
            return Response('Missing call_log_id', status=400, mimetype='text/plain')
        if services.storage is None:
            return Response('Supabase environment variables are missing', status=500, mimetype='text/plain')

        try:
            await apply_callback(services.storage, body)
        except StoreError as e:
            return Response(e.message, status=500, mimetype='text/plain')
        return jsonify({'ok': True}), 200

    # Inventory

    @app.route('/api/inventory', methods=['GET'])
    @require_user
    async def list_inventory():
        rows = await services.inventory().load(
            search=request.args.get('search', ''),
            edition=request.args.get('edition', '')
        )
        return jsonify({'items': rows})

    @app.route('/api/inventory', methods=['POST'])
    @require_user
    async def add_inventory_item():
        row = await services.inventory().add_item(_json_body(), g.user_email)
        return jsonify(row), 201

    @app.route('/api/inventory/<item_id>', methods=['PATCH'])
    @require_user
    async def update_inventory_item(item_id):
        result = await services.inventory().update_item(item_id, _json_body(), g.user_email)
        return jsonify(result)

    @app.route('/api/inventory/<item_id>/adjust', methods=['POST'])
    @require_user
    async def adjust_inventory_item(item_id):
        body = _json_body()
        result = await services.inventory().adjust(item_id, body.get('field', 'qty_inventory'), _int(body, 'delta'), g.user_email)
        return jsonify(result)

    @app.route('/api/inventory/<item_id>/turn-in', methods=['POST'])
    @require_user
    async def turn_in_one(item_id):
        return jsonify(await services.inventory().turn_in_one(item_id, g.user_email))

    @app.route('/api/inventory/<item_id>/send-to-league', methods=['POST'])
    @require_user
    async def send_to_league(item_id):
        amount = _int(_json_body(), 'amount')
        return jsonify(await services.inventory().send_to_league(item_id, amount, g.user_email))

    @app.route('/api/inventory/<item_id>/reorder-draft', methods=['GET'])
    @require_user
    async def reorder_draft(item_id):
        return jsonify(await services.inventory().reorder_draft(item_id))

    @app.route('/api/inventory/<item_id>/call', methods=['POST'])
    @require_user
    async def place_call(item_id):
        body = _json_body()
        call_log = await services.inventory().place_call(
            item_id,
            quantity=_int(body, 'quantity', 1),
            priority=body.get('priority', 'medium'),
            actor=g.user_email,
            dry_run=body.get('dry_run') is True
        )
        return jsonify(call_log), 201

    @app.route('/api/inventory/export', methods=['GET'])
    @require_user
    async def export_inventory():
        rows = await services.inventory().load()
        return Response(
            export_csv(rows),
            mimetype='text/csv',
            headers={'Content-Disposition': 'attachment; filename=jerseys.csv'}
        )

    @app.route('/api/inventory/import', methods=['POST'])
    @require_user
    async def import_inventory():
        if 'file' in request.files:
            try:
                text = request.files['file'].read().decode('utf-8')
            except UnicodeDecodeError:
                raise ValidationError("CSV file must be UTF-8")
        else:
            text = request.get_data(as_text=True)
        if not text.strip():
            raise ValidationError("CSV file is required")
        result = await import_csv(services.inventory(), text, g.user_email)
        return jsonify(result), 201

    @app.route('/api/voice-command', methods=['POST'])
    @require_user
    async def voice_command():
        transcript = _json_body().get('transcript')
        if not transcript:
            raise ValidationError("transcript is required")
        intent = await services.voice.interpret(transcript)
        logger.info(f"Voice intent: {intent}")
        return jsonify(await services.inventory().apply_voice_intent(intent, g.user_email))

    # Dashboard and logs

    @app.route('/api/dashboard', methods=['GET'])
    @require_user
    async def dashboard():
        return jsonify(await services.inventory().dashboard())

    @app.route('/api/logs/activity', methods=['GET'])
    @require_user
    async def activity_logs():
        limit = _int(request.args, 'limit', 100)
        return jsonify({'logs': await services.storage.list_activity(limit=limit)})

    @app.route('/api/logs/calls', methods=['GET'])
    @require_user
    async def call_logs():
        calls = await services.storage.list_call_logs(limit=_int(request.args, 'limit', 50))
        return jsonify({'calls': calls, 'stats': call_stats(calls)})

    # Settings and preferences

    @app.route('/api/settings', methods=['GET'])
    @require_user
    async def get_app_settings():
        return jsonify({'low_stock_threshold': await services.storage.get_threshold()})

    @app.route('/api/settings', methods=['PUT'])
    @require_user
    async def save_app_settings():
        try:
            new_settings = InventorySettings(**_json_body())
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid settings: {e.errors()[0]['msg']}")
        return jsonify(await services.storage.save_settings(new_settings.model_dump()))

    @app.route('/api/settings/test-alert', methods=['POST'])
    @require_user
    async def test_alert():
        threshold = await services.storage.get_threshold()
        test_item = {'id': 'test', 'player_name': 'Test Player', 'edition': 'Icon', 'size': '48'}
        outcome = await services.notifier.notify_low_stock(test_item, threshold)
        return jsonify(outcome.model_dump())

    @app.route('/api/preferences', methods=['GET'])
    @require_user
    async def get_preferences():
        stored = await services.storage.get_preferences(g.user_id)
        return jsonify(stored or UserPreferences(user_id=g.user_id).model_dump(mode='json'))

    @app.route('/api/preferences', methods=['PUT'])
    @require_user
    async def save_preferences():
        try:
            preferences = UserPreferences(**{**_json_body(), 'user_id': g.user_id})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid preferences: {e.errors()[0]['msg']}")
        return jsonify(await services.storage.save_preferences(preferences.model_dump(mode='json')))

    return app
