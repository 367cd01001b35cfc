import logging
import re
from typing import Any, Callable, Dict, List, NamedTuple, Optional

import aiohttp

from api.models import EDITIONS, Edition

logger = logging.getLogger(__name__)

DEFAULT_SIZE = '48'
ORDER_WORDS = ('order', 'reorder', 'buy')
ADJUST_WORDS = ('add', 'subtract', 'set')

_ORDER_PLAYER = re.compile(r'(order|reorder|buy)\s+(?:(\d+)\s+)?(\w+)')
_ADJUST_PLAYER = re.compile(r'(add|subtract|set)\s+(?:(\d+)\s+)?(\w+)')
_SIZE = re.compile(r'size\s+(\d+)')
_ORDER_QUANTITY = re.compile(r'(\d+)\s*(jerseys?|pieces?)')
_BARE_INTEGER = re.compile(r'\b(\d+)\b')

def _contains_any(text: str, words) -> bool:
    return any(word in text for word in words)

def _edition(text: str) -> str:
    for edition in EDITIONS:
        if edition.lower() in text:
            return edition
    return Edition.ICON.value

def _size(text: str) -> str:
    match = _SIZE.search(text)
    return match.group(1) if match else DEFAULT_SIZE

def _player(pattern: re.Pattern, text: str) -> str:
    match = pattern.search(text)
    return match.group(3) if match else ''

def _extract_order(text: str) -> Dict[str, Any]:
    quantity = 1
    match = _ORDER_QUANTITY.search(text)
    if match:
        quantity = int(match.group(1))
    else:
        verb = _ORDER_PLAYER.search(text)
        if verb and verb.group(2):
            quantity = int(verb.group(2))

    priority = 'high' if _contains_any(text, ('urgent', 'asap')) else 'medium'
    return {
        'type': 'order',
        'player_name': _player(_ORDER_PLAYER, text),
        'edition': _edition(text),
        'size': _size(text),
        'order_quantity': quantity,
        'order_details': {
            'quantity': quantity,
            'priority': priority,
            'transcript': text,
        },
    }

def _extract_adjust(text: str) -> Dict[str, Any]:
    intent = {
        'type': 'adjust',
        'player_name': _player(_ADJUST_PLAYER, text),
        'edition': _edition(text),
        'size': _size(text),
    }
    match = _BARE_INTEGER.search(text)
    magnitude = int(match.group(1)) if match else 1
    if _contains_any(text, ('add', 'plus')):
        intent['qty_inventory_delta'] = magnitude
    elif _contains_any(text, ('subtract', 'minus')):
        intent['qty_inventory_delta'] = -magnitude
    return intent

class IntentRule(NamedTuple):
    name: str
    matches: Callable[[str], bool]
    extract: Callable[[str], Dict[str, Any]]

# Evaluated top to bottom, first match wins
RULES: List[IntentRule] = [
    IntentRule('order', lambda text: _contains_any(text, ORDER_WORDS), _extract_order),
    IntentRule('adjust', lambda text: _contains_any(text, ADJUST_WORDS), _extract_adjust),
]

def interpret_locally(transcript: str) -> Dict[str, Any]:
    text = (transcript or '').lower().strip()
    for rule in RULES:
        if rule.matches(text):
            return rule.extract(text)
    return {'type': 'unknown'}

class VoiceInterpreter:
    def __init__(self, api_url: Optional[str] = None, api_key: Optional[str] = None):
        self.api_url = api_url
        self.api_key = api_key

    @property
    def remote_configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    async def interpret(self, transcript: str) -> Dict[str, Any]:
        """Classify a transcript, preferring the remote NLP endpoint"""
        if not self.remote_configured:
            return interpret_locally(transcript)

        try:
            headers = {'Authorization': f"Bearer {self.api_key}"}
            async with aiohttp.ClientSession() as session:
                async with session.post(self.api_url, json={'transcript': transcript}, headers=headers) as response:
                    if response.status >= 300:
                        logger.warning(f"Voice NLP returned {response.status}, using local interpreter")
                        return interpret_locally(transcript)
                    intent = await response.json(content_type=None)
            if not isinstance(intent, dict) or 'type' not in intent:
                logger.warning(f"Voice NLP returned an unexpected payload: {intent}")
                return interpret_locally(transcript)
            return intent
        except Exception as e:
            logger.error(f"Voice NLP request failed: {str(e)}")
            return interpret_locally(transcript)
