import asyncio
import logging
from typing import Any, Dict, Optional

from lib.error_handler import Outcome
from lib.openai_client import OpenAIClient

logger = logging.getLogger(__name__)

REWRITE_SYSTEM_PROMPT = "You write concise, professional reorder emails for sports equipment."

def build_template(player_name: str, edition: str, size: str, qty_needed: int) -> str:
    """Deterministic reorder email. No I/O."""
    return (
        f"Subject: Jersey Reorder Request - {player_name} {edition} {size}\n"
        "\n"
        "Hi Team,\n"
        "\n"
        "We are at or below threshold for the following item and request reorder:\n"
        "\n"
        f"- Player: {player_name}\n"
        f"- Edition: {edition}\n"
        f"- Size: {size}\n"
        f"- Quantity requested: {qty_needed}\n"
        "\n"
        "Please advise on lead time and confirm order.\n"
        "\n"
        "Thanks,\n"
        "Equipment Team"
    )

def reorder_quantity(qty_inventory: int) -> int:
    return max(1, 1 - qty_inventory)

class DraftGenerator:
    def __init__(self, openai_client: Optional[OpenAIClient] = None):
        self.openai = openai_client
        if openai_client is None:
            logger.info("OpenAI not configured, reorder drafts use the plain template")

    async def rewrite(self, template: str) -> Outcome:
        """Polish the template with OpenAI.

        The outcome's value is always usable: the rewritten text on success,
        the unchanged template otherwise.
        """
        if self.openai is None:
            return Outcome.skip(template)

        try:
            loop = asyncio.get_running_loop()
            text = await loop.run_in_executor(
                None,
                lambda: self.openai.complete(REWRITE_SYSTEM_PROMPT, template)
            )
            return Outcome.success(text or template)
        except Exception as e:
            logger.error(f"Reorder draft rewrite failed: {str(e)}")
            return Outcome.failure(e, value=template)

    async def draft_for(self, item: Dict[str, Any]) -> Dict[str, Any]:
        template = build_template(
            item['player_name'],
            item['edition'],
            item['size'],
            reorder_quantity(item.get('qty_inventory', 0))
        )
        outcome = await self.rewrite(template)
        return {
            'draft': outcome.value,
            'template': template,
            'ai_rewritten': outcome.ok and not outcome.skipped,
            'error': outcome.error,
        }
