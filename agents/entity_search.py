"""
Entity Search Agent.
Natural-language lookup over the in-memory entity collection
("that shipping company in Panama").
"""

import json

from agents.base import BaseAgent, COMPLIANCE_OUTPUT_RULES
from models import EntityProfile, EntitySearchResult
from logger import get_logger

logger = get_logger(__name__)


class EntitySearchAgent(BaseAgent):
    """Match a free-text query against entity metadata."""

    @property
    def name(self) -> str:
        return "EntitySearch"

    @property
    def system_prompt(self) -> str:
        return f"""You are a search assistant for a client onboarding database.
Identify which entities best match the user's query. Queries are often vague or half-remembered;
use every piece of metadata (name, type, attributes, status) to find the best matches.

{COMPLIANCE_OUTPUT_RULES}

Return JSON with:
- matched_ids: array of entity ids, best match first
- reason: brief explanation"""

    async def search(self, query: str, entities: list[EntityProfile]) -> EntitySearchResult:
        """Search the supplied collection. Ids not in the collection are dropped."""
        catalogue = [
            {"id": e.id, "name": e.name, "type": e.type.value, "attributes": e.attributes, "status": e.status.value}
            for e in entities
        ]
        prompt = f"""User Query: "{query}"

Entities:
{json.dumps(catalogue, indent=2)}"""

        try:
            result = await self.run(prompt)
        except Exception as e:
            logger.warning(f"[{self.name}] Search failed, returning no matches: {e}")
            return EntitySearchResult(reason="Search service unavailable.")

        data = result.get("json")
        if not isinstance(data, dict):
            return EntitySearchResult(reason="No match")

        known = {e.id for e in entities}
        matched = [i for i in data.get("matched_ids", []) if i in known]
        dropped = len(data.get("matched_ids", [])) - len(matched)
        if dropped:
            logger.debug(f"[{self.name}] Dropped {dropped} unknown id(s) from search result")
        return EntitySearchResult(matched_ids=matched, reason=str(data.get("reason", "")))
