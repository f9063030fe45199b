"""Entity extraction chain."""

from typing import Any

from pydantic import ValidationError

from analysis_engine.chains._stage_call import complete_or_none
from analysis_engine.core.config import Settings
from analysis_engine.core.llm import CompletionClient, ParseError, parse_llm_json_data
from analysis_engine.core.llm_usage import AnalysisRunContext
from analysis_engine.core.logging import get_logger
from analysis_engine.core.retry import NO_RETRY, RetryPolicy
from analysis_engine.core.schemas_analysis import Entity

logger = get_logger(__name__)

TEMPLATE_KEY = "entityExtraction"


def _entity_items(payload: Any) -> list[Any] | None:
    """Accept either {"entities": [...]} or a bare list."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("entities"), list):
        return payload["entities"]
    return None


def build_entities(items: list[Any]) -> list[Entity]:
    """
    Validate raw entity dicts and make their ids unique.

    Items that fail validation are skipped. Missing or repeated ids are
    replaced with the next free ``entity-N``.
    """
    entities: list[Entity] = []
    seen_ids: set[str] = set()
    # Ids the completion claimed, so generated ids never collide with a later item
    reserved = {str(item.get("id", "")).strip() for item in items if isinstance(item, dict)}
    skipped = 0
    counter = 0

    for item in items:
        if not isinstance(item, dict):
            skipped += 1
            continue
        try:
            entity = Entity.model_validate({**item, "id": str(item.get("id") or "")})
        except ValidationError:
            skipped += 1
            continue

        entity_id = entity.id.strip()
        if not entity_id or entity_id in seen_ids:
            counter += 1
            while f"entity-{counter}" in seen_ids or f"entity-{counter}" in reserved:
                counter += 1
            entity_id = f"entity-{counter}"
        entity = entity.model_copy(update={"id": entity_id})

        seen_ids.add(entity_id)
        entities.append(entity)

    if skipped:
        logger.debug(f"Skipped {skipped} malformed entit(y/ies)")
    return entities


async def extract_entities(
    text: str,
    client: CompletionClient,
    ctx: AnalysisRunContext,
    settings: Settings,
    retry_policy: RetryPolicy = NO_RETRY,
) -> list[Entity]:
    """
    Extract named entities from the document text.

    Returns:
        Entities with unique ids; empty list when the completion failed
    """
    response = await complete_or_none(
        client,
        ctx,
        TEMPLATE_KEY,
        text[: settings.ENTITY_MAX_CHARS],
        stage="entities",
        retry_policy=retry_policy,
    )
    if response is None:
        return []

    parsed = parse_llm_json_data(response)
    items = None if isinstance(parsed, ParseError) else _entity_items(parsed.value)
    if items is None:
        logger.error("Failed to parse entities", extra={"run_id": ctx.run_id, "stage": "entities"})
        return []

    entities = build_entities(items)
    logger.info(
        f"Extracted {len(entities)} entities",
        extra={"run_id": ctx.run_id, "stage": "entities"},
    )
    return entities
