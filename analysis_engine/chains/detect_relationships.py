"""Relationship detection chain. Runs after entity extraction."""

from typing import Any

from pydantic import ValidationError

from analysis_engine.chains._stage_call import complete_or_none
from analysis_engine.core.config import Settings
from analysis_engine.core.llm import CompletionClient, ParseError, parse_llm_json_data
from analysis_engine.core.llm_usage import AnalysisRunContext
from analysis_engine.core.logging import get_logger
from analysis_engine.core.retry import NO_RETRY, RetryPolicy
from analysis_engine.core.schemas_analysis import Entity, Relationship

logger = get_logger(__name__)

TEMPLATE_KEY = "relationshipDetection"


def build_relationship_prompt(text: str, entities: list[Entity], max_chars: int) -> str:
    """Text sample followed by the entity list as ``id: text (type)`` lines."""
    entity_lines = "\n".join(f"{e.id}: {e.text} ({e.type})" for e in entities)
    return f"Text:\n{text[:max_chars]}\n\nEntities:\n{entity_lines}"


def _relationship_items(payload: Any) -> list[Any] | None:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("relationships"), list):
        return payload["relationships"]
    return None


def build_relationships(items: list[Any]) -> list[Relationship]:
    """Validate raw relationship dicts, skipping malformed ones and filling missing ids."""
    relationships: list[Relationship] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            relationship = Relationship.model_validate(
                {
                    **item,
                    "id": str(item.get("id") or ""),
                    "source": str(item.get("source") or "").strip(),
                    "target": str(item.get("target") or "").strip(),
                }
            )
        except ValidationError:
            continue
        if not relationship.id:
            relationship = relationship.model_copy(update={"id": f"rel-{len(relationships) + 1}"})
        relationships.append(relationship)
    return relationships


async def detect_relationships(
    text: str,
    entities: list[Entity],
    client: CompletionClient,
    ctx: AnalysisRunContext,
    settings: Settings,
    retry_policy: RetryPolicy = NO_RETRY,
) -> list[Relationship]:
    """
    Detect relationships between the extracted entities.

    No completion call is made when there are no entities.

    Returns:
        Relationships as returned by the completion; empty list on failure
    """
    if not entities:
        logger.info(
            "No entities extracted, skipping relationship detection",
            extra={"run_id": ctx.run_id, "stage": "relationships"},
        )
        return []

    response = await complete_or_none(
        client,
        ctx,
        TEMPLATE_KEY,
        build_relationship_prompt(text, entities, settings.RELATIONSHIP_MAX_CHARS),
        stage="relationships",
        retry_policy=retry_policy,
    )
    if response is None:
        return []

    parsed = parse_llm_json_data(response)
    items = None if isinstance(parsed, ParseError) else _relationship_items(parsed.value)
    if items is None:
        logger.error(
            "Failed to parse relationships",
            extra={"run_id": ctx.run_id, "stage": "relationships"},
        )
        return []

    return build_relationships(items)
