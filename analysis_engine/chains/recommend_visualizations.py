"""Visualization recommendation chain.

The result always holds exactly one ``structured-view`` entry and at most
MAX_RECOMMENDATIONS entries in total.
"""

import json
from typing import Any

from pydantic import ValidationError

from analysis_engine.chains._stage_call import complete_or_none
from analysis_engine.core.config import Settings
from analysis_engine.core.llm import CompletionClient, ParseError, parse_llm_json_data
from analysis_engine.core.llm_usage import AnalysisRunContext
from analysis_engine.core.logging import get_logger
from analysis_engine.core.retry import NO_RETRY, RetryPolicy
from analysis_engine.core.schemas_analysis import (
    STRUCTURED_VIEW,
    Document,
    SignalAnalysis,
    VisualizationRecommendation,
    count_sections,
)

logger = get_logger(__name__)

TEMPLATE_KEY = "vizRecommendation"
DEFAULT_STRUCTURED_VIEW_RATIONALE = "Default view showing document structure with summaries"


def fallback_recommendations() -> list[VisualizationRecommendation]:
    return [
        VisualizationRecommendation(
            type=STRUCTURED_VIEW,
            score=1.0,
            rationale="Default view showing document structure",
        ),
        VisualizationRecommendation(
            type="mind-map",
            score=0.8,
            rationale="Good for hierarchical content",
        ),
    ]


def build_recommendation_context(
    document: Document,
    signals: SignalAnalysis,
    entity_count: int,
    relationship_count: int,
) -> dict[str, Any]:
    """Numeric and categorical facts the model bases its recommendation on."""
    return {
        "word_count": document.metadata.word_count,
        "section_count": count_sections(document.structure.sections),
        "entity_count": entity_count,
        "relationship_count": relationship_count,
        "signals": signals.model_dump(),
    }


def build_recommendation_prompt(context: dict[str, Any], sample: str) -> str:
    return (
        "Document analysis:\n"
        f"- Word count: {context['word_count']}\n"
        f"- Sections: {context['section_count']}\n"
        f"- Entities: {context['entity_count']}\n"
        f"- Relationships: {context['relationship_count']}\n"
        f"- Signals: {json.dumps(context['signals'])}\n\n"
        f"Sample text:\n{sample}"
    )


def _recommendation_items(payload: Any) -> list[Any] | None:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("recommendations"), list):
        return payload["recommendations"]
    return None


def finalize_recommendations(
    recommendations: list[VisualizationRecommendation],
    limit: int,
) -> list[VisualizationRecommendation]:
    """
    Keep exactly one structured-view entry and cap the list at ``limit``.

    The first structured-view keeps its position when it falls inside the
    limit and is moved to the last kept slot otherwise; when the list has
    none, a default entry is put first. Duplicates are removed.
    """
    others = [r for r in recommendations if r.type != STRUCTURED_VIEW]
    position = next(
        (i for i, r in enumerate(recommendations) if r.type == STRUCTURED_VIEW),
        None,
    )

    if position is None:
        structured = VisualizationRecommendation(
            type=STRUCTURED_VIEW,
            score=1.0,
            rationale=DEFAULT_STRUCTURED_VIEW_RATIONALE,
        )
        others.insert(0, structured)
    else:
        others.insert(min(position, limit - 1), recommendations[position])

    return others[:limit]


async def recommend_visualizations(
    document: Document,
    signals: SignalAnalysis,
    entity_count: int,
    relationship_count: int,
    client: CompletionClient,
    ctx: AnalysisRunContext,
    settings: Settings,
    retry_policy: RetryPolicy = NO_RETRY,
) -> list[VisualizationRecommendation]:
    """
    Recommend visualizations from the document's signals and counts.

    Returns:
        Between 1 and MAX_RECOMMENDATIONS recommendations, exactly one of
        them structured-view
    """
    context = build_recommendation_context(document, signals, entity_count, relationship_count)
    prompt = build_recommendation_prompt(
        context, document.content[: settings.RECOMMENDATION_SAMPLE_CHARS]
    )

    response = await complete_or_none(
        client,
        ctx,
        TEMPLATE_KEY,
        prompt,
        stage="recommendations",
        retry_policy=retry_policy,
    )
    if response is None:
        return fallback_recommendations()

    parsed = parse_llm_json_data(response)
    items = None if isinstance(parsed, ParseError) else _recommendation_items(parsed.value)
    if items is None:
        logger.error(
            "Failed to parse recommendations, using defaults",
            extra={"run_id": ctx.run_id, "stage": "recommendations"},
        )
        return fallback_recommendations()

    recommendations: list[VisualizationRecommendation] = []
    for item in items:
        try:
            recommendations.append(VisualizationRecommendation.model_validate(item))
        except ValidationError:
            logger.debug(f"Skipping invalid recommendation: {item!r}")

    return finalize_recommendations(recommendations, max(1, settings.MAX_RECOMMENDATIONS))
