"""Executive summary chain: headline, key ideas, KPIs, risks and opportunities."""

import math
from typing import Any

from pydantic import ValidationError

from analysis_engine.chains._stage_call import complete_or_none
from analysis_engine.core.config import Settings
from analysis_engine.core.llm import CompletionClient, ParseError, parse_llm_json_data
from analysis_engine.core.llm_usage import AnalysisRunContext
from analysis_engine.core.logging import get_logger
from analysis_engine.core.retry import NO_RETRY, RetryPolicy
from analysis_engine.core.schemas_analysis import KPI, ExecutiveSummary

logger = get_logger(__name__)

TEMPLATE_KEY = "executiveSummary"
FALLBACK_HEADLINE = "Document Summary"
FALLBACK_CALL_TO_ACTION = "Review the document for details"
FALLBACK_KEY_IDEA_CHARS = 200


def fallback_executive_summary(raw_content: str) -> ExecutiveSummary:
    """Summary used when the completion is unusable; keeps a slice of the raw text."""
    key_ideas = [raw_content[:FALLBACK_KEY_IDEA_CHARS]] if raw_content else []
    return ExecutiveSummary(
        headline=FALLBACK_HEADLINE,
        key_ideas=key_ideas,
        kpis=[],
        risks=[],
        opportunities=[],
        call_to_action=FALLBACK_CALL_TO_ACTION,
    )


def _is_valid_kpi(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    value = item.get("value")
    label = item.get("label")
    unit = item.get("unit")
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and isinstance(label, str)
        and bool(label.strip())
        and isinstance(unit, str)
        and bool(unit.strip())
    )


def filter_kpis(raw_kpis: Any) -> list[KPI]:
    """
    Keep only KPIs with a finite numeric value and non-empty label and unit.

    Malformed entries are dropped without failing the stage.
    """
    if not isinstance(raw_kpis, list):
        return []

    kpis: list[KPI] = []
    dropped = 0
    for item in raw_kpis:
        if not _is_valid_kpi(item):
            dropped += 1
            continue
        data = {**item, "id": str(item.get("id") or f"kpi-{len(kpis) + 1}")}
        confidence = data.get("confidence")
        if not isinstance(confidence, (int, float)) or isinstance(confidence, bool):
            data.pop("confidence", None)
        try:
            kpis.append(KPI.model_validate(data))
        except ValidationError:
            dropped += 1

    if dropped:
        logger.debug(f"Dropped {dropped} malformed KPI(s)")
    return kpis


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip()]


def _build_summary(data: dict[str, Any]) -> ExecutiveSummary:
    def pick(*keys: str) -> Any:
        for key in keys:
            if data.get(key):
                return data[key]
        return None

    headline = pick("headline")
    call_to_action = pick("call_to_action", "callToAction")

    return ExecutiveSummary(
        headline=headline.strip() if isinstance(headline, str) and headline.strip() else FALLBACK_HEADLINE,
        key_ideas=_string_list(pick("key_ideas", "keyIdeas")),
        kpis=filter_kpis(pick("kpis")),
        risks=_string_list(pick("risks")),
        opportunities=_string_list(pick("opportunities")),
        call_to_action=(
            call_to_action.strip()
            if isinstance(call_to_action, str) and call_to_action.strip()
            else FALLBACK_CALL_TO_ACTION
        ),
    )


async def generate_executive_summary(
    text: str,
    client: CompletionClient,
    ctx: AnalysisRunContext,
    settings: Settings,
    retry_policy: RetryPolicy = NO_RETRY,
) -> ExecutiveSummary:
    """
    Generate the executive summary. Always returns a usable summary.

    Args:
        text: Full document text (truncated here to EXECUTIVE_SUMMARY_MAX_CHARS)
        client: Completion client
        ctx: Run context receiving usage
        settings: Application settings
        retry_policy: Retry policy for the completion call

    Returns:
        ExecutiveSummary, or the fallback summary when the completion failed
    """
    response = await complete_or_none(
        client,
        ctx,
        TEMPLATE_KEY,
        text[: settings.EXECUTIVE_SUMMARY_MAX_CHARS],
        stage="executive_summary",
        retry_policy=retry_policy,
    )
    if response is None:
        return fallback_executive_summary("")

    parsed = parse_llm_json_data(response)
    if isinstance(parsed, ParseError) or not isinstance(parsed.value, dict):
        logger.error(
            "Failed to parse executive summary, using fallback",
            extra={"run_id": ctx.run_id, "stage": "executive_summary"},
        )
        return fallback_executive_summary(response.content)

    return _build_summary(parsed.value)
