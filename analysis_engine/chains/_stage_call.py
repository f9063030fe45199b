"""Shared completion call for analysis stages that recover from failures."""

from analysis_engine.core.llm import CompletionClient, CompletionResponse
from analysis_engine.core.llm_usage import AnalysisRunContext
from analysis_engine.core.logging import get_logger
from analysis_engine.core.retry import NO_RETRY, RetryPolicy

logger = get_logger(__name__)


async def complete_or_none(
    client: CompletionClient,
    ctx: AnalysisRunContext,
    template_key: str,
    input_text: str,
    *,
    stage: str,
    retry_policy: RetryPolicy = NO_RETRY,
) -> CompletionResponse | None:
    """
    Run one stage completion, recording usage on success.

    Transport failures are logged and turned into ``None`` so the caller can
    substitute its fallback.
    """
    try:
        response = await retry_policy.run(
            lambda: client.call_with_fallback(template_key, input_text),
            label=stage,
        )
    except Exception as e:
        logger.error(
            f"{stage} completion failed, using fallback: {e}",
            extra={"run_id": ctx.run_id, "stage": stage},
        )
        return None

    ctx.record_usage(response, stage)
    return response
