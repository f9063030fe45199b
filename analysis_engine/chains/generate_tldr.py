"""TLDR chain: a 2-3 sentence plain-text summary of the document.

This is the only stage whose failure is fatal. Transport failures are
retried with backoff; when the retry budget is spent the error propagates
and aborts the analysis run.
"""

from datetime import datetime, timezone

from analysis_engine.core.config import Settings
from analysis_engine.core.llm import CompletionClient
from analysis_engine.core.llm_usage import AnalysisRunContext
from analysis_engine.core.logging import get_logger
from analysis_engine.core.retry import RetryPolicy, tldr_retry_policy
from analysis_engine.core.schemas_analysis import TLDRSummary

logger = get_logger(__name__)

TEMPLATE_KEY = "tldr"


async def generate_tldr(
    text: str,
    client: CompletionClient,
    ctx: AnalysisRunContext,
    settings: Settings,
    retry_policy: RetryPolicy | None = None,
) -> TLDRSummary:
    """
    Generate the TLDR summary.

    Args:
        text: Full document text (truncated here to TLDR_MAX_CHARS)
        client: Completion client
        ctx: Run context receiving usage
        settings: Application settings
        retry_policy: Override for the settings-derived retry policy

    Returns:
        TLDRSummary with the stripped completion text

    Raises:
        Exception: The last transport error once every attempt failed
    """
    policy = retry_policy or tldr_retry_policy(settings)
    sample = text[: settings.TLDR_MAX_CHARS]

    response = await policy.run(
        lambda: client.call_with_fallback(TEMPLATE_KEY, sample),
        label="tldr",
    )
    ctx.record_usage(response, "tldr")

    summary = response.content.strip()
    if not summary:
        logger.warning("TLDR completion was empty", extra={"run_id": ctx.run_id, "stage": "tldr"})

    return TLDRSummary(
        text=summary,
        generated_at=datetime.now(timezone.utc),
        model=response.model,
    )
