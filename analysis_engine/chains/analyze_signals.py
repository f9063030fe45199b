"""Signal analysis chain: six qualitative scores in [0, 1]."""

from analysis_engine.chains._stage_call import complete_or_none
from analysis_engine.core.config import Settings
from analysis_engine.core.llm import CompletionClient, ParseError, parse_llm_json
from analysis_engine.core.llm_usage import AnalysisRunContext
from analysis_engine.core.logging import get_logger
from analysis_engine.core.retry import NO_RETRY, RetryPolicy
from analysis_engine.core.schemas_analysis import SignalAnalysis

logger = get_logger(__name__)

TEMPLATE_KEY = "signalAnalysis"


def default_signals() -> SignalAnalysis:
    """Fixed signal vector used when the completion is unusable."""
    return SignalAnalysis(
        structural=0.5,
        process=0.3,
        quantitative=0.3,
        technical=0.2,
        argumentative=0.3,
        temporal=0.2,
    )


async def analyze_signals(
    text: str,
    client: CompletionClient,
    ctx: AnalysisRunContext,
    settings: Settings,
    retry_policy: RetryPolicy = NO_RETRY,
) -> SignalAnalysis:
    """
    Score the document for structural, process, quantitative, technical,
    argumentative and temporal signals.

    Parsed scores are clamped into [0, 1]; a score the completion left out
    keeps its default value.
    """
    response = await complete_or_none(
        client,
        ctx,
        TEMPLATE_KEY,
        text[: settings.SIGNAL_MAX_CHARS],
        stage="signals",
        retry_policy=retry_policy,
    )
    if response is None:
        return default_signals()

    parsed = parse_llm_json(response, SignalAnalysis)
    if isinstance(parsed, ParseError):
        logger.error(
            "Failed to parse signals, using defaults",
            extra={"run_id": ctx.run_id, "stage": "signals"},
        )
        return default_signals()

    return parsed.value
