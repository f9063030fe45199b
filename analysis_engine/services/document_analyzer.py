"""Document analysis orchestrator.

Runs the analysis stages in waves and reports progress at each transition:

  init (5) → priority-analysis (10) → early-results (30) → detailed-analysis (35)
  → relationships (50) → sections (65) → recommendations (85) → complete (100)

Wave 1: TLDR + executive summary (parallel), reported early as a partial result
Wave 2: entity extraction + signal analysis (parallel)
Then:   relationship detection (needs entities) → section walk
        → visualization recommendations (needs signals and counts)

Every stage except TLDR recovers from its own failures with a fallback, so a
run always reaches ``complete`` unless the TLDR stage exhausts its retries.
"""

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any

from analysis_engine.chains.analyze_signals import analyze_signals
from analysis_engine.chains.detect_relationships import detect_relationships
from analysis_engine.chains.extract_entities import extract_entities
from analysis_engine.chains.generate_executive_summary import generate_executive_summary
from analysis_engine.chains.generate_tldr import generate_tldr
from analysis_engine.chains.recommend_visualizations import recommend_visualizations
from analysis_engine.chains.summarize_sections import summarize_sections
from analysis_engine.core.config import Settings, get_settings
from analysis_engine.core.llm import AnthropicCompletionClient, CompletionClient
from analysis_engine.core.llm_usage import AnalysisRunContext
from analysis_engine.core.logging import get_logger
from analysis_engine.core.relationship_reconciler import reconcile_relationships
from analysis_engine.core.retry import NO_RETRY, RetryPolicy, tldr_retry_policy
from analysis_engine.core.schemas_analysis import (
    AnalysisMetadata,
    AnalysisProgress,
    Document,
    DocumentAnalysis,
)

logger = get_logger(__name__)

ProgressCallback = Callable[[str, int, str, dict[str, Any] | None], None]


# =============================================================================
# Progress steps
# =============================================================================


@dataclass(frozen=True)
class AnalysisStep:
    name: str
    progress: int
    message: str


ANALYSIS_STEPS: list[AnalysisStep] = [
    AnalysisStep("init", 5, "Starting analysis"),
    AnalysisStep("priority-analysis", 10, "Generating TLDR and executive summary"),
    AnalysisStep("early-results", 30, "Summary ready"),
    AnalysisStep("detailed-analysis", 35, "Extracting entities and analyzing signals"),
    AnalysisStep("relationships", 50, "Detecting relationships between entities"),
    AnalysisStep("sections", 65, "Summarizing sections"),
    AnalysisStep("recommendations", 85, "Recommending visualizations"),
    AnalysisStep("complete", 100, "Analysis complete"),
]

_STEPS_BY_NAME = {step.name: step for step in ANALYSIS_STEPS}


class _ProgressEmitter:
    """Emits one run's progress records to a callback, never going backwards."""

    def __init__(self, ctx: AnalysisRunContext, on_progress: ProgressCallback | None) -> None:
        self._ctx = ctx
        self._on_progress = on_progress
        self._last = 0

    def emit(
        self,
        step_name: str,
        partial: dict[str, Any] | None = None,
    ) -> None:
        step = _STEPS_BY_NAME[step_name]
        progress = max(self._last, step.progress)
        self._last = progress

        logger.info(
            f"{progress}% - {step.message}",
            extra={"run_id": self._ctx.run_id, "stage": step.name},
        )
        if self._on_progress is None:
            return

        try:
            self._on_progress(step.name, progress, step.message, partial)
        except Exception:
            logger.exception(
                f"Progress callback failed at step {step.name}",
                extra={"run_id": self._ctx.run_id, "stage": step.name},
            )


# =============================================================================
# Orchestrator
# =============================================================================


class DocumentAnalyzer:
    """Turns a document into a DocumentAnalysis via a fixed sequence of completion stages.

    The analyzer holds configuration only. Usage accounting lives in a fresh
    AnalysisRunContext per run, so one instance can serve concurrent runs.
    """

    def __init__(
        self,
        client: CompletionClient | None = None,
        settings: Settings | None = None,
        retry_policies: dict[str, RetryPolicy] | None = None,
    ):
        self.settings = settings or get_settings()
        self.client = client or AnthropicCompletionClient(self.settings)
        self.retry_policies: dict[str, RetryPolicy] = {
            "tldr": tldr_retry_policy(self.settings),
            **(retry_policies or {}),
        }

    def _policy(self, stage: str) -> RetryPolicy:
        return self.retry_policies.get(stage, NO_RETRY)

    async def analyze(
        self,
        document: Document,
        on_progress: ProgressCallback | None = None,
    ) -> DocumentAnalysis:
        """
        Analyze a document.

        ``on_progress(step, percent, message, partial)`` is called synchronously
        at every step. ``partial`` carries the TLDR and executive summary at
        ``early-results`` and is None otherwise.

        After the section walk, ``document.structure.sections`` is replaced by
        the summarized tree.

        Raises:
            Exception: The TLDR transport error once its retries are exhausted
        """
        ctx = AnalysisRunContext(document_id=document.id)
        progress = _ProgressEmitter(ctx, on_progress)
        return await self._run(document, ctx, progress)

    async def stream_analysis(self, document: Document) -> AsyncIterator[AnalysisProgress]:
        """
        Analyze a document, yielding progress records as they happen.

        The last record is the ``complete`` step with ``analysis`` set. If the
        TLDR stage fails fatally the error is raised from the iterator after
        the records emitted so far. Stopping iteration early does not cancel
        the run.
        """
        queue: asyncio.Queue[AnalysisProgress | None] = asyncio.Queue()
        result: dict[str, DocumentAnalysis] = {}

        def on_progress(step: str, percent: int, message: str, partial: dict[str, Any] | None) -> None:
            queue.put_nowait(
                AnalysisProgress(step=step, progress=percent, message=message, partial_analysis=partial)
            )

        async def run() -> None:
            result["analysis"] = await self.analyze(document, on_progress)

        task = asyncio.create_task(run())
        task.add_done_callback(lambda _: queue.put_nowait(None))

        try:
            while True:
                record = await queue.get()
                if record is None:
                    break
                if record.step == "complete":
                    # The complete step fires just before analyze() returns
                    await asyncio.wait({task})
                    if not task.cancelled() and task.exception() is None:
                        record = record.model_copy(update={"analysis": result["analysis"]})
                yield record
            task.result()
        finally:
            if not task.done():
                await asyncio.wait({task})

    async def _run(
        self,
        document: Document,
        ctx: AnalysisRunContext,
        progress: _ProgressEmitter,
    ) -> DocumentAnalysis:
        settings = self.settings
        client = self.client
        text = document.content
        start = time.time()

        logger.info(
            f"Analyzing document {document.id}",
            extra={"run_id": ctx.run_id, "chars": len(text)},
        )
        progress.emit("init")

        # Wave 1: priority results
        progress.emit("priority-analysis")
        # Both stages settle before a TLDR failure ends the run
        tldr, executive_summary = await asyncio.gather(
            generate_tldr(text, client, ctx, settings, self._policy("tldr")),
            generate_executive_summary(
                text, client, ctx, settings, self._policy("executive_summary")
            ),
            return_exceptions=True,
        )
        if isinstance(tldr, BaseException):
            logger.error(
                f"Analysis aborted, TLDR generation failed: {tldr}",
                extra={"run_id": ctx.run_id, "stage": "tldr"},
            )
            raise tldr
        if isinstance(executive_summary, BaseException):
            raise executive_summary

        progress.emit(
            "early-results",
            partial={
                "tldr": tldr.model_dump(mode="json"),
                "executive_summary": executive_summary.model_dump(mode="json"),
            },
        )

        # Wave 2: entities and signals
        progress.emit("detailed-analysis")
        entities, signals = await asyncio.gather(
            extract_entities(text, client, ctx, settings, self._policy("entities")),
            analyze_signals(text, client, ctx, settings, self._policy("signals")),
        )

        progress.emit("relationships")
        relationships = await detect_relationships(
            text, entities, client, ctx, settings, self._policy("relationships")
        )
        relationship_issues = reconcile_relationships(entities, relationships, run_id=ctx.run_id)

        progress.emit("sections")
        sections = await summarize_sections(
            document.structure.sections, client, ctx, settings, self._policy("sections")
        )
        document.structure.sections = sections

        progress.emit("recommendations")
        recommendations = await recommend_visualizations(
            document,
            signals,
            len(entities),
            len(relationships),
            client,
            ctx,
            settings,
            self._policy("recommendations"),
        )

        analysis = DocumentAnalysis(
            tldr=tldr,
            executive_summary=executive_summary,
            entities=entities,
            relationships=relationships,
            metrics=executive_summary.kpis,
            signals=signals,
            recommendations=recommendations,
            sections=sections,
            relationship_issues=relationship_issues,
            metadata=AnalysisMetadata(
                document_id=document.id,
                tokens_used=ctx.usage.tokens_used,
                models=ctx.usage.models,
                call_count=ctx.usage.call_count,
                duration_ms=int((time.time() - start) * 1000),
            ),
        )

        logger.info(
            f"Analysis of {document.id} complete: {len(entities)} entities, "
            f"{len(relationships)} relationships, {ctx.usage.tokens_used} tokens",
            extra={"run_id": ctx.run_id, "models": ",".join(ctx.usage.models)},
        )
        progress.emit("complete")
        return analysis


async def analyze_document(
    document: Document,
    client: CompletionClient | None = None,
    on_progress: ProgressCallback | None = None,
) -> DocumentAnalysis:
    """Analyze a document with a default-configured DocumentAnalyzer."""
    return await DocumentAnalyzer(client=client).analyze(document, on_progress)
