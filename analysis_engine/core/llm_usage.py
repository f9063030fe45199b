"""Per-run usage accounting for completion calls."""

import uuid
from dataclasses import dataclass, field

from analysis_engine.core.llm import CompletionResponse
from analysis_engine.core.logging import get_logger

logger = get_logger(__name__)


class UsageTracker:
    """Accumulates usage units and distinct model ids across one analysis run."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.tokens_used = 0
        self.call_count = 0
        self._models: dict[str, None] = {}

    def record(self, usage_units: int, model_id: str) -> None:
        """Add one completion call's usage. Negative counts are treated as zero."""
        self.tokens_used += max(0, int(usage_units or 0))
        self.call_count += 1
        if model_id:
            self._models.setdefault(model_id, None)

    @property
    def models(self) -> list[str]:
        """Distinct model ids, in the order they were first seen."""
        return list(self._models)


@dataclass
class AnalysisRunContext:
    """State owned by a single analysis run, threaded through every stage call."""

    document_id: str
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    usage: UsageTracker = field(default_factory=UsageTracker)

    def record_usage(self, response: CompletionResponse, stage: str) -> None:
        self.usage.record(response.tokens_used, response.model)
        logger.debug(
            f"Usage recorded for {stage}: tokens={response.tokens_used} model={response.model}",
            extra={"run_id": self.run_id, "stage": stage},
        )
