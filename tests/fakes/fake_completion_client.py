"""Scripted in-memory completion client for pipeline tests."""

import asyncio
import json
from collections.abc import Callable
from typing import Any

from analysis_engine.core.llm import CompletionError, CompletionResponse

# A scripted reply: raw text, a JSON-able object, an exception to raise,
# or a callable taking the input text and returning one of those.
Reply = str | dict | list | BaseException | Callable[[str], Any]

DEFAULT_REPLIES: dict[str, Reply] = {
    "tldr": "Revenue grew 12% while churn fell to 3%.",
    "executiveSummary": {
        "headline": "Subscription tier drives growth",
        "key_ideas": ["Revenue up 12%", "Churn down to 3%", "Onboarding redesign worked"],
        "kpis": [
            {"label": "Revenue growth", "value": 12, "unit": "%", "trend": "up", "confidence": 0.9},
            {"label": "Churn", "value": 3, "unit": "%", "trend": "down"},
        ],
        "risks": ["Figures are unaudited"],
        "opportunities": ["Expand the subscription tier"],
        "call_to_action": "Invest in onboarding",
    },
    "entityExtraction": {
        "entities": [
            {"id": "entity-1", "text": "Subscription tier", "type": "product", "importance": 0.9},
            {"id": "entity-2", "text": "Onboarding redesign", "type": "concept", "importance": 0.7},
            {"id": "entity-3", "text": "March", "type": "date", "importance": 0.3},
        ]
    },
    "signalAnalysis": {
        "structural": 0.7,
        "process": 0.2,
        "quantitative": 0.9,
        "technical": 0.1,
        "argumentative": 0.4,
        "temporal": 0.5,
    },
    "relationshipDetection": {
        "relationships": [
            {"id": "rel-1", "source": "entity-2", "target": "entity-1", "type": "causes", "strength": 0.8},
        ]
    },
    "sectionSummary": {"summary": "Revenue and churn both improved.", "keywords": ["revenue", "churn"]},
    "vizRecommendation": [
        {"type": "executive-dashboard", "score": 0.9, "rationale": "Many KPIs"},
        {"type": "structured-view", "score": 0.8, "rationale": "Clear sections"},
        {"type": "timeline", "score": 0.5, "rationale": "Some dates"},
    ],
}


class ReplySequence:
    """Replies consumed one per call; the last one repeats once exhausted."""

    def __init__(self, *replies: Reply):
        self._replies = list(replies)

    def next(self) -> Reply:
        if len(self._replies) > 1:
            return self._replies.pop(0)
        return self._replies[0]


class FakeCompletionClient:
    """Completion client returning scripted replies per template key."""

    def __init__(
        self,
        replies: dict[str, Reply | ReplySequence] | None = None,
        tokens_per_call: int = 10,
        model: str = "fake-model",
        delay: float = 0.0,
        delays: dict[str, float] | None = None,
    ):
        self.replies: dict[str, Reply | ReplySequence] = {**DEFAULT_REPLIES, **(replies or {})}
        self.tokens_per_call = tokens_per_call
        self.model = model
        self.delay = delay
        self.delays = delays or {}
        self.calls: list[tuple[str, str]] = []

    def set_reply(self, template_key: str, reply: Reply | ReplySequence) -> None:
        self.replies[template_key] = reply

    def calls_for(self, template_key: str) -> list[str]:
        return [text for key, text in self.calls if key == template_key]

    def _next_reply(self, template_key: str) -> Reply:
        reply = self.replies.get(template_key)
        if isinstance(reply, ReplySequence):
            return reply.next()
        return reply

    async def call_with_fallback(self, template_key: str, input_text: str) -> CompletionResponse:
        self.calls.append((template_key, input_text))
        delay = self.delays.get(template_key, self.delay)
        if delay:
            await asyncio.sleep(delay)

        reply = self._next_reply(template_key)
        if callable(reply) and not isinstance(reply, BaseException):
            reply = reply(input_text)
        if isinstance(reply, BaseException):
            raise reply
        if reply is None:
            raise CompletionError(f"No scripted reply for {template_key}")

        content = reply if isinstance(reply, str) else json.dumps(reply)
        return CompletionResponse(content=content, tokens_used=self.tokens_per_call, model=self.model)
