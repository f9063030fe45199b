"""Section summarization: walks the section tree and summarizes every node.

The walk builds a new tree rather than mutating the nodes it visits. For
each node the node's own summary and all of its child subtrees run
concurrently; the summarized node is assembled once they have all finished,
so the returned tree has the same shape, ids and order as the input.
"""

import asyncio

from pydantic import BaseModel, Field

from analysis_engine.chains._stage_call import complete_or_none
from analysis_engine.core.config import Settings
from analysis_engine.core.llm import CompletionClient, ParseError, parse_llm_json
from analysis_engine.core.llm_usage import AnalysisRunContext
from analysis_engine.core.logging import get_logger
from analysis_engine.core.retry import NO_RETRY, RetryPolicy
from analysis_engine.core.schemas_analysis import Section

logger = get_logger(__name__)

TEMPLATE_KEY = "sectionSummary"
FALLBACK_SUMMARY_CHARS = 200


class SectionSummaryOutput(BaseModel):
    summary: str = Field(..., min_length=1)
    keywords: list[str] = Field(default_factory=list)


async def _summarize_content(
    section: Section,
    client: CompletionClient,
    ctx: AnalysisRunContext,
    settings: Settings,
    retry_policy: RetryPolicy,
) -> tuple[str, list[str]]:
    content = section.content
    if len(content) <= settings.SECTION_SUMMARY_MIN_CHARS:
        return content, list(section.keywords)

    response = await complete_or_none(
        client,
        ctx,
        TEMPLATE_KEY,
        content[: settings.SECTION_MAX_CHARS],
        stage="sections",
        retry_policy=retry_policy,
    )
    if response is None:
        return content[:FALLBACK_SUMMARY_CHARS] + "...", []

    parsed = parse_llm_json(response, SectionSummaryOutput)
    if isinstance(parsed, ParseError):
        logger.warning(
            f"Failed to parse summary for section {section.id}, using raw completion",
            extra={"run_id": ctx.run_id, "stage": "sections"},
        )
        raw = response.content.strip()
        return (raw or content)[:FALLBACK_SUMMARY_CHARS], []

    keywords = [k.strip() for k in parsed.value.keywords if k.strip()]
    return parsed.value.summary.strip(), keywords


async def summarize_section(
    section: Section,
    client: CompletionClient,
    ctx: AnalysisRunContext,
    settings: Settings,
    retry_policy: RetryPolicy = NO_RETRY,
) -> Section:
    """Summarize one node and its whole subtree, returning a new node."""
    own, *children = await asyncio.gather(
        _summarize_content(section, client, ctx, settings, retry_policy),
        *(summarize_section(child, client, ctx, settings, retry_policy) for child in section.children),
    )
    summary, keywords = own
    return section.model_copy(
        update={"summary": summary, "keywords": keywords, "children": list(children)}
    )


async def summarize_sections(
    sections: list[Section],
    client: CompletionClient,
    ctx: AnalysisRunContext,
    settings: Settings,
    retry_policy: RetryPolicy = NO_RETRY,
) -> list[Section]:
    """
    Summarize a section forest.

    Sections longer than SECTION_SUMMARY_MIN_CHARS get a completion-backed
    summary and keywords; shorter ones use their content verbatim with no
    completion call.

    Returns:
        A new forest with summary and keywords filled in
    """
    summarized = await asyncio.gather(
        *(summarize_section(section, client, ctx, settings, retry_policy) for section in sections)
    )
    return list(summarized)
