"""Tests for the section tree summarization walk."""

import pytest

from analysis_engine.chains.summarize_sections import summarize_section, summarize_sections
from analysis_engine.core.llm import CompletionError
from analysis_engine.core.llm_usage import AnalysisRunContext
from analysis_engine.core.schemas_analysis import Section
from tests.fakes.fake_completion_client import FakeCompletionClient
from tests.fixtures_documents import LONG_BODY


def _ids(sections: list[Section]) -> list:
    return [(s.id, _ids(s.children)) for s in sections]


class TestSummarizeSections:
    @pytest.mark.asyncio
    async def test_short_section_used_verbatim(self, settings):
        """A 40-character section is its own summary and makes no call."""
        ctx = AnalysisRunContext(document_id="doc-1")
        client = FakeCompletionClient()
        content = "Margins held steady through the quarter."
        section = Section(id="s1", content=content, keywords=["note"])

        result = await summarize_sections([section], client, ctx, settings)

        assert result[0].summary == content
        assert result[0].keywords == ["note"]
        assert client.calls == []
        assert ctx.usage.call_count == 0

    @pytest.mark.asyncio
    async def test_long_section_summarized(self, settings):
        ctx = AnalysisRunContext(document_id="doc-1")
        client = FakeCompletionClient()
        section = Section(id="s1", content=LONG_BODY)

        result = await summarize_sections([section], client, ctx, settings)

        assert result[0].summary == "Revenue and churn both improved."
        assert result[0].keywords == ["revenue", "churn"]
        assert client.calls_for("sectionSummary") == [LONG_BODY]
        assert ctx.usage.call_count == 1

    @pytest.mark.asyncio
    async def test_tree_shape_preserved(self, settings, sample_document):
        """The new tree keeps ids, order and nesting; the input is not mutated."""
        ctx = AnalysisRunContext(document_id=sample_document.id)
        client = FakeCompletionClient()
        original = sample_document.structure.sections

        result = await summarize_sections(original, client, ctx, settings)

        assert _ids(result) == _ids(original)
        assert all(s.summary is None for s in original)
        assert result[0].children[1].summary == "Figures are unaudited."
        assert result[1].summary == "Growth should continue."
        assert result[0].children[0].summary == "Revenue and churn both improved."
        # section-0 and section-1 exceed the threshold
        assert len(client.calls_for("sectionSummary")) == 2

    @pytest.mark.asyncio
    async def test_parse_failure_uses_raw_completion(self, settings):
        """Unparseable output becomes the summary, truncated to 200 characters."""
        ctx = AnalysisRunContext(document_id="doc-1")
        raw = "This section covers revenue. " * 10
        client = FakeCompletionClient({"sectionSummary": raw})

        section = await summarize_section(Section(id="s1", content=LONG_BODY), client, ctx, settings)

        assert section.summary == raw.strip()[:200]
        assert section.keywords == []

    @pytest.mark.asyncio
    async def test_transport_failure_truncates_content(self, settings):
        ctx = AnalysisRunContext(document_id="doc-1")
        client = FakeCompletionClient({"sectionSummary": CompletionError("down")})
        content = LONG_BODY * 3

        section = await summarize_section(Section(id="s1", content=content), client, ctx, settings)

        assert section.summary == content[:200] + "..."
        assert ctx.usage.call_count == 0

    @pytest.mark.asyncio
    async def test_failure_in_one_branch_does_not_stop_others(self, settings, sample_document):
        ctx = AnalysisRunContext(document_id=sample_document.id)
        client = FakeCompletionClient(
            {
                "sectionSummary": lambda text: (
                    CompletionError("down") if text == LONG_BODY else {"summary": "Child summary"}
                )
            }
        )

        result = await summarize_sections(sample_document.structure.sections, client, ctx, settings)

        assert result[0].summary == LONG_BODY[:200] + "..."
        assert result[0].children[0].summary == "Child summary"

    @pytest.mark.asyncio
    async def test_empty_forest(self, settings):
        ctx = AnalysisRunContext(document_id="doc-1")
        assert await summarize_sections([], FakeCompletionClient(), ctx, settings) == []
