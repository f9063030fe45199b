"""Tests for the Anthropic-backed completion client.

Uses mocked Anthropic responses.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from anthropic import APIConnectionError

from analysis_engine.core.config import Settings
from analysis_engine.core.llm import (
    AnthropicCompletionClient,
    CompletionError,
    ConfigurationError,
)


def _mock_anthropic_response(content_text, input_tokens=100, output_tokens=50):
    """Create a mock Anthropic messages.create response."""
    response = MagicMock()
    response.content = [MagicMock(text=content_text)]
    response.usage = MagicMock(input_tokens=input_tokens, output_tokens=output_tokens)
    return response


def _connection_error() -> APIConnectionError:
    return APIConnectionError(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))


@pytest.fixture
def client_settings() -> Settings:
    return Settings(
        ANTHROPIC_API_KEY="test-key",
        ANALYSIS_PRIMARY_MODEL="primary-model",
        ANALYSIS_FALLBACK_MODEL="fallback-model",
    )


class TestAnthropicCompletionClient:
    @pytest.mark.asyncio
    async def test_primary_model_answers(self, client_settings):
        """Returns text, summed token usage and the primary model id."""
        mock_client = MagicMock()
        mock_client.messages.create = AsyncMock(return_value=_mock_anthropic_response("Short summary."))

        client = AnthropicCompletionClient(client_settings, client=mock_client)
        response = await client.call_with_fallback("tldr", "Some text")

        assert response.content == "Short summary."
        assert response.tokens_used == 150
        assert response.model == "primary-model"

        kwargs = mock_client.messages.create.call_args.kwargs
        assert kwargs["model"] == "primary-model"
        assert kwargs["messages"] == [{"role": "user", "content": "Some text"}]
        assert "TLDR" in kwargs["system"]

    @pytest.mark.asyncio
    async def test_falls_back_to_secondary_model(self, client_settings):
        """Retries the call on the fallback model when the primary fails."""
        mock_client = MagicMock()
        mock_client.messages.create = AsyncMock(
            side_effect=[_connection_error(), _mock_anthropic_response('{"summary": "ok"}')]
        )

        client = AnthropicCompletionClient(client_settings, client=mock_client)
        response = await client.call_with_fallback("sectionSummary", "Section text")

        assert response.model == "fallback-model"
        models = [c.kwargs["model"] for c in mock_client.messages.create.call_args_list]
        assert models == ["primary-model", "fallback-model"]

    @pytest.mark.asyncio
    async def test_all_models_fail(self, client_settings):
        """Raises CompletionError once both models failed."""
        mock_client = MagicMock()
        mock_client.messages.create = AsyncMock(side_effect=_connection_error())

        client = AnthropicCompletionClient(client_settings, client=mock_client)
        with pytest.raises(CompletionError):
            await client.call_with_fallback("tldr", "text")

    @pytest.mark.asyncio
    async def test_unknown_template(self, client_settings):
        """Rejects template keys with no task configuration."""
        client = AnthropicCompletionClient(client_settings, client=MagicMock())
        with pytest.raises(ValueError):
            await client.call_with_fallback("glossary", "text")

    def test_requires_api_key(self):
        """Refuses to build a live client without an API key."""
        with pytest.raises(ConfigurationError):
            AnthropicCompletionClient(Settings(ANTHROPIC_API_KEY=""))
