"""Unit tests for generation providers with mocked SDK clients."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from tuberag.core.exceptions import ProviderError
from tuberag.core.retry_config import RetryConfig

NO_WAIT = RetryConfig(max_attempts=2, min_wait_seconds=0, max_wait_seconds=0)


class TestOpenAIGenerator:
    def _generator(self, *results):
        from tuberag.generate.openai import OpenAIGenerator

        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=list(results))
        return OpenAIGenerator(client=client, retry_config=NO_WAIT), client

    def test_default_model(self) -> None:
        from tuberag.generate import OpenAIGenerator

        assert OpenAIGenerator(api_key="test-key").model == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_complete(self) -> None:
        response = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="An answer."))]
        )
        generator, client = self._generator(response)

        answer = await generator.complete("system", "user", 0.3, 500)

        assert answer == "An answer."
        kwargs = client.chat.completions.create.await_args.kwargs
        assert kwargs["messages"] == [
            {"role": "system", "content": "system"},
            {"role": "user", "content": "user"},
        ]
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 500

    @pytest.mark.asyncio
    async def test_empty_content(self) -> None:
        response = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=None))])
        generator, _ = self._generator(response)

        assert await generator.complete("s", "u", 0.7, 10) == ""

    @pytest.mark.asyncio
    async def test_error_is_wrapped(self) -> None:
        generator, client = self._generator(ConnectionError("down"), ConnectionError("down"))

        with pytest.raises(ProviderError, match="openai_generation complete failed"):
            await generator.complete("s", "u", 0.7, 10)

        assert client.chat.completions.create.await_count == 2


class TestAnthropicGenerator:
    @pytest.fixture(autouse=True)
    def _require_sdk(self) -> None:
        pytest.importorskip("anthropic")

    def _generator(self, *results):
        from tuberag.generate.anthropic import AnthropicGenerator

        client = MagicMock()
        client.messages.create = AsyncMock(side_effect=list(results))
        return AnthropicGenerator(client=client, retry_config=NO_WAIT), client

    def test_default_model(self) -> None:
        from tuberag.generate import AnthropicGenerator

        assert AnthropicGenerator(api_key="test-key").model == "claude-3-5-haiku-latest"

    @pytest.mark.asyncio
    async def test_complete_joins_text_blocks(self) -> None:
        response = SimpleNamespace(
            content=[SimpleNamespace(text="Part one. "), SimpleNamespace(text="Part two.")]
        )
        generator, client = self._generator(response)

        answer = await generator.complete("system", "user", 0.5, 800)

        assert answer == "Part one. Part two."
        kwargs = client.messages.create.await_args.kwargs
        assert kwargs["system"] == "system"
        assert kwargs["messages"] == [{"role": "user", "content": "user"}]
        assert kwargs["max_tokens"] == 800

    @pytest.mark.asyncio
    async def test_error_is_wrapped(self) -> None:
        generator, _ = self._generator(ValueError("bad request"))

        with pytest.raises(ProviderError) as exc_info:
            await generator.complete("s", "u", 0.5, 10)

        assert not exc_info.value.retryable
