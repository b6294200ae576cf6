"""
Unit tests for the prompt chain executor (provider calls mocked)
"""
import asyncio
import logging
import pytest
from unittest.mock import AsyncMock, MagicMock

from chain_executor import (
    ChainAuthenticationError,
    ChainExecutor,
    ChainValidationError,
    substitute_previous_output,
)
from llm_client import LLMClient, ProviderError
from model_catalog import ProviderKind
from shared_settings import ProviderCredentials


@pytest.fixture
def mock_client(make_response):
    client = MagicMock()
    client.complete = AsyncMock(return_value=make_response("step output"))
    return client


class TestPlaceholderSubstitution:

    def test_replaces_marker_with_previous_output(self):
        assert substitute_previous_output("Use: [OUTPUT FROM STEP 1]", "Paris") == "Use: Paris"

    def test_replaces_every_marker_regardless_of_number(self):
        prompt = "A=[OUTPUT FROM STEP 1] B=[OUTPUT FROM STEP 42]"
        assert substitute_previous_output(prompt, "x") == "A=x B=x"

    def test_marker_is_case_sensitive(self):
        prompt = "[output from step 1] [OUTPUT FROM STEP one]"
        assert substitute_previous_output(prompt, "x") == prompt

    def test_empty_previous_output_leaves_prompt(self):
        assert substitute_previous_output("Use: [OUTPUT FROM STEP 1]", "") == "Use: [OUTPUT FROM STEP 1]"

    def test_replacement_text_is_literal(self):
        assert substitute_previous_output("[OUTPUT FROM STEP 1]", r"C:\new\1 $&") == r"C:\new\1 $&"


class TestPreconditions:

    @pytest.mark.asyncio
    async def test_empty_steps_rejected_before_any_call(self, mock_client, both_keys):
        executor = ChainExecutor(llm_client=mock_client)

        with pytest.raises(ChainValidationError) as exc_info:
            await executor.execute([], both_keys, "Empty")

        assert exc_info.value.message == "Chain steps are required"
        assert exc_info.value.status_code == 400
        mock_client.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_credentials_rejected_before_loop(self, mock_client, make_step):
        executor = ChainExecutor(llm_client=mock_client)

        with pytest.raises(ChainAuthenticationError) as exc_info:
            await executor.execute([make_step(1)], ProviderCredentials(), "No keys")

        assert exc_info.value.status_code == 401
        assert exc_info.value.message.startswith("No API key provided")
        mock_client.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rejection_is_not_logged_as_error(self, mock_client, caplog):
        executor = ChainExecutor(llm_client=mock_client)

        with caplog.at_level(logging.DEBUG, logger="chain_executor"):
            with pytest.raises(ChainValidationError):
                await executor.execute([], ProviderCredentials(), "Empty")

        assert not [r for r in caplog.records if r.levelno >= logging.ERROR]
        assert "chain_execution" not in caplog.text


class TestChainExecution:

    @pytest.mark.asyncio
    async def test_all_steps_succeed(self, mock_client, make_step, both_keys):
        steps = [make_step(1), make_step(2), make_step(3)]
        report = await ChainExecutor(llm_client=mock_client).execute(steps, both_keys, "Happy path")

        assert report.chain_title == "Happy path"
        assert report.total_steps == 3
        assert report.completed_steps == 3
        assert report.success is True
        assert [r.step_id for r in report.steps] == [1, 2, 3]
        assert mock_client.complete.await_count == 3

    @pytest.mark.asyncio
    async def test_previous_output_feeds_next_prompt(self, make_step, make_response, both_keys):
        client = MagicMock()
        client.complete = AsyncMock(side_effect=[make_response("Paris"), make_response("Done")])
        steps = [
            make_step(1, prompt="What is the capital of France?"),
            make_step(2, prompt="Use: [OUTPUT FROM STEP 1]"),
        ]

        report = await ChainExecutor(llm_client=client).execute(steps, both_keys, "Capitals")

        assert report.steps[1].prompt == "Use: Paris"
        second_call = client.complete.await_args_list[1]
        assert second_call.args[3] == "Use: Paris"

    @pytest.mark.asyncio
    async def test_first_step_is_never_substituted(self, mock_client, make_step, both_keys):
        steps = [make_step(1, prompt="Start [OUTPUT FROM STEP 0]")]
        report = await ChainExecutor(llm_client=mock_client).execute(steps, both_keys)

        assert report.steps[0].prompt == "Start [OUTPUT FROM STEP 0]"

    @pytest.mark.asyncio
    async def test_failure_stops_chain(self, make_step, make_response, both_keys):
        client = MagicMock()
        client.complete = AsyncMock(side_effect=[
            make_response("first"),
            ProviderError("rate limited", "openai"),
            make_response("never"),
        ])
        steps = [
            make_step(1),
            make_step(2, prompt="Refine [OUTPUT FROM STEP 1]"),
            make_step(3),
        ]

        report = await ChainExecutor(llm_client=client).execute(steps, both_keys, "Broken")

        assert len(report.steps) == 2
        failed = report.steps[1]
        assert failed.success is False
        assert failed.error == "rate limited"
        assert failed.response == "[ERROR] rate limited"
        assert failed.prompt == "Refine [OUTPUT FROM STEP 1]"
        assert failed.usage.total_tokens == 0
        assert report.success is False
        assert report.total_steps == 3
        assert report.completed_steps == 1
        assert client.complete.await_count == 2

    @pytest.mark.asyncio
    async def test_failure_on_first_step(self, make_step, both_keys):
        client = MagicMock()
        client.complete = AsyncMock(side_effect=RuntimeError("connection reset"))

        report = await ChainExecutor(llm_client=client).execute([make_step(1), make_step(2)], both_keys)

        assert len(report.steps) == 1
        assert report.steps[0].error == "connection reset"
        assert report.success is False

    @pytest.mark.asyncio
    async def test_totals_are_sums_of_results(self, make_step, make_response, both_keys):
        client = MagicMock()
        client.complete = AsyncMock(side_effect=[
            make_response("a", prompt_tokens=10, completion_tokens=20),
            make_response("b", prompt_tokens=5, completion_tokens=7),
        ])

        report = await ChainExecutor(llm_client=client).execute([make_step(1), make_step(2)], both_keys)

        assert report.total_tokens == 42
        assert report.total_response_time == sum(r.response_time for r in report.steps)

    @pytest.mark.asyncio
    async def test_order_follows_input_not_connects_to(self, mock_client, make_step, both_keys):
        steps = [make_step(3, connects_to=[]), make_step(1, connects_to=[3]), make_step(2, connects_to=[1])]

        report = await ChainExecutor(llm_client=mock_client).execute(steps, both_keys)

        assert [r.step_id for r in report.steps] == [3, 1, 2]

    @pytest.mark.asyncio
    async def test_claude_models_dispatch_to_anthropic(self, mock_client, make_step, both_keys):
        steps = [make_step(1, model="claude-3.5-sonnet"), make_step(2, model="gpt-4o")]

        await ChainExecutor(llm_client=mock_client).execute(steps, both_keys)

        first, second = mock_client.complete.await_args_list
        assert first.args[:3] == (ProviderKind.ANTHROPIC, "sk-ant-test", "claude-3.5-sonnet")
        assert second.args[:3] == (ProviderKind.OPENAI, "sk-test-openai", "gpt-4o")

    @pytest.mark.asyncio
    async def test_step_timeout_is_passed_to_client(self, mock_client, make_step, both_keys):
        await ChainExecutor(llm_client=mock_client, step_timeout_seconds=12).execute([make_step(1)], both_keys)

        assert mock_client.complete.await_args.kwargs["timeout_seconds"] == 12


class TestDemoMode:

    @pytest.mark.asyncio
    async def test_openai_step_without_openai_key(self, mock_client, make_step):
        credentials = ProviderCredentials(anthropic_api_key="sk-ant-test")
        step = make_step(1, title="Draft outline", prompt="Write an outline about bees")

        report = await ChainExecutor(llm_client=mock_client).execute([step], credentials)

        result = report.steps[0]
        assert result.success is True
        assert "Draft outline" in result.response
        assert result.response.startswith("[DEMO RESPONSE for Step 1]")
        assert result.usage.prompt_tokens == len(step.prompt) // 4
        assert 50 <= result.usage.completion_tokens < 250
        assert result.usage.total_tokens == result.usage.prompt_tokens + result.usage.completion_tokens
        mock_client.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_claude_step_without_anthropic_key(self, mock_client, make_step):
        credentials = ProviderCredentials(openai_api_key="sk-test-openai")
        steps = [make_step(1), make_step(2, model="claude-opus-4", title="Critique", prompt="Critique [OUTPUT FROM STEP 1]")]

        report = await ChainExecutor(llm_client=mock_client).execute(steps, credentials)

        claude_result = report.steps[1]
        assert claude_result.success is True
        assert "Critique" in claude_result.response
        assert "[DEMO CLAUDE RESPONSE for Step 2]" in claude_result.response
        assert "To enable real Claude testing, integrate with Anthropic's API." in claude_result.response
        assert 100 <= claude_result.usage.completion_tokens < 350
        assert claude_result.prompt == "Critique step output"
        assert report.success is True


class TestTimeouts:

    @pytest.mark.asyncio
    async def test_slow_provider_fails_step(self, make_step, both_keys):
        async def slow_handler(api_key, model, prompt, **kwargs):
            await asyncio.sleep(5)

        client = LLMClient()
        client._handlers[ProviderKind.OPENAI] = slow_handler

        report = await ChainExecutor(llm_client=client, step_timeout_seconds=0.01).execute(
            [make_step(1), make_step(2)], both_keys
        )

        assert len(report.steps) == 1
        assert report.steps[0].success is False
        assert "timed out" in report.steps[0].error
        assert report.success is False
