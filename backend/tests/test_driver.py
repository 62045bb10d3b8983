"""
Tests for the generation driver.

Tests:
- GenerationStream partial/final semantics
- Model tier resolution and BYOK overrides
- Token usage extraction
"""
import asyncio
from types import SimpleNamespace

import pytest

from conftest import scripted_stream


def make_settings(**overrides):
    from prepstream.config import Settings

    values = {
        "tier_high_model": "anthropic/claude-sonnet",
        "tier_medium_model": "openai/gpt-mini",
        "tier_medium_fallback": "google/gemini-flash",
        "openrouter_api_key": "platform-key",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_context(plan="FREE"):
    from prepstream.ai.context import GenerationContext, Plan, PlanContext

    return GenerationContext(
        resume_text="Five years of Python",
        job_description="Backend engineer",
        job_title="Senior Backend Engineer",
        company="Acme",
        plan_context=PlanContext(plan=Plan(plan)),
    )


class TestGenerationStream:
    """Tests for GenerationStream."""

    @pytest.mark.asyncio
    async def test_partials_then_output(self):
        """Test partials arrive in order and output resolves afterwards."""
        stream = scripted_stream(["a", "ab"], final="abc")

        partials = [p async for p in stream.partials()]

        assert partials == ["a", "ab"]
        assert await stream.output() == "abc"
        usage = await stream.usage()
        assert usage.input_tokens == 120
        assert usage.output_tokens == 480

    @pytest.mark.asyncio
    async def test_partials_are_single_pass(self):
        """Test a second iteration is refused."""
        stream = scripted_stream(["a"], final="a")
        [p async for p in stream.partials()]

        with pytest.raises(RuntimeError):
            [p async for p in stream.partials()]

    @pytest.mark.asyncio
    async def test_upstream_failure_stops_partials_and_rejects_output(self):
        """Test errors surface on output, not on the partial sequence."""
        from prepstream.ai.driver import GenerationStream

        async def source(stream):
            yield "a"
            raise ConnectionError("upstream timeout")

        stream = GenerationStream(source, model_id="medium - test/model")

        partials = [p async for p in stream.partials()]

        assert partials == ["a"]
        with pytest.raises(ConnectionError, match="upstream timeout"):
            await stream.output()

    @pytest.mark.asyncio
    async def test_sequence_without_final_value_is_failure(self):
        """Test ending without resolve() makes output raise GenerationError."""
        from prepstream.errors import GenerationError

        stream = scripted_stream(["a", "ab"])
        [p async for p in stream.partials()]

        with pytest.raises(GenerationError):
            await stream.output()

    @pytest.mark.asyncio
    async def test_output_drains_unread_stream(self):
        """Test output() works without iterating partials first."""
        stream = scripted_stream(["a", "ab"], final="ab")
        assert await stream.output() == "ab"

    @pytest.mark.asyncio
    async def test_output_waits_for_resolution(self):
        """Test output blocks until the source resolves."""
        release = asyncio.Event()
        stream = scripted_stream(["a"], final="done", release=release)

        consumer = asyncio.create_task(stream.output())
        await asyncio.sleep(0)
        assert not consumer.done()

        release.set()
        assert await asyncio.wait_for(consumer, timeout=1) == "done"

    @pytest.mark.asyncio
    async def test_output_of_settled_stream_skips_source(self):
        """Test a stream resolved up front never runs its source."""
        from prepstream.ai.driver import GenerationStream

        started = []

        async def source(stream):
            started.append(True)
            yield "never"

        stream = GenerationStream(source, model_id="medium - test/model")
        stream.resolve("cached")

        assert stream.settled
        assert await stream.output() == "cached"
        assert started == []


class TestTierResolution:
    """Tests for GenerationDriver.resolve_tier."""

    def test_free_plan_uses_medium_tier(self):
        """Test FREE users get the medium tier model and fallback."""
        from prepstream.ai.context import ModelTier
        from prepstream.ai.driver import GenerationDriver
        from prepstream.services.streaming.modules import MCQModule

        driver = GenerationDriver(make_settings())
        config = driver.resolve_tier(MCQModule(), make_context("FREE"))

        assert config.tier == ModelTier.MEDIUM
        assert config.model == "openai/gpt-mini"
        assert config.fallback_model == "google/gemini-flash"

    def test_paid_plan_uses_high_tier(self):
        """Test PRO users get the high tier model."""
        from prepstream.ai.context import ModelTier
        from prepstream.ai.driver import GenerationDriver
        from prepstream.services.streaming.modules import MCQModule

        driver = GenerationDriver(make_settings())
        config = driver.resolve_tier(MCQModule(), make_context("PRO"))

        assert config.tier == ModelTier.HIGH
        assert config.model == "anthropic/claude-sonnet"

    def test_byok_tier_overrides_platform(self):
        """Test a user-configured tier wins over settings."""
        from prepstream.ai.context import ByokTierConfig
        from prepstream.ai.driver import GenerationDriver
        from prepstream.services.streaming.modules import MCQModule

        byok = ByokTierConfig.from_dict({"medium": {"model": "mistral/large", "temperature": 0.2}})
        driver = GenerationDriver(make_settings())
        config = driver.resolve_tier(MCQModule(), make_context("FREE"), byok)

        assert config.model == "mistral/large"
        assert config.temperature == 0.2

    def test_missing_tier_raises(self):
        """Test an unconfigured tier is a user-facing error."""
        from prepstream.ai.driver import GenerationDriver
        from prepstream.errors import TierNotConfiguredError
        from prepstream.services.streaming.modules import MCQModule

        driver = GenerationDriver(make_settings(tier_medium_model=None))

        with pytest.raises(TierNotConfiguredError) as exc_info:
            driver.resolve_tier(MCQModule(), make_context("FREE"))
        assert "medium" in exc_info.value.public_message

    def test_missing_provider_key_raises(self):
        """Test OpenRouter without any key is rejected."""
        from prepstream.ai.driver import GenerationDriver
        from prepstream.errors import ProviderNotConfiguredError

        driver = GenerationDriver(make_settings(openrouter_api_key=None))

        with pytest.raises(ProviderNotConfiguredError):
            driver._build_model("openai/gpt-mini", api_key=None)

    def test_byok_key_reaches_openai_provider(self):
        """Test a user key is used with the direct OpenAI provider."""
        from pydantic_ai.models.openai import OpenAIChatModel

        from prepstream.ai.driver import GenerationDriver

        driver = GenerationDriver(make_settings(llm_provider="openai", tier_medium_model="gpt-4o-mini"))
        model = driver._build_model("gpt-4o-mini", api_key="user-byok-key")

        assert isinstance(model, OpenAIChatModel)
        assert model.model_name == "gpt-4o-mini"

    def test_byok_key_with_unsupported_provider_raises(self):
        """Test a user key is never replaced by platform credentials."""
        from prepstream.ai.driver import GenerationDriver
        from prepstream.errors import ProviderNotConfiguredError

        driver = GenerationDriver(make_settings(llm_provider="anthropic"))

        with pytest.raises(ProviderNotConfiguredError) as exc_info:
            driver._build_model("claude-sonnet", api_key="user-byok-key")
        assert "anthropic" in exc_info.value.public_message

    def test_platform_key_uses_provider_string(self):
        """Test non-OpenRouter providers without a user key use the model string."""
        from prepstream.ai.driver import GenerationDriver

        driver = GenerationDriver(make_settings(llm_provider="openai"))

        assert driver._build_model("gpt-4o-mini", api_key=None) == "openai:gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_generate_returns_stream_with_model_id(self):
        """Test generate resolves the tier and labels the stream."""
        from prepstream.ai.driver import GenerationDriver
        from prepstream.services.streaming.modules import MCQModule

        driver = GenerationDriver(make_settings())
        stream = await driver.generate(MCQModule(), make_context("FREE"), count=5, api_key="user-key")

        assert stream.model_id == "medium - openai/gpt-mini"
        assert not stream.settled


class TestUsageExtraction:
    """Tests for token usage helpers."""

    def test_input_output_naming(self):
        """Test current usage field names."""
        from prepstream.ai.driver import extract_token_usage

        usage = extract_token_usage(SimpleNamespace(input_tokens=10, output_tokens=20))
        assert usage.to_dict() == {"input": 10, "output": 20}
        assert usage.total_tokens == 30

    def test_request_response_naming(self):
        """Test older usage field names."""
        from prepstream.ai.driver import extract_token_usage

        usage = extract_token_usage(SimpleNamespace(request_tokens=7, response_tokens=3))
        assert usage.to_dict() == {"input": 7, "output": 3}

    def test_missing_usage(self):
        """Test None usage counts as zero."""
        from prepstream.ai.driver import extract_token_usage

        assert extract_token_usage(None).total_tokens == 0

    def test_format_model_id(self):
        """Test the model label used in logs."""
        from prepstream.ai.driver import format_model_id

        assert format_model_id("high", "anthropic/claude-sonnet") == "high - anthropic/claude-sonnet"
