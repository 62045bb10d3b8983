"""
Generation Driver.

Runs structured-output model calls through pydantic-ai and adapts them to a
uniform streaming shape: a single-pass sequence of partial values, then a
deferred final value with token usage.
Single Responsibility: only model execution, no tracking or persistence.
"""
import asyncio
import logging
from contextlib import aclosing
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Generic, Optional, TypeVar, Union

from pydantic_ai import Agent
from pydantic_ai.models import Model
from pydantic_ai.models.fallback import FallbackModel
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.providers.openrouter import OpenRouterProvider
from pydantic_ai.settings import ModelSettings

from prepstream.ai.context import ByokTierConfig, GenerationContext, TierConfig
from prepstream.ai.prompts import SYSTEM_PROMPT
from prepstream.config import Settings
from prepstream.errors import GenerationError, ProviderNotConfiguredError, TierNotConfiguredError
from prepstream.models.usage import TokenUsage

if TYPE_CHECKING:
    from prepstream.services.streaming.modules import ContentModule

logger = logging.getLogger(__name__)

OutputT = TypeVar("OutputT")


def format_model_id(tier: str, model: str) -> str:
    """Model id used in logs: "tier - model"."""
    return f"{tier} - {model}"


def extract_token_usage(usage: Any) -> TokenUsage:
    """
    Read token counts from a provider usage object.

    Handles both input/output and the older request/response naming.
    """
    if usage is None:
        return TokenUsage()

    input_tokens = getattr(usage, "input_tokens", None) or getattr(usage, "request_tokens", None) or 0
    output_tokens = getattr(usage, "output_tokens", None) or getattr(usage, "response_tokens", None) or 0
    return TokenUsage(input_tokens=int(input_tokens), output_tokens=int(output_tokens))


class GenerationStream(Generic[OutputT]):
    """
    Handle on one in-flight generation.

    partials() is a lazy, single-pass sequence. It never raises on upstream
    failure: it just stops, and output() raises instead. A sequence that
    ends without a final value also makes output() raise GenerationError.

    The source is an async generator that yields partial values and calls
    resolve() on this stream once the final value is known.
    """

    def __init__(
        self,
        source: Callable[["GenerationStream[OutputT]"], AsyncIterator[OutputT]],
        model_id: str,
    ):
        self.model_id = model_id
        self._source = source
        self._started = False
        self._settled = asyncio.Event()
        self._output: Optional[OutputT] = None
        self._usage = TokenUsage()
        self._error: Optional[BaseException] = None

    @property
    def settled(self) -> bool:
        return self._settled.is_set()

    def resolve(self, output: OutputT, usage: Optional[TokenUsage] = None) -> None:
        """Record the final value. Called by the source."""
        if self._settled.is_set():
            return
        self._output = output
        self._usage = usage or TokenUsage()
        self._settled.set()

    def reject(self, error: BaseException) -> None:
        if self._settled.is_set():
            return
        self._error = error
        self._settled.set()

    async def partials(self) -> AsyncIterator[OutputT]:
        if self._started:
            raise RuntimeError("Generation stream can only be consumed once")
        self._started = True

        try:
            async with aclosing(self._source(self)) as source:
                async for partial in source:
                    yield partial
        except Exception as e:
            logger.warning("Generation %s failed: %s", self.model_id, e)
            self.reject(e)
        finally:
            if not self._settled.is_set():
                self.reject(GenerationError(
                    "Generation ended without a result",
                    detail=f"{self.model_id}: sequence ended before final value",
                ))

    async def output(self) -> OutputT:
        """Final structured value. Drains the partials if nobody did."""
        if not self._started and not self.settled:
            async for _ in self.partials():
                pass
        await self._settled.wait()
        if self._error is not None:
            raise self._error
        return self._output

    async def usage(self) -> TokenUsage:
        await self.output()
        return self._usage


class GenerationDriver:
    """
    Executes content generation with pydantic-ai structured streaming.

    Model selection:
    - Plan tier (FREE -> medium, PRO/MAX -> high)
    - BYOK tier overrides when the user configured that tier
    - Platform tier models from settings otherwise
    """

    def __init__(self, settings: Settings):
        self._settings = settings

    def resolve_tier(
        self,
        module: "ContentModule",
        ctx: GenerationContext,
        byok_tiers: Optional[ByokTierConfig] = None,
    ) -> TierConfig:
        tier = ctx.plan_context.tier

        if byok_tiers:
            override = byok_tiers.for_tier(tier)
            if override and override.model:
                return override

        model, fallback = self._settings.get_tier_model(tier.value)
        if not model:
            raise TierNotConfiguredError(tier.value, module.task_name)

        return TierConfig(
            model=model,
            tier=tier,
            fallback_model=fallback,
            temperature=self._settings.llm_temperature,
            max_tokens=self._settings.llm_max_tokens,
        )

    def _build_model(self, model_name: str, api_key: Optional[str]) -> Union[Model, str]:
        """
        Model for one tier.

        A BYOK key is always handed to the provider. Providers that cannot
        take one raise ProviderNotConfiguredError.
        """
        provider = self._settings.llm_provider
        if provider == "openai" and api_key:
            return OpenAIChatModel(model_name, provider=OpenAIProvider(api_key=api_key))
        if provider != "openrouter":
            if api_key:
                raise ProviderNotConfiguredError(f'Your API key cannot be used with provider "{provider}"')
            return self._settings.get_llm_model(model_name)

        key = api_key or self._settings.openrouter_api_key
        if not key:
            raise ProviderNotConfiguredError("OpenRouter API key is required")
        return OpenAIChatModel(model_name, provider=OpenRouterProvider(api_key=key))

    def _create_agent(self, module: "ContentModule", tier_config: TierConfig, api_key: Optional[str]) -> Agent:
        model = self._build_model(tier_config.model, api_key)
        if tier_config.fallback_model:
            model = FallbackModel(model, self._build_model(tier_config.fallback_model, api_key))

        return Agent(
            model=model,
            output_type=module.output_type,
            system_prompt=SYSTEM_PROMPT,
            model_settings=ModelSettings(
                temperature=tier_config.temperature,
                max_tokens=tier_config.max_tokens,
            ),
        )

    async def generate(
        self,
        module: "ContentModule",
        ctx: GenerationContext,
        *,
        count: Optional[int] = None,
        api_key: Optional[str] = None,
        byok_tiers: Optional[ByokTierConfig] = None,
    ) -> GenerationStream[Any]:
        """
        Start a generation for a content module.

        Args:
            module: What to generate (output type and prompt)
            ctx: Generation context
            count: Item count for list-shaped modules
            api_key: BYOK credential, bypasses the platform key
            byok_tiers: BYOK model tiers

        Returns:
            GenerationStream over the module's output type

        Raises:
            TierNotConfiguredError: If no model is configured for the tier
            ProviderNotConfiguredError: If the provider has no credentials
        """
        tier_config = self.resolve_tier(module, ctx, byok_tiers)
        agent = self._create_agent(module, tier_config, api_key)
        prompt = module.build_prompt(ctx, count)
        model_id = format_model_id(tier_config.tier.value, tier_config.model)

        logger.info("Starting %s generation with model %s", module.task_name, model_id)

        async def run(stream: GenerationStream) -> AsyncIterator[Any]:
            async with agent.run_stream(prompt) as result:
                async for partial in result.stream_output(debounce_by=None):
                    yield partial
                output = await result.get_output()
                stream.resolve(output, extract_token_usage(result.usage()))

        return GenerationStream(run, model_id=model_id)
