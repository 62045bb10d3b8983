"""
Generation Orchestrator.

Coordinates one generation between the driver, the stream tracker and the
client channel.
Single Responsibility: only coordination, delegates model work to the
generator and persistence to the content module.
"""
import asyncio
import json
import logging
import time
from typing import Any, Callable, Optional, Protocol

from prepstream.errors import public_message
from prepstream.services.ai_logger import AILogEntry, AILogger, LoggerContext
from prepstream.services.streaming.modules import ContentModule, InterviewStore

from .channel import StreamChannel
from .lifecycle import StreamLifecycle
from .throttle import THROTTLE_MS, ThrottleGate
from .tracker import StreamTracker
from .types import EventType, StreamEvent, StreamRequest

logger = logging.getLogger(__name__)

RESPONSE_LOG_LIMIT = 2000


class Generator(Protocol):
    """Anything that starts a generation stream, normally GenerationDriver."""

    async def generate(self, module: ContentModule, ctx, *, count=None, api_key=None, byok_tiers=None): ...


def summarize_response(data: Any) -> str:
    if isinstance(data, str):
        return data[:RESPONSE_LOG_LIMIT]
    return json.dumps(data, default=str)[:RESPONSE_LOG_LIMIT]


class GenerationOrchestrator:
    """
    Runs generations as background producer tasks.

    Workflow:
    1. start() records the job in the tracker and spawns the producer
    2. Partials pass the throttle gate, then go to the channel and the
       replay buffer
    3. The final value is de-duplicated, persisted, and sent as "complete"
    4. The tracker record is marked completed or error, usage is logged

    The HTTP response only reads from the channel. A client disconnect
    detaches the channel but the producer runs to the end, so persistence
    and logging happen even when nobody is watching.
    """

    def __init__(
        self,
        generator: Generator,
        tracker: StreamTracker,
        store: InterviewStore,
        ai_logger: AILogger,
        throttle_ms: int = THROTTLE_MS,
        channel_size: int = 64,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._generator = generator
        self._tracker = tracker
        self._store = store
        self._ai_logger = ai_logger
        self._throttle_ms = throttle_ms
        self._channel_size = channel_size
        self._clock = clock
        self._active_streams: dict[str, asyncio.Task] = {}

    async def start(self, request: StreamRequest) -> StreamChannel:
        """
        Start a generation in a background task.

        Non-blocking: returns the channel the response should drain as soon
        as the job is recorded.

        Raises:
            ValueError: If a stream with the same id is already running
        """
        if request.stream_id in self._active_streams:
            raise ValueError(f"Stream {request.stream_id} is already active")

        await self._tracker.start_job(request.stream_id, request.job_key, request.user_id)

        channel = StreamChannel(maxsize=self._channel_size)
        task = asyncio.create_task(
            self._run_stream(request, channel),
            name=f"stream-{request.stream_id}",
        )
        self._active_streams[request.stream_id] = task
        task.add_done_callback(lambda _: self._active_streams.pop(request.stream_id, None))

        logger.info("Started stream %s for %s", request.stream_id, request.job_key)
        return channel

    def is_active(self, stream_id: str) -> bool:
        """Check if a producer is still running for this stream."""
        return stream_id in self._active_streams

    @property
    def active_count(self) -> int:
        return len(self._active_streams)

    async def wait(self, stream_id: str) -> None:
        """Wait for a producer to finish. Returns at once if it is not running."""
        task = self._active_streams.get(stream_id)
        if task:
            await asyncio.gather(task, return_exceptions=True)

    async def drain(self) -> None:
        """Wait for every running producer, used on shutdown."""
        tasks = list(self._active_streams.values())
        if not tasks:
            return
        logger.info("Waiting for %d active streams to finish", len(tasks))
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _forward(
        self,
        request: StreamRequest,
        channel: StreamChannel,
        log_ctx: LoggerContext,
        event: StreamEvent,
    ) -> None:
        """Send an event to the client and append it to the replay buffer."""
        if event.type == EventType.CONTENT:
            log_ctx.mark_first_token()
        await channel.send(event)
        await self._tracker.append_content(request.job_key, event.encode(), request.stream_id)

    async def _run_stream(self, request: StreamRequest, channel: StreamChannel) -> None:
        """
        Execute the producer pipeline for one request.

        Never raises: failures become a single error event on the stream.
        """
        module = request.module
        lifecycle = StreamLifecycle(request.stream_id)
        log_ctx = LoggerContext(metadata=request.log_metadata(), clock=self._clock)
        gate = ThrottleGate(self._throttle_ms, clock=self._clock)
        model_id = "unknown"

        try:
            lifecycle.begin()
            generation = await self._generator.generate(
                module,
                request.context,
                count=request.count,
                api_key=request.api_key,
                byok_tiers=request.byok_tiers,
            )
            model_id = generation.model_id

            async for partial in generation.partials():
                data = module.extract_partial(partial)
                if data is None:
                    continue
                value = gate.offer(data)
                if value is not None:
                    await self._forward(request, channel, log_ctx, StreamEvent.content(request.tag, value))

            pending = gate.flush()
            if pending is not None:
                await self._forward(request, channel, log_ctx, StreamEvent.content(request.tag, pending))

            output = await generation.output()
            usage = await generation.usage()
            result = module.finalize(module.extract_final(output), request.context.existing_content)

            await module.persist(self._store, request.interview_id, result)

            await self._forward(request, channel, log_ctx, StreamEvent.complete(request.tag, result))
            await self._forward(request, channel, log_ctx, StreamEvent.done(request.tag))
            lifecycle.succeed()

        except asyncio.CancelledError:
            await self._fail(request, channel, lifecycle, log_ctx, model_id, "Stream cancelled")
            raise

        except Exception as e:
            logger.exception("Stream %s failed: %s", request.stream_id, e)
            await self._fail(
                request,
                channel,
                lifecycle,
                log_ctx,
                model_id,
                public_message(e, module.error_message),
                detail=str(e),
            )
            return

        await channel.close()
        await self._tracker.mark_status(request.job_key, lifecycle.status, request.stream_id)

        logger.info(
            "Stream %s completed: %d partials forwarded, %d coalesced",
            request.stream_id,
            gate.forwarded,
            gate.coalesced,
        )
        await self._ai_logger.log_ai_request(
            AILogEntry(
                interview_id=request.interview_id,
                user_id=request.user_id,
                action=module.ai_action,
                status="success",
                model=model_id,
                prompt=request.prompt_summary,
                response=summarize_response(result),
                token_usage=usage,
                latency_ms=log_ctx.latency_ms(),
                time_to_first_token_ms=log_ctx.time_to_first_token_ms(),
                metadata=log_ctx.metadata,
            )
        )

    async def _fail(
        self,
        request: StreamRequest,
        channel: StreamChannel,
        lifecycle: StreamLifecycle,
        log_ctx: LoggerContext,
        model_id: str,
        message: str,
        detail: Optional[str] = None,
    ) -> None:
        if lifecycle.is_finished:
            # Already reported an outcome
            return
        lifecycle.fail()

        await self._forward(request, channel, log_ctx, StreamEvent.failure(request.tag, message))
        await channel.close()
        await self._tracker.mark_status(request.job_key, lifecycle.status, request.stream_id)

        await self._ai_logger.log_ai_error(
            AILogEntry(
                interview_id=request.interview_id,
                user_id=request.user_id,
                action=request.module.ai_action,
                status="error",
                model=model_id,
                prompt=request.prompt_summary,
                error=detail or message,
                latency_ms=log_ctx.latency_ms(),
                time_to_first_token_ms=log_ctx.time_to_first_token_ms(),
                metadata=log_ctx.metadata,
            )
        )
