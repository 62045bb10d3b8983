"""
Streaming Services Module.

Provides infrastructure for resumable generation streams.

Architecture:
- StreamTracker: Redis record of active jobs and their replay buffer
- ThrottleGate: Coalesces partials to at most one event per interval
- StreamChannel: Bounded queue between producer and HTTP response
- GenerationOrchestrator: Runs producers as background tasks

Usage:
    from prepstream.services.streaming import (
        GenerationOrchestrator,
        StreamRequest,
    )

    orchestrator = GenerationOrchestrator(driver, tracker, interviews, ai_logger)
    channel = await orchestrator.start(request)
    return StreamingResponse(channel.frames(), media_type="text/event-stream")
"""

from .types import (
    EventType,
    JobKey,
    StreamEvent,
    StreamJob,
    StreamRequest,
    StreamStatus,
)
from .tracker import StreamTracker
from .throttle import THROTTLE_MS, ThrottleGate
from .channel import StreamChannel
from .lifecycle import StreamLifecycle
from .orchestrator import GenerationOrchestrator
from .resume import StatusPoller, read_replay, read_status

__all__ = [
    # Types
    "EventType",
    "JobKey",
    "StreamEvent",
    "StreamJob",
    "StreamRequest",
    "StreamStatus",
    # Services
    "StreamTracker",
    "ThrottleGate",
    "THROTTLE_MS",
    "StreamChannel",
    "StreamLifecycle",
    "GenerationOrchestrator",
    "StatusPoller",
    "read_replay",
    "read_status",
]
