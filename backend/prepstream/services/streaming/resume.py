"""
Stream resumption.

A client that reconnects asks for the job status. Active jobs are polled
until they finish; the replay buffer allows catching up mid-stream.
"""
import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from .tracker import StreamTracker
from .types import JobKey, StreamStatus

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 2.0
POLL_TIMEOUT_SECONDS = 300.0

NO_STREAM = {"status": StreamStatus.NONE.value}


async def read_status(tracker: StreamTracker, job_key: JobKey) -> dict[str, Any]:
    """Status payload for a job, {"status": "none"} when nothing is tracked."""
    job = await tracker.read_job(job_key)
    if job is None:
        return dict(NO_STREAM)
    return job.status_payload()


async def read_replay(tracker: StreamTracker, job_key: JobKey) -> Optional[str]:
    """Buffered SSE frames for a job, or None when nothing was buffered."""
    content = await tracker.read_content(job_key)
    return content or None


class StatusPoller:
    """
    Poll a job's status until it leaves "active".

    Stops on completed, error or none (record expired). Gives up after the
    timeout and returns the last status seen.
    """

    def __init__(
        self,
        fetch_status: Callable[[], Awaitable[dict[str, Any]]],
        interval_seconds: float = POLL_INTERVAL_SECONDS,
        timeout_seconds: float = POLL_TIMEOUT_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch_status = fetch_status
        self._interval = interval_seconds
        self._timeout = timeout_seconds
        self._sleep = sleep
        self._clock = clock
        self.polls = 0

    @classmethod
    def for_job(cls, tracker: StreamTracker, job_key: JobKey, **kwargs) -> "StatusPoller":
        return cls(lambda: read_status(tracker, job_key), **kwargs)

    async def wait_for_terminal(self) -> dict[str, Any]:
        deadline = self._clock() + self._timeout

        while True:
            payload = await self._fetch_status()
            self.polls += 1

            if payload.get("status") != StreamStatus.ACTIVE.value:
                return payload

            if self._clock() + self._interval > deadline:
                logger.warning(
                    "Stream %s still active after %.0fs, giving up",
                    payload.get("streamId"),
                    self._timeout,
                )
                return payload

            await self._sleep(self._interval)
