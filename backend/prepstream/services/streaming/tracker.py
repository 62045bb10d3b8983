"""
Stream Tracker.

Short-lived bookkeeping of generation streams in Redis so a client can
reconnect to an in-flight generation.

Keys per job:
- stream:{parent}:{module}          JSON StreamJob record
- stream-content:{parent}:{module}  appended SSE frames

Provides graceful degradation - if Redis is unavailable, operations log
the failure and behave as if no record exists. Tracking must never fail
a user-facing request.
"""
import logging
import time
from typing import Callable, Optional, Protocol

from redis.exceptions import RedisError

from .types import JobKey, StreamJob, StreamStatus

logger = logging.getLogger(__name__)

STREAM_PREFIX = "stream:"
STREAM_CONTENT_PREFIX = "stream-content:"
STREAM_TTL = 60 * 5
TERMINAL_TTL = 30

TRACKER_ERRORS = (RedisError, OSError)
GLOB_SPECIAL = frozenset("*?[]\\")


class CacheClient(Protocol):
    """Subset of the redis.asyncio client used by the tracker."""

    async def get(self, name: str) -> Optional[str]: ...
    async def setex(self, name: str, time: int, value: str) -> object: ...
    async def append(self, key: str, value: str) -> int: ...
    async def expire(self, name: str, time: int) -> bool: ...
    async def delete(self, *names: str) -> int: ...
    def scan_iter(self, match: Optional[str] = None, count: Optional[int] = None): ...


def job_record_key(job_key: JobKey) -> str:
    return f"{STREAM_PREFIX}{job_key}"


def job_content_key(job_key: JobKey) -> str:
    return f"{STREAM_CONTENT_PREFIX}{job_key}"


def escape_glob(value: str) -> str:
    """Escape Redis MATCH metacharacters so the value matches literally."""
    return "".join("\\" + char if char in GLOB_SPECIAL else char for char in value)


def _now_ms() -> int:
    return int(time.time() * 1000)


class StreamTracker:
    """
    Redis-backed record of active generations.

    At most one job exists per JobKey: start_job supersedes whatever was
    there. Writers identify themselves with their stream_id so that a
    superseded producer cannot overwrite the state of its replacement.
    """

    def __init__(
        self,
        cache: CacheClient,
        ttl_seconds: int = STREAM_TTL,
        terminal_ttl_seconds: int = TERMINAL_TTL,
        clock: Callable[[], int] = _now_ms,
    ):
        self._cache = cache
        self._ttl = ttl_seconds
        self._terminal_ttl = terminal_ttl_seconds
        self._clock = clock

    async def start_job(self, stream_id: str, job_key: JobKey, owner_id: str) -> Optional[StreamJob]:
        """
        Record a new active job, clearing any previous job and buffer.

        Returns:
            The stored StreamJob, or None if the store is unavailable
        """
        job = StreamJob(
            stream_id=stream_id,
            job_key=job_key,
            owner_id=owner_id,
            status=StreamStatus.ACTIVE,
            created_at=self._clock(),
        )
        try:
            await self._cache.delete(job_record_key(job_key), job_content_key(job_key))
            await self._cache.setex(job_record_key(job_key), self._ttl, job.to_json())
        except TRACKER_ERRORS as e:
            logger.warning("Failed to start stream %s for %s: %s", stream_id, job_key, e)
            return None

        logger.debug("Started stream %s for %s", stream_id, job_key)
        return job

    async def mark_status(
        self,
        job_key: JobKey,
        status: StreamStatus,
        stream_id: Optional[str] = None,
    ) -> bool:
        """
        Move a job to a terminal status.

        The record is kept for a short time so a polling client still sees
        the final state. No-op if the record is gone or belongs to another
        stream.

        Returns:
            True if the record was updated
        """
        if not status.is_terminal:
            raise ValueError(f"Cannot mark stream as {status.value}")

        job = await self.read_job(job_key)
        if job is None:
            logger.debug("No stream record for %s, skipping status %s", job_key, status.value)
            return False
        if stream_id is not None and job.stream_id != stream_id:
            logger.info(
                "Stream %s was superseded by %s for %s, not marking %s",
                stream_id,
                job.stream_id,
                job_key,
                status.value,
            )
            return False

        try:
            await self._cache.setex(
                job_record_key(job_key),
                self._terminal_ttl,
                job.with_status(status).to_json(),
            )
            await self._cache.expire(job_content_key(job_key), self._terminal_ttl)
        except TRACKER_ERRORS as e:
            logger.warning("Failed to mark stream %s as %s: %s", job_key, status.value, e)
            return False

        logger.debug("Marked stream %s as %s", job_key, status.value)
        return True

    async def append_content(self, job_key: JobKey, chunk: str, stream_id: Optional[str] = None) -> bool:
        """
        Append a chunk to the replay buffer and refresh its TTL.

        With a stream_id, the write is dropped unless that stream still owns
        the job.
        """
        if stream_id is not None:
            job = await self.read_job(job_key)
            if job is None or job.stream_id != stream_id:
                logger.debug("Dropping buffer write from stale stream %s for %s", stream_id, job_key)
                return False

        try:
            await self._cache.append(job_content_key(job_key), chunk)
            await self._cache.expire(job_content_key(job_key), self._ttl)
        except TRACKER_ERRORS as e:
            logger.warning("Failed to append stream content for %s: %s", job_key, e)
            return False
        return True

    async def read_content(self, job_key: JobKey) -> Optional[str]:
        try:
            return await self._cache.get(job_content_key(job_key))
        except TRACKER_ERRORS as e:
            logger.warning("Failed to read stream content for %s: %s", job_key, e)
            return None

    async def read_job(self, job_key: JobKey) -> Optional[StreamJob]:
        try:
            raw = await self._cache.get(job_record_key(job_key))
        except TRACKER_ERRORS as e:
            logger.warning("Failed to read stream record for %s: %s", job_key, e)
            return None

        if not raw:
            return None
        try:
            return StreamJob.from_json(raw)
        except ValueError as e:
            logger.warning("Ignoring invalid stream record for %s: %s", job_key, e)
            return None

    async def has_active_job(self, job_key: JobKey) -> bool:
        job = await self.read_job(job_key)
        return job is not None and job.status == StreamStatus.ACTIVE

    async def clear(self, job_key: JobKey) -> None:
        """Delete the job record and its content buffer."""
        try:
            await self._cache.delete(job_record_key(job_key), job_content_key(job_key))
        except TRACKER_ERRORS as e:
            logger.warning("Failed to clear stream %s: %s", job_key, e)

    async def jobs_for_parent(self, parent_id: str) -> list[StreamJob]:
        """All tracked jobs for one parent document."""
        jobs = []
        prefix = f"{STREAM_PREFIX}{parent_id}:"
        try:
            async for key in self._cache.scan_iter(match=f"{escape_glob(prefix)}*"):
                if not key.startswith(prefix):
                    continue
                module_key = key[len(prefix):]
                job = await self.read_job(JobKey(parent_id, module_key))
                if job is not None:
                    jobs.append(job)
        except TRACKER_ERRORS as e:
            logger.warning("Failed to list streams for %s: %s", parent_id, e)
        return jobs
