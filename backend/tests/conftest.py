"""
Pytest configuration for backend tests.

Adds the backend directory to Python path so imports like
'from prepstream.xxx import ...' work correctly, and provides in-memory
stand-ins for Redis and the model driver.
"""
import re
import sys
from pathlib import Path
from typing import Optional

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

# Add backend directory to path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from prepstream.ai.driver import GenerationStream  # noqa: E402
from prepstream.models.usage import TokenUsage  # noqa: E402


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """Compile a Redis MATCH glob, honouring backslash escapes."""
    parts = []
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "\\" and i + 1 < len(pattern):
            i += 1
            parts.append(re.escape(pattern[i]))
        elif char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        elif char == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                parts.append(re.escape(char))
            else:
                parts.append("[" + pattern[i + 1:end].replace("\\", "\\\\") + "]")
                i = end
        else:
            parts.append(re.escape(char))
        i += 1
    return re.compile("".join(parts), re.DOTALL)


class FakeCache:
    """
    In-memory subset of redis.asyncio with expiry driven by a FakeClock.

    With failing=True every call raises a Redis connection error.
    """

    def __init__(self, clock: Optional[FakeClock] = None, failing: bool = False):
        self.clock = clock or FakeClock()
        self.failing = failing
        self._data: dict[str, str] = {}
        self._expires: dict[str, float] = {}

    def _check(self) -> None:
        if self.failing:
            raise RedisConnectionError("Connection refused")

    def _purge(self, key: str) -> None:
        expires = self._expires.get(key)
        if expires is not None and self.clock() >= expires:
            self._data.pop(key, None)
            self._expires.pop(key, None)

    def ttl_of(self, key: str) -> Optional[float]:
        expires = self._expires.get(key)
        return None if expires is None else expires - self.clock()

    async def get(self, name: str) -> Optional[str]:
        self._check()
        self._purge(name)
        return self._data.get(name)

    async def setex(self, name: str, time: int, value: str) -> bool:
        self._check()
        self._data[name] = value
        self._expires[name] = self.clock() + time
        return True

    async def append(self, key: str, value: str) -> int:
        self._check()
        self._purge(key)
        self._data[key] = self._data.get(key, "") + value
        return len(self._data[key])

    async def expire(self, name: str, time: int) -> bool:
        self._check()
        self._purge(name)
        if name not in self._data:
            return False
        self._expires[name] = self.clock() + time
        return True

    async def delete(self, *names: str) -> int:
        self._check()
        removed = 0
        for name in names:
            if self._data.pop(name, None) is not None:
                removed += 1
            self._expires.pop(name, None)
        return removed

    async def scan_iter(self, match: Optional[str] = None, count: Optional[int] = None):
        self._check()
        for key in list(self._data):
            self._purge(key)
            if key in self._data and (match is None or glob_to_regex(match).fullmatch(key)):
                yield key

    async def ping(self) -> bool:
        self._check()
        return True


def scripted_stream(
    partials,
    final=None,
    error: Optional[BaseException] = None,
    release=None,
    clock: Optional[FakeClock] = None,
    step: float = 0.2,
    usage: TokenUsage = TokenUsage(input_tokens=120, output_tokens=480),
    model_id: str = "medium - test/model",
) -> GenerationStream:
    """
    GenerationStream that replays a fixed script.

    Yields the partials (advancing the clock by step before each one),
    optionally waits for the release event, then resolves with final or
    rejects with error. With neither, the sequence ends without a result.
    """

    async def source(stream: GenerationStream):
        for partial in partials:
            if clock is not None:
                clock.advance(step)
            yield partial
        if release is not None:
            await release.wait()
        if error is not None:
            stream.reject(error)
        elif final is not None:
            stream.resolve(final, usage)

    return GenerationStream(source, model_id=model_id)


class FakeGenerator:
    """Hands out prepared generation streams in order."""

    def __init__(self, *streams: GenerationStream):
        self._streams = list(streams)
        self.calls: list[dict] = []

    async def generate(self, module, ctx, *, count=None, api_key=None, byok_tiers=None):
        self.calls.append({"module": module, "ctx": ctx, "count": count, "api_key": api_key})
        return self._streams.pop(0)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return FakeCache(clock)
