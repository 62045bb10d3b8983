"""
Tests for Pocketbase-backed repositories and the quota gate.

Pocketbase is replaced with an httpx.MockTransport that records requests.
"""
import json
from unittest.mock import AsyncMock

import httpx
import pytest


class PocketbaseStub:
    """Minimal in-memory Pocketbase REST API."""

    def __init__(self, records: dict[str, dict[str, dict]]):
        self.records = records
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        parts = request.url.path.strip("/").split("/")
        # api/collections/{collection}/records[/{id}]
        collection = parts[2]
        items = self.records.setdefault(collection, {})

        if len(parts) == 4 and request.method == "GET":
            return httpx.Response(200, json={"items": list(items.values())[:1], "totalItems": len(items)})

        record_id = parts[4]
        if record_id not in items:
            return httpx.Response(404, json={"message": "The requested resource wasn't found."})

        if request.method == "PATCH":
            items[record_id].update(json.loads(request.content))
        return httpx.Response(200, json=items[record_id])

    def service(self):
        from prepstream.services.pocketbase import PocketbaseService

        return PocketbaseService("http://pocketbase:8090", transport=httpx.MockTransport(self.handler))


def interview_record():
    return {
        "id": "ivw1",
        "user_id": "user1",
        "job_details": {"title": "Backend Engineer", "company": "Acme", "description": "Python"},
        "resume_context": "Python",
        "modules": {
            "revision_topics": [
                {
                    "id": "topic_1",
                    "title": "Caching",
                    "content": "Old",
                    "reason": "Common",
                    "style": "professional",
                    "style_cache": {"professional": "Old"},
                }
            ],
            "mcqs": [{"id": "mcq_1", "question": "?", "options": ["a", "b"], "answer": "a"}],
        },
    }


class TestUserRepository:
    """Tests for UserRepository."""

    @pytest.mark.asyncio
    async def test_find_by_clerk_id_filters(self):
        """Test lookup sends a quoted clerk_id filter."""
        from prepstream.services.users import UserRepository

        stub = PocketbaseStub({"users": {"user1": {"id": "user1", "clerk_id": "clerk_abc", "plan": "PRO"}}})
        user = await UserRepository(stub.service()).find_by_clerk_id("clerk_abc")

        assert user.id == "user1"
        assert user.plan.value == "PRO"
        assert stub.requests[0].url.params["filter"] == 'clerk_id="clerk_abc"'

    @pytest.mark.asyncio
    async def test_increment_uses_server_side_modifier(self):
        """Test the counter is incremented atomically with field+."""
        from prepstream.models.documents import User
        from prepstream.services.users import UserRepository

        stub = PocketbaseStub({"users": {"user1": {"id": "user1", "clerk_id": "c", "iterations_count": 2}}})
        await UserRepository(stub.service()).increment_iteration(User(id="user1", clerk_id="c"), 1)

        assert json.loads(stub.requests[-1].content) == {"iterations_count+": 1}

    def test_filter_value_quoting(self):
        """Test quotes inside ids cannot break out of the filter."""
        from prepstream.services.users import quote_filter_value

        assert quote_filter_value('a"b') == '"a\\"b"'


class TestInterviewRepository:
    """Tests for InterviewRepository."""

    @pytest.mark.asyncio
    async def test_find_by_id_missing_returns_none(self):
        """Test 404 maps to None."""
        from prepstream.services.interviews import InterviewRepository

        stub = PocketbaseStub({"interviews": {}})
        assert await InterviewRepository(stub.service()).find_by_id("nope") is None

    @pytest.mark.asyncio
    async def test_find_by_id_parses_modules(self):
        """Test stored JSON becomes typed modules."""
        from prepstream.services.interviews import InterviewRepository

        stub = PocketbaseStub({"interviews": {"ivw1": interview_record()}})
        interview = await InterviewRepository(stub.service()).find_by_id("ivw1")

        assert interview.modules.ids_for("mcqs") == ["mcq_1"]
        assert interview.modules.find_topic("topic_1").title == "Caching"

    @pytest.mark.asyncio
    async def test_append_to_module_keeps_existing(self):
        """Test appended items follow the stored ones."""
        from prepstream.services.interviews import InterviewRepository

        stub = PocketbaseStub({"interviews": {"ivw1": interview_record()}})
        await InterviewRepository(stub.service()).append_to_module("ivw1", "mcqs", [{"id": "mcq_2"}])

        mcqs = stub.records["interviews"]["ivw1"]["modules"]["mcqs"]
        assert [m["id"] for m in mcqs] == ["mcq_1", "mcq_2"]

    @pytest.mark.asyncio
    async def test_append_nothing_skips_write(self):
        """Test an empty append does not touch Pocketbase."""
        from prepstream.services.interviews import InterviewRepository

        stub = PocketbaseStub({"interviews": {"ivw1": interview_record()}})
        await InterviewRepository(stub.service()).append_to_module("ivw1", "mcqs", [])

        assert stub.requests == []

    @pytest.mark.asyncio
    async def test_update_topic_style_caches_content(self):
        """Test rewrite keeps id and title, sets style and fills the cache."""
        from prepstream.models.content import AnalogyStyle
        from prepstream.services.interviews import InterviewRepository

        stub = PocketbaseStub({"interviews": {"ivw1": interview_record()}})
        await InterviewRepository(stub.service()).update_topic_style(
            "ivw1", "topic_1", "Like a pantry", AnalogyStyle.SIMPLE
        )

        topic = stub.records["interviews"]["ivw1"]["modules"]["revision_topics"][0]
        assert topic["id"] == "topic_1"
        assert topic["title"] == "Caching"
        assert topic["content"] == "Like a pantry"
        assert topic["style"] == "simple"
        assert topic["style_cache"] == {"professional": "Old", "simple": "Like a pantry"}

    @pytest.mark.asyncio
    async def test_update_unknown_topic_raises(self):
        """Test rewriting a missing topic is a not-found error."""
        from prepstream.models.content import AnalogyStyle
        from prepstream.services.interviews import InterviewRepository
        from prepstream.services.pocketbase import PocketbaseError

        stub = PocketbaseStub({"interviews": {"ivw1": interview_record()}})

        with pytest.raises(PocketbaseError) as exc_info:
            await InterviewRepository(stub.service()).update_topic_style(
                "ivw1", "topic_x", "text", AnalogyStyle.SIMPLE
            )
        assert exc_info.value.is_not_found


class TestQuotaGate:
    """Tests for QuotaGate."""

    @pytest.mark.asyncio
    async def test_byok_bypasses_quota(self):
        """Test users with their own key are never charged."""
        from prepstream.models.documents import User
        from prepstream.services.quota import QuotaGate

        users = AsyncMock()
        user = User(id="u1", clerk_id="c", iterations_count=5, iterations_limit=5, byok_api_key="sk-or-x")

        assert await QuotaGate(users).check_and_consume(user) is False
        users.increment_iteration.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exhausted_raises(self):
        """Test the plan limit is enforced."""
        from prepstream.models.documents import User
        from prepstream.services.quota import QuotaExceededError, QuotaGate

        users = AsyncMock()
        user = User(id="u1", clerk_id="c", iterations_count=5, iterations_limit=5)

        with pytest.raises(QuotaExceededError):
            await QuotaGate(users).check_and_consume(user)
        users.increment_iteration.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_consumes_one_iteration(self):
        """Test a full generation costs one iteration."""
        from prepstream.models.documents import User
        from prepstream.services.quota import ITERATION_COSTS, QuotaGate

        users = AsyncMock()
        user = User(id="u1", clerk_id="c", iterations_count=1, iterations_limit=5)

        assert await QuotaGate(users).check_and_consume(user) is True
        users.increment_iteration.assert_awaited_once_with(user, ITERATION_COSTS["full_generation"])


class TestAILogger:
    """Tests for AILogger."""

    @pytest.mark.asyncio
    async def test_request_log_records_usage(self, caplog):
        """Test the stored record and log line carry the token counts."""
        from prepstream.models.usage import TokenUsage
        from prepstream.services.ai_logger import AILogEntry, AILogger

        pocketbase = AsyncMock()
        entry = AILogEntry(
            interview_id="ivw1",
            user_id="user1",
            action="GENERATE_MCQS",
            status="success",
            model="medium - openai/gpt-mini",
            prompt="Generate mcqs",
            token_usage=TokenUsage(input_tokens=120, output_tokens=480),
            latency_ms=900,
        )

        with caplog.at_level("INFO", logger="prepstream.services.ai_logger"):
            await AILogger(pocketbase).log_ai_request(entry)

        collection, record = pocketbase.create_record.await_args.args
        assert collection == "ai_logs"
        assert record["token_usage"] == {"input": 120, "output": 480}
        assert "120 in / 480 out (600 total) tokens" in caplog.text

    @pytest.mark.asyncio
    async def test_store_failure_is_swallowed(self):
        """Test a Pocketbase error never escapes the logger."""
        from prepstream.services.ai_logger import AILogEntry, AILogger
        from prepstream.services.pocketbase import PocketbaseError

        pocketbase = AsyncMock()
        pocketbase.create_record.side_effect = PocketbaseError("Connection error: refused")
        entry = AILogEntry(
            interview_id="ivw1",
            user_id="user1",
            action="GENERATE_MCQS",
            status="error",
            model="unknown",
            prompt="Generate mcqs",
            error="boom",
        )

        await AILogger(pocketbase).log_ai_error(entry)

        pocketbase.create_record.assert_awaited_once()
