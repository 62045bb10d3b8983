"""
Streaming Types.

Data structures for resumable generation streams.
Records and events are immutable dataclasses; only the tracker and the
orchestrator produce new versions of them.
"""
import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from prepstream.ai.context import ByokTierConfig, GenerationContext
    from prepstream.services.streaming.modules import ContentModule


class StreamStatus(str, Enum):
    """Lifecycle status of a stream job as seen by clients."""

    NONE = "none"  # No record in the stream store
    ACTIVE = "active"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (StreamStatus.COMPLETED, StreamStatus.ERROR)


@dataclass(frozen=True)
class JobKey:
    """
    Identifies what is being generated.

    parent_id is the owning document (an interview), module_key names the
    target inside it ("mcqs", "addMore_mcqs", "topic_<id>").
    """

    parent_id: str
    module_key: str

    def __str__(self) -> str:
        return f"{self.parent_id}:{self.module_key}"


@dataclass(frozen=True)
class StreamJob:
    """One in-flight or recently finished generation attempt."""

    stream_id: str
    job_key: JobKey
    owner_id: str
    status: StreamStatus
    created_at: int  # epoch milliseconds

    def with_status(self, status: StreamStatus) -> "StreamJob":
        return replace(self, status=status)

    def to_json(self) -> str:
        return json.dumps(
            {
                "streamId": self.stream_id,
                "parentId": self.job_key.parent_id,
                "module": self.job_key.module_key,
                "userId": self.owner_id,
                "status": self.status.value,
                "createdAt": self.created_at,
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "StreamJob":
        """
        Parse a stored record.

        Raises:
            ValueError: If the payload is not a valid stream record
        """
        try:
            data = json.loads(raw)
            return cls(
                stream_id=data["streamId"],
                job_key=JobKey(data["parentId"], data["module"]),
                owner_id=data["userId"],
                status=StreamStatus(data["status"]),
                created_at=int(data["createdAt"]),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Malformed stream record: {e}") from e

    def status_payload(self) -> dict[str, Any]:
        """Response body for the status endpoint."""
        return {
            "status": self.status.value,
            "streamId": self.stream_id,
            "createdAt": self.created_at,
        }


class EventType(str, Enum):
    """Event types on the stream wire."""

    CONTENT = "content"
    COMPLETE = "complete"
    ERROR = "error"
    DONE = "done"


@dataclass(frozen=True)
class StreamEvent:
    """
    Single event sent to the client.

    The tag identifies which module the event belongs to, e.g.
    {"module": "mcqs"} or {"topicId": "topic_ab12cd34"}.
    """

    type: EventType
    tag: dict[str, str] = field(default_factory=dict)
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def content(cls, tag: dict[str, str], data: Any) -> "StreamEvent":
        return cls(EventType.CONTENT, tag, data=data)

    @classmethod
    def complete(cls, tag: dict[str, str], data: Any) -> "StreamEvent":
        return cls(EventType.COMPLETE, tag, data=data)

    @classmethod
    def failure(cls, tag: dict[str, str], error: str) -> "StreamEvent":
        return cls(EventType.ERROR, tag, error=error)

    @classmethod
    def done(cls, tag: dict[str, str]) -> "StreamEvent":
        return cls(EventType.DONE, tag)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type.value, **self.tag}
        if self.type in (EventType.CONTENT, EventType.COMPLETE):
            payload["data"] = self.data
        elif self.type == EventType.ERROR:
            payload["error"] = self.error
        return payload

    def encode(self) -> str:
        """Frame the event for Server-Sent Events."""
        return f"data: {json.dumps(self.to_dict(), separators=(',', ':'))}\n\n"


def decode_events(raw: str) -> list[dict[str, Any]]:
    """Parse framed SSE text (as stored in the content buffer) back into payloads."""
    events = []
    for block in raw.split("\n\n"):
        block = block.strip()
        if not block.startswith("data:"):
            continue
        events.append(json.loads(block[len("data:"):].strip()))
    return events


@dataclass(frozen=True)
class StreamRequest:
    """
    Immutable request for starting a generation stream.

    Contains everything the producer needs: what to generate, for whom,
    with which credentials, and where to persist the result.
    """

    stream_id: str
    job_key: JobKey
    user_id: str
    interview_id: str
    module: "ContentModule"
    context: "GenerationContext"
    count: Optional[int] = None
    api_key: Optional[str] = None
    byok_tiers: Optional["ByokTierConfig"] = None
    prompt_summary: str = ""

    @property
    def tag(self) -> dict[str, str]:
        return self.module.tag

    def log_metadata(self) -> dict[str, Any]:
        return {
            "streaming": True,
            "byokUsed": bool(self.api_key),
            "jobKey": str(self.job_key),
        }
