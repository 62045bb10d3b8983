"""
Content Modules.

One class per generation target. Each module knows its output type, how to
build its prompt, how to pull client payloads out of partial and final
values, and how to persist the result onto the interview document.
Adding a module means adding a class here and registering it in MODULES.
"""
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, ClassVar, Iterable, Optional, Protocol

from pydantic import BaseModel

from prepstream.ai import prompts
from prepstream.ai.context import GenerationContext
from prepstream.models.content import (
    AnalogyStyle,
    MCQBatch,
    OpeningBrief,
    RapidFireBatch,
    RevisionTopic,
    TopicRewrite,
    TopicsBatch,
)


class ModuleKind(str, Enum):
    """Interview modules that can be generated."""

    OPENING_BRIEF = "openingBrief"
    REVISION_TOPICS = "revisionTopics"
    MCQS = "mcqs"
    RAPID_FIRE = "rapidFire"


class InterviewStore(Protocol):
    """Persistence calls modules need from the interview repository."""

    async def update_module(self, interview_id: str, field_name: str, value: Any) -> None: ...

    async def append_to_module(self, interview_id: str, field_name: str, items: list[dict]) -> None: ...

    async def update_topic_style(
        self,
        interview_id: str,
        topic_id: str,
        content: str,
        style: AnalogyStyle,
    ) -> None: ...


def filter_new_items(items: Iterable[dict], existing_ids: Iterable[str]) -> list[dict]:
    """
    Drop items whose id collides with an existing id or an earlier item.

    Items without an id are dropped too, since they cannot be addressed.
    """
    seen = set(existing_ids)
    unique = []
    for item in items:
        item_id = item.get("id")
        if not item_id or item_id in seen:
            continue
        seen.add(item_id)
        unique.append(item)
    return unique


class ContentModule(ABC):
    """Base class for a generation target."""

    output_type: ClassVar[type[BaseModel]]
    task_name: ClassVar[str]
    ai_action: ClassVar[str]
    failure_message: ClassVar[str] = "Failed to generate content"

    @property
    @abstractmethod
    def module_key(self) -> str:
        """Name of the job inside its interview, used for stream tracking."""

    @property
    @abstractmethod
    def tag(self) -> dict[str, str]:
        """Fields added to every event of this module."""

    @property
    def error_message(self) -> str:
        """Client-facing message when generation fails."""
        return self.failure_message

    @abstractmethod
    def build_prompt(self, ctx: GenerationContext, count: Optional[int]) -> str: ...

    @abstractmethod
    def extract_partial(self, partial: BaseModel) -> Optional[Any]:
        """Client payload for a partial value, or None when there is nothing to show yet."""

    @abstractmethod
    def extract_final(self, output: BaseModel) -> Any: ...

    def finalize(self, data: Any, existing_ids: Iterable[str]) -> Any:
        """Last step before persistence; list modules remove duplicates here."""
        return data

    @abstractmethod
    async def persist(self, store: InterviewStore, interview_id: str, data: Any) -> None: ...

    def describe(self, ctx: GenerationContext, count: Optional[int]) -> str:
        """Short prompt summary for the AI request log."""
        return f"{self.task_name} for {ctx.job_title} at {ctx.company}"


class OpeningBriefModule(ContentModule):
    output_type = OpeningBrief
    task_name = "generate_opening_brief"
    ai_action = "GENERATE_BRIEF"
    kind = ModuleKind.OPENING_BRIEF

    @property
    def module_key(self) -> str:
        return self.kind.value

    @property
    def tag(self) -> dict[str, str]:
        return {"module": self.kind.value}

    def build_prompt(self, ctx: GenerationContext, count: Optional[int]) -> str:
        return prompts.build_opening_brief_prompt(ctx)

    def extract_partial(self, partial: OpeningBrief) -> Optional[Any]:
        return partial.content or None

    def extract_final(self, output: OpeningBrief) -> Any:
        return output.model_dump(mode="json")

    async def persist(self, store: InterviewStore, interview_id: str, data: Any) -> None:
        await store.update_module(interview_id, "opening_brief", data)


class ListModule(ContentModule):
    """
    Module whose output is a growing list of items with ids.

    In append mode ("add more") results are appended to the stored list and
    the job is tracked under "addMore_<module>"; otherwise they replace it.
    """

    kind: ClassVar[ModuleKind]
    batch_field: ClassVar[str]
    store_field: ClassVar[str]
    generate_count: ClassVar[int]
    add_more_count: ClassVar[int]
    add_more_failure_message: ClassVar[str] = "Failed to add more content"

    def __init__(self, append: bool = False):
        self.append = append

    @property
    def module_key(self) -> str:
        if self.append:
            return f"addMore_{self.kind.value}"
        return self.kind.value

    @property
    def tag(self) -> dict[str, str]:
        return {"module": self.kind.value}

    @property
    def default_count(self) -> int:
        return self.add_more_count if self.append else self.generate_count

    @property
    def error_message(self) -> str:
        return self.add_more_failure_message if self.append else self.failure_message

    def _items(self, value: BaseModel) -> list[dict]:
        return [item.model_dump(mode="json") for item in getattr(value, self.batch_field) or []]

    def extract_partial(self, partial: BaseModel) -> Optional[Any]:
        items = self._items(partial)
        return items if items else None

    def extract_final(self, output: BaseModel) -> Any:
        return self._items(output)

    def finalize(self, data: Any, existing_ids: Iterable[str]) -> Any:
        return filter_new_items(data, existing_ids)

    async def persist(self, store: InterviewStore, interview_id: str, data: Any) -> None:
        if self.append:
            await store.append_to_module(interview_id, self.store_field, data)
        else:
            await store.update_module(interview_id, self.store_field, data)

    def describe(self, ctx: GenerationContext, count: Optional[int]) -> str:
        count = count or self.default_count
        if self.append:
            return f"Add {count} more {self.kind.value} for {ctx.job_title}"
        return f"Generate {count} {self.kind.value} for {ctx.job_title} at {ctx.company}"


class RevisionTopicsModule(ListModule):
    output_type = TopicsBatch
    task_name = "generate_topics"
    ai_action = "GENERATE_TOPICS"
    kind = ModuleKind.REVISION_TOPICS
    batch_field = "topics"
    store_field = "revision_topics"
    generate_count = 8
    add_more_count = 5

    def build_prompt(self, ctx: GenerationContext, count: Optional[int]) -> str:
        return prompts.build_topics_prompt(ctx, count or self.default_count)


class MCQModule(ListModule):
    output_type = MCQBatch
    task_name = "generate_mcqs"
    ai_action = "GENERATE_MCQ"
    kind = ModuleKind.MCQS
    batch_field = "mcqs"
    store_field = "mcqs"
    generate_count = 10
    add_more_count = 5

    def build_prompt(self, ctx: GenerationContext, count: Optional[int]) -> str:
        return prompts.build_mcqs_prompt(ctx, count or self.default_count)


class RapidFireModule(ListModule):
    output_type = RapidFireBatch
    task_name = "generate_rapid_fire"
    ai_action = "GENERATE_RAPID_FIRE"
    kind = ModuleKind.RAPID_FIRE
    batch_field = "questions"
    store_field = "rapid_fire"
    generate_count = 20
    add_more_count = 10

    def build_prompt(self, ctx: GenerationContext, count: Optional[int]) -> str:
        return prompts.build_rapid_fire_prompt(ctx, count or self.default_count)


class TopicRewriteModule(ContentModule):
    """Regenerates one topic's explanation in a different analogy style."""

    output_type = TopicRewrite
    task_name = "regenerate_topic_analogy"
    ai_action = "REGENERATE_ANALOGY"
    failure_message = "Failed to regenerate analogy"

    def __init__(self, topic: RevisionTopic, style: AnalogyStyle):
        self.topic = topic
        self.style = style

    @property
    def module_key(self) -> str:
        return f"topic_{self.topic.id}"

    @property
    def tag(self) -> dict[str, str]:
        return {"topicId": self.topic.id}

    def build_prompt(self, ctx: GenerationContext, count: Optional[int]) -> str:
        return prompts.build_topic_rewrite_prompt(ctx, self.topic, self.style)

    def extract_partial(self, partial: TopicRewrite) -> Optional[Any]:
        return partial.content or None

    def extract_final(self, output: TopicRewrite) -> Any:
        return output.content

    async def persist(self, store: InterviewStore, interview_id: str, data: Any) -> None:
        await store.update_topic_style(interview_id, self.topic.id, data, self.style)

    def describe(self, ctx: GenerationContext, count: Optional[int]) -> str:
        return f'Regenerate topic "{self.topic.title}" with {self.style.value} style'


MODULES: dict[ModuleKind, type[ContentModule]] = {
    ModuleKind.OPENING_BRIEF: OpeningBriefModule,
    ModuleKind.REVISION_TOPICS: RevisionTopicsModule,
    ModuleKind.MCQS: MCQModule,
    ModuleKind.RAPID_FIRE: RapidFireModule,
}

LIST_MODULES = (ModuleKind.REVISION_TOPICS, ModuleKind.MCQS, ModuleKind.RAPID_FIRE)


def module_for(kind: ModuleKind, append: bool = False) -> ContentModule:
    """
    Build the module for a generate or add-more request.

    Raises:
        ValueError: If append is requested for a module that is not list-shaped
    """
    module_cls = MODULES[kind]
    if append:
        if kind not in LIST_MODULES:
            raise ValueError(f"Module '{kind.value}' does not support adding more items")
        return module_cls(append=True)
    return module_cls()
