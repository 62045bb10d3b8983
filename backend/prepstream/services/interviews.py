"""
Interview repository backed by Pocketbase.

Module content lives in the interview's "modules" JSON field; updates
rewrite that field as a whole.
"""
import logging
from typing import Any, Optional

from prepstream.models.content import AnalogyStyle
from prepstream.models.documents import Interview
from prepstream.services.pocketbase import PocketbaseError, PocketbaseService

logger = logging.getLogger(__name__)

INTERVIEWS_COLLECTION = "interviews"


class InterviewRepository:
    def __init__(self, pocketbase: PocketbaseService):
        self._pocketbase = pocketbase

    async def find_by_id(self, interview_id: str) -> Optional[Interview]:
        try:
            record = await self._pocketbase.get_record(INTERVIEWS_COLLECTION, interview_id)
        except PocketbaseError as e:
            if e.is_not_found:
                return None
            raise
        return Interview.model_validate(record)

    async def _load_modules(self, interview_id: str) -> dict[str, Any]:
        record = await self._pocketbase.get_record(INTERVIEWS_COLLECTION, interview_id)
        return dict(record.get("modules") or {})

    async def _save_modules(self, interview_id: str, modules: dict[str, Any]) -> None:
        await self._pocketbase.update_record(
            INTERVIEWS_COLLECTION,
            interview_id,
            {"modules": modules},
        )

    async def update_module(self, interview_id: str, field_name: str, value: Any) -> None:
        """Replace one module's content."""
        modules = await self._load_modules(interview_id)
        modules[field_name] = value
        await self._save_modules(interview_id, modules)
        logger.info("Saved module %s for interview %s", field_name, interview_id)

    async def append_to_module(self, interview_id: str, field_name: str, items: list[dict]) -> None:
        """Append items to a list module."""
        if not items:
            logger.debug("Nothing to append to %s for interview %s", field_name, interview_id)
            return

        modules = await self._load_modules(interview_id)
        modules[field_name] = list(modules.get(field_name) or []) + list(items)
        await self._save_modules(interview_id, modules)
        logger.info(
            "Appended %d items to %s for interview %s",
            len(items),
            field_name,
            interview_id,
        )

    async def update_topic_style(
        self,
        interview_id: str,
        topic_id: str,
        content: str,
        style: AnalogyStyle,
    ) -> None:
        """
        Replace a topic's content and style, keeping id, title and reason.

        The content is also cached per style so switching back is instant.
        """
        modules = await self._load_modules(interview_id)
        topics = list(modules.get("revision_topics") or [])

        for topic in topics:
            if topic.get("id") == topic_id:
                topic["content"] = content
                topic["style"] = style.value
                topic["style_cache"] = {**(topic.get("style_cache") or {}), style.value: content}
                break
        else:
            raise PocketbaseError(f"Topic {topic_id} not found", 404)

        modules["revision_topics"] = topics
        await self._save_modules(interview_id, modules)
        logger.info("Updated topic %s style to %s", topic_id, style.value)
