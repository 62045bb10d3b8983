"""
Document models stored in Pocketbase.
"""
from typing import Any, Optional

from pydantic import BaseModel, Field

from prepstream.ai.context import ByokTierConfig, Plan
from prepstream.models.content import MCQ, OpeningBrief, RapidFire, RevisionTopic


class User(BaseModel):
    """Platform user with plan and iteration quota."""

    id: str
    clerk_id: str
    plan: Plan = Plan.FREE
    iterations_count: int = 0
    iterations_limit: int = 5
    byok_api_key: Optional[str] = None
    byok_tier_config: Optional[dict[str, Any]] = None

    @property
    def has_byok_api_key(self) -> bool:
        return bool(self.byok_api_key)

    @property
    def iterations_exhausted(self) -> bool:
        return self.iterations_count >= self.iterations_limit

    def byok_tiers(self) -> Optional[ByokTierConfig]:
        return ByokTierConfig.from_dict(self.byok_tier_config)


class JobDetails(BaseModel):
    title: str
    company: str
    description: str = ""


class InterviewModules(BaseModel):
    opening_brief: Optional[OpeningBrief] = None
    revision_topics: list[RevisionTopic] = Field(default_factory=list)
    mcqs: list[MCQ] = Field(default_factory=list)
    rapid_fire: list[RapidFire] = Field(default_factory=list)

    def ids_for(self, field_name: str) -> list[str]:
        """Item ids stored on a list module."""
        return [item.id for item in getattr(self, field_name)]

    def find_topic(self, topic_id: str) -> Optional[RevisionTopic]:
        return next((t for t in self.revision_topics if t.id == topic_id), None)


class Interview(BaseModel):
    """Interview preparation document owned by a user."""

    id: str
    user_id: str
    job_details: JobDetails
    resume_context: str = ""
    custom_instructions: Optional[str] = None
    modules: InterviewModules = Field(default_factory=InterviewModules)
