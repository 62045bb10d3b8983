"""
Interview Content Models.

Structured output types produced by the generation driver and stored on
interview documents. Batch wrappers are what the model streams: the list
inside grows one item at a time while generation is in progress.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class AnalogyStyle(str, Enum):
    """Explanation styles a revision topic can be rewritten in."""

    PROFESSIONAL = "professional"
    CONSTRUCTION = "construction"
    SIMPLE = "simple"


class Confidence(str, Enum):
    """How likely a topic is to come up in the interview."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RevisionTopic(BaseModel):
    """A single revision topic with markdown study content."""

    id: str = Field(description='Unique id starting with "topic_"')
    title: str
    content: str = Field(description="Detailed markdown content")
    reason: str = Field(description="Why this topic matters for the interview")
    confidence: Confidence = Confidence.MEDIUM
    style: AnalogyStyle = AnalogyStyle.PROFESSIONAL
    difficulty: Optional[str] = None
    estimated_minutes: Optional[int] = None
    prerequisites: list[str] = Field(default_factory=list)
    skill_gaps: list[str] = Field(default_factory=list)
    follow_up_questions: list[str] = Field(default_factory=list)
    style_cache: dict[str, str] = Field(default_factory=dict)


class MCQ(BaseModel):
    """Multiple choice question."""

    id: str = Field(description='Unique id starting with "mcq_"')
    question: str
    options: list[str]
    answer: str
    explanation: str = ""


class RapidFire(BaseModel):
    """Short question with a one-line answer."""

    id: str = Field(description='Unique id starting with "rf_"')
    question: str
    answer: str


class OpeningBrief(BaseModel):
    """Overview of the candidate's fit for the role."""

    content: str = Field(description="Markdown brief")
    key_skills: list[str] = Field(default_factory=list)
    experience_match: Optional[int] = Field(default=None, ge=0, le=100)
    prep_time_estimate: Optional[str] = None


class TopicsBatch(BaseModel):
    topics: list[RevisionTopic] = Field(default_factory=list)


class MCQBatch(BaseModel):
    mcqs: list[MCQ] = Field(default_factory=list)


class RapidFireBatch(BaseModel):
    questions: list[RapidFire] = Field(default_factory=list)


class TopicRewrite(BaseModel):
    """Rewritten explanation for a single topic."""

    content: str = ""
