"""Models package for Prepstream."""

from prepstream.models.content import (
    AnalogyStyle,
    MCQ,
    OpeningBrief,
    RapidFire,
    RevisionTopic,
)
from prepstream.models.documents import Interview, User
from prepstream.models.usage import TokenUsage

__all__ = [
    "AnalogyStyle",
    "MCQ",
    "OpeningBrief",
    "RapidFire",
    "RevisionTopic",
    "Interview",
    "User",
    "TokenUsage",
]
