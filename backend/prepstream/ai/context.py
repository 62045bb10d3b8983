"""
Context structures for content generation.

GenerationContext - immutable input bundle built per request
ByokTierConfig - user-supplied model tiers for "bring your own key"
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Plan(str, Enum):
    FREE = "FREE"
    PRO = "PRO"
    MAX = "MAX"


class ModelTier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass(frozen=True)
class PlanContext:
    """Plan metadata used for model tier selection."""

    plan: Plan = Plan.FREE

    @property
    def tier(self) -> ModelTier:
        """FREE users get the standard tier, paid plans the advanced one."""
        if self.plan == Plan.FREE:
            return ModelTier.MEDIUM
        return ModelTier.HIGH


@dataclass(frozen=True)
class GenerationContext:
    """
    Everything the driver needs to build a prompt.

    Created fresh per request and never mutated afterwards.
    existing_content holds ids of items already stored on the target
    module so the model can avoid repeating them.
    """

    resume_text: str
    job_description: str
    job_title: str
    company: str
    existing_content: tuple[str, ...] = ()
    custom_instructions: Optional[str] = None
    plan_context: PlanContext = field(default_factory=PlanContext)


@dataclass(frozen=True)
class TierConfig:
    """Resolved model configuration for one tier."""

    model: str
    tier: ModelTier
    fallback_model: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 4096


@dataclass(frozen=True)
class ByokTierConfig:
    """Per-tier model overrides supplied by a BYOK user."""

    high: Optional[TierConfig] = None
    medium: Optional[TierConfig] = None
    low: Optional[TierConfig] = None

    def for_tier(self, tier: ModelTier) -> Optional[TierConfig]:
        return getattr(self, tier.value)

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Optional["ByokTierConfig"]:
        """Build from the JSON stored on the user record."""
        if not data:
            return None

        tiers = {}
        for tier in ModelTier:
            raw = data.get(tier.value)
            if not raw or not raw.get("model"):
                continue
            tiers[tier.value] = TierConfig(
                model=raw["model"],
                tier=tier,
                fallback_model=raw.get("fallback"),
                temperature=raw.get("temperature", 0.7),
                max_tokens=raw.get("maxTokens", 4096),
            )

        return cls(**tiers) if tiers else None
