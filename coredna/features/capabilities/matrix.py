"""
coredna/features/capabilities/matrix.py

Tier capability matrix.

Handles:
- One immutable CapabilityRecord per tier (TIER_CAPABILITIES is the only edit point)
- Feature / workflow / extraction checks
- Video credit cost lookup and provider tier gating

Pure functions; no I/O, no clock.
"""

from typing import Any, Dict, Iterable, Optional, Union

from coredna.models.capability import ALL_PROVIDERS, CapabilityRecord
from coredna.models.tier import (
    UNLIMITED,
    Category,
    Limit,
    Tier,
    coerce_category,
    coerce_tier,
    is_unlimited,
    serialize_limit,
)

CORE_WORKFLOWS = frozenset({"lead-generation", "closer-agent", "campaign-generation", "website-builder"})

TIER_CAPABILITIES: Dict[Tier, CapabilityRecord] = {
    Tier.FREE: CapabilityRecord(
        tier=Tier.FREE,
        extractions_per_month=3,
        workflows=frozenset(),
        category_providers={
            Category.LLM: frozenset({"google", "ollama"}),
            Category.IMAGE: frozenset({"google"}),
            Category.VOICE: frozenset({"openai"}),
            Category.VIDEO: ALL_PROVIDERS,
        },
        team_members=1,
        support="community",
        monthly_video_limit=5,
        credit_costs={"ltx2": 0},
        default_video_credit_cost=0,
        unlocks=frozenset({Tier.FREE}),
    ),
    Tier.PRO: CapabilityRecord(
        tier=Tier.PRO,
        extractions_per_month=UNLIMITED,
        workflows=CORE_WORKFLOWS,
        category_providers={category: ALL_PROVIDERS for category in Category},
        rocket_deploy=True,
        rlm=True,
        inference=True,
        team_members=1,
        support="email",
        monthly_video_limit=50,
        credit_costs={"ltx2": 0},
        default_video_credit_cost=0,
        unlocks=frozenset({Tier.FREE, Tier.PRO}),
    ),
    Tier.HUNTER: CapabilityRecord(
        tier=Tier.HUNTER,
        extractions_per_month=UNLIMITED,
        workflows=CORE_WORKFLOWS,
        category_providers={category: ALL_PROVIDERS for category in Category},
        blog_section=True,
        rocket_deploy=True,
        auto_post=True,
        workflow_editing=True,
        rlm=True,
        inference=True,
        team_members=3,
        support="email",
        monthly_video_limit=UNLIMITED,
        credit_costs={"ltx2": 1, "sora2": 5, "veo3": 5},
        default_video_credit_cost=1,
        unlocks=frozenset({Tier.FREE, Tier.PRO, Tier.HUNTER}),
    ),
    Tier.AGENCY: CapabilityRecord(
        tier=Tier.AGENCY,
        extractions_per_month=UNLIMITED,
        workflows=CORE_WORKFLOWS | {"auto-post-scheduler"},
        category_providers={category: ALL_PROVIDERS for category in Category},
        bulk_extraction=True,
        white_label_branding=True,
        blog_section=True,
        rocket_deploy=True,
        auto_post=True,
        workflow_editing=True,
        rlm=True,
        inference=True,
        team_members=UNLIMITED,
        support="dedicated",
        monthly_video_limit=UNLIMITED,
        credit_costs={"ltx2": 0, "sora2": 0, "veo3": 0},
        default_video_credit_cost=0,
        unlocks=frozenset({Tier.FREE, Tier.PRO, Tier.HUNTER, Tier.AGENCY}),
    ),
}

TIER_NAMES = {
    Tier.FREE: "Free",
    Tier.PRO: "Pro",
    Tier.HUNTER: "Hunter",
    Tier.AGENCY: "Agency",
}

# Monthly price in USD; None means custom pricing.
TIER_PRICES: Dict[Tier, Optional[int]] = {
    Tier.FREE: 0,
    Tier.PRO: 49,
    Tier.HUNTER: 149,
    Tier.AGENCY: None,
}

CREDIT_PACKS = (
    {"credits": 100, "price": 19},
    {"credits": 500, "price": 79},
    {"credits": 1000, "price": 139},
)

# Feature aliases that read a category's provider allowance.
_PROVIDER_FEATURES = {
    "llm_providers": Category.LLM,
    "image_providers": Category.IMAGE,
    "voice_providers": Category.VOICE,
    "video_providers": Category.VIDEO,
}


def limits_for(tier: Union[Tier, str]) -> CapabilityRecord:
    """Capability record for a tier. Raises ValueError for unknown tiers."""
    return TIER_CAPABILITIES[coerce_tier(tier)]


def _truthy_capability(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if is_unlimited(value) or value == ALL_PROVIDERS:
        return True
    if isinstance(value, int):
        return value > 0
    if isinstance(value, (frozenset, set, list, tuple)):
        return len(value) > 0
    return False


def has_feature(tier: Union[Tier, str], feature: str) -> bool:
    """
    Whether the tier grants a capability.

    Booleans return their value, numeric limits are truthy when > 0 or
    UNLIMITED, collections when non-empty, "all" allowances always.
    Anything else (support levels, unknown names) is False.
    """
    record = limits_for(tier)
    if feature in _PROVIDER_FEATURES:
        return _truthy_capability(record.providers_for(_PROVIDER_FEATURES[feature]))
    if feature not in CapabilityRecord.model_fields or feature in ("tier", "unlocks", "credit_costs"):
        return False
    return _truthy_capability(getattr(record, feature))


def can_use_workflow(tier: Union[Tier, str], workflow_id: str) -> bool:
    return workflow_id in limits_for(tier).workflows


def extractions_remaining(tier: Union[Tier, str], used_this_month: int) -> bool:
    """True iff another extraction fits in this month's allowance."""
    limit = limits_for(tier).extractions_per_month
    if is_unlimited(limit):
        return True
    return used_this_month < limit


def remaining(limit: Limit, used: int) -> Limit:
    """Headroom under a limit; never negative, UNLIMITED stays UNLIMITED."""
    if is_unlimited(limit):
        return UNLIMITED
    return max(0, limit - used)


def credit_cost(tier: Union[Tier, str], engine: Optional[str], category: Union[Category, str] = Category.VIDEO) -> int:
    """Credits debited for one successful generation with this engine."""
    if coerce_category(category) is not Category.VIDEO:
        return 0
    record = limits_for(tier)
    if engine and engine in record.credit_costs:
        return record.credit_costs[engine]
    return record.default_video_credit_cost


def can_use_provider(
    tier: Union[Tier, str],
    category: Union[Category, str],
    provider_id: str,
    min_tier: Union[Tier, str] = Tier.FREE,
) -> bool:
    record = limits_for(tier)
    if coerce_tier(min_tier) not in record.unlocks:
        return False
    allowance = record.providers_for(coerce_category(category))
    return allowance == ALL_PROVIDERS or provider_id in allowance


def lowest_tier_allowing(category: Union[Category, str], provider_id: str, min_tier: Union[Tier, str] = Tier.FREE) -> Optional[Tier]:
    """Cheapest tier that may use a provider (for upgrade hints)."""
    for tier in Tier:
        if can_use_provider(tier, category, provider_id, min_tier):
            return tier
    return None


def video_tier_info(tier: Union[Tier, str], engines: Iterable[str] = ("ltx2", "sora2", "veo3")) -> Dict[str, Any]:
    """Display summary of a tier's video allowance and per-engine costs."""
    record = limits_for(tier)
    info: Dict[str, Any] = {
        "tier": record.tier.value,
        "monthly_limit": serialize_limit(record.monthly_video_limit),
        "cost_per_video": {engine: credit_cost(record.tier, engine) for engine in engines},
    }
    if any(cost > 0 for cost in info["cost_per_video"].values()):
        info["credit_packs"] = [dict(pack) for pack in CREDIT_PACKS]
    return info


def tier_summary(tier: Union[Tier, str]) -> Dict[str, Any]:
    record = limits_for(tier)
    summary = record.to_dict()
    summary["name"] = TIER_NAMES[record.tier]
    summary["price"] = TIER_PRICES[record.tier]
    return summary
