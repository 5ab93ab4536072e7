"""
coredna/tests/test_capability_matrix.py

Tier capability matrix: limits, feature checks, credit costs, provider gating.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from coredna.features.capabilities.matrix import (
    CREDIT_PACKS,
    TIER_CAPABILITIES,
    can_use_provider,
    can_use_workflow,
    credit_cost,
    extractions_remaining,
    has_feature,
    limits_for,
    lowest_tier_allowing,
    remaining,
    tier_summary,
    video_tier_info,
)
from coredna.models.tier import UNLIMITED, Category, Tier


def test_every_tier_has_a_record():
    assert set(TIER_CAPABILITIES) == set(Tier)
    for tier, record in TIER_CAPABILITIES.items():
        assert record.tier is tier


def test_monthly_video_limits():
    assert limits_for("free").monthly_video_limit == 5
    assert limits_for(Tier.PRO).monthly_video_limit == 50
    assert limits_for("hunter").monthly_video_limit is UNLIMITED
    assert limits_for("agency").monthly_video_limit is UNLIMITED


def test_unknown_tier_raises_value_error():
    with pytest.raises(ValueError):
        limits_for("platinum")


def test_records_are_immutable():
    record = limits_for("free")
    with pytest.raises(PydanticValidationError):
        record.monthly_video_limit = 500


def test_unlimited_compares_above_every_integer():
    assert UNLIMITED > 10**12
    assert 10**12 < UNLIMITED
    assert not (UNLIMITED < 0)
    assert (10**12 >= UNLIMITED) is False
    assert str(UNLIMITED) == "unlimited"


def test_has_feature_boolean_flags():
    assert has_feature("free", "bulk_extraction") is False
    assert has_feature("agency", "bulk_extraction") is True
    assert has_feature("hunter", "auto_post") is True
    assert has_feature("pro", "auto_post") is False
    assert has_feature("pro", "rlm") is True


def test_has_feature_collections_and_limits():
    assert has_feature("free", "workflows") is False
    assert has_feature("pro", "workflows") is True
    assert has_feature("free", "team_members") is True
    assert has_feature("agency", "team_members") is True
    assert has_feature("free", "extractions_per_month") is True
    assert has_feature("hunter", "monthly_video_limit") is True


def test_has_feature_provider_allowances():
    assert has_feature("free", "llm_providers") is True
    assert has_feature("pro", "image_providers") is True


def test_has_feature_other_values_are_false():
    assert has_feature("agency", "support") is False
    assert has_feature("agency", "does_not_exist") is False


def test_workflows_by_tier():
    assert can_use_workflow("free", "lead-generation") is False
    assert can_use_workflow("pro", "lead-generation") is True
    assert can_use_workflow("hunter", "auto-post-scheduler") is False
    assert can_use_workflow("agency", "auto-post-scheduler") is True


def test_extractions_remaining():
    assert extractions_remaining("free", 0) is True
    assert extractions_remaining("free", 2) is True
    assert extractions_remaining("free", 3) is False
    assert extractions_remaining("pro", 100_000) is True


def test_remaining_never_negative():
    assert remaining(5, 2) == 3
    assert remaining(5, 9) == 0
    assert remaining(UNLIMITED, 400) is UNLIMITED


@pytest.mark.parametrize(
    "tier, engine, expected",
    [
        ("free", "ltx2", 0),
        ("pro", "ltx2", 0),
        ("hunter", "ltx2", 1),
        ("agency", "ltx2", 0),
        ("hunter", "sora2", 5),
        ("hunter", "veo3", 5),
        ("agency", "sora2", 0),
        ("hunter", "runway", 1),
        ("agency", "runway", 0),
    ],
)
def test_video_credit_costs(tier, engine, expected):
    assert credit_cost(tier, engine) == expected


def test_non_video_categories_are_free():
    assert credit_cost("hunter", "openai", Category.IMAGE) == 0
    assert credit_cost("hunter", "openai", "llm") == 0


def test_provider_gating_by_min_tier():
    assert can_use_provider("pro", Category.VIDEO, "sora2", Tier.HUNTER) is False
    assert can_use_provider("hunter", Category.VIDEO, "sora2", Tier.HUNTER) is True
    assert can_use_provider("free", Category.VIDEO, "runway", Tier.PRO) is False
    assert can_use_provider("free", Category.VIDEO, "ltx2", Tier.FREE) is True


def test_free_tier_category_allowances():
    assert can_use_provider("free", Category.IMAGE, "google") is True
    assert can_use_provider("free", Category.IMAGE, "openai") is False
    assert can_use_provider("free", Category.LLM, "ollama") is True
    assert can_use_provider("free", Category.VOICE, "elevenlabs") is False
    assert can_use_provider("pro", Category.VOICE, "elevenlabs") is True


def test_lowest_tier_allowing():
    assert lowest_tier_allowing(Category.VIDEO, "sora2", Tier.HUNTER) is Tier.HUNTER
    assert lowest_tier_allowing(Category.IMAGE, "openai") is Tier.PRO


def test_tier_summary_serializes_unlimited():
    summary = tier_summary("agency")
    assert summary["team_members"] == "unlimited"
    assert summary["monthly_video_limit"] == "unlimited"
    assert summary["name"] == "Agency"
    assert summary["price"] is None
    assert "auto-post-scheduler" in summary["workflows"]


def test_video_tier_info_lists_credit_packs_only_when_costs_apply():
    hunter = video_tier_info("hunter")
    assert hunter["cost_per_video"] == {"ltx2": 1, "sora2": 5, "veo3": 5}
    assert hunter["credit_packs"] == [dict(p) for p in CREDIT_PACKS]
    assert "credit_packs" not in video_tier_info("agency")
    assert video_tier_info("free")["monthly_limit"] == 5
