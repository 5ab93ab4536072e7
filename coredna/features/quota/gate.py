"""
coredna/features/quota/gate.py

Quota gate (admission control).

Handles:
- Monthly video allowance per tier, counted from the usage ledger
- Tier gating for engines / providers
- Extraction allowance, feature and workflow checks

The check is not atomic with the ledger append that follows a successful
generation: concurrent requests may each pass admission and overshoot the
monthly limit by at most (in-flight - 1).
"""

import logging
from datetime import datetime
from typing import Dict, Optional, Union

from coredna.core.errors import QuotaExceededError, TierInsufficientError
from coredna.core.metrics import admission_rejections_total
from coredna.features.capabilities.matrix import (
    can_use_provider,
    can_use_workflow,
    credit_cost,
    extractions_remaining,
    has_feature,
    limits_for,
    lowest_tier_allowing,
    remaining,
)
from coredna.features.providers.catalog import min_tier_for
from coredna.features.usage.ledger import UsageLedger, month_start
from coredna.models.generation import AdmissionDecision
from coredna.models.tier import EXTRACTION, UNLIMITED, Category, Tier, coerce_category, coerce_tier, is_unlimited, serialize_limit

logger = logging.getLogger(__name__)


def _reject(category: str, exc: Exception, **extra) -> None:
    admission_rejections_total.inc({"category": category, "code": getattr(exc, "code", "unknown")})
    logger.warning("[quota] BLOCK", extra={"category": category, "error_code": getattr(exc, "code", None), **extra})


class QuotaGate:
    def __init__(self, ledger: Optional[UsageLedger] = None):
        self.ledger = ledger or UsageLedger()

    def admit(
        self,
        user_id: str,
        tier: Union[Tier, str],
        category: Union[Category, str],
        engine: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> AdmissionDecision:
        """
        Decide whether a generation may start.

        Raises:
            QuotaExceededError: monthly video allowance used up (limit in details)
            TierInsufficientError: engine needs a higher tier
        """
        tier = coerce_tier(tier)
        cat = coerce_category(category)
        record = limits_for(tier)

        used = 0
        limit = UNLIMITED
        if cat is Category.VIDEO:
            limit = record.monthly_video_limit
            used = self.ledger.count_since(user_id, Category.VIDEO, month_start(now))
            if not is_unlimited(limit) and used >= limit:
                exc = QuotaExceededError(
                    f"Monthly video limit reached for {tier.value} tier",
                    limit=limit,
                    used=used,
                )
                _reject(cat.value, exc, user_id=user_id, tier=tier.value, limit=limit, used=used)
                raise exc

        if engine:
            min_tier = min_tier_for(cat, engine)
            if not can_use_provider(tier, cat, engine, min_tier):
                required = lowest_tier_allowing(cat, engine, min_tier)
                exc = TierInsufficientError(
                    f"{engine} is available on the {required.value if required else 'higher'} tier and above",
                    tier=tier.value,
                    required_tier=required.value if required else None,
                    details={"engine": engine, "category": cat.value},
                )
                _reject(cat.value, exc, user_id=user_id, tier=tier.value, engine=engine)
                raise exc

        decision = AdmissionDecision(
            category=cat,
            engine=engine,
            used=used,
            limit=limit,
            remaining=remaining(limit, used),
            cost_credits=credit_cost(tier, engine, cat),
        )
        logger.debug("[quota] ALLOW", extra={"user_id": user_id, "category": cat.value, "engine": engine, "tier": tier.value})
        return decision

    def video_usage(self, user_id: str, tier: Union[Tier, str], now: Optional[datetime] = None) -> Dict[str, object]:
        """Used / limit / remaining for this month's video allowance."""
        record = limits_for(tier)
        used = self.ledger.count_since(user_id, Category.VIDEO, month_start(now))
        limit = record.monthly_video_limit
        return {
            "tier": record.tier.value,
            "used": used,
            "limit": serialize_limit(limit),
            "remaining": serialize_limit(remaining(limit, used)),
            "window_start": month_start(now).isoformat(),
        }

    def admit_extraction(self, user_id: str, tier: Union[Tier, str], now: Optional[datetime] = None) -> Dict[str, object]:
        """Check the monthly extraction allowance. Returns used / limit / remaining."""
        tier = coerce_tier(tier)
        limit = limits_for(tier).extractions_per_month
        used = self.ledger.count_since(user_id, EXTRACTION, month_start(now))
        if not extractions_remaining(tier, used):
            exc = QuotaExceededError(
                f"Monthly extraction limit reached for {tier.value} tier",
                limit=limit,
                used=used,
            )
            _reject(EXTRACTION, exc, user_id=user_id, tier=tier.value, limit=limit, used=used)
            raise exc
        return {
            "tier": tier.value,
            "used": used,
            "limit": serialize_limit(limit),
            "remaining": serialize_limit(remaining(limit, used)),
        }

    def record_extraction(self, user_id: str, now: Optional[datetime] = None):
        return self.ledger.record(user_id, EXTRACTION, occurred_at=now)

    def require_feature(self, tier: Union[Tier, str], feature: str) -> None:
        tier = coerce_tier(tier)
        if not has_feature(tier, feature):
            required = next((t for t in Tier if has_feature(t, feature)), None)
            raise TierInsufficientError(
                f"'{feature}' is not included in the {tier.value} tier",
                tier=tier.value,
                required_tier=required.value if required else None,
                details={"feature": feature},
            )

    def require_workflow(self, tier: Union[Tier, str], workflow_id: str) -> None:
        tier = coerce_tier(tier)
        if not can_use_workflow(tier, workflow_id):
            required = next((t for t in Tier if can_use_workflow(t, workflow_id)), None)
            raise TierInsufficientError(
                f"Workflow '{workflow_id}' is not included in the {tier.value} tier",
                tier=tier.value,
                required_tier=required.value if required else None,
                details={"workflow": workflow_id},
            )
