"""
coredna/features/generation/dispatcher.py

Generation dispatcher.

Handles:
- Engine resolution (explicit engine, else the user's provider registry)
- Admission through the quota gate before any network call
- Adapter invocation with the stored credentials
- Per-category failure policy (image falls back to a keyless stock photo)
- Accounting: ledger append, then credit debit, best-effort

Failure policy by category:
- image: free stock image, 0 credits, fallback=True
- video: GenerationUnavailableError
- llm / voice: NoProviderConfiguredError or ProviderCallFailedError surface as-is
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence, Union

from coredna.core.errors import (
    AppError,
    GenerationUnavailableError,
    NoProviderConfiguredError,
    ProviderCallFailedError,
)
from coredna.core.metrics import generation_fallbacks_total, generations_total, ledger_write_failures_total
from coredna.core.store import KeyValueStore, get_store
from coredna.core.tracing import start_span
from coredna.features.credits.balance import CreditBalance
from coredna.features.generation.adapters import AdapterRegistry, FreeImageSource, default_adapters
from coredna.features.providers.registry import ProviderRegistry
from coredna.features.quota.gate import QuotaGate
from coredna.features.usage.ledger import UsageLedger
from coredna.models.generation import GenerationRequest, GenerationResult
from coredna.models.provider import ProviderSelection
from coredna.models.tier import Category

logger = logging.getLogger(__name__)

BatchOutcome = Union[GenerationResult, AppError]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _usable(asset) -> bool:
    return isinstance(asset, str) and bool(asset.strip())


class GenerationDispatcher:
    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        adapters: Optional[AdapterRegistry] = None,
        free_images: Optional[FreeImageSource] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.store = store or get_store()
        self.adapters = adapters if adapters is not None else default_adapters()
        self.free_images = free_images or FreeImageSource()
        self.clock = clock or _utcnow
        self.ledger = UsageLedger(self.store)
        self.balance = CreditBalance(self.store)
        self.gate = QuotaGate(self.ledger)

    def registry_for(self, user_id: str) -> ProviderRegistry:
        return ProviderRegistry(user_id, self.store)

    async def dispatch(self, request: GenerationRequest) -> GenerationResult:
        """
        Run one generation request end to end.

        Raises:
            QuotaExceededError / TierInsufficientError: admission refused (nothing called)
            NoProviderConfiguredError / ProviderCallFailedError: llm and voice failures
            GenerationUnavailableError: video failures
        """
        now = self.clock()
        category = request.category
        registry = self.registry_for(request.user_id)

        engine = request.engine
        selection: Optional[ProviderSelection] = None
        unresolved: Optional[NoProviderConfiguredError] = None
        if not engine:
            try:
                selection = registry.resolve(category)
                engine = selection.provider_id
            except NoProviderConfiguredError as exc:
                unresolved = exc

        decision = self.gate.admit(request.user_id, request.tier, category, engine, now=now)

        attributes = {"category": category.value, "engine": engine, "tier": request.tier.value}
        with start_span("generation.dispatch", attributes):
            try:
                if unresolved is not None:
                    raise unresolved
                if selection is None:
                    credentials = registry.credentials_for(category, engine)
                    if credentials is None:
                        raise NoProviderConfiguredError(category.value, engine)
                    selection = ProviderSelection(provider_id=engine, category=category, credentials=credentials)
                asset = await self._call_adapter(selection, request)
            except (NoProviderConfiguredError, ProviderCallFailedError) as exc:
                return self._handle_failure(request, engine, exc, now)

        result = GenerationResult(
            asset_url=asset,
            engine_used=engine,
            cost_credits=decision.cost_credits,
            fallback=False,
            generated_at=now,
            category=category,
            metadata={"provider": engine},
        )
        self._account(request.user_id, category, engine, decision.cost_credits, now, fallback=False)
        generations_total.inc({"category": category.value, "engine": engine, "outcome": "success"})
        logger.info(
            "[dispatch] success",
            extra={
                "user_id": request.user_id,
                "category": category.value,
                "engine": engine,
                "credits": decision.cost_credits,
            },
        )
        return result

    async def _call_adapter(self, selection: ProviderSelection, request: GenerationRequest) -> str:
        engine = selection.provider_id
        adapter = self.adapters.get(request.category, engine)
        if adapter is None:
            raise ProviderCallFailedError(engine, "no adapter registered for this engine")
        try:
            asset = await adapter.generate(dict(selection.credentials), request.prompt, dict(request.options))
        except AppError:
            raise
        except Exception as exc:
            raise ProviderCallFailedError(engine, type(exc).__name__) from exc
        if not _usable(asset):
            raise ProviderCallFailedError(engine, "empty asset reference")
        return asset.strip()

    def _handle_failure(
        self,
        request: GenerationRequest,
        engine: Optional[str],
        exc: AppError,
        now: datetime,
    ) -> GenerationResult:
        category = request.category
        generations_total.inc({"category": category.value, "engine": engine or "none", "outcome": "failed"})

        if category is Category.IMAGE:
            return self._free_image(request, engine, exc, now)

        logger.warning(
            "[dispatch] failed",
            extra={
                "user_id": request.user_id,
                "category": category.value,
                "engine": engine,
                "error_code": exc.code,
            },
        )
        if category is Category.VIDEO:
            raise GenerationUnavailableError(
                category.value,
                exc.message,
                hint=exc.hint,
                details={"engine": engine, "cause": exc.code},
            ) from exc
        raise exc

    def _free_image(self, request: GenerationRequest, engine: Optional[str], exc: AppError, now: datetime) -> GenerationResult:
        source = self.free_images
        url = source.url_for(request.prompt)
        generation_fallbacks_total.inc({"category": request.category.value, "reason": exc.code})
        logger.info(
            "[dispatch] fallback",
            extra={
                "user_id": request.user_id,
                "category": request.category.value,
                "engine": source.provider_id,
                "error_code": exc.code,
            },
        )
        self._account(request.user_id, request.category, source.provider_id, 0, now, fallback=True)
        return GenerationResult(
            asset_url=url,
            engine_used=source.provider_id,
            cost_credits=0,
            fallback=True,
            generated_at=now,
            category=request.category,
            metadata={"fallback": True, "reason": exc.code, "requested_engine": engine},
        )

    def _account(self, user_id: str, category: Category, engine: str, credits: int, now: datetime, *, fallback: bool) -> None:
        """Ledger append then debit. Failures are logged; the asset is still returned."""
        try:
            self.ledger.record(user_id, category, engine, credits, occurred_at=now, fallback=fallback)
        except Exception as exc:
            ledger_write_failures_total.inc({"stage": "ledger"})
            logger.warning(
                "[dispatch] ledger append failed",
                extra={"user_id": user_id, "category": category.value, "engine": engine, "error": str(exc)},
            )
        if credits <= 0:
            return
        try:
            self.balance.debit(user_id, credits)
        except Exception as exc:
            ledger_write_failures_total.inc({"stage": "debit"})
            logger.warning(
                "[dispatch] credit debit failed",
                extra={"user_id": user_id, "category": category.value, "engine": engine, "error": str(exc)},
            )

    async def dispatch_batch(self, requests: Sequence[GenerationRequest]) -> List[BatchOutcome]:
        """
        Run requests concurrently. One item's failure never affects another.

        Returns a GenerationResult or the typed error for each request, in input order.
        """
        outcomes = await asyncio.gather(*(self.dispatch(req) for req in requests), return_exceptions=True)
        results: List[BatchOutcome] = []
        for req, outcome in zip(requests, outcomes):
            if isinstance(outcome, (GenerationResult, AppError)):
                results.append(outcome)
                continue
            logger.error(
                "[dispatch] unexpected batch error",
                exc_info=outcome,
                extra={"user_id": req.user_id, "category": req.category.value},
            )
            results.append(AppError("Unexpected error", code="internal_error", status_code=500))
        return results
