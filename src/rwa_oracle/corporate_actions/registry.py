"""Corporate-action registry: multi-provider fetch, dedup, persistence, queries.

Records reported by two or more independent providers are verified.
Conflicting unverified records (same symbol, type and date but different
ratio or amount) are kept side by side and never silently resolved.
"""

import asyncio
import uuid
from collections import defaultdict
from collections.abc import Callable
from datetime import date, datetime, timedelta
from decimal import Decimal

from rwa_oracle.config import CorporateActionSettings
from rwa_oracle.data.corporate_action_store import CorporateActionStore
from rwa_oracle.exceptions import (
    AmbiguousCorporateAction,
    DuplicateCorporateAction,
    InvalidCorporateAction,
    ProviderError,
    RateLimited,
    SourceUnavailable,
)
from rwa_oracle.logging import get_logger
from rwa_oracle.market_data.cache import TTLCache
from rwa_oracle.models import (
    CorporateAction,
    CorporateActionRequest,
    CorporateActionType,
    FailureKind,
    Result,
    failure_from_exception,
    utcnow,
)
from rwa_oracle.providers.base import MarketDataProvider

logger = get_logger(__name__)

_FILLABLE_FIELDS = ("record_date", "dividend_currency", "external_id")


def validate_request(request: CorporateActionRequest) -> None:
    """Raise InvalidCorporateAction unless the request is internally consistent.

    Exactly one payload (split ratio, dividend amount, or acquiring symbol
    plus exchange ratio) must be populated and must match the type.
    """
    if not request.symbol or not request.symbol.strip():
        raise InvalidCorporateAction("symbol is required")

    has_split = request.split_ratio is not None
    has_dividend = request.dividend_amount is not None
    has_successor = request.acquiring_symbol is not None or request.exchange_ratio is not None
    if has_split + has_dividend + has_successor != 1:
        raise InvalidCorporateAction(
            "exactly one of split_ratio, dividend_amount, "
            "or (acquiring_symbol, exchange_ratio) must be set"
        )

    if request.action_type == CorporateActionType.SPLIT:
        if not has_split or request.split_ratio <= 0:  # type: ignore[operator]
            raise InvalidCorporateAction("split requires split_ratio > 0")
    elif request.action_type == CorporateActionType.DIVIDEND:
        if not has_dividend or request.dividend_amount <= 0:  # type: ignore[operator]
            raise InvalidCorporateAction("dividend requires dividend_amount > 0")
    else:
        if not request.acquiring_symbol or not request.acquiring_symbol.strip():
            raise InvalidCorporateAction(f"{request.action_type.value} requires acquiring_symbol")
        if request.exchange_ratio is None or request.exchange_ratio <= 0:
            raise InvalidCorporateAction(f"{request.action_type.value} requires exchange_ratio > 0")

    if request.ex_date > request.effective_date:
        raise InvalidCorporateAction("ex_date must not be after effective_date")


class CorporateActionRegistry:
    """Fetches, deduplicates, persists and answers queries about corporate actions.

    Args:
        providers: Vendors queried in parallel on fetch.
        store: Persistence for deduplicated records.
        settings: Lookback, days-ahead limits and cache TTL.
        timeout_seconds: Upper bound for each provider call.
        clock: Returns "now"; injectable for tests.
    """

    def __init__(
        self,
        providers: list[MarketDataProvider],
        store: CorporateActionStore,
        settings: CorporateActionSettings,
        timeout_seconds: float = 10.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._providers = providers
        self._store = store
        self._settings = settings
        self._timeout = timeout_seconds
        self._clock = clock
        self._reliability = {p.name: p.reliability for p in providers}
        self._verified_cache: TTLCache[list[CorporateAction]] = TTLCache(settings.cache_ttl_seconds)

    # ---- fetch & dedup ----

    async def fetch_corporate_actions(
        self, symbol: str, from_date: date | None = None
    ) -> Result[list[CorporateAction]]:
        """Refresh a symbol's actions from every provider and return the stored set.

        When every provider fails, previously stored actions are returned if
        any exist; otherwise the failure is reported.
        """
        symbol = symbol.upper()
        if from_date is None:
            from_date = self._clock().date() - timedelta(days=self._settings.lookback_days)

        outcomes = await asyncio.gather(
            *(self._fetch_one(p, symbol, from_date) for p in self._providers)
        )
        fetched: list[CorporateAction] = []
        errors: list[ProviderError] = []
        for outcome in outcomes:
            if isinstance(outcome, ProviderError):
                errors.append(outcome)
            else:
                fetched.extend(outcome)

        if self._providers and len(errors) == len(self._providers):
            stored = await self._store.list_for_symbol(symbol, from_date=from_date)
            if stored:
                logger.warning("corporate_action_fetch_failed_serving_stored", symbol=symbol)
                return Result.success(stored)
            if all(isinstance(e, RateLimited) for e in errors):
                return Result.fail(FailureKind.RATE_LIMITED, f"{symbol}: all providers rate limited")
            return Result.fail(FailureKind.NO_DATA, f"{symbol}: all corporate-action sources failed")

        for action in self.deduplicate(fetched):
            await self._store.upsert(action)
        self._verified_cache.invalidate(symbol)

        actions = await self._store.list_for_symbol(symbol, from_date=from_date)
        logger.info(
            "corporate_actions_fetched",
            symbol=symbol,
            fetched=len(fetched),
            stored=len(actions),
            failed_providers=[e.provider for e in errors],
        )
        return Result.success(actions)

    async def _fetch_one(
        self, provider: MarketDataProvider, symbol: str, from_date: date
    ) -> list[CorporateAction] | ProviderError:
        try:
            return await asyncio.wait_for(provider.fetch_all(symbol, from_date), timeout=self._timeout)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            logger.warning("source_unavailable", provider=provider.name, symbol=symbol, reason="timeout")
            return ProviderError(provider.name, "timeout")
        except ProviderError as e:
            logger.warning(
                "source_unavailable",
                provider=provider.name,
                symbol=symbol,
                reason=type(e).__name__,
                error=str(e),
            )
            return e
        except Exception as e:
            logger.warning(
                "source_unavailable",
                provider=provider.name,
                symbol=symbol,
                reason="unexpected_error",
                exc_info=True,
            )
            return SourceUnavailable(provider.name, f"unexpected error: {e!r}")

    def deduplicate(self, actions: list[CorporateAction]) -> list[CorporateAction]:
        """Collapse per-provider duplicates into one record per event.

        Groups by (symbol, type, effective_date, match_key). A group seen by
        two or more distinct sources is verified. The most reliable record
        wins and missing fields are filled from the rest.
        """
        groups: dict[tuple, list[CorporateAction]] = defaultdict(list)
        for action in actions:
            key = (action.symbol, action.action_type, action.effective_date, action.match_key)
            groups[key].append(action)

        merged: list[CorporateAction] = []
        for records in groups.values():
            records.sort(key=lambda a: self._reliability.get(a.data_source, Decimal("0")), reverse=True)
            best = records[0]
            sources: list[str] = []
            for record in records:
                for source in record.sources or [record.data_source]:
                    if source not in sources:
                        sources.append(source)
                for name in _FILLABLE_FIELDS:
                    if getattr(best, name) is None and getattr(record, name) is not None:
                        setattr(best, name, getattr(record, name))
            best.sources = sources
            best.is_verified = best.is_verified or len(sources) >= 2
            merged.append(best)

        self._flag_conflicts(merged)
        return merged

    def _flag_conflicts(self, actions: list[CorporateAction]) -> None:
        """Log same-day records that disagree on payload; demote if several claim verification."""
        by_event: dict[tuple, list[CorporateAction]] = defaultdict(list)
        for action in actions:
            by_event[(action.symbol, action.action_type, action.effective_date)].append(action)

        for (symbol, action_type, effective), variants in by_event.items():
            if len(variants) < 2:
                continue
            error = AmbiguousCorporateAction(
                f"{symbol} {action_type.value} on {effective.isoformat()}: "
                f"{len(variants)} conflicting variants"
            )
            logger.warning(
                "ambiguous_corporate_action",
                symbol=symbol,
                action_type=action_type.value,
                effective_date=effective.isoformat(),
                variants=[v.match_key for v in variants],
                error=str(error),
            )
            if sum(v.is_verified for v in variants) > 1:
                for variant in variants:
                    variant.is_verified = False

    # ---- queries ----

    async def get_corporate_actions(
        self,
        symbol: str,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> list[CorporateAction]:
        return await self._store.list_for_symbol(symbol.upper(), from_date, to_date)

    async def get_verified_actions(self, symbol: str) -> list[CorporateAction]:
        """All verified actions for a symbol, oldest first (cached)."""
        symbol = symbol.upper()
        return await self._verified_cache.get_or_load(
            symbol, lambda: self._store.list_for_symbol(symbol, verified_only=True)
        )

    async def get_upcoming_corporate_actions(
        self, symbol: str, days_ahead: int | None = None
    ) -> list[CorporateAction]:
        """Actions effective within [today, today + days_ahead]; days clamped to 1..max."""
        if days_ahead is None:
            days_ahead = self._settings.default_days_ahead
        days_ahead = max(1, min(days_ahead, self._settings.max_days_ahead))
        today = self._clock().date()
        return await self._store.list_for_symbol(
            symbol.upper(), from_date=today, to_date=today + timedelta(days=days_ahead)
        )

    async def get_by_id(self, action_id: str) -> CorporateAction | None:
        return await self._store.get_by_id(action_id)

    # ---- manual entry ----

    async def create_corporate_action(
        self, request: CorporateActionRequest
    ) -> Result[CorporateAction]:
        """Administrator entry.

        Stored unverified unless it corroborates an existing record from a
        different source, in which case that record becomes verified.
        """
        try:
            validate_request(request)
        except InvalidCorporateAction as e:
            return failure_from_exception(e)

        symbol = request.symbol.strip().upper()
        action = CorporateAction(
            id=str(uuid.uuid4()),
            symbol=symbol,
            action_type=request.action_type,
            ex_date=request.ex_date,
            effective_date=request.effective_date,
            record_date=request.record_date,
            split_ratio=request.split_ratio,
            dividend_amount=request.dividend_amount,
            dividend_currency=request.dividend_currency,
            acquiring_symbol=request.acquiring_symbol.strip().upper() if request.acquiring_symbol else None,
            exchange_ratio=request.exchange_ratio,
            data_source=request.data_source,
            external_id=request.external_id,
            sources=[request.data_source],
            is_verified=False,
        )

        existing = await self._store.find_matching(action)
        if existing is not None and request.data_source in existing.sources:
            return failure_from_exception(
                DuplicateCorporateAction(
                    f"{symbol} {action.action_type.value} on "
                    f"{action.effective_date.isoformat()} already recorded"
                )
            )

        stored = await self._store.upsert(action)
        self._verified_cache.invalidate(symbol)
        logger.info(
            "corporate_action_created",
            symbol=symbol,
            action_id=stored.id,
            action_type=stored.action_type.value,
            corroborated=existing is not None,
            verified=stored.is_verified,
        )
        return Result.success(stored)
