"""Multi-provider price aggregation with confidence weighting.

Every configured provider is queried concurrently, each call bounded by a
timeout. Failed or timed-out providers are dropped (never retried inline).
Survivors are combined into a reliability- and recency-weighted mean.

Confidence = agreement x coverage, where
- agreement is the weight share of quotes within the tolerance band of the
  consensus price, and
- coverage is the contributing weight over the total reliability of every
  configured provider.
It is 1.0 only when all providers answered fresh and agreed.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import date, datetime
from decimal import Decimal

from rwa_oracle.config import PriceSettings
from rwa_oracle.exceptions import NoDataAvailable, ProviderError
from rwa_oracle.logging import get_logger
from rwa_oracle.models import (
    EquityPrice,
    ProviderQuote,
    Result,
    SourceBreakdown,
    failure_from_exception,
    utcnow,
)
from rwa_oracle.providers.base import MarketDataProvider

logger = get_logger(__name__)

_PRICE_QUANT = Decimal("0.000001")
_CONFIDENCE_QUANT = Decimal("0.0001")
_ONE = Decimal("1")
_ZERO = Decimal("0")


def _median(values: list[Decimal]) -> Decimal:
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2


def _std_dev(values: list[Decimal]) -> Decimal:
    mean = sum(values, _ZERO) / len(values)
    variance = sum(((v - mean) ** 2 for v in values), _ZERO) / len(values)
    return variance.sqrt()


class PriceAggregator:
    """Combines provider quotes into one EquityPrice with a confidence score.

    Args:
        providers: Ordered provider list; each carries its reliability weight.
        settings: Tolerance, outlier and recency parameters.
        timeout_seconds: Upper bound for each provider call.
        clock: Returns "now"; injectable for tests.
    """

    def __init__(
        self,
        providers: list[MarketDataProvider],
        settings: PriceSettings,
        timeout_seconds: float = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._providers = providers
        self._settings = settings
        self._timeout = timeout_seconds
        self._clock = clock

    @property
    def providers(self) -> list[MarketDataProvider]:
        return self._providers

    async def aggregate(self, symbol: str) -> EquityPrice:
        """Current consensus price. Raises NoDataAvailable if every source fails."""
        return await self._aggregate(symbol, lambda p: p.fetch_price(symbol))

    async def aggregate_at_date(self, symbol: str, day: date) -> EquityPrice:
        """Consensus close for a past trading day.

        Recency decay is not applied: every quote describes the same day.
        """
        return await self._aggregate(
            symbol, lambda p: p.fetch_price_at_date(symbol, day), apply_decay=False
        )

    async def aggregate_batch(self, symbols: list[str]) -> dict[str, Result[EquityPrice]]:
        """Aggregate each symbol in parallel, reporting failures per symbol."""

        async def _one(symbol: str) -> Result[EquityPrice]:
            try:
                return Result.success(await self.aggregate(symbol))
            except NoDataAvailable as e:
                return failure_from_exception(e)

        results = await asyncio.gather(*(_one(s) for s in symbols))
        return dict(zip(symbols, results))

    # ---- internals ----

    async def _aggregate(
        self,
        symbol: str,
        fetch: Callable[[MarketDataProvider], Awaitable[ProviderQuote]],
        apply_decay: bool = True,
    ) -> EquityPrice:
        if not self._providers:
            raise NoDataAvailable(f"{symbol}: no price providers configured")

        outcomes = await asyncio.gather(
            *(self._call(provider, symbol, fetch) for provider in self._providers)
        )

        quotes: list[tuple[MarketDataProvider, ProviderQuote]] = []
        breakdown: list[SourceBreakdown] = []
        for provider, outcome in zip(self._providers, outcomes):
            if isinstance(outcome, ProviderQuote) and outcome.price > 0:
                quotes.append((provider, outcome))
            else:
                breakdown.append(
                    SourceBreakdown(
                        provider=provider.name,
                        price=None,
                        reliability=provider.reliability,
                        reason=outcome if isinstance(outcome, str) else "non_positive_price",
                    )
                )

        if not quotes:
            logger.warning("all_sources_failed", symbol=symbol)
            raise NoDataAvailable(f"{symbol}: all price sources failed")

        return self._combine(symbol, quotes, breakdown, apply_decay)

    async def _call(
        self,
        provider: MarketDataProvider,
        symbol: str,
        fetch: Callable[[MarketDataProvider], Awaitable[ProviderQuote]],
    ) -> ProviderQuote | str:
        """Run one provider call; return the quote or a failure reason string."""
        try:
            return await asyncio.wait_for(fetch(provider), timeout=self._timeout)
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError:
            logger.warning(
                "source_unavailable", provider=provider.name, symbol=symbol, reason="timeout"
            )
            return "timeout"
        except ProviderError as e:
            reason = type(e).__name__
            logger.warning(
                "source_unavailable",
                provider=provider.name,
                symbol=symbol,
                reason=reason,
                error=str(e),
            )
            return reason
        except Exception:
            logger.warning(
                "source_unavailable",
                provider=provider.name,
                symbol=symbol,
                reason="unexpected_error",
                exc_info=True,
            )
            return "unexpected_error"

    def _recency_decay(self, as_of: datetime, now: datetime) -> Decimal:
        age = (now - as_of).total_seconds() - self._settings.recency_grace_seconds
        if age <= 0:
            return _ONE
        half_lives = Decimal(str(age / self._settings.recency_half_life_seconds))
        return Decimal("0.5") ** half_lives

    def _combine(
        self,
        symbol: str,
        quotes: list[tuple[MarketDataProvider, ProviderQuote]],
        breakdown: list[SourceBreakdown],
        apply_decay: bool,
    ) -> EquityPrice:
        now = self._clock()

        # Drop outliers only when there are enough sources to define "normal"
        if len(quotes) >= 3:
            prices = [q.price for _, q in quotes]
            median = _median(prices)
            spread = _std_dev(prices)
            cutoff = spread * self._settings.outlier_std_devs
            kept = []
            for provider, quote in quotes:
                if spread > 0 and abs(quote.price - median) > cutoff:
                    breakdown.append(
                        SourceBreakdown(
                            provider=provider.name,
                            price=quote.price,
                            reliability=provider.reliability,
                            reason="outlier",
                        )
                    )
                    logger.info("price_outlier_dropped", provider=provider.name, symbol=symbol)
                else:
                    kept.append((provider, quote))
            quotes = kept

        weighted: list[tuple[MarketDataProvider, ProviderQuote, Decimal]] = []
        for provider, quote in quotes:
            decay = self._recency_decay(quote.as_of, now) if apply_decay else _ONE
            confidence = min(max(quote.confidence, _ZERO), _ONE)
            weighted.append((provider, quote, provider.reliability * confidence * decay))

        total_weight = sum((w for _, _, w in weighted), _ZERO)
        if total_weight > 0:
            consensus = sum((q.price * w for _, q, w in weighted), _ZERO) / total_weight
        else:
            consensus = sum((q.price for _, q, _ in weighted), _ZERO) / len(weighted)

        agreeing = sum(
            (
                w
                for _, q, w in weighted
                if abs(q.price - consensus) / consensus <= self._settings.agreement_tolerance
            ),
            _ZERO,
        )
        agreement = agreeing / total_weight if total_weight > 0 else _ZERO
        configured = sum((p.reliability for p in self._providers), _ZERO)
        coverage = min(total_weight / configured, _ONE) if configured > 0 else _ZERO
        confidence = min(max(agreement * coverage, _ZERO), _ONE).quantize(_CONFIDENCE_QUANT)

        for provider, quote, weight in weighted:
            breakdown.append(
                SourceBreakdown(
                    provider=provider.name,
                    price=quote.price,
                    reliability=provider.reliability,
                    weight=weight.quantize(_CONFIDENCE_QUANT),
                    included=True,
                )
            )

        price = consensus.quantize(_PRICE_QUANT)
        logger.debug(
            "price_aggregated",
            symbol=symbol,
            price=str(price),
            confidence=str(confidence),
            sources=len(weighted),
        )
        return EquityPrice(
            symbol=symbol,
            raw_price=price,
            adjusted_price=price,
            confidence=confidence,
            price_date=max(q.as_of for _, q, _ in weighted),
            source="aggregate",
            source_breakdown=breakdown,
        )
