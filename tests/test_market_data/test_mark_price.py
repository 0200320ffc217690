"""Tests for synthetic and ccxt mark price sources."""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock

import ccxt.async_support as ccxt_async
import pytest

from rwa_oracle.config import MarkPriceSettings
from rwa_oracle.exceptions import ConfigurationError, NoDataAvailable, RateLimited, SourceUnavailable
from rwa_oracle.market_data.mark_price import CcxtMarkPriceSource, SyntheticMarkPriceSource
from rwa_oracle.models import EquityPrice, FailureKind, Result


def _price(adjusted: str) -> EquityPrice:
    return EquityPrice(
        symbol="AAPL",
        raw_price=Decimal("200"),
        adjusted_price=Decimal(adjusted),
        confidence=Decimal("1"),
        price_date=datetime(2024, 6, 14, tzinfo=timezone.utc),
    )


class TestSyntheticMark:
    @pytest.mark.asyncio
    async def test_mark_is_adjusted_spot(self) -> None:
        service = AsyncMock()
        service.get_adjusted_price.return_value = Result.success(_price("100"))
        source = SyntheticMarkPriceSource(service)
        assert await source.get_mark_price("AAPL") == Decimal("100")

    @pytest.mark.asyncio
    async def test_no_spot_raises_no_data(self) -> None:
        service = AsyncMock()
        service.get_adjusted_price.return_value = Result.fail(FailureKind.NO_DATA, "down")
        with pytest.raises(NoDataAvailable):
            await SyntheticMarkPriceSource(service).get_mark_price("AAPL")


class TestCcxtMark:
    def _source(self) -> CcxtMarkPriceSource:
        source = CcxtMarkPriceSource(MarkPriceSettings(source="ccxt"))
        source._exchange = AsyncMock()
        return source

    def test_unknown_exchange_is_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError):
            CcxtMarkPriceSource(MarkPriceSettings(source="ccxt", exchange_id="no_such_venue"))

    @pytest.mark.asyncio
    async def test_reads_mark_price_from_ticker(self) -> None:
        source = self._source()
        source._exchange.fetch_ticker.return_value = {"markPrice": 101.5, "last": 101.0}
        assert await source.get_mark_price("aapl") == Decimal("101.5")
        source._exchange.fetch_ticker.assert_awaited_once_with("AAPL/USDT:USDT")

    @pytest.mark.asyncio
    async def test_falls_back_to_info_then_last(self) -> None:
        source = self._source()
        source._exchange.fetch_ticker.return_value = {"info": {"markPrice": "99.9"}, "last": 98}
        assert await source.get_mark_price("AAPL") == Decimal("99.9")
        source._exchange.fetch_ticker.return_value = {"info": {}, "last": 98}
        assert await source.get_mark_price("AAPL") == Decimal("98")

    @pytest.mark.asyncio
    async def test_exchange_errors_are_typed(self) -> None:
        source = self._source()
        source._exchange.fetch_ticker.side_effect = ccxt_async.RateLimitExceeded("slow down")
        with pytest.raises(RateLimited):
            await source.get_mark_price("AAPL")

        source._exchange.fetch_ticker.side_effect = ccxt_async.BadSymbol("nope")
        with pytest.raises(NoDataAvailable):
            await source.get_mark_price("AAPL")

        source._exchange.fetch_ticker.side_effect = ccxt_async.NetworkError("reset")
        with pytest.raises(SourceUnavailable):
            await source.get_mark_price("AAPL")
