"""Tests for PriceAdjuster: factor identity, composition and the split scenario."""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from conftest import fixed_clock, make_action
from rwa_oracle.config import CorporateActionSettings
from rwa_oracle.corporate_actions.adjustment import PriceAdjuster
from rwa_oracle.corporate_actions.registry import CorporateActionRegistry
from rwa_oracle.data import CorporateActionStore, PriceStore
from rwa_oracle.exceptions import CorporateActionDiscontinuity
from rwa_oracle.models import CorporateActionType, EquityPrice


def day(n: int) -> date:
    return date(2024, 6, n)


@pytest.fixture
def stores(database):
    action_store = CorporateActionStore(database)
    price_store = PriceStore(database)
    registry = CorporateActionRegistry([], action_store, CorporateActionSettings(), clock=fixed_clock)
    return action_store, price_store, PriceAdjuster(registry, price_store)


async def _close(price_store: PriceStore, on: date, price: str) -> None:
    value = Decimal(price)
    await price_store.insert_price(
        EquityPrice(
            symbol="AAPL",
            raw_price=value,
            adjusted_price=value,
            confidence=Decimal("1"),
            price_date=datetime(on.year, on.month, on.day, 20, 0, tzinfo=timezone.utc),
        )
    )


class TestFactorProperties:
    @pytest.mark.asyncio
    async def test_empty_interval_is_identity(self, stores) -> None:
        action_store, _, adjuster = stores
        await action_store.upsert(make_action(effective=day(12), verified=True))
        assert await adjuster.adjustment_factor("AAPL", day(12), day(12)) == Decimal("1")
        assert await adjuster.adjustment_factor("AAPL", day(13), day(9)) == Decimal("1")

    @pytest.mark.asyncio
    async def test_factor_composes_across_intervals(self, stores) -> None:
        action_store, price_store, adjuster = stores
        await _close(price_store, day(19), "100")
        await action_store.upsert(make_action(effective=day(12), verified=True))
        await action_store.upsert(
            make_action(CorporateActionType.DIVIDEND, effective=day(20), verified=True, dividend_amount=Decimal("1"))
        )

        a, b, c = day(5), day(15), day(25)
        whole = await adjuster.adjustment_factor("AAPL", a, c)
        first = await adjuster.adjustment_factor("AAPL", a, b)
        second = await adjuster.adjustment_factor("AAPL", b, c)
        assert whole == first * second
        assert whole == Decimal("0.495")

    @pytest.mark.asyncio
    async def test_unverified_actions_are_ignored(self, stores) -> None:
        action_store, _, adjuster = stores
        await action_store.upsert(make_action(effective=day(12), verified=False))
        assert await adjuster.adjustment_factor("AAPL", day(9), day(13)) == Decimal("1")

    @pytest.mark.asyncio
    async def test_interval_is_open_at_start_and_closed_at_end(self, stores) -> None:
        action_store, _, adjuster = stores
        await action_store.upsert(make_action(effective=day(12), verified=True))
        assert await adjuster.adjustment_factor("AAPL", day(12), day(13)) == Decimal("1")
        assert await adjuster.adjustment_factor("AAPL", day(11), day(12)) == Decimal("0.5")


class TestSplitScenario:
    @pytest.mark.asyncio
    async def test_two_for_one_split_halves_earlier_prices(self, stores) -> None:
        action_store, _, adjuster = stores
        await action_store.upsert(make_action(effective=day(12), verified=True))

        assert await adjuster.adjustment_factor("AAPL", day(9), day(13)) == Decimal("0.5")
        adjusted = await adjuster.adjusted_price(
            "AAPL",
            Decimal("150"),
            datetime(2024, 6, 10, 20, tzinfo=timezone.utc),
            datetime(2024, 6, 12, 9, tzinfo=timezone.utc),
        )
        assert adjusted == Decimal("75.000000")

    @pytest.mark.asyncio
    async def test_before_split_date_price_is_unchanged(self, stores) -> None:
        action_store, _, adjuster = stores
        await action_store.upsert(make_action(effective=day(12), verified=True))
        adjusted = await adjuster.adjusted_price(
            "AAPL",
            Decimal("150"),
            datetime(2024, 6, 10, 20, tzinfo=timezone.utc),
            datetime(2024, 6, 11, 20, tzinfo=timezone.utc),
        )
        assert adjusted == Decimal("150.000000")


class TestDividendsAndDiscontinuities:
    @pytest.mark.asyncio
    async def test_dividend_uses_close_before_ex_date(self, stores) -> None:
        action_store, price_store, adjuster = stores
        await _close(price_store, day(11), "100")
        await action_store.upsert(
            make_action(CorporateActionType.DIVIDEND, effective=day(12), verified=True, dividend_amount=Decimal("2"))
        )
        assert await adjuster.adjustment_factor("AAPL", day(10), day(13)) == Decimal("0.98")

    @pytest.mark.asyncio
    async def test_dividend_without_reference_close_is_neutral(self, stores) -> None:
        action_store, _, adjuster = stores
        await action_store.upsert(make_action(CorporateActionType.DIVIDEND, effective=day(12), verified=True))
        assert await adjuster.adjustment_factor("AAPL", day(10), day(13)) == Decimal("1")

    @pytest.mark.asyncio
    async def test_crossing_merger_requires_acknowledgement(self, stores) -> None:
        action_store, _, adjuster = stores
        await action_store.upsert(make_action(CorporateActionType.MERGER, effective=day(12), verified=True))

        with pytest.raises(CorporateActionDiscontinuity):
            await adjuster.adjustment_factor("AAPL", day(10), day(13))
        assert await adjuster.adjustment_factor(
            "AAPL", day(10), day(13), acknowledge_discontinuity=True
        ) == Decimal("1")

    @pytest.mark.asyncio
    async def test_adjustment_history_audits_each_action(self, stores) -> None:
        action_store, price_store, adjuster = stores
        await _close(price_store, day(11), "200")
        await action_store.upsert(make_action(effective=day(12), verified=True))

        history = await adjuster.get_adjustment_history("AAPL")
        assert len(history) == 1
        entry = history[0]
        assert entry.adjustment_factor == Decimal("0.5")
        assert entry.price_before == Decimal("200")
        assert entry.price_after == Decimal("100.000000")
        assert entry.applied_at == day(12)
