"""Price continuity across corporate actions.

adjustment_factor(from, to) is the product over verified actions with
from < effective_date <= to of
- split: 1 / split_ratio
- dividend: 1 - amount / close_before_ex_date
Mergers and spin-offs replace the series instead of scaling it, so crossing
one raises CorporateActionDiscontinuity unless the caller acknowledges it.
"""

from datetime import date, datetime
from decimal import Decimal

from rwa_oracle.corporate_actions.registry import CorporateActionRegistry
from rwa_oracle.data.price_store import PriceStore
from rwa_oracle.exceptions import CorporateActionDiscontinuity
from rwa_oracle.logging import get_logger
from rwa_oracle.models import CorporateAction, CorporateActionType, PriceAdjustment

logger = get_logger(__name__)

_ONE = Decimal("1")
_PRICE_QUANT = Decimal("0.000001")


class PriceAdjuster:
    """Computes adjustment factors and adjusted prices from verified actions."""

    def __init__(self, registry: CorporateActionRegistry, price_store: PriceStore) -> None:
        self._registry = registry
        self._price_store = price_store

    async def adjustment_factor(
        self,
        symbol: str,
        from_date: date,
        to_date: date,
        acknowledge_discontinuity: bool = False,
    ) -> Decimal:
        """Multiplicative factor mapping a from_date price onto the to_date basis.

        Returns exactly 1 for an empty interval.

        Raises:
            CorporateActionDiscontinuity: a merger or spin-off lies in the
                interval and acknowledge_discontinuity is False.
        """
        if from_date >= to_date:
            return _ONE

        factor = _ONE
        for action in await self._registry.get_verified_actions(symbol):
            if not from_date < action.effective_date <= to_date:
                continue
            if action.is_discontinuity:
                if not acknowledge_discontinuity:
                    raise CorporateActionDiscontinuity(
                        symbol.upper(),
                        action.id,
                        f"{symbol.upper()} {action.action_type.value} on "
                        f"{action.effective_date.isoformat()} into {action.acquiring_symbol}",
                    )
                continue
            factor *= await self.action_factor(action)
        return factor

    async def action_factor(self, action: CorporateAction) -> Decimal:
        """Factor contributed by a single split or dividend (1 for anything else)."""
        if action.action_type == CorporateActionType.SPLIT and action.split_ratio:
            return _ONE / action.split_ratio

        if action.action_type == CorporateActionType.DIVIDEND and action.dividend_amount:
            close = await self._price_store.get_close_before(action.symbol, action.ex_date)
            if close is None or close <= action.dividend_amount:
                logger.warning(
                    "dividend_price_unavailable",
                    symbol=action.symbol,
                    ex_date=action.ex_date.isoformat(),
                    action_id=action.id,
                )
                return _ONE
            return _ONE - action.dividend_amount / close

        return _ONE

    async def adjusted_price(
        self,
        symbol: str,
        raw_price: Decimal,
        price_date: datetime,
        as_of: datetime,
        acknowledge_discontinuity: bool = False,
    ) -> Decimal:
        """raw_price x factor(price_date, as_of)."""
        factor = await self.adjustment_factor(
            symbol, price_date.date(), as_of.date(), acknowledge_discontinuity
        )
        return (raw_price * factor).quantize(_PRICE_QUANT)

    async def get_adjustment_history(self, symbol: str) -> list[PriceAdjustment]:
        """Audit trail of every verified action's effect, oldest first."""
        history = []
        for action in await self._registry.get_verified_actions(symbol):
            factor = await self.action_factor(action)
            before = await self._price_store.get_close_before(action.symbol, action.effective_date)
            after = None
            if before is not None and not action.is_discontinuity:
                after = (before * factor).quantize(_PRICE_QUANT)
            history.append(
                PriceAdjustment(
                    corporate_action=action,
                    price_before=before,
                    price_after=after,
                    adjustment_factor=factor,
                    applied_at=action.effective_date,
                )
            )
        return history
