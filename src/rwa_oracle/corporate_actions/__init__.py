"""Corporate-action registry and price-continuity adjustment."""

from rwa_oracle.corporate_actions.adjustment import PriceAdjuster
from rwa_oracle.corporate_actions.registry import CorporateActionRegistry, validate_request

__all__ = ["CorporateActionRegistry", "PriceAdjuster", "validate_request"]
