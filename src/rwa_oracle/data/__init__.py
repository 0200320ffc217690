"""Persistence layer.

SQLite database management plus one typed store per aggregate:
corporate actions, raw price observations, funding rates, and risk state.
"""

from rwa_oracle.data.corporate_action_store import CorporateActionStore
from rwa_oracle.data.database import OracleDatabase
from rwa_oracle.data.funding_store import FundingRateStore
from rwa_oracle.data.price_store import PriceStore
from rwa_oracle.data.risk_store import RiskStore

__all__ = [
    "CorporateActionStore",
    "FundingRateStore",
    "OracleDatabase",
    "PriceStore",
    "RiskStore",
]
