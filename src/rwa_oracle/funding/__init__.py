"""Funding-rate calculation."""

from rwa_oracle.funding.engine import FundingRateEngine, compute_funding_rate

__all__ = ["FundingRateEngine", "compute_funding_rate"]
