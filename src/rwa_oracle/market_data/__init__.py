"""Market data layer -- aggregation, caching, adjusted prices, volatility, liquidity, mark prices."""
