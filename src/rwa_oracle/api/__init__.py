"""HTTP API for prices, funding rates, risk and corporate actions."""
