"""Settlement engine: balances, strategies and verification."""
