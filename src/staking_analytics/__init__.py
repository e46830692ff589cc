"""LST valuation service: APR, stability and fair-value remarks from price history and on-chain supply."""
