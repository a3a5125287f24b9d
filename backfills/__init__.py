"""One-off data backfills run against the commerce database."""
