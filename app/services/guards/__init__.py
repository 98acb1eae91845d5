"""Request guards: rate limiting and idempotency."""
