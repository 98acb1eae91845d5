"""
Services package for the order core.

This package contains all business logic services organized by domain:
- guards: rate limiting and idempotency for write requests
- business: order creation and the order record store
- dine_in: tab allocation, billing and stale-tab reconciliation
- delivery: rider state machine and rider availability
- maintenance: retention sweeps
"""

# IMPORTANT: Do not eager-import subpackages or modules here.
# Import services explicitly where needed (e.g., `from app.services.guards.rate_limiter import RateLimiter`).

__all__: list[str] = []
