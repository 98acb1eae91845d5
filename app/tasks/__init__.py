"""
Tasks package.

This package contains the Celery app and its periodic jobs:
- app: Celery app factory bound to app.config.celery_config
- maintenance_tasks: stale-tab sweep, retention and rider-availability audit
"""

__all__ = [
    "maintenance_tasks",
]
