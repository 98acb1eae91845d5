"""Celery configuration for background tasks."""
import os

from celery.schedules import crontab

# Broker settings
broker_url = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')
result_backend = os.getenv('CELERY_RESULT_BACKEND', 'redis://localhost:6379/0')

# Task settings
task_serializer = 'json'
accept_content = ['json']
result_serializer = 'json'
timezone = 'UTC'
enable_utc = True

# Task routing
task_routes = {
    'app.tasks.maintenance_tasks.*': {'queue': 'maintenance'},
}

# Task execution settings
task_acks_late = True
worker_prefetch_multiplier = 1
task_always_eager = False  # Set to True for testing

# Result settings
result_expires = 3600  # 1 hour

# Worker settings
worker_max_tasks_per_child = 1000
worker_disable_rate_limits = False

# Beat settings (for periodic tasks)
beat_schedule = {
    'cleanup-stale-tabs': {
        'task': 'app.tasks.maintenance_tasks.cleanup_stale_tabs_for_all_tenants',
        'schedule': crontab(minute=0),  # hourly
    },
    'cleanup-retention': {
        'task': 'app.tasks.maintenance_tasks.cleanup_retention',
        'schedule': crontab(minute=30, hour=3),  # daily
    },
    'audit-rider-availability': {
        'task': 'app.tasks.maintenance_tasks.audit_rider_availability',
        'schedule': 900.0,  # 15 minutes
    },
}

# Logging
worker_log_format = '[%(asctime)s: %(levelname)s/%(processName)s] %(message)s'
worker_task_log_format = '[%(asctime)s: %(levelname)s/%(processName)s][%(task_name)s(%(task_id)s)] %(message)s'

# Error handling
task_reject_on_worker_lost = True
task_remote_tracebacks = True

# Monitoring
worker_send_task_events = True
task_send_sent_event = True
