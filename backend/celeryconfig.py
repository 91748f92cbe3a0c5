"""
Celery configuration for scheduled pipeline runs.

Loaded by `celery_app.config_from_object("celeryconfig")` in etlflow/tasks/__init__.py.
All broker/result-backend URLs come from environment variables,
defaulting to localhost for local dev.
"""

import os

# ═══════════════════════════════════════════════════════════
#  Broker & Result Backend
# ═══════════════════════════════════════════════════════════

broker_url = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
result_backend = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

# ═══════════════════════════════════════════════════════════
#  Serialization: JSON only, run results must stay readable by the API
# ═══════════════════════════════════════════════════════════

task_serializer = "json"
result_serializer = "json"
accept_content = ["json"]

# ═══════════════════════════════════════════════════════════
#  Timezone
# ═══════════════════════════════════════════════════════════

timezone = "UTC"
enable_utc = True

# ═══════════════════════════════════════════════════════════
#  Task Execution
# ═══════════════════════════════════════════════════════════

# Acknowledge tasks AFTER they complete (crash-safe: prevents lost tasks)
task_acks_late = True
task_reject_on_worker_lost = True

# Only prefetch 1 task at a time per worker process
# so one slow pipeline never holds back queued runs
worker_prefetch_multiplier = 1

# Run timeouts belong to the scheduler, not the engine
task_soft_time_limit = 1800   # 30 min: raises SoftTimeLimitExceeded
task_time_limit = 1860        # 31 min: hard kill

# ═══════════════════════════════════════════════════════════
#  Retry Policy
# ═══════════════════════════════════════════════════════════

task_default_retry_delay = 60         # 1 minute between retries
# run_pipeline retries while the pipeline already has a running execution
task_max_retries = 3

# ═══════════════════════════════════════════════════════════
#  Result Expiry: task results are dropped after 24h (executions persist)
# ═══════════════════════════════════════════════════════════

result_expires = 86400

# ═══════════════════════════════════════════════════════════
#  Worker Settings
# ═══════════════════════════════════════════════════════════

# Restart worker after N tasks
worker_max_tasks_per_child = 50

# Disable events by default (reduces Redis load)
# Enable with: celery -A etlflow.tasks worker -E
worker_send_task_events = False
task_send_sent_event = False

# ═══════════════════════════════════════════════════════════
#  Task Routes: pipeline runs and housekeeping on separate queues
# ═══════════════════════════════════════════════════════════
# Run dedicated workers per queue:
#   celery -A etlflow.tasks worker -Q pipelines     (pipeline runs)
#   celery -A etlflow.tasks worker -Q default       (housekeeping)

task_routes = {
    "etlflow.tasks.execution_tasks.run_pipeline": {"queue": "pipelines"},
    "etlflow.tasks.execution_tasks.purge_executions": {"queue": "default"},
}

task_default_queue = "default"

# ═══════════════════════════════════════════════════════════
#  Beat Schedule (periodic tasks)
# ═══════════════════════════════════════════════════════════
# Per-pipeline schedules are added by deployment config, e.g.
#   "nightly-orders": {
#       "task": "etlflow.tasks.execution_tasks.run_pipeline",
#       "schedule": crontab(hour=2, minute=0),
#       "args": ("<pipeline id>",),
#   }
beat_schedule = {
    "purge-finished-executions": {
        "task": "etlflow.tasks.execution_tasks.purge_executions",
        "schedule": 86400.0,
    },
}
