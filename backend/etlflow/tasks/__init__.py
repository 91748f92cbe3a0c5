"""
Celery application for scheduled pipeline runs.

Start a worker with `celery -A etlflow.tasks worker -Q pipelines,default`
from the backend/ directory so `celeryconfig` is importable.
"""

from celery import Celery

# Task modules are imported when the worker boots
celery_app = Celery("etlflow", include=["etlflow.tasks.execution_tasks"])
celery_app.config_from_object("celeryconfig")
