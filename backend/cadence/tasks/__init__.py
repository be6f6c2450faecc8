# backend/cadence/tasks/__init__.py
"""
Celery tasks package for Cadence.

Run a worker with: celery -A cadence.tasks.celery_app worker -B
"""

from cadence.tasks.celery_app import BaseTask, celery_app

__all__ = ["BaseTask", "celery_app"]
