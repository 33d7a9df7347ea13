"""
Paymaster HR - Celery Configuration

Celery configuration for background payroll processing.
Uses Redis as the message broker and result backend.
"""

from celery import Celery
from celery.schedules import crontab

from app.config import settings


# Create Celery app
celery_app = Celery(
    'paymaster_hr',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['app.tasks.payroll_tasks'],
)

# Celery configuration
celery_app.conf.update(
    # Serialization
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',

    # Timezone
    timezone='Africa/Lagos',
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=3600,  # 1 hour; large cohorts
    task_soft_time_limit=3300,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=2,

    # Result backend settings
    result_expires=86400,  # 24 hours

    # Beat schedule for periodic tasks
    beat_schedule={
        # The task itself only runs payroll on settings.payroll_processing_day
        'scheduled-payroll': {
            'task': 'app.tasks.payroll_tasks.run_scheduled_payroll_task',
            'schedule': crontab(hour=1, minute=0),
        },
    },
)


# Task routing
celery_app.conf.task_routes = {
    'app.tasks.payroll_tasks.*': {'queue': 'payroll'},
}
