from celery import Celery
from app.core.config import settings
import logging

logging.getLogger('celery.backends.redis').setLevel(logging.ERROR)

celery_app = Celery(
    "exam_integrity_worker",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        'app.tasks.monitoring',
    ]
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    task_routes={
        'app.tasks.monitoring.*': {'queue': 'monitoring'},
    },

    worker_prefetch_multiplier=1,
    task_acks_late=True,
    worker_max_tasks_per_child=1000,

    task_soft_time_limit=120,
    task_time_limit=300,

    result_expires=3600,
    broker_connection_retry_on_startup=True,

    task_default_retry_delay=60,
    task_max_retries=3,

    # Tests and single-process deployments run tasks inline
    task_always_eager=settings.celery_task_always_eager,

    beat_schedule={
        'reconcile-security-metrics': {
            'task': 'reconcile_security_metrics',
            'schedule': settings.metrics_reconcile_interval,
        },
    },
)

if __name__ == '__main__':
    celery_app.start()
