import os
import logging
from celery import Celery

logger = logging.getLogger(__name__)

DEPLOY_QUEUE = "lifecycle.deploy"
CONFIRM_QUEUE = "lifecycle.confirm"


def make_celery() -> Celery:
    """
    Celery instance for lifecycle jobs.

    Deploys and confirmation waits run on separate queues so a slow chain
    cannot starve deploys. Hard time limits follow DEPLOYMENT_TIMEOUT.
    """
    celery_app = Celery("contract_lifecycle")

    broker_url = os.getenv("CELERY_BROKER_URL", "redis://redis:6379/0")
    result_backend = os.getenv("CELERY_RESULT_BACKEND", broker_url)
    deploy_timeout = int(os.getenv("DEPLOYMENT_TIMEOUT", "300"))

    celery_app.conf.update(
        broker_url=broker_url,
        result_backend=result_backend,
        task_ignore_result=False,
        task_serializer="json",
        accept_content=["json"],
        result_serializer="json",
        timezone=os.getenv("TZ", "UTC"),
        enable_utc=True,
        task_routes={
            "lifecycle.deploy": {"queue": DEPLOY_QUEUE},
            "lifecycle.confirm_transaction": {"queue": CONFIRM_QUEUE},
        },
        task_soft_time_limit=deploy_timeout,
        task_time_limit=deploy_timeout + 60,
        # a confirmation job only reads chain state, redelivery is harmless
        task_acks_late=True,
        worker_prefetch_multiplier=1,
    )
    return celery_app


celery = make_celery()


def _init_celery_with_flask():
    """Bind lifecycle tasks to a Flask app context."""
    from contract_lifecycle import create_app
    flask_app = create_app(os.getenv("FLASK_ENV", "development"))

    broker = flask_app.config.get("CELERY_BROKER_URL")
    backend = flask_app.config.get("CELERY_RESULT_BACKEND") or broker
    if broker:
        celery.conf.broker_url = broker
    if backend:
        celery.conf.result_backend = backend

    TaskBase = celery.Task

    class ContextTask(TaskBase):
        def __call__(self, *args, **kwargs):
            with flask_app.app_context():
                return TaskBase.__call__(self, *args, **kwargs)

    celery.Task = ContextTask
    celery.set_default()

    with flask_app.app_context():
        from contract_lifecycle.tasks import lifecycle_tasks  # noqa: F401

    logger.info(
        "Celery bound to Flask app",
        extra={"context": {"broker": celery.conf.broker_url, "queues": [DEPLOY_QUEUE, CONFIRM_QUEUE]}},
    )
    return flask_app


_flask_app = _init_celery_with_flask()
