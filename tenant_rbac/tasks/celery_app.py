"""Celery app and tasks for deferred role cascades."""

from typing import List, Optional

from celery import Celery
from tenant_rbac.core.config import settings

celery_app = Celery(
    "tenant_rbac",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_concurrency=settings.CONCURRENCY,
    task_soft_time_limit=600,  # 10 min soft limit
    task_time_limit=900,  # 15 min hard limit
)


@celery_app.task(bind=True, name="cascade_role")
def cascade_role(self, role_id: int, start_ids: Optional[List[int]] = None) -> dict:
    """Run a role cascade in a worker and return its report.

    ``start_ids`` is set when the cascade re-roots the children of a deleted role.

    The worker always cascades synchronously so a deferred run never re-queues itself.
    """
    from tenant_rbac.db.session import SessionLocal
    from tenant_rbac.services.role_service import build_role_service

    db = SessionLocal()
    try:
        report = build_role_service(db, mode="sync").cascade(role_id, start_ids)
        return report.as_dict()
    finally:
        db.close()
