from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from .config import settings
from .database import get_db
from .. import models
from ..services.job_tracker import JobTracker
from ..services.notification_service import ExpoPushClient, PushNotificationService


def get_current_user(
    x_user_id: Optional[int] = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> models.User:
    """Resolve the caller from the ``X-User-Id`` header set by the auth gateway.

    Tests may override this dependency to simulate different users.
    """
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    user = db.get(models.User, x_user_id)
    if user is None or user.is_deleted or not user.is_active:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def get_push_client() -> ExpoPushClient:
    return ExpoPushClient()


def get_notification_service(client: ExpoPushClient = Depends(get_push_client)) -> PushNotificationService:
    return PushNotificationService(client)


def get_job_tracker(request: Request) -> JobTracker:
    tracker = getattr(request.app.state, "job_tracker", None)
    if tracker is None:
        tracker = JobTracker()
        request.app.state.job_tracker = tracker
    return tracker


def verify_cron_secret(authorization: Optional[str] = Header(None)) -> bool:
    """True when no secret is configured or the bearer token matches it."""
    if not settings.CRON_SECRET:
        return True
    return authorization == f"Bearer {settings.CRON_SECRET}"
