from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.deps import get_current_user, get_notification_service
from ..schemas import ClearBadgeOut
from ..services.notification_service import PushNotificationService
from .. import models


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post("/clear-badge", response_model=ClearBadgeOut)
def clear_badge(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
    notifier: PushNotificationService = Depends(get_notification_service),
):
    profile = (
        db.query(models.UserProfile)
        .filter(models.UserProfile.user_id == current_user.id)
        .first()
    )
    if profile is None or not profile.notification_token:
        return ClearBadgeOut(success=False)
    return ClearBadgeOut(success=notifier.clear_badge(profile.notification_token))
