"""Scheduled-trigger endpoints: the recurring batch run and its job history."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..core.database import get_db
from ..core.deps import get_job_tracker, get_notification_service, verify_cron_secret
from ..schemas import BatchRunOut, JobExecutionOut, JobStatsOut, JobStatusOut
from ..services.batch_processor import RecurringBatchProcessor
from ..services.job_tracker import JobTracker
from ..services.notification_service import PushNotificationService

logger = logging.getLogger(__name__)

RECURRING_JOB_NAME = "recurring-transactions"

router = APIRouter(tags=["cron"])


def _unauthorized() -> JSONResponse:
    return JSONResponse(status_code=401, content={"error": "Unauthorized"})


@router.get("/cron/recurring-transactions", response_model=BatchRunOut)
def run_recurring_transactions(
    authorized: bool = Depends(verify_cron_secret),
    db: Session = Depends(get_db),
    notifier: PushNotificationService = Depends(get_notification_service),
    tracker: JobTracker = Depends(get_job_tracker),
):
    if not authorized:
        return _unauthorized()

    job_id = tracker.start_job(RECURRING_JOB_NAME)
    try:
        report = RecurringBatchProcessor(db, notifier=notifier).run()
    except Exception as exc:
        logger.exception("Recurring transactions job failed")
        tracker.fail_job(job_id, exc)
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to process recurring transactions", "details": str(exc)},
        )

    out = BatchRunOut.model_validate(report)
    tracker.complete_job(job_id, out.model_dump(by_alias=True))
    return out


@router.get("/jobs/status", response_model=JobStatusOut)
def job_status(
    authorized: bool = Depends(verify_cron_secret),
    tracker: JobTracker = Depends(get_job_tracker),
):
    if not authorized:
        return _unauthorized()
    return JobStatusOut.model_validate(tracker.get_status(), from_attributes=True)


@router.get("/jobs/history", response_model=list[JobExecutionOut])
def job_history(
    job_name: Optional[str] = Query(None),
    limit: int = Query(10, ge=1, le=100),
    authorized: bool = Depends(verify_cron_secret),
    tracker: JobTracker = Depends(get_job_tracker),
):
    if not authorized:
        return _unauthorized()
    return [JobExecutionOut.model_validate(e) for e in tracker.get_job_history(job_name, limit=limit)]


@router.get("/jobs/stats", response_model=JobStatsOut)
def job_stats(
    job_name: Optional[str] = Query(None),
    authorized: bool = Depends(verify_cron_secret),
    tracker: JobTracker = Depends(get_job_tracker),
):
    if not authorized:
        return _unauthorized()
    return JobStatsOut.model_validate(tracker.get_job_stats(job_name))
