"""
Services 패키지

정기 거래 엔진의 비즈니스 로직 서비스 클래스들을 제공합니다.
"""

from .batch_processor import BatchRunReport, RecurringBatchProcessor
from .invalidation import InvalidationEvent, InvalidationQueue
from .job_tracker import JobTracker
from .ledger_service import LedgerService, TransactionDraft
from .notification_service import ExpoPushClient, NotificationTally, PushNotificationService
from .recurring_rule_service import RecurringRuleService, RescheduleAnchor

__all__ = [
    "BatchRunReport",
    "RecurringBatchProcessor",
    "InvalidationEvent",
    "InvalidationQueue",
    "JobTracker",
    "LedgerService",
    "TransactionDraft",
    "ExpoPushClient",
    "NotificationTally",
    "PushNotificationService",
    "RecurringRuleService",
    "RescheduleAnchor",
]
