"""Run one recurring-transaction batch pass from system cron.

    python -m balanceapp.jobs
"""

from __future__ import annotations

import logging
import sys

from .core.config import settings
from .core.database import session_scope
from .core.logging import configure_logging
from .schemas import BatchRunOut
from .services.batch_processor import RecurringBatchProcessor

logger = logging.getLogger(__name__)


def main() -> int:
    configure_logging(settings.LOG_LEVEL)
    with session_scope() as db:
        report = RecurringBatchProcessor(db).run()
    print(BatchRunOut.model_validate(report).model_dump_json(by_alias=True, indent=2))
    if report.errors:
        logger.warning("Batch run finished with %d errors", len(report.errors))
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
