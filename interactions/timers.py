"""
interactions/timers.py

Single-slot delayed execution on an APScheduler scheduler.

Scheduling while a call is still pending replaces it (same job id,
replace_existing=True), so a burst of triggers collapses into one run
`delay` seconds after the last trigger.
"""

import logging
from datetime import timedelta

from apscheduler.jobstores.base import JobLookupError
from django.utils import timezone

logger = logging.getLogger(__name__)


class ReloadTimer:

    def __init__(self, scheduler, job_id: str, delay: float):
        self.scheduler = scheduler
        self.job_id = job_id
        self.delay = delay

    def schedule(self, func) -> None:
        run_at = timezone.now() + timedelta(seconds=self.delay)
        self.scheduler.add_job(
            func,
            trigger="date",
            run_date=run_at,
            id=self.job_id,
            name=self.job_id,
            replace_existing=True,
            coalesce=True,
            # Run even if the worker pool picks the job up late.
            misfire_grace_time=None,
        )
        logger.debug("Timer %s armed for %s", self.job_id, run_at.isoformat())

    def cancel(self) -> bool:
        """Drop the pending run, if any. Returns True when one was removed."""
        try:
            self.scheduler.remove_job(self.job_id)
        except JobLookupError:
            return False
        logger.debug("Timer %s cancelled", self.job_id)
        return True

    @property
    def pending(self) -> bool:
        return self.scheduler.get_job(self.job_id) is not None
