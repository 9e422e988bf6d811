"""
interactions/sessions.py

Process-level bookkeeping of live InteractionLedger instances.

One ledger per recruiter identity; a ledger is never shared across
identities. Ledgers are created on first use and closed when the recruiter
logs out (see InteractionsConfig.ready), or when left idle longer than
LEDGER_IDLE_TIMEOUT_SECS (sessions that expire never log out).

  get_bus()       - the process's CompletionBus
  get_registry()  - the process's LedgerRegistry
"""

import logging
import threading
import time

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from django.apps import apps
from django.conf import settings

from hireledger.bus import CompletionBus
from interactions.ledger import InteractionLedger
from interactions.store import DjangoLedgerStore, LedgerStore

logger = logging.getLogger(__name__)

EVICTION_JOB_ID = "ledger-idle-eviction"


class LedgerRegistry:

    def __init__(
        self,
        bus: CompletionBus,
        store: LedgerStore | None = None,
        scheduler=None,
        settle_delay: float | None = None,
        idle_timeout: float | None = None,
        clock=time.monotonic,
    ):
        self.bus = bus
        self.store = store or DjangoLedgerStore()
        self.settle_delay = settle_delay
        self.idle_timeout = settings.LEDGER_IDLE_TIMEOUT_SECS if idle_timeout is None else idle_timeout
        self._clock = clock
        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self._eviction_job = None
        self._ledgers: dict[str, InteractionLedger] = {}
        self._last_access: dict[str, float] = {}
        self._lock = threading.Lock()

    def get(self, recruiter_id) -> InteractionLedger:
        """Return the started ledger for `recruiter_id`, loading it on first use."""
        key = str(recruiter_id)
        with self._lock:
            ledger = self._ledgers.get(key)
            created = ledger is None
            if created:
                ledger = InteractionLedger(
                    self.store,
                    self.bus,
                    recruiter_id=key,
                    settle_delay=self.settle_delay,
                    scheduler=self._ensure_scheduler(),
                ).start()
                self._ledgers[key] = ledger
            self._last_access[key] = self._clock()

        if created:
            logger.info("Ledger opened for recruiter=%s", key)
            ledger.load()
        return ledger

    def release(self, recruiter_id) -> bool:
        with self._lock:
            ledger = self._ledgers.pop(str(recruiter_id), None)
            self._last_access.pop(str(recruiter_id), None)
        if ledger is None:
            return False
        ledger.close()
        logger.info("Ledger closed for recruiter=%s", recruiter_id)
        return True

    def close(self) -> None:
        with self._lock:
            ledgers = list(self._ledgers.values())
            self._ledgers.clear()
            self._last_access.clear()
        for ledger in ledgers:
            ledger.close()
        if self._eviction_job is not None:
            self._eviction_job.remove()
            self._eviction_job = None
        if self._owns_scheduler and self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def evict_idle(self, now: float | None = None) -> int:
        """Close ledgers not fetched for longer than idle_timeout. Returns how many."""
        if self.idle_timeout <= 0:
            return 0
        if now is None:
            now = self._clock()
        with self._lock:
            stale = [
                key for key, last in self._last_access.items()
                if now - last > self.idle_timeout
            ]
            ledgers = [(key, self._ledgers.pop(key, None)) for key in stale]
            for key in stale:
                del self._last_access[key]

        for key, ledger in ledgers:
            if ledger is not None:
                ledger.close()
                logger.info("Ledger closed for idle recruiter=%s", key)
        return len(ledgers)

    def __contains__(self, recruiter_id) -> bool:
        return str(recruiter_id) in self._ledgers

    def _ensure_scheduler(self):
        if self._scheduler is None:
            self._scheduler = BackgroundScheduler(timezone=settings.APSCHEDULER_TIMEZONE)
        if not self._scheduler.running:
            self._scheduler.start()
        if self.idle_timeout > 0 and self._eviction_job is None:
            self._eviction_job = self._scheduler.add_job(
                self.evict_idle,
                trigger=IntervalTrigger(
                    seconds=settings.LEDGER_EVICTION_INTERVAL_SECS,
                    timezone=settings.APSCHEDULER_TIMEZONE,
                ),
                id=EVICTION_JOB_ID,
                name=EVICTION_JOB_ID,
                replace_existing=True,
                coalesce=True,
                max_instances=1,
            )
        return self._scheduler


def get_bus() -> CompletionBus:
    return apps.get_app_config("interactions").bus


def get_registry() -> LedgerRegistry:
    return apps.get_app_config("interactions").registry
