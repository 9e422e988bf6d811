"""
interactions/ledger.py

In-process view of one recruiter's interaction ledger.

InteractionLedger owns a cached, most-recent-first list of the bound
recruiter's interactions and keeps it in step with the ledger store:

  append()  writes through the store, then reloads synchronously, so the
            caller reads its own write as soon as append() returns.
  signals   a PRE_SCREENING_COMPLETED signal on the bus schedules a reload
            after a settling delay (LEDGER_SETTLE_DELAY_SECS). Signals that
            arrive while a reload is pending replace it, so a burst of
            signals yields a single reload.

Ledger failures never propagate out of load() / append(): they are reported
to the caller's Reporter and logged, and the cache is left as it was.

Cache policy on failure (open for product review):
  - store error during load  → previous cache is kept (stale data shown)
  - no recruiter context     → cache is reset to empty (see bind())
"""

import itertools
import logging
import threading
import uuid
from dataclasses import dataclass

from apscheduler.schedulers.background import BackgroundScheduler
from django.conf import settings
from django_apscheduler.util import close_old_connections

from hireledger.bus import CompletionBus
from hireledger.constants import PRE_SCREENING_COMPLETED
from interactions.errors import (
    AppendError,
    InvalidInteraction,
    LedgerError,
    LoadError,
    Unauthorized,
)
from interactions.models import CandidateInteraction
from interactions.reporting import LoggingReporter, Reporter
from interactions.store import InteractionRecord, LedgerStore, NewInteraction
from interactions.timers import ReloadTimer

logger = logging.getLogger(__name__)

LOAD_FAILED_MESSAGE = "Failed to load interaction history"
APPEND_FAILED_MESSAGE = "Failed to add interaction"
APPEND_OK_MESSAGE = "Interaction added successfully!"
UNAUTHORIZED_MESSAGE = "You must be logged in as a recruiter to add interactions"


@dataclass(frozen=True)
class AppendResult:
    ok: bool
    record_id: str | None = None
    error: LedgerError | None = None


class InteractionLedger:
    """
    Cached ledger for a single recruiter identity.

    Args:
        store        : LedgerStore used for every read and write.
        bus          : CompletionBus the ledger listens on once started.
        recruiter_id : Bound recruiter; None means "no recruiter context".
        reporter     : Default Reporter for user-facing outcomes.
        settle_delay : Seconds between a completion signal and the reload.
                       Defaults to settings.LEDGER_SETTLE_DELAY_SECS.
        scheduler    : APScheduler scheduler running the delayed reload. When
                       omitted the ledger starts (and later shuts down) its own.
    """

    def __init__(
        self,
        store: LedgerStore,
        bus: CompletionBus,
        *,
        recruiter_id=None,
        reporter: Reporter | None = None,
        settle_delay: float | None = None,
        scheduler=None,
    ):
        self.store = store
        self.bus = bus
        self.recruiter_id = str(recruiter_id) if recruiter_id else None
        self.reporter = reporter or LoggingReporter()
        self.settle_delay = (
            settings.LEDGER_SETTLE_DELAY_SECS if settle_delay is None else settle_delay
        )

        self._scheduler = scheduler
        self._owns_scheduler = False
        self._timer: ReloadTimer | None = None
        self._unsubscribe = None

        self._lock = threading.Lock()
        self._records: tuple[InteractionRecord, ...] = ()
        self._sequence = itertools.count(1)
        self._applied_sequence = 0

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    def start(self) -> "InteractionLedger":
        """Subscribe to completion signals. Safe to call more than once."""
        if self._unsubscribe is None:
            self._unsubscribe = self.bus.subscribe(PRE_SCREENING_COMPLETED, self._on_completion)
        return self

    def close(self) -> None:
        """Unsubscribe and drop any pending reload."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._timer is not None:
            self._timer.cancel()
        if self._owns_scheduler and self._scheduler.running:
            self._scheduler.shutdown(wait=False)

    def __enter__(self) -> "InteractionLedger":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ── Public API ─────────────────────────────────────────────────────────────

    @property
    def records(self) -> list[InteractionRecord]:
        return list(self._records)

    def bind(self, recruiter_id) -> list[InteractionRecord]:
        """
        Switch the ledger to another recruiter identity.

        The cache is discarded on any change. Binding to None (recruiter
        logged out / profile missing) leaves the cache empty; binding to an
        identity loads that recruiter's ledger.
        """
        new_id = str(recruiter_id) if recruiter_id else None
        with self._lock:
            changed = new_id != self.recruiter_id
            self.recruiter_id = new_id
            if changed:
                self._records = ()

        if changed and self._timer is not None:
            self._timer.cancel()

        if new_id is None:
            return []
        return self.load()

    def load(self, *, reporter: Reporter | None = None) -> list[InteractionRecord]:
        """
        Re-read the bound recruiter's ledger into the cache.

        Without a recruiter context this is a no-op returning an empty list.
        On a store failure the error is reported and the previous cache is
        returned unchanged.
        """
        reporter = reporter or self.reporter
        recruiter_id = self.recruiter_id
        if recruiter_id is None:
            logger.debug("Ledger load skipped: no recruiter context")
            return []

        try:
            self._refresh(recruiter_id)
        except LoadError as exc:
            logger.error("Ledger load failed for recruiter=%s: %s", recruiter_id, exc)
            reporter.error(LOAD_FAILED_MESSAGE)
        return self.records

    def append(
        self,
        candidate_id,
        kind: str,
        notes: str | None = None,
        details=None,
        *,
        occurred_at=None,
        reporter: Reporter | None = None,
    ) -> AppendResult:
        """
        Record one interaction for the bound recruiter.

        The store write completes before the cache is reloaded; both happen
        before this returns. Failures are reported and returned, never raised.
        """
        reporter = reporter or self.reporter
        recruiter_id = self.recruiter_id

        if recruiter_id is None:
            logger.warning("Ledger append refused: no recruiter context")
            reporter.error(UNAUTHORIZED_MESSAGE)
            return AppendResult(ok=False, error=Unauthorized(UNAUTHORIZED_MESSAGE))

        if kind not in CandidateInteraction.Kind.values:
            logger.warning("Ledger append refused: unknown kind=%r", kind)
            reporter.error(APPEND_FAILED_MESSAGE)
            return AppendResult(
                ok=False,
                error=InvalidInteraction(f"Unknown interaction kind: {kind!r}"),
            )

        interaction = NewInteraction(
            recruiter_id=recruiter_id,
            candidate_id=str(candidate_id),
            kind=kind,
            notes=notes,
            details=details,
            occurred_at=occurred_at,
        )
        try:
            record_id = self.store.insert(interaction)
        except AppendError as exc:
            logger.error(
                "Ledger append failed for recruiter=%s candidate=%s kind=%s: %s",
                recruiter_id, candidate_id, kind, exc,
            )
            reporter.error(APPEND_FAILED_MESSAGE)
            return AppendResult(ok=False, error=exc)

        self.load(reporter=reporter)
        reporter.success(APPEND_OK_MESSAGE)
        return AppendResult(ok=True, record_id=record_id)

    def by_candidate(self, candidate_id) -> list[InteractionRecord]:
        """Cached interactions for one candidate. No I/O."""
        candidate_id = str(candidate_id)
        return [record for record in self._records if record.candidate_id == candidate_id]

    # ── Reconciliation ─────────────────────────────────────────────────────────

    def _on_completion(self, payload) -> None:
        recruiter_id = self.recruiter_id
        if recruiter_id is None:
            return

        target = getattr(payload, "recruiter_id", None)
        if target is not None and str(target) != recruiter_id:
            logger.debug(
                "Ignoring completion signal for recruiter=%s (bound to %s)",
                target, recruiter_id,
            )
            return

        logger.info(
            "Completion signal for recruiter=%s candidate=%s - reload in %ss",
            recruiter_id,
            getattr(payload, "candidate_id", None),
            self.settle_delay,
        )
        self._reload_timer().schedule(self._reload_after_signal)

    @close_old_connections
    def _reload_after_signal(self) -> None:
        # Runs on a scheduler worker thread; nothing here is user-initiated,
        # so failures are logged only.
        recruiter_id = self.recruiter_id
        if recruiter_id is None:
            return
        try:
            self._refresh(recruiter_id)
        except LoadError as exc:
            logger.error(
                "Background ledger reload failed for recruiter=%s: %s",
                recruiter_id, exc,
                exc_info=True,
            )

    def _reload_timer(self) -> ReloadTimer:
        if self._timer is None:
            if self._scheduler is None:
                self._scheduler = BackgroundScheduler(timezone=settings.APSCHEDULER_TIMEZONE)
                self._owns_scheduler = True
            if not self._scheduler.running:
                self._scheduler.start()
            self._timer = ReloadTimer(
                self._scheduler,
                job_id=f"ledger-reload-{uuid.uuid4().hex}",
                delay=self.settle_delay,
            )
        return self._timer

    # ── Internal helpers ───────────────────────────────────────────────────────

    def _refresh(self, recruiter_id: str) -> bool:
        """
        Query the store and swap the cache.

        Reloads may overlap (signal-driven vs. append-driven). Each takes a
        sequence number when it starts, and a result is only applied if no
        later-started reload has been applied already. Results for an identity
        the ledger is no longer bound to are dropped.

        Raises LoadError from the store.
        """
        with self._lock:
            sequence = next(self._sequence)

        records = sorted(
            self.store.query(recruiter_id),
            key=lambda record: record.occurred_at,
            reverse=True,
        )

        with self._lock:
            if recruiter_id != self.recruiter_id or sequence <= self._applied_sequence:
                logger.debug(
                    "Discarding stale ledger reload seq=%s (applied=%s)",
                    sequence, self._applied_sequence,
                )
                return False
            self._records = tuple(records)
            self._applied_sequence = sequence
        return True
