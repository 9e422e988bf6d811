"""
interactions/tests.py

Covers:
  - InteractionLedger      : load / append / by_candidate / bind, failure reporting
  - Reconciliation         : completion signal → debounced background reload
  - Overlapping reloads    : last-started reload wins
  - ReloadTimer            : single pending slot per timer
  - DjangoLedgerStore      : ORM insert / query, unknown candidate
  - LedgerRegistry         : one ledger per recruiter, release on logout
  - interaction_list view  : GET / POST over HTTP
"""

import json
import threading
import time
import uuid
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from django.utils import timezone

from candidates.models import Candidate
from hireledger.bus import CompletionBus, CompletionSignal
from hireledger.constants import PRE_SCREENING_COMPLETED
from interactions.errors import (
    AppendError,
    InvalidInteraction,
    LoadError,
    Unauthorized,
)
from interactions.ledger import (
    APPEND_FAILED_MESSAGE,
    APPEND_OK_MESSAGE,
    LOAD_FAILED_MESSAGE,
    UNAUTHORIZED_MESSAGE,
    InteractionLedger,
)
from interactions.models import CandidateInteraction
from interactions.sessions import EVICTION_JOB_ID, LedgerRegistry, get_registry
from interactions.store import (
    DjangoLedgerStore,
    InteractionRecord,
    LedgerStore,
    NewInteraction,
)
from interactions.timers import ReloadTimer
from recruiters.models import RecruiterProfile


class InMemoryStore(LedgerStore):
    """Ledger store double with switchable failures and a query counter."""

    def __init__(self):
        self.rows: list[InteractionRecord] = []
        self.query_calls = 0
        self.fail_insert = False
        self.fail_query = False
        self._lock = threading.Lock()

    def insert(self, interaction: NewInteraction) -> str:
        if self.fail_insert:
            raise AppendError("insert refused")
        now = timezone.now()
        record = InteractionRecord(
            id=str(uuid.uuid4()),
            recruiter_id=interaction.recruiter_id,
            candidate_id=interaction.candidate_id,
            kind=interaction.kind,
            occurred_at=interaction.occurred_at or now,
            details=interaction.details,
            notes=interaction.notes,
            created_at=now,
            updated_at=now,
        )
        self.rows.append(record)
        return record.id

    def query(self, recruiter_id: str) -> list[InteractionRecord]:
        with self._lock:
            self.query_calls += 1
        if self.fail_query:
            raise LoadError("store offline")
        return [row for row in self.rows if row.recruiter_id == recruiter_id]


class RecordingReporter:
    def __init__(self):
        self.successes: list[str] = []
        self.errors: list[str] = []

    def success(self, message: str) -> None:
        self.successes.append(message)

    def error(self, message: str) -> None:
        self.errors.append(message)


def _record(recruiter_id, candidate_id, kind, occurred_at) -> InteractionRecord:
    return InteractionRecord(
        id=str(uuid.uuid4()),
        recruiter_id=str(recruiter_id),
        candidate_id=str(candidate_id),
        kind=kind,
        occurred_at=occurred_at,
    )


def _wait_until(predicate, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _make_candidate(**kwargs) -> Candidate:
    defaults = dict(first_name="Ana", last_name="Pop", email="ana@example.com")
    defaults.update(kwargs)
    return Candidate.objects.create(**defaults)


def _make_recruiter(user=None, **kwargs) -> RecruiterProfile:
    defaults = dict(
        user=user,
        first_name="Rita",
        last_name="Ionescu",
        email="rita@acme.test",
        company="Acme",
    )
    defaults.update(kwargs)
    return RecruiterProfile.objects.create(**defaults)


# ── Ledger manager (in-memory store) ──────────────────────────────────────────

class InteractionLedgerTests(SimpleTestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.bus = CompletionBus()
        self.reporter = RecordingReporter()
        self.recruiter_id = str(uuid.uuid4())
        self.candidate_id = str(uuid.uuid4())
        self.ledger = InteractionLedger(
            self.store,
            self.bus,
            recruiter_id=self.recruiter_id,
            reporter=self.reporter,
            settle_delay=0.05,
        )
        self.addCleanup(self.ledger.close)

    def test_saved_then_email_sent_scenario(self):
        self.ledger.append(self.candidate_id, "saved")
        self.ledger.append(self.candidate_id, "email_sent", notes="intro")

        records = self.ledger.load()

        self.assertEqual([r.kind for r in records], ["email_sent", "saved"])
        self.assertEqual(records[0].notes, "intro")
        self.assertEqual(len(self.ledger.by_candidate(self.candidate_id)), 2)
        self.assertEqual(self.ledger.by_candidate(uuid.uuid4()), [])

    def test_load_orders_by_occurred_at_and_keeps_existing_records(self):
        base = timezone.now()
        self.store.rows.append(
            _record(self.recruiter_id, self.candidate_id, "hired", base - timedelta(days=2))
        )

        self.ledger.append(self.candidate_id, "rejected", occurred_at=base - timedelta(days=3))
        self.ledger.append(self.candidate_id, "saved", occurred_at=base)
        self.ledger.append(self.candidate_id, "email_sent", occurred_at=base - timedelta(days=1))

        records = self.ledger.load()

        self.assertEqual(
            [r.kind for r in records],
            ["saved", "email_sent", "hired", "rejected"],
        )
        self.assertEqual(len({r.id for r in records}), 4)

    def test_append_reloads_before_returning(self):
        result = self.ledger.append(self.candidate_id, "saved")

        self.assertTrue(result.ok)
        self.assertEqual([r.id for r in self.ledger.records], [result.record_id])
        self.assertEqual(self.reporter.successes, [APPEND_OK_MESSAGE])
        self.assertEqual(self.reporter.errors, [])

    def test_append_without_recruiter_is_unauthorized_and_writes_nothing(self):
        ledger = InteractionLedger(self.store, self.bus, reporter=self.reporter)

        result = ledger.append(self.candidate_id, "saved")

        self.assertFalse(result.ok)
        self.assertIsInstance(result.error, Unauthorized)
        self.assertEqual(self.store.rows, [])
        self.assertEqual(self.reporter.errors, [UNAUTHORIZED_MESSAGE])

    def test_append_with_unknown_kind_is_refused(self):
        result = self.ledger.append(self.candidate_id, "ghosted")

        self.assertFalse(result.ok)
        self.assertIsInstance(result.error, InvalidInteraction)
        self.assertEqual(self.store.rows, [])
        self.assertEqual(self.reporter.errors, [APPEND_FAILED_MESSAGE])

    def test_append_failure_is_reported_and_cache_unchanged(self):
        self.ledger.append(self.candidate_id, "saved")
        before = self.ledger.records
        self.store.fail_insert = True

        result = self.ledger.append(self.candidate_id, "hired")

        self.assertFalse(result.ok)
        self.assertIsInstance(result.error, AppendError)
        self.assertEqual(self.ledger.records, before)
        self.assertEqual(self.reporter.errors, [APPEND_FAILED_MESSAGE])

    def test_load_without_recruiter_returns_empty_without_touching_store(self):
        ledger = InteractionLedger(self.store, self.bus, reporter=self.reporter)

        self.assertEqual(ledger.load(), [])
        self.assertEqual(self.store.query_calls, 0)
        self.assertEqual(self.reporter.errors, [])

    def test_load_failure_keeps_previous_cache(self):
        self.ledger.append(self.candidate_id, "saved")
        cached = self.ledger.records
        self.store.fail_query = True

        records = self.ledger.load()

        self.assertEqual(records, cached)
        self.assertEqual(self.reporter.errors, [LOAD_FAILED_MESSAGE])

    def test_per_call_reporter_overrides_default(self):
        other = RecordingReporter()
        self.store.fail_query = True

        self.ledger.load(reporter=other)

        self.assertEqual(other.errors, [LOAD_FAILED_MESSAGE])
        self.assertEqual(self.reporter.errors, [])

    def test_bind_to_none_empties_cache(self):
        self.ledger.append(self.candidate_id, "saved")

        self.assertEqual(self.ledger.bind(None), [])
        self.assertEqual(self.ledger.records, [])
        self.assertIsNone(self.ledger.recruiter_id)

    def test_bind_to_other_recruiter_loads_their_ledger(self):
        self.ledger.append(self.candidate_id, "saved")
        other_recruiter = str(uuid.uuid4())
        self.store.rows.append(
            _record(other_recruiter, self.candidate_id, "hired", timezone.now())
        )

        records = self.ledger.bind(other_recruiter)

        self.assertEqual([r.kind for r in records], ["hired"])
        self.assertEqual([r.recruiter_id for r in self.ledger.records], [other_recruiter])

    def test_later_started_reload_wins_over_earlier_one(self):
        old = _record(self.recruiter_id, self.candidate_id, "saved", timezone.now())
        new = _record(self.recruiter_id, self.candidate_id, "hired", timezone.now())
        original_query = self.store.query
        calls = []

        def overlapping_query(recruiter_id):
            calls.append(recruiter_id)
            if len(calls) == 1:
                # A second reload starts and finishes while the first is in flight.
                self.store.rows = [new]
                self.ledger.load()
                return [old]
            return original_query(recruiter_id)

        self.store.query = overlapping_query

        self.ledger.load()

        self.assertEqual(len(calls), 2)
        self.assertEqual([r.id for r in self.ledger.records], [new.id])


# ── Reconciliation on completion signals ──────────────────────────────────────

class LedgerReconciliationTests(SimpleTestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.bus = CompletionBus()
        self.recruiter_id = str(uuid.uuid4())
        self.scheduler = BackgroundScheduler()
        self.addCleanup(self._shutdown_scheduler)
        self.ledger = InteractionLedger(
            self.store,
            self.bus,
            recruiter_id=self.recruiter_id,
            settle_delay=0.1,
            scheduler=self.scheduler,
        ).start()
        self.addCleanup(self.ledger.close)

    def _shutdown_scheduler(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def _signal(self, recruiter_id=None):
        return CompletionSignal(
            candidate_id=str(uuid.uuid4()),
            recruiter_id=recruiter_id or self.recruiter_id,
        )

    def test_signal_triggers_one_reload_after_settling_delay(self):
        self.store.rows.append(
            _record(self.recruiter_id, uuid.uuid4(), "pre_screening_completed", timezone.now())
        )

        self.bus.publish(PRE_SCREENING_COMPLETED, self._signal())

        self.assertEqual(self.store.query_calls, 0)
        self.assertTrue(_wait_until(lambda: self.ledger.records))
        self.assertEqual(
            [r.kind for r in self.ledger.records],
            ["pre_screening_completed"],
        )
        time.sleep(0.3)
        self.assertEqual(self.store.query_calls, 1)

    def test_burst_of_signals_collapses_into_single_reload(self):
        for _ in range(5):
            self.bus.publish(PRE_SCREENING_COMPLETED, self._signal())

        self.assertTrue(_wait_until(lambda: self.store.query_calls >= 1))
        time.sleep(0.3)
        self.assertEqual(self.store.query_calls, 1)

    def test_signal_for_other_recruiter_is_ignored(self):
        self.bus.publish(PRE_SCREENING_COMPLETED, self._signal(str(uuid.uuid4())))

        time.sleep(0.3)
        self.assertEqual(self.store.query_calls, 0)

    def test_background_reload_failure_is_not_reported(self):
        reporter = RecordingReporter()
        self.ledger.reporter = reporter
        self.store.fail_query = True

        self.bus.publish(PRE_SCREENING_COMPLETED, self._signal())

        self.assertTrue(_wait_until(lambda: self.store.query_calls >= 1))
        self.assertEqual(reporter.errors, [])

    def test_close_unsubscribes_and_cancels_pending_reload(self):
        self.ledger.settle_delay = 5
        self.bus.publish(PRE_SCREENING_COMPLETED, self._signal())

        self.ledger.close()

        self.assertEqual(self.scheduler.get_jobs(), [])
        self.assertEqual(self.bus.subscriber_count(PRE_SCREENING_COMPLETED), 0)


class ReloadTimerTests(SimpleTestCase):
    def setUp(self):
        self.scheduler = BackgroundScheduler()
        self.scheduler.start(paused=True)
        self.addCleanup(self.scheduler.shutdown, wait=False)

    def test_rescheduling_replaces_pending_run(self):
        timer = ReloadTimer(self.scheduler, job_id="reload-test", delay=10)

        timer.schedule(lambda: None)
        timer.schedule(lambda: None)

        self.assertEqual(len(self.scheduler.get_jobs()), 1)
        self.assertTrue(timer.pending)

    def test_cancel_without_pending_run_is_harmless(self):
        timer = ReloadTimer(self.scheduler, job_id="reload-test", delay=10)

        self.assertFalse(timer.cancel())
        timer.schedule(lambda: None)
        self.assertTrue(timer.cancel())
        self.assertFalse(timer.pending)


# ── ORM store ─────────────────────────────────────────────────────────────────

class DjangoLedgerStoreTests(TestCase):
    def setUp(self):
        self.store = DjangoLedgerStore()
        self.recruiter = _make_recruiter()
        self.candidate = _make_candidate()

    def _new(self, kind, **kwargs) -> NewInteraction:
        return NewInteraction(
            recruiter_id=str(self.recruiter.pk),
            candidate_id=str(self.candidate.pk),
            kind=kind,
            **kwargs,
        )

    def test_insert_assigns_id_and_query_returns_most_recent_first(self):
        base = timezone.now()
        first_id = self.store.insert(self._new("saved", occurred_at=base - timedelta(hours=1)))
        second_id = self.store.insert(
            self._new("email_sent", notes="intro", details={"subject": "Hi"}, occurred_at=base)
        )

        records = self.store.query(str(self.recruiter.pk))

        self.assertEqual([r.id for r in records], [second_id, first_id])
        self.assertEqual(records[0].notes, "intro")
        self.assertEqual(records[0].details, {"subject": "Hi"})
        self.assertEqual(records[0].candidate_id, str(self.candidate.pk))

    def test_query_is_scoped_to_recruiter(self):
        other = _make_recruiter(email="other@acme.test")
        self.store.insert(self._new("saved"))

        self.assertEqual(self.store.query(str(other.pk)), [])

    def test_insert_for_unknown_candidate_is_invalid(self):
        interaction = NewInteraction(
            recruiter_id=str(self.recruiter.pk),
            candidate_id=str(uuid.uuid4()),
            kind="saved",
        )

        with self.assertRaises(InvalidInteraction):
            self.store.insert(interaction)
        self.assertFalse(CandidateInteraction.objects.exists())

    def test_rows_are_append_only(self):
        self.store.insert(self._new("saved"))
        row = CandidateInteraction.objects.get()

        row.notes = "edited"
        with self.assertRaises(ValueError):
            row.save()

    def test_ledger_end_to_end_over_orm(self):
        ledger = InteractionLedger(
            self.store,
            CompletionBus(),
            recruiter_id=self.recruiter.pk,
            reporter=RecordingReporter(),
        )

        ledger.append(self.candidate.pk, "saved")
        ledger.append(self.candidate.pk, "email_sent", notes="intro")
        records = ledger.load()

        self.assertEqual([r.kind for r in records], ["email_sent", "saved"])
        self.assertEqual(len(ledger.by_candidate(self.candidate.pk)), 2)
        self.assertEqual(ledger.by_candidate(uuid.uuid4()), [])


# ── Registry ──────────────────────────────────────────────────────────────────

class LedgerRegistryTests(SimpleTestCase):
    def setUp(self):
        self.scheduler = BackgroundScheduler()
        self.addCleanup(self._shutdown_scheduler)
        self.store = InMemoryStore()
        self.bus = CompletionBus()
        self.registry = LedgerRegistry(self.bus, store=self.store, scheduler=self.scheduler)
        self.addCleanup(self.registry.close)

    def _shutdown_scheduler(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def test_get_returns_same_started_ledger_per_recruiter(self):
        recruiter_id = uuid.uuid4()

        first = self.registry.get(recruiter_id)
        second = self.registry.get(str(recruiter_id))

        self.assertIs(first, second)
        self.assertIn(recruiter_id, self.registry)
        self.assertEqual(self.store.query_calls, 1)
        self.assertEqual(self.bus.subscriber_count(PRE_SCREENING_COMPLETED), 1)

    def test_ledgers_are_not_shared_between_recruiters(self):
        self.assertIsNot(self.registry.get(uuid.uuid4()), self.registry.get(uuid.uuid4()))

    def test_release_closes_ledger(self):
        recruiter_id = uuid.uuid4()
        self.registry.get(recruiter_id)

        self.assertTrue(self.registry.release(recruiter_id))
        self.assertFalse(self.registry.release(recruiter_id))
        self.assertNotIn(recruiter_id, self.registry)
        self.assertEqual(self.bus.subscriber_count(PRE_SCREENING_COMPLETED), 0)

    def _idle_registry(self, idle_timeout, clock=time.monotonic):
        registry = LedgerRegistry(
            self.bus,
            store=self.store,
            scheduler=self.scheduler,
            idle_timeout=idle_timeout,
            clock=clock,
        )
        self.addCleanup(registry.close)
        return registry

    def test_evict_idle_closes_only_stale_ledgers(self):
        now = [100.0]
        registry = self._idle_registry(30, clock=lambda: now[0])
        stale_id, fresh_id = uuid.uuid4(), uuid.uuid4()

        registry.get(stale_id)
        now[0] = 120.0
        registry.get(fresh_id)
        now[0] = 140.0

        self.assertEqual(registry.evict_idle(), 1)
        self.assertNotIn(stale_id, registry)
        self.assertIn(fresh_id, registry)
        self.assertEqual(self.bus.subscriber_count(PRE_SCREENING_COMPLETED), 1)

    def test_get_refreshes_last_access(self):
        now = [100.0]
        registry = self._idle_registry(30, clock=lambda: now[0])
        recruiter_id = uuid.uuid4()

        first = registry.get(recruiter_id)
        now[0] = 125.0
        registry.get(recruiter_id)
        now[0] = 150.0

        self.assertEqual(registry.evict_idle(), 0)
        self.assertIs(registry.get(recruiter_id), first)
        self.assertEqual(self.store.query_calls, 1)

    def test_evicted_recruiter_gets_a_fresh_ledger(self):
        registry = self._idle_registry(30)
        recruiter_id = uuid.uuid4()
        first = registry.get(recruiter_id)

        registry.evict_idle(now=time.monotonic() + 60)

        self.assertIsNot(registry.get(recruiter_id), first)
        self.assertEqual(self.store.query_calls, 2)

    def test_zero_timeout_disables_eviction(self):
        registry = self._idle_registry(0)
        recruiter_id = uuid.uuid4()
        registry.get(recruiter_id)

        self.assertEqual(registry.evict_idle(now=time.monotonic() + 10_000), 0)
        self.assertIn(recruiter_id, registry)
        self.assertIsNone(self.scheduler.get_job(EVICTION_JOB_ID))

    def test_eviction_job_is_scheduled_and_removed_on_close(self):
        registry = self._idle_registry(30)
        registry.get(uuid.uuid4())

        job = self.scheduler.get_job(EVICTION_JOB_ID)
        self.assertIsNotNone(job)
        self.assertEqual(job.func, registry.evict_idle)

        registry.close()
        self.assertIsNone(self.scheduler.get_job(EVICTION_JOB_ID))


# ── HTTP ──────────────────────────────────────────────────────────────────────

class InteractionViewTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(
            username="recruiter",
            password="test-pass-123",
        )
        self.recruiter = _make_recruiter(user=self.user)
        self.candidate = _make_candidate()
        self.url = reverse("interactions:list")
        self.addCleanup(get_registry().release, self.recruiter.pk)

    def _post(self, payload):
        return self.client.post(
            self.url,
            data=json.dumps(payload),
            content_type="application/json",
        )

    def test_anonymous_get_returns_empty_ledger(self):
        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"interactions": []})

    def test_anonymous_post_is_unauthorized(self):
        response = self._post({"candidateId": str(self.candidate.pk), "kind": "saved"})

        self.assertEqual(response.status_code, 401)
        self.assertFalse(CandidateInteraction.objects.exists())

    def test_post_appends_and_returns_refreshed_ledger(self):
        self.client.force_login(self.user)

        response = self._post(
            {"candidateId": str(self.candidate.pk), "kind": "email_sent", "notes": "intro"}
        )

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual([i["id"] for i in body["interactions"]], [body["id"]])
        row = CandidateInteraction.objects.get()
        self.assertEqual(row.recruiter_id, self.recruiter.pk)
        self.assertEqual(row.notes, "intro")

    def test_get_filters_by_candidate(self):
        other = _make_candidate(email="other@example.com")
        self.client.force_login(self.user)
        self._post({"candidateId": str(self.candidate.pk), "kind": "saved"})
        self._post({"candidateId": str(other.pk), "kind": "saved"})

        response = self.client.get(self.url, {"candidate": str(other.pk)})

        interactions = response.json()["interactions"]
        self.assertEqual(len(interactions), 1)
        self.assertEqual(interactions[0]["candidate_id"], str(other.pk))

    def test_post_with_missing_fields_is_rejected(self):
        self.client.force_login(self.user)

        response = self._post({"kind": "saved"})

        self.assertEqual(response.status_code, 400)

    def test_post_with_unknown_kind_is_rejected(self):
        self.client.force_login(self.user)

        response = self._post({"candidateId": str(self.candidate.pk), "kind": "ghosted"})

        self.assertEqual(response.status_code, 400)
        self.assertFalse(CandidateInteraction.objects.exists())

    def test_post_for_unknown_candidate_is_rejected(self):
        self.client.force_login(self.user)

        response = self._post({"candidateId": str(uuid.uuid4()), "kind": "saved"})

        self.assertEqual(response.status_code, 400)

    def test_logout_releases_recruiter_ledger(self):
        self.client.force_login(self.user)
        self.client.get(self.url)
        self.assertIn(self.recruiter.pk, get_registry())

        self.client.logout()

        self.assertNotIn(self.recruiter.pk, get_registry())
