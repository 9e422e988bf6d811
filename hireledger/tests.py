"""
hireledger/tests.py

Covers:
  - text_utils.strip_json_fence
  - text_utils.build_full_name
  - text_utils.join_or_default
  - bus.CompletionBus : ordering, unsubscribe, failing handlers
"""

from django.test import SimpleTestCase

from hireledger.bus import CompletionBus, CompletionSignal
from hireledger.constants import PRE_SCREENING_COMPLETED
from hireledger.text_utils import build_full_name, join_or_default, strip_json_fence


class StripJsonFenceTests(SimpleTestCase):
    def test_strips_json_fenced_block(self):
        raw = '```json\n{"key": "value"}\n```'
        self.assertEqual(strip_json_fence(raw), '{"key": "value"}')

    def test_strips_plain_fenced_block(self):
        raw = '```\n{"key": "value"}\n```'
        self.assertEqual(strip_json_fence(raw), '{"key": "value"}')

    def test_no_fence_returns_as_is(self):
        self.assertEqual(strip_json_fence('{"key": "value"}'), '{"key": "value"}')

    def test_empty_and_none_return_empty(self):
        self.assertEqual(strip_json_fence(""), "")
        self.assertEqual(strip_json_fence(None), "")

    def test_case_insensitive_json_tag(self):
        self.assertEqual(strip_json_fence('```JSON\n{"a": 1}\n```'), '{"a": 1}')


class BuildFullNameTests(SimpleTestCase):
    def test_both_names(self):
        self.assertEqual(build_full_name("Ana", "Pop"), "Ana Pop")

    def test_missing_parts(self):
        self.assertEqual(build_full_name("Madonna", ""), "Madonna")
        self.assertEqual(build_full_name(None, "Pop"), "Pop")
        self.assertEqual(build_full_name("", ""), "")


class JoinOrDefaultTests(SimpleTestCase):
    def test_joins_non_blank_values(self):
        self.assertEqual(join_or_default(["Python", " ", "Django "]), "Python, Django")

    def test_empty_uses_default(self):
        self.assertEqual(join_or_default([]), "Not specified")
        self.assertEqual(join_or_default(None, default="n/a"), "n/a")


class CompletionBusTests(SimpleTestCase):
    def setUp(self):
        self.bus = CompletionBus()
        self.signal = CompletionSignal(candidate_id="c-1", recruiter_id="r-1", job_id="j-1")

    def test_handlers_run_in_registration_order_with_payload(self):
        calls = []
        self.bus.subscribe(PRE_SCREENING_COMPLETED, lambda p: calls.append(("first", p)))
        self.bus.subscribe(PRE_SCREENING_COMPLETED, lambda p: calls.append(("second", p)))

        self.bus.publish(PRE_SCREENING_COMPLETED, self.signal)

        self.assertEqual(calls, [("first", self.signal), ("second", self.signal)])

    def test_publish_without_subscribers_is_a_no_op(self):
        self.bus.publish(PRE_SCREENING_COMPLETED, self.signal)
        self.assertEqual(self.bus.subscriber_count(PRE_SCREENING_COMPLETED), 0)

    def test_signals_are_scoped_by_name(self):
        calls = []
        self.bus.subscribe("other_signal", calls.append)

        self.bus.publish(PRE_SCREENING_COMPLETED, self.signal)

        self.assertEqual(calls, [])

    def test_unsubscribe_stops_delivery_and_is_idempotent(self):
        calls = []
        unsubscribe = self.bus.subscribe(PRE_SCREENING_COMPLETED, calls.append)

        unsubscribe()
        unsubscribe()
        self.bus.publish(PRE_SCREENING_COMPLETED, self.signal)

        self.assertEqual(calls, [])
        self.assertEqual(self.bus.subscriber_count(PRE_SCREENING_COMPLETED), 0)

    def test_failing_handler_does_not_block_later_handlers(self):
        calls = []

        def broken(payload):
            raise RuntimeError("handler exploded")

        self.bus.subscribe(PRE_SCREENING_COMPLETED, broken)
        self.bus.subscribe(PRE_SCREENING_COMPLETED, calls.append)

        with self.assertLogs("hireledger.bus", level="ERROR"):
            self.bus.publish(PRE_SCREENING_COMPLETED, self.signal)

        self.assertEqual(calls, [self.signal])

    def test_buses_are_independent(self):
        calls = []
        self.bus.subscribe(PRE_SCREENING_COMPLETED, calls.append)

        CompletionBus().publish(PRE_SCREENING_COMPLETED, self.signal)

        self.assertEqual(calls, [])
