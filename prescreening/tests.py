"""
prescreening/tests.py

Covers:
  - PreScreeningService.run : persistence, ledger record, after-commit signal
  - _parse_claude_json      : fenced / malformed output
  - views                   : auth, recruiter profile, candidate lookup, failures
"""

import json
import uuid
from unittest.mock import MagicMock, patch

import anthropic
from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse

from candidates.models import Candidate
from hireledger.bus import CompletionBus, CompletionSignal
from hireledger.constants import PRE_SCREENING_COMPLETED
from interactions.errors import AppendError
from interactions.models import CandidateInteraction
from interactions.store import LedgerStore
from prescreening.models import PreScreen
from prescreening.services import (
    PreScreeningError,
    PreScreeningService,
    _build_user_prompt,
    _parse_claude_json,
)
from recruiters.models import RecruiterProfile

ANALYSIS = {
    "flags": [
        {
            "type": "employment_gap",
            "severity": "medium",
            "description": "Gap between 2019 and 2021",
            "recommendation": "Ask about the gap",
        }
    ],
    "questions": [
        {
            "category": "technical",
            "question": "Describe a Django migration you had to roll back.",
            "importance": "high",
            "expectedAnswerType": "text",
        },
        {
            "category": "availability",
            "question": "Can you start within a month?",
            "importance": "medium",
            "expectedAnswerType": "yes_no",
        },
    ],
}


def _make_candidate() -> Candidate:
    return Candidate.objects.create(
        first_name="Ana",
        last_name="Pop",
        email="ana@example.com",
        title="Backend Engineer",
        skills=["Python", "Django"],
        experience_years=5,
        resume_content="Worked at Acme 2015-2019.",
    )


def _make_recruiter(user=None) -> RecruiterProfile:
    return RecruiterProfile.objects.create(
        user=user,
        first_name="Rita",
        last_name="Ionescu",
        email="rita@acme.test",
        company="Acme",
    )


class PreScreeningServiceTests(TestCase):
    def setUp(self):
        self.bus = CompletionBus()
        self.received = []
        self.bus.subscribe(PRE_SCREENING_COMPLETED, self.received.append)
        self.candidate = _make_candidate()
        self.recruiter = _make_recruiter()

    @patch.object(PreScreeningService, "_send_message")
    def test_run_saves_pre_screen_and_ledger_record(self, mock_send_message):
        mock_send_message.return_value = json.dumps(ANALYSIS)

        with self.captureOnCommitCallbacks(execute=True):
            pre_screen = PreScreeningService(self.bus).run(self.recruiter, self.candidate)

        pre_screen.refresh_from_db()
        self.assertEqual(pre_screen.status, PreScreen.Status.COMPLETED)
        self.assertEqual(pre_screen.flags, ANALYSIS["flags"])
        self.assertEqual(pre_screen.questions, ANALYSIS["questions"])

        interaction = CandidateInteraction.objects.get()
        self.assertEqual(interaction.kind, CandidateInteraction.Kind.PRE_SCREENING_COMPLETED)
        self.assertEqual(interaction.recruiter_id, self.recruiter.pk)
        self.assertEqual(
            interaction.details,
            {"pre_screen_id": str(pre_screen.pk), "flag_count": 1, "question_count": 2},
        )

    @patch.object(PreScreeningService, "_send_message")
    def test_completion_is_published_only_after_commit(self, mock_send_message):
        mock_send_message.return_value = json.dumps(ANALYSIS)

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            pre_screen = PreScreeningService(self.bus).run(self.recruiter, self.candidate)
            self.assertEqual(self.received, [])

        self.assertEqual(len(callbacks), 1)
        self.assertEqual(
            self.received,
            [
                CompletionSignal(
                    candidate_id=str(self.candidate.pk),
                    recruiter_id=str(self.recruiter.pk),
                    job_id=str(pre_screen.pk),
                )
            ],
        )

    @patch.object(PreScreeningService, "_send_message")
    def test_stored_resume_is_used_unless_overridden(self, mock_send_message):
        mock_send_message.return_value = json.dumps(ANALYSIS)
        service = PreScreeningService(self.bus)

        service.run(self.recruiter, self.candidate)
        service.run(self.recruiter, self.candidate, resume_content="Pasted resume text")

        first_prompt = mock_send_message.call_args_list[0].kwargs["user"]
        second_prompt = mock_send_message.call_args_list[1].kwargs["user"]
        self.assertIn("Worked at Acme 2015-2019.", first_prompt)
        self.assertIn("Pasted resume text", second_prompt)

    @patch.object(PreScreeningService, "_send_message")
    def test_ledger_write_failure_rolls_back_and_publishes_nothing(self, mock_send_message):
        mock_send_message.return_value = json.dumps(ANALYSIS)
        store = MagicMock(spec=LedgerStore)
        store.insert.side_effect = AppendError("ledger offline")

        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with self.assertRaises(PreScreeningError):
                PreScreeningService(self.bus, store=store).run(self.recruiter, self.candidate)

        self.assertEqual(callbacks, [])
        self.assertFalse(PreScreen.objects.exists())
        self.assertEqual(self.received, [])

    @patch.object(PreScreeningService, "_send_message")
    def test_response_without_flags_or_questions_is_rejected(self, mock_send_message):
        mock_send_message.return_value = '{"summary": "fine"}'

        with self.assertRaises(PreScreeningError):
            PreScreeningService(self.bus).run(self.recruiter, self.candidate)
        self.assertFalse(PreScreen.objects.exists())

    @override_settings(ANTHROPIC_API_KEY="")
    def test_missing_api_key_is_reported(self):
        with self.assertRaises(PreScreeningError):
            PreScreeningService(self.bus).run(self.recruiter, self.candidate)

    def test_api_error_is_wrapped(self):
        client = MagicMock()
        client.messages.create.side_effect = anthropic.APIConnectionError(request=MagicMock())

        with self.assertRaises(PreScreeningError):
            PreScreeningService(self.bus, client=client).run(self.recruiter, self.candidate)

    def test_prompt_fills_missing_profile_fields(self):
        candidate = Candidate(first_name="Ion", last_name="Vasile", email="ion@example.com")

        prompt = _build_user_prompt(candidate, "")

        self.assertIn("Name: Ion Vasile", prompt)
        self.assertIn("Skills: Not specified", prompt)
        self.assertIn("Experience Years: Not specified", prompt)
        self.assertIn("No resume content available", prompt)

    def test_prompt_keeps_zero_years_of_experience(self):
        candidate = Candidate(
            first_name="Ion", last_name="Vasile", email="ion@example.com", experience_years=0
        )

        prompt = _build_user_prompt(candidate, "Internship at Acme.")

        self.assertIn("Experience Years: 0\n", prompt)


class ParseClaudeJsonTests(SimpleTestCase):
    def test_parses_fenced_object(self):
        raw = '```json\n{"flags": [], "questions": []}\n```'
        self.assertEqual(_parse_claude_json(raw), {"flags": [], "questions": []})

    def test_repairs_trailing_comma(self):
        raw = '{"flags": [], "questions": [],}'
        self.assertEqual(_parse_claude_json(raw), {"flags": [], "questions": []})

    def test_non_object_is_rejected(self):
        with self.assertRaises(PreScreeningError):
            _parse_claude_json("[1, 2, 3]")


class PreScreeningViewTests(TestCase):
    def setUp(self):
        self.user = get_user_model().objects.create_user(
            username="recruiter",
            password="test-pass-123",
        )
        self.candidate = _make_candidate()

    def _url(self, candidate_id=None):
        return reverse("prescreening:run", args=[candidate_id or self.candidate.pk])

    def test_anonymous_user_is_unauthorized(self):
        response = self.client.post(self._url())
        self.assertEqual(response.status_code, 401)

    def test_user_without_recruiter_profile_is_forbidden(self):
        self.client.force_login(self.user)

        response = self.client.post(self._url())

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"], "Recruiter profile not found")

    def test_unknown_candidate_is_not_found(self):
        _make_recruiter(user=self.user)
        self.client.force_login(self.user)

        response = self.client.post(self._url(uuid.uuid4()))

        self.assertEqual(response.status_code, 404)

    @patch.object(PreScreeningService, "_send_message")
    def test_successful_run_returns_analysis(self, mock_send_message):
        mock_send_message.return_value = json.dumps(ANALYSIS)
        _make_recruiter(user=self.user)
        self.client.force_login(self.user)

        response = self.client.post(
            self._url(),
            data=json.dumps({"resumeContent": "Pasted resume"}),
            content_type="application/json",
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["preScreenId"], str(PreScreen.objects.get().pk))
        self.assertEqual(body["flags"], ANALYSIS["flags"])
        self.assertEqual(len(body["questions"]), 2)

    @patch.object(PreScreeningService, "_send_message")
    def test_analysis_failure_returns_500(self, mock_send_message):
        mock_send_message.side_effect = PreScreeningError("Anthropic API error: boom")
        _make_recruiter(user=self.user)
        self.client.force_login(self.user)

        response = self.client.post(self._url())

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["error"], "Internal server error")
        self.assertFalse(PreScreen.objects.exists())

    @patch.object(PreScreeningService, "_send_message")
    def test_form_post_falls_back_to_stored_resume(self, mock_send_message):
        mock_send_message.return_value = json.dumps(ANALYSIS)
        _make_recruiter(user=self.user)
        self.client.force_login(self.user)

        response = self.client.post(self._url(), data={"note": "re-run"})

        self.assertEqual(response.status_code, 200)
        self.assertIn("Worked at Acme 2015-2019.", mock_send_message.call_args.kwargs["user"])

    def test_malformed_json_body_is_bad_request(self):
        _make_recruiter(user=self.user)
        self.client.force_login(self.user)

        response = self.client.post(self._url(), data="{not json", content_type="application/json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Invalid JSON body")

    @patch.object(PreScreeningService, "_send_message")
    def test_list_returns_recruiters_pre_screens(self, mock_send_message):
        mock_send_message.return_value = json.dumps(ANALYSIS)
        recruiter = _make_recruiter(user=self.user)
        PreScreeningService(CompletionBus()).run(recruiter, self.candidate)
        self.client.force_login(self.user)

        response = self.client.get(reverse("prescreening:list"))

        pre_screens = response.json()["preScreens"]
        self.assertEqual(len(pre_screens), 1)
        self.assertEqual(pre_screens[0]["candidate_id"], str(self.candidate.pk))
