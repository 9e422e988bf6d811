"""
workflows/tests.py

Covers:
  - WorkflowGateway.dispatch     : enrichment, payload, dispatch log, failures
  - notify_candidate_contacted   : best-effort notification
  - send_candidate_email         : never fails because of the notification
  - views                        : status mapping, CORS, preflight
"""

import json
import uuid
from unittest.mock import MagicMock, patch

import requests
from django.contrib.auth import get_user_model
from django.db import DatabaseError, OperationalError
from django.test import TestCase, override_settings
from django.urls import reverse

from candidates.models import Candidate
from candidates.services import CandidateNotFound
from hireledger.constants import CORS_HEADERS
from interactions.models import CandidateInteraction
from interactions.sessions import get_registry
from recruiters.models import RecruiterProfile
from workflows.models import WorkflowDispatch
from workflows.services import (
    ConfigurationError,
    DispatchRequest,
    DispatchValidationError,
    EntityLookupError,
    RemoteCallError,
    WorkflowGateway,
    notify_candidate_contacted,
    send_candidate_email,
)

WEBHOOK_URL = "https://n8n.example.test/webhook/abc"


def _make_candidate() -> Candidate:
    return Candidate.objects.create(
        first_name="Ana",
        last_name="Pop",
        email="ana@example.com",
        title="Backend Engineer",
        skills=["Python", "Django"],
        experience_years=5,
    )


def _response(status_code=200, json_body=None, text=None) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    if json_body is not None:
        resp.json.return_value = json_body
        resp.text = json.dumps(json_body)
    else:
        resp.json.side_effect = ValueError("not json")
        resp.text = text or ""
    return resp


def _http_response(status_code: int, content: bytes = b"") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status_code
    resp._content = content
    resp.encoding = "utf-8"
    resp.url = WEBHOOK_URL
    return resp


def _request(**kwargs) -> DispatchRequest:
    defaults = dict(
        workflow_kind="outreach",
        template_id="t1",
        target_endpoint=WEBHOOK_URL,
        custom_data={},
    )
    defaults.update(kwargs)
    return DispatchRequest(**defaults)


def _sent_payload(mock_post) -> dict:
    return json.loads(mock_post.call_args.kwargs["data"])


class WorkflowGatewayTests(TestCase):
    def setUp(self):
        self.candidate = _make_candidate()

    @patch("workflows.services.http_requests.post")
    def test_outreach_with_candidate_is_enriched_and_logged(self, mock_post):
        mock_post.return_value = _response(200, {"ok": True})

        outcome = WorkflowGateway().dispatch(_request(candidate_id=str(self.candidate.pk)))

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.workflow_kind, "outreach")
        self.assertEqual(outcome.remote_response, {"ok": True})

        mock_post.assert_called_once()
        self.assertEqual(mock_post.call_args.args[0], WEBHOOK_URL)
        self.assertEqual(
            mock_post.call_args.kwargs["headers"], {"Content-Type": "application/json"}
        )
        payload = _sent_payload(mock_post)
        self.assertEqual(payload["trigger"], "lovable_workflow")
        self.assertEqual(payload["source"], "hire-al-platform")
        self.assertEqual(payload["workflowType"], "outreach")
        self.assertEqual(payload["templateId"], "t1")
        self.assertEqual(payload["customData"], {})
        self.assertIn("timestamp", payload)
        self.assertEqual(payload["candidateData"]["id"], str(self.candidate.pk))
        self.assertEqual(payload["candidateData"]["email"], "ana@example.com")
        self.assertEqual(payload["candidateData"]["skills"], ["Python", "Django"])

        record = WorkflowDispatch.objects.get()
        self.assertEqual(record, outcome.record)
        self.assertEqual(record.status, WorkflowDispatch.Status.TRIGGERED)
        self.assertEqual(record.candidate, self.candidate)
        self.assertEqual(record.remote_response, {"ok": True})

    @patch("workflows.services.http_requests.post")
    def test_dispatch_without_candidate_sends_null_candidate_data(self, mock_post):
        mock_post.return_value = _response(200, {"ok": True})

        WorkflowGateway().dispatch(_request(workflow_kind="nurture", custom_data={"week": 2}))

        payload = _sent_payload(mock_post)
        self.assertIsNone(payload["candidateData"])
        self.assertEqual(payload["customData"], {"week": 2})
        self.assertIsNone(WorkflowDispatch.objects.get().candidate)

    @patch("workflows.services.http_requests.post")
    def test_failed_lookup_never_calls_remote(self, mock_post):
        with self.assertRaises(EntityLookupError):
            WorkflowGateway().dispatch(_request(candidate_id=str(uuid.uuid4())))

        mock_post.assert_not_called()
        self.assertFalse(WorkflowDispatch.objects.exists())

    @patch("workflows.services.http_requests.post")
    def test_injected_lookup_is_used(self, mock_post):
        lookup = MagicMock(side_effect=CandidateNotFound("gone"))

        with self.assertRaises(EntityLookupError):
            WorkflowGateway(candidate_lookup=lookup).dispatch(_request(candidate_id="c-9"))

        lookup.assert_called_once_with("c-9")
        mock_post.assert_not_called()

    @patch("candidates.services.Candidate.objects.get")
    @patch("workflows.services.http_requests.post")
    def test_database_error_during_lookup_is_entity_lookup_error(self, mock_post, mock_get):
        mock_get.side_effect = OperationalError("database is locked")

        with self.assertRaises(EntityLookupError) as ctx:
            WorkflowGateway().dispatch(_request(candidate_id=str(self.candidate.pk)))

        self.assertIsInstance(ctx.exception.__cause__, OperationalError)
        mock_post.assert_not_called()
        self.assertFalse(WorkflowDispatch.objects.exists())

    @patch("workflows.services.http_requests.post")
    def test_non_2xx_raises_with_status_and_logs_failed_record(self, mock_post):
        mock_post.return_value = _response(503, text="maintenance")

        with self.assertRaises(RemoteCallError) as ctx:
            WorkflowGateway().dispatch(_request())

        self.assertEqual(ctx.exception.status_code, 503)
        self.assertEqual(ctx.exception.body, "maintenance")
        self.assertFalse(
            WorkflowDispatch.objects.filter(status=WorkflowDispatch.Status.TRIGGERED).exists()
        )
        record = WorkflowDispatch.objects.get()
        self.assertEqual(record.status, WorkflowDispatch.Status.FAILED)
        self.assertIn("503", record.error_detail)

    @patch("workflows.services.http_requests.post")
    def test_redirect_status_is_not_success(self, mock_post):
        mock_post.return_value = _http_response(304)

        with self.assertRaises(RemoteCallError) as ctx:
            WorkflowGateway().dispatch(_request())

        self.assertEqual(ctx.exception.status_code, 304)
        self.assertEqual(
            list(WorkflowDispatch.objects.values_list("status", flat=True)),
            [WorkflowDispatch.Status.FAILED],
        )

    @patch("workflows.services.http_requests.post")
    def test_network_error_raises_remote_call_error(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("connection refused")

        with self.assertRaises(RemoteCallError) as ctx:
            WorkflowGateway().dispatch(_request())

        self.assertIsNone(ctx.exception.status_code)
        self.assertEqual(WorkflowDispatch.objects.get().status, WorkflowDispatch.Status.FAILED)

    @patch("workflows.services.http_requests.post")
    def test_non_json_success_body_is_kept_raw(self, mock_post):
        mock_post.return_value = _response(200, text="Workflow was started")

        outcome = WorkflowGateway().dispatch(_request())

        self.assertEqual(outcome.remote_response, {"raw": "Workflow was started"})
        self.assertEqual(WorkflowDispatch.objects.get().remote_response, {"raw": "Workflow was started"})

    @patch("workflows.services.WorkflowDispatch.objects.create")
    @patch("workflows.services.http_requests.post")
    def test_log_write_failure_does_not_unwind_success(self, mock_post, mock_create):
        mock_post.return_value = _response(200, {"ok": True})
        mock_create.side_effect = DatabaseError("disk full")

        outcome = WorkflowGateway().dispatch(_request())

        self.assertTrue(outcome.success)
        self.assertIsNone(outcome.record)

    @patch("workflows.services.http_requests.post")
    def test_validation_failures_send_nothing(self, mock_post):
        with self.assertRaises(ConfigurationError):
            WorkflowGateway().dispatch(_request(target_endpoint=""))
        with self.assertRaises(DispatchValidationError):
            WorkflowGateway().dispatch(_request(workflow_kind="cold-call"))
        with self.assertRaises(DispatchValidationError):
            WorkflowGateway().dispatch(_request(template_id=""))

        mock_post.assert_not_called()
        self.assertFalse(WorkflowDispatch.objects.exists())

    @override_settings(WORKFLOW_DISPATCH_TIMEOUT_SECS=7)
    @patch("workflows.services.http_requests.post")
    def test_timeout_comes_from_settings(self, mock_post):
        mock_post.return_value = _response(200, {"ok": True})

        WorkflowGateway().dispatch(_request())

        self.assertEqual(mock_post.call_args.kwargs["timeout"], 7)


CANDIDATE = {"id": "c-1", "name": "Ana Pop", "email": "ana@example.com", "title": "Engineer"}


class CandidateContactedTests(TestCase):
    @override_settings(N8N_WEBHOOK_URL="")
    @patch("workflows.services.http_requests.post")
    def test_no_webhook_configured_is_a_successful_no_op(self, mock_post):
        result = notify_candidate_contacted(CANDIDATE, "Hello", "Body")

        self.assertTrue(result.ok)
        self.assertEqual(result.message, "No webhook configured")
        mock_post.assert_not_called()

    @override_settings(N8N_WEBHOOK_URL=WEBHOOK_URL)
    @patch("workflows.services.http_requests.post")
    def test_posts_contact_payload(self, mock_post):
        mock_post.return_value = _response(200, {"ok": True})

        result = notify_candidate_contacted(CANDIDATE, "Hello", "Body")

        self.assertTrue(result.ok)
        payload = _sent_payload(mock_post)
        self.assertEqual(payload["triggered_from"], "hire_ai_contact_candidate")
        self.assertEqual(payload["candidate"], CANDIDATE)
        self.assertEqual(payload["email"], {"subject": "Hello", "message": "Body"})

    @override_settings(N8N_WEBHOOK_URL=WEBHOOK_URL)
    @patch("workflows.services.http_requests.post")
    def test_failures_are_returned_not_raised(self, mock_post):
        mock_post.return_value = _response(500, text="boom")
        failed = notify_candidate_contacted(CANDIDATE, "Hello", "Body")

        mock_post.side_effect = requests.Timeout("timed out")
        timed_out = notify_candidate_contacted(CANDIDATE, "Hello", "Body")

        self.assertFalse(failed.ok)
        self.assertIn("500", failed.error)
        self.assertFalse(timed_out.ok)
        self.assertIn("timed out", timed_out.error)

    @override_settings(N8N_WEBHOOK_URL=WEBHOOK_URL)
    @patch("workflows.services.http_requests.post")
    def test_multiple_choices_status_is_a_failure(self, mock_post):
        mock_post.return_value = _http_response(300, b"Multiple Choices")

        result = notify_candidate_contacted(CANDIDATE, "Hello", "Body")

        self.assertFalse(result.ok)
        self.assertIn("300", result.error)

    @override_settings(N8N_WEBHOOK_URL=WEBHOOK_URL)
    @patch("workflows.services.http_requests.post")
    def test_email_succeeds_when_notification_fails(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("unreachable")

        result = send_candidate_email(CANDIDATE, "Hello", "Body")

        self.assertTrue(result["success"])
        self.assertFalse(result["workflowTriggered"])
        self.assertIn("unreachable", result["workflowMessage"])

    def test_email_requires_address_subject_and_message(self):
        with self.assertRaises(DispatchValidationError):
            send_candidate_email({"name": "Ana"}, "Hello", "Body")
        with self.assertRaises(DispatchValidationError):
            send_candidate_email(CANDIDATE, "", "Body")
        with self.assertRaises(DispatchValidationError):
            send_candidate_email(CANDIDATE, "Hello", None)


class WorkflowViewTests(TestCase):
    def setUp(self):
        self.candidate = _make_candidate()

    def _post(self, name, payload):
        return self.client.post(
            reverse(name),
            data=json.dumps(payload),
            content_type="application/json",
        )

    def _assert_cors(self, response):
        for header, value in CORS_HEADERS.items():
            self.assertEqual(response[header], value)

    def test_preflight_returns_cors_headers(self):
        for name in ("workflows:trigger", "workflows:candidate_email"):
            response = self.client.options(reverse(name))
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.content, b"")
            self._assert_cors(response)

    def test_get_is_not_allowed(self):
        response = self.client.get(reverse("workflows:trigger"))
        self.assertEqual(response.status_code, 405)

    @patch("workflows.services.http_requests.post")
    def test_trigger_success(self, mock_post):
        mock_post.return_value = _response(200, {"ok": True})

        response = self._post(
            "workflows:trigger",
            {
                "workflowType": "outreach",
                "candidateId": str(self.candidate.pk),
                "templateId": "t1",
                "data": {},
                "n8nWebhookUrl": WEBHOOK_URL,
            },
        )

        self.assertEqual(response.status_code, 200)
        self._assert_cors(response)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["workflowType"], "outreach")
        self.assertEqual(body["n8nResult"], {"ok": True})

    @patch("workflows.services.http_requests.post")
    def test_trigger_status_mapping(self, mock_post):
        mock_post.return_value = _response(500, text="down")
        base = {"workflowType": "follow-up", "templateId": "t1", "n8nWebhookUrl": WEBHOOK_URL}

        self.assertEqual(self._post("workflows:trigger", {**base, "n8nWebhookUrl": ""}).status_code, 400)
        self.assertEqual(
            self._post("workflows:trigger", {**base, "candidateId": str(uuid.uuid4())}).status_code,
            404,
        )
        self.assertEqual(self._post("workflows:trigger", base).status_code, 502)

    @patch("candidates.services.Candidate.objects.get")
    def test_trigger_lookup_database_error_is_404(self, mock_get):
        mock_get.side_effect = OperationalError("database is locked")

        response = self._post(
            "workflows:trigger",
            {
                "workflowType": "outreach",
                "candidateId": str(self.candidate.pk),
                "templateId": "t1",
                "n8nWebhookUrl": WEBHOOK_URL,
            },
        )

        self.assertEqual(response.status_code, 404)
        self._assert_cors(response)

    @patch("workflows.services.WorkflowGateway.dispatch")
    def test_trigger_unexpected_error_is_500(self, mock_dispatch):
        mock_dispatch.side_effect = RuntimeError("boom")

        response = self._post(
            "workflows:trigger",
            {"workflowType": "outreach", "templateId": "t1", "n8nWebhookUrl": WEBHOOK_URL},
        )

        self.assertEqual(response.status_code, 500)
        self._assert_cors(response)

    def test_candidate_email_missing_fields(self):
        response = self._post(
            "workflows:candidate_email",
            {"candidate": {"name": "Ana"}, "email": {"subject": "Hi", "message": "Body"}},
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Missing required fields")
        self._assert_cors(response)

    @override_settings(N8N_WEBHOOK_URL=WEBHOOK_URL)
    @patch("workflows.services.http_requests.post")
    def test_candidate_email_ok_when_webhook_fails(self, mock_post):
        mock_post.side_effect = requests.ConnectionError("unreachable")

        response = self._post(
            "workflows:candidate_email",
            {"candidate": CANDIDATE, "email": {"subject": "Hi", "message": "Body"}},
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertFalse(body["workflowTriggered"])
        self.assertNotIn("interactionRecorded", body)

    @override_settings(N8N_WEBHOOK_URL="")
    def test_candidate_email_records_interaction_for_recruiter(self):
        user = get_user_model().objects.create_user(username="recruiter", password="test-pass-123")
        recruiter = RecruiterProfile.objects.create(
            user=user,
            first_name="Rita",
            last_name="Ionescu",
            email="rita@acme.test",
            company="Acme",
        )
        self.addCleanup(get_registry().release, recruiter.pk)
        self.client.force_login(user)

        response = self._post(
            "workflows:candidate_email",
            {
                "candidate": {"id": str(self.candidate.pk), "email": "ana@example.com"},
                "email": {"subject": "Intro", "message": "Hello Ana"},
            },
        )

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["interactionRecorded"])
        interaction = CandidateInteraction.objects.get()
        self.assertEqual(interaction.kind, CandidateInteraction.Kind.EMAIL_SENT)
        self.assertEqual(interaction.notes, "Intro")
        self.assertEqual(interaction.recruiter_id, recruiter.pk)
