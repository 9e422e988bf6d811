"""
workflows/services.py

Outbound calls to the external workflow-automation service (n8n webhooks).

Public services:
  WorkflowGateway.dispatch(request)      → DispatchOutcome
      Validates, optionally enriches with the full candidate record, POSTs once
      and logs the outcome as a WorkflowDispatch row. Raises on failure.
  notify_candidate_contacted(...)        → NotifyResult
      Best-effort notification; failures come back in the result, never raised.
  send_candidate_email(...)              → dict
      The contact-candidate operation wrapping notify_candidate_contacted.

Delivery is at-least-once from the caller's point of view: there is no retry
and no de-duplication here.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

import requests as http_requests
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import DatabaseError
from django.utils import timezone

from candidates.services import CandidateNotFound, get_candidate
from hireledger.constants import (
    CANDIDATE_CONTACTED_ORIGIN,
    WORKFLOW_SOURCE_TAG,
    WORKFLOW_TRIGGER_TAG,
)
from workflows.models import WorkflowDispatch

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}


# ── Exceptions ─────────────────────────────────────────────────────────────────

class WorkflowDispatchError(Exception):
    """Base class for dispatch failures."""


class DispatchValidationError(WorkflowDispatchError):
    """The request is malformed; nothing was sent."""


class ConfigurationError(WorkflowDispatchError):
    """No target endpoint was supplied; nothing was sent."""


class EntityLookupError(WorkflowDispatchError):
    """The referenced candidate could not be loaded; nothing was sent."""


class RemoteCallError(WorkflowDispatchError):
    """The remote endpoint was unreachable or answered with a non-2xx status."""

    def __init__(self, status_code: int | None, body: str):
        self.status_code = status_code
        self.body = body
        if status_code is None:
            super().__init__(f"Workflow webhook unreachable: {body}")
        else:
            super().__init__(f"Workflow webhook failed: {status_code}")


# ── Value types ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class DispatchRequest:
    workflow_kind: str
    template_id: str
    target_endpoint: str
    candidate_id: str | None = None
    custom_data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class DispatchOutcome:
    success: bool
    workflow_kind: str
    remote_response: Any
    record: WorkflowDispatch | None = None


@dataclass(frozen=True)
class NotifyResult:
    """Outcome of a best-effort notification. Callers log it; they never raise it."""

    ok: bool
    message: str | None = None
    error: str | None = None

    @property
    def detail(self) -> str | None:
        return self.message or self.error


# ── Gateway ────────────────────────────────────────────────────────────────────

class WorkflowGateway:
    """
    Stateless dispatcher to the workflow-automation endpoint.

    Args:
        candidate_lookup : Entity store lookup; raises CandidateNotFound.
        timeout          : Seconds for the remote call. Defaults to
                           settings.WORKFLOW_DISPATCH_TIMEOUT_SECS.
    """

    def __init__(
        self,
        candidate_lookup: Callable = get_candidate,
        timeout: float | None = None,
    ):
        self.candidate_lookup = candidate_lookup
        self.timeout = settings.WORKFLOW_DISPATCH_TIMEOUT_SECS if timeout is None else timeout

    def dispatch(self, request: DispatchRequest) -> DispatchOutcome:
        """
        Send one workflow trigger and log its outcome.

        Raises:
            ConfigurationError       no target endpoint (no call, no record)
            DispatchValidationError  unknown workflow kind / missing template (no call, no record)
            EntityLookupError        candidate_id does not resolve or the lookup fails (no call, no record)
            RemoteCallError          network error or non-2xx (one `failed` record)
        """
        self._validate(request)

        candidate = None
        if request.candidate_id:
            try:
                candidate = self.candidate_lookup(request.candidate_id)
            except CandidateNotFound as exc:
                raise EntityLookupError(
                    f"Failed to fetch candidate data for {request.candidate_id}"
                ) from exc
            except DatabaseError as exc:
                logger.error(
                    "Candidate lookup failed for workflow=%s candidate=%s: %s",
                    request.workflow_kind, request.candidate_id, exc,
                )
                raise EntityLookupError(
                    f"Failed to fetch candidate data for {request.candidate_id}"
                ) from exc
            logger.info(
                "Workflow %s enriched with candidate=%s (%s)",
                request.workflow_kind, candidate.pk, candidate.full_name,
            )

        payload = {
            "trigger": WORKFLOW_TRIGGER_TAG,
            "workflowType": request.workflow_kind,
            "candidateData": candidate.as_payload() if candidate is not None else None,
            "templateId": request.template_id,
            "customData": request.custom_data,
            "timestamp": timezone.now().isoformat(),
            "source": WORKFLOW_SOURCE_TAG,
        }
        body = json.dumps(payload, cls=DjangoJSONEncoder)
        logger.info(
            "Dispatching workflow=%s template=%s to %s (%d bytes)",
            request.workflow_kind, request.template_id, request.target_endpoint, len(body),
        )

        try:
            resp = http_requests.post(
                request.target_endpoint,
                data=body,
                headers=JSON_HEADERS,
                timeout=self.timeout,
            )
        except http_requests.RequestException as exc:
            error = RemoteCallError(None, str(exc))
            self._log_dispatch(request, candidate, WorkflowDispatch.Status.FAILED, error_detail=str(exc))
            logger.error("Workflow %s dispatch failed: %s", request.workflow_kind, exc)
            raise error from exc

        if not 200 <= resp.status_code < 300:
            text = resp.text[:2000]
            self._log_dispatch(
                request,
                candidate,
                WorkflowDispatch.Status.FAILED,
                error_detail=f"HTTP {resp.status_code}: {text}",
            )
            logger.error(
                "Workflow %s webhook returned %s: %s",
                request.workflow_kind, resp.status_code, text[:500],
            )
            raise RemoteCallError(resp.status_code, text)

        try:
            remote_response = resp.json()
        except ValueError:
            remote_response = {"raw": resp.text}

        record = self._log_dispatch(
            request,
            candidate,
            WorkflowDispatch.Status.TRIGGERED,
            remote_response=remote_response,
        )
        logger.info("Workflow %s triggered (status %s)", request.workflow_kind, resp.status_code)
        return DispatchOutcome(
            success=True,
            workflow_kind=request.workflow_kind,
            remote_response=remote_response,
            record=record,
        )

    # ── Internal helpers ───────────────────────────────────────────────────────

    @staticmethod
    def _validate(request: DispatchRequest) -> None:
        if not request.target_endpoint:
            raise ConfigurationError("No workflow webhook URL supplied.")
        if request.workflow_kind not in WorkflowDispatch.WorkflowKind.values:
            raise DispatchValidationError(f"Unknown workflow type: {request.workflow_kind!r}")
        if not request.template_id:
            raise DispatchValidationError("templateId is required.")

    @staticmethod
    def _log_dispatch(request, candidate, status, remote_response=None, error_detail=None):
        """Write the dispatch record. A failed write is logged, never raised."""
        try:
            return WorkflowDispatch.objects.create(
                workflow_kind=request.workflow_kind,
                candidate=candidate,
                template_id=request.template_id,
                status=status,
                remote_response=remote_response,
                error_detail=error_detail,
            )
        except DatabaseError as exc:
            logger.error(
                "Could not log %s dispatch of workflow=%s: %s",
                status, request.workflow_kind, exc,
                exc_info=True,
            )
            return None


# ── Candidate contact ──────────────────────────────────────────────────────────

def notify_candidate_contacted(
    candidate: dict,
    email_subject: str,
    email_message: str,
    *,
    webhook_url: str | None = None,
    timeout: float | None = None,
) -> NotifyResult:
    """
    Tell the automation service a recruiter contacted `candidate`.

    Posts to N8N_WEBHOOK_URL unless `webhook_url` is given. With no URL
    configured this is a successful no-op.
    """
    url = settings.N8N_WEBHOOK_URL if webhook_url is None else webhook_url
    if not url:
        logger.info("No n8n webhook URL configured, skipping candidate-contacted workflow")
        return NotifyResult(ok=True, message="No webhook configured")

    payload = {
        "timestamp": timezone.now().isoformat(),
        "triggered_from": CANDIDATE_CONTACTED_ORIGIN,
        "candidate": candidate,
        "email": {"subject": email_subject, "message": email_message},
    }
    if timeout is None:
        timeout = settings.WORKFLOW_DISPATCH_TIMEOUT_SECS

    try:
        resp = http_requests.post(
            url,
            data=json.dumps(payload, cls=DjangoJSONEncoder),
            headers=JSON_HEADERS,
            timeout=timeout,
        )
        if not 200 <= resp.status_code < 300:
            raise RemoteCallError(resp.status_code, resp.text[:500])
    except (http_requests.RequestException, RemoteCallError) as exc:
        logger.error("Candidate-contacted workflow failed: %s", exc)
        return NotifyResult(ok=False, error=str(exc))

    logger.info("Candidate-contacted workflow triggered for %s", candidate.get("email"))
    return NotifyResult(ok=True, message="Workflow triggered successfully")


def send_candidate_email(candidate: dict, subject: str, message: str) -> dict:
    """
    Process a recruiter's email to a candidate.

    The workflow notification is a side effect: its failure is surfaced in
    `workflowTriggered` / `workflowMessage` but never fails the operation.

    Raises:
        DispatchValidationError when the candidate email, subject or message is missing.
    """
    if not (candidate or {}).get("email") or not subject or not message:
        raise DispatchValidationError("Missing required fields")

    result = notify_candidate_contacted(candidate, subject, message)
    if not result.ok:
        logger.warning(
            "Email to %s processed without workflow notification: %s",
            candidate.get("email"), result.error,
        )

    return {
        "success": True,
        "message": "Email processed successfully",
        "workflowTriggered": result.ok,
        "workflowMessage": result.detail,
    }
