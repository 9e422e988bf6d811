"""
workflows/views.py

Browser-callable workflow endpoints (CSRF-exempt, CORS-enabled).

  POST /workflows/trigger/          - dispatch a workflow to a caller-supplied n8n URL
  POST /workflows/candidate-email/  - process a recruiter email to a candidate and
                                      notify the configured n8n webhook

OPTIONS on either path answers the CORS preflight.
"""

import functools
import json
import logging

from django.http import HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt

from hireledger.constants import CORS_HEADERS
from interactions.models import CandidateInteraction
from interactions.reporting import MessagesReporter
from interactions.sessions import get_registry
from recruiters.services import get_recruiter_for_user
from workflows.services import (
    ConfigurationError,
    DispatchRequest,
    DispatchValidationError,
    EntityLookupError,
    RemoteCallError,
    WorkflowGateway,
    send_candidate_email,
)

logger = logging.getLogger(__name__)


def cors_endpoint(view):
    """Answer OPTIONS preflights, allow POST only, and attach CORS headers."""

    @csrf_exempt
    @functools.wraps(view)
    def wrapper(request, *args, **kwargs):
        if request.method == "OPTIONS":
            response = HttpResponse(status=200)
        elif request.method != "POST":
            response = JsonResponse({"error": "Method not allowed"}, status=405)
            response["Allow"] = "POST, OPTIONS"
        else:
            response = view(request, *args, **kwargs)
        for header, value in CORS_HEADERS.items():
            response[header] = value
        return response

    return wrapper


def _json_body(request):
    try:
        payload = json.loads(request.body or b"{}")
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def _error(message: str, status: int, details: str | None = None) -> JsonResponse:
    body = {"error": message}
    if details:
        body["details"] = details
    return JsonResponse(body, status=status)


@cors_endpoint
def trigger_workflow(request):
    payload = _json_body(request)
    if payload is None:
        return _error("Invalid JSON body", 400)

    dispatch_request = DispatchRequest(
        workflow_kind=payload.get("workflowType") or "",
        template_id=payload.get("templateId") or "",
        target_endpoint=payload.get("n8nWebhookUrl") or "",
        candidate_id=payload.get("candidateId") or None,
        custom_data=payload.get("data") or {},
    )

    try:
        outcome = WorkflowGateway().dispatch(dispatch_request)
    except (ConfigurationError, DispatchValidationError) as exc:
        return _error(str(exc), 400)
    except EntityLookupError as exc:
        return _error(str(exc), 404)
    except RemoteCallError as exc:
        return _error(str(exc), 502, details="Check server logs for more information")
    except Exception as exc:
        logger.error("Unexpected error triggering workflow: %s", exc, exc_info=True)
        return _error("Internal server error", 500, details="Check server logs for more information")

    return JsonResponse(
        {
            "success": True,
            "workflowType": outcome.workflow_kind,
            "n8nResult": outcome.remote_response,
            "message": "Workflow triggered successfully",
        }
    )


@cors_endpoint
def candidate_email(request):
    payload = _json_body(request)
    if payload is None:
        return _error("Invalid JSON body", 400)

    candidate = payload.get("candidate") or {}
    email = payload.get("email") or {}
    if not isinstance(candidate, dict) or not isinstance(email, dict):
        return _error("Missing required fields", 400)
    subject = email.get("subject")
    message = email.get("message")

    try:
        result = send_candidate_email(candidate, subject, message)
    except DispatchValidationError as exc:
        return _error(str(exc), 400)
    except Exception as exc:
        logger.error("Unexpected error processing candidate email: %s", exc, exc_info=True)
        return _error("Internal server error", 500, details=str(exc))

    recruiter = get_recruiter_for_user(request.user)
    if recruiter is not None and candidate.get("id"):
        appended = get_registry().get(recruiter.pk).append(
            candidate["id"],
            CandidateInteraction.Kind.EMAIL_SENT,
            notes=subject,
            details={"subject": subject, "workflowTriggered": result["workflowTriggered"]},
            reporter=MessagesReporter(request),
        )
        result["interactionRecorded"] = appended.ok

    return JsonResponse(result)
