"""
prescreening/views.py

  GET  /prescreening/                - the recruiter's pre-screens, most recent first
  POST /prescreening/<candidate_id>/ - run AI pre-screening for one candidate

Both require a logged-in user with a RecruiterProfile.
"""

import json
import logging

from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from candidates.services import CandidateNotFound, get_candidate
from interactions.sessions import get_bus
from prescreening.services import PreScreeningError, PreScreeningService, pre_screens_for
from recruiters.services import get_recruiter_for_user

logger = logging.getLogger(__name__)


def _recruiter_or_error(request):
    """Return (recruiter, None) or (None, error JsonResponse)."""
    if not request.user.is_authenticated:
        return None, JsonResponse({"error": "Unauthorized"}, status=401)
    recruiter = get_recruiter_for_user(request.user)
    if recruiter is None:
        return None, JsonResponse({"error": "Recruiter profile not found"}, status=403)
    return recruiter, None


@require_GET
def pre_screen_list(request):
    recruiter, error = _recruiter_or_error(request)
    if error is not None:
        return error
    return JsonResponse(
        {"preScreens": [pre_screen.as_payload() for pre_screen in pre_screens_for(recruiter)]}
    )


@require_POST
def run_pre_screening(request, candidate_id):
    recruiter, error = _recruiter_or_error(request)
    if error is not None:
        return error

    try:
        candidate = get_candidate(candidate_id)
    except CandidateNotFound:
        return JsonResponse({"error": "Candidate not found"}, status=404)

    resume_content = None
    if request.content_type == "application/json" and request.body:
        try:
            payload = json.loads(request.body)
        except json.JSONDecodeError:
            return JsonResponse({"error": "Invalid JSON body"}, status=400)
        if isinstance(payload, dict):
            resume_content = payload.get("resumeContent")

    try:
        pre_screen = PreScreeningService(get_bus()).run(
            recruiter, candidate, resume_content=resume_content
        )
    except PreScreeningError as exc:
        logger.error(
            "Pre-screening failed for candidate=%s recruiter=%s: %s",
            candidate.pk, recruiter.pk, exc,
            exc_info=True,
        )
        return JsonResponse(
            {"error": "Internal server error", "details": str(exc)},
            status=500,
        )

    return JsonResponse(
        {
            "success": True,
            "preScreenId": str(pre_screen.pk),
            "flags": pre_screen.flags,
            "questions": pre_screen.questions,
        }
    )
