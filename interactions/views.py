"""
interactions/views.py

JSON endpoints over the recruiter's interaction ledger.

  GET  /interactions/               - ledger, most recent first
  GET  /interactions/?candidate=ID  - ledger entries for one candidate
  POST /interactions/               - append an interaction

The recruiter context is the RecruiterProfile of the logged-in user. Without
one, GET answers an empty list and POST answers 401.
"""

import json
import logging

from django.http import JsonResponse
from django.views.decorators.http import require_http_methods

from interactions.errors import InvalidInteraction, Unauthorized
from interactions.ledger import InteractionLedger
from interactions.reporting import MessagesReporter
from interactions.sessions import get_bus, get_registry
from interactions.store import DjangoLedgerStore
from recruiters.services import get_recruiter_for_user

logger = logging.getLogger(__name__)


def _ledger_for(request) -> InteractionLedger:
    recruiter = get_recruiter_for_user(request.user)
    if recruiter is None:
        # Unbound, unstarted ledger: reads are empty and writes are refused.
        return InteractionLedger(DjangoLedgerStore(), get_bus())
    return get_registry().get(recruiter.pk)


def _serialize(records) -> list[dict]:
    return [record.as_dict() for record in records]


@require_http_methods(["GET", "POST"])
def interaction_list(request):
    ledger = _ledger_for(request)
    reporter = MessagesReporter(request)

    if request.method == "GET":
        records = ledger.load(reporter=reporter)
        candidate_id = request.GET.get("candidate")
        if candidate_id:
            records = ledger.by_candidate(candidate_id)
        return JsonResponse({"interactions": _serialize(records)})

    try:
        payload = json.loads(request.body or b"{}")
    except json.JSONDecodeError:
        return JsonResponse({"error": "Invalid JSON body"}, status=400)
    if not isinstance(payload, dict):
        return JsonResponse({"error": "Invalid JSON body"}, status=400)

    candidate_id = payload.get("candidateId")
    kind = payload.get("kind")
    if not candidate_id or not kind:
        return JsonResponse({"error": "Missing required fields"}, status=400)

    result = ledger.append(
        candidate_id,
        kind,
        notes=payload.get("notes"),
        details=payload.get("details"),
        reporter=reporter,
    )

    if result.ok:
        return JsonResponse(
            {
                "success": True,
                "id": result.record_id,
                "interactions": _serialize(ledger.records),
            },
            status=201,
        )

    if isinstance(result.error, Unauthorized):
        status = 401
    elif isinstance(result.error, InvalidInteraction):
        status = 400
    else:
        status = 500
    return JsonResponse({"success": False, "error": str(result.error)}, status=status)
