"""
candidates/services.py

Entity store for candidate profiles.

Public services:
  get_candidate(candidate_id) → Candidate   (raises CandidateNotFound)
"""

import logging

from django.core.exceptions import ValidationError

from candidates.models import Candidate

logger = logging.getLogger(__name__)


class CandidateNotFound(Exception):
    """Raised when no candidate exists for the requested id."""


def get_candidate(candidate_id) -> Candidate:
    """
    Single-row lookup by primary key.

    Malformed ids (not a UUID) are treated the same as missing rows.
    """
    try:
        return Candidate.objects.get(pk=candidate_id)
    except (Candidate.DoesNotExist, ValidationError, ValueError) as exc:
        logger.warning("Candidate lookup failed for id=%s: %s", candidate_id, exc)
        raise CandidateNotFound(f"Candidate {candidate_id} not found") from exc
