"""
interactions/store.py

Ledger store: durable, append-only storage of candidate interactions.

  LedgerStore        - the access contract the ledger manager relies on
  DjangoLedgerStore  - ORM-backed implementation over CandidateInteraction
  InteractionRecord  - immutable snapshot handed out to callers
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from django.core.exceptions import ValidationError
from django.db import DatabaseError, transaction

from candidates.models import Candidate
from interactions.errors import AppendError, InvalidInteraction, LoadError
from interactions.models import CandidateInteraction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InteractionRecord:
    id: str
    recruiter_id: str
    candidate_id: str
    kind: str
    occurred_at: datetime
    details: Any = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, row: CandidateInteraction) -> "InteractionRecord":
        return cls(
            id=str(row.pk),
            recruiter_id=str(row.recruiter_id),
            candidate_id=str(row.candidate_id),
            kind=row.kind,
            occurred_at=row.occurred_at,
            details=row.details,
            notes=row.notes,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class NewInteraction:
    """Fields supplied by the caller when appending to the ledger."""

    recruiter_id: str
    candidate_id: str
    kind: str
    notes: str | None = None
    details: Any = None
    occurred_at: datetime | None = None


class LedgerStore(ABC):
    """
    Access contract for the interaction ledger.
    Implementations raise AppendError / LoadError, never backend exceptions.
    """

    @abstractmethod
    def insert(self, interaction: NewInteraction) -> str:
        """Persist one interaction and return its id."""

    @abstractmethod
    def query(self, recruiter_id: str) -> list[InteractionRecord]:
        """All interactions owned by `recruiter_id`, most recent first."""


class DjangoLedgerStore(LedgerStore):

    def insert(self, interaction: NewInteraction) -> str:
        fields = {
            "recruiter_id": interaction.recruiter_id,
            "candidate_id": interaction.candidate_id,
            "kind": interaction.kind,
            "notes": interaction.notes,
            "details": interaction.details,
        }
        if interaction.occurred_at is not None:
            fields["occurred_at"] = interaction.occurred_at

        try:
            with transaction.atomic():
                # FK constraints are deferred to commit on most backends; check
                # up front so an unknown candidate fails inside this call.
                if not Candidate.objects.filter(pk=interaction.candidate_id).exists():
                    raise InvalidInteraction(f"Unknown candidate {interaction.candidate_id}")
                row = CandidateInteraction.objects.create(**fields)
        except ValidationError as exc:
            raise InvalidInteraction(f"Invalid interaction: {exc}") from exc
        except DatabaseError as exc:
            raise AppendError(f"Interaction insert failed: {exc}") from exc

        logger.info(
            "Interaction stored: id=%s kind=%s candidate=%s recruiter=%s",
            row.pk, row.kind, row.candidate_id, row.recruiter_id,
        )
        return str(row.pk)

    def query(self, recruiter_id: str) -> list[InteractionRecord]:
        try:
            rows = list(
                CandidateInteraction.objects
                .filter(recruiter_id=recruiter_id)
                .order_by("-occurred_at")
            )
        except (DatabaseError, ValidationError) as exc:
            raise LoadError(f"Interaction query failed: {exc}") from exc
        return [InteractionRecord.from_model(row) for row in rows]
