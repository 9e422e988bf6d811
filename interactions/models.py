import uuid

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone


class CandidateInteraction(models.Model):
    """
    One entry in a recruiter's interaction ledger.

    Append-only: rows are created once and never updated by the application.
    Each recruiter's view is ordered by `occurred_at`, most recent first.
    """

    class Kind(models.TextChoices):
        SAVED                   = "saved",                   "Saved"
        EMAIL_SENT              = "email_sent",              "Email Sent"
        RESPONSE_RECEIVED       = "response_received",       "Response Received"
        INTERVIEW_SCHEDULED     = "interview_scheduled",     "Interview Scheduled"
        REJECTED                = "rejected",                "Rejected"
        HIRED                   = "hired",                   "Hired"
        PRE_SCREENING_COMPLETED = "pre_screening_completed", "Pre-screening Completed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    recruiter = models.ForeignKey(
        "recruiters.RecruiterProfile",
        on_delete=models.CASCADE,
        related_name="interactions",
    )
    candidate = models.ForeignKey(
        "candidates.Candidate",
        on_delete=models.CASCADE,
        related_name="interactions",
    )
    kind = models.CharField(max_length=30, choices=Kind.choices, db_index=True)
    occurred_at = models.DateTimeField(default=timezone.now)

    # Producer-owned structured payload; the ledger never inspects it.
    details = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    notes = models.TextField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-occurred_at"]
        indexes = [
            models.Index(fields=["recruiter", "-occurred_at"], name="interaction_recruiter_recent"),
        ]
        verbose_name = "Candidate Interaction"
        verbose_name_plural = "Candidate Interactions"

    def __str__(self) -> str:
        return f"{self.kind} - candidate={self.candidate_id} recruiter={self.recruiter_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Candidate interactions are append-only and cannot be modified.")
        super().save(*args, **kwargs)
