import uuid

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


class PreScreen(models.Model):
    """
    Result of one AI pre-screening run for a candidate, owned by the
    recruiter who requested it.
    """

    class Status(models.TextChoices):
        COMPLETED = "completed", "Completed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    candidate = models.ForeignKey(
        "candidates.Candidate",
        on_delete=models.CASCADE,
        related_name="pre_screens",
    )
    recruiter = models.ForeignKey(
        "recruiters.RecruiterProfile",
        on_delete=models.CASCADE,
        related_name="pre_screens",
    )

    # [{"category", "question", "importance", "expectedAnswerType"}, ...]
    questions = models.JSONField(default=list, blank=True, encoder=DjangoJSONEncoder)
    # [{"type", "severity", "description", "recommendation"}, ...]
    flags = models.JSONField(default=list, blank=True, encoder=DjangoJSONEncoder)

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.COMPLETED,
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Pre-screen"
        verbose_name_plural = "Pre-screens"

    def __str__(self) -> str:
        return f"PreScreen {self.pk} candidate={self.candidate_id} ({self.status})"

    def as_payload(self) -> dict:
        return {
            "id": str(self.pk),
            "candidate_id": str(self.candidate_id),
            "recruiter_id": str(self.recruiter_id),
            "questions": self.questions or [],
            "flags": self.flags or [],
            "status": self.status,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }
