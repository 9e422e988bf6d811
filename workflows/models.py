import uuid

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone


class WorkflowDispatch(models.Model):
    """
    Durable log of one call to the external workflow-automation endpoint.

    Written once per attempt that reached the remote side; attempts refused
    before the call (validation, unknown candidate) leave no row.
    """

    class WorkflowKind(models.TextChoices):
        OUTREACH     = "outreach",     "Outreach"
        DEMO_BOOKING = "demo-booking", "Demo Booking"
        FOLLOW_UP    = "follow-up",    "Follow-up"
        NURTURE      = "nurture",      "Nurture"

    class Status(models.TextChoices):
        TRIGGERED = "triggered", "Triggered"
        FAILED    = "failed",    "Failed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    workflow_kind = models.CharField(max_length=20, choices=WorkflowKind.choices, db_index=True)
    candidate = models.ForeignKey(
        "candidates.Candidate",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="workflow_dispatches",
    )
    template_id = models.CharField(max_length=255)
    status = models.CharField(max_length=20, choices=Status.choices, db_index=True)

    # Parsed body of the remote response ({"raw": text} when it was not JSON).
    remote_response = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    error_detail = models.TextField(null=True, blank=True)

    triggered_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-triggered_at"]
        verbose_name = "Workflow Dispatch"
        verbose_name_plural = "Workflow Dispatches"

    def __str__(self) -> str:
        return f"{self.workflow_kind} [{self.status}] template={self.template_id}"
