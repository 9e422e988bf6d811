import uuid

from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.forms.models import model_to_dict

from hireledger.text_utils import build_full_name


class Candidate(models.Model):
    """
    Candidate profile. Referenced by interaction records, pre-screens and
    workflow dispatches; loaded in full when a dispatch is enriched.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    first_name = models.CharField(max_length=150)
    last_name = models.CharField(max_length=150)

    # Contact
    email = models.CharField(max_length=254, db_index=True)
    phone = models.CharField(max_length=50, null=True, blank=True)
    location = models.CharField(max_length=255, null=True, blank=True)

    # Professional profile
    title = models.CharField(max_length=255, null=True, blank=True)
    summary = models.TextField(null=True, blank=True)
    # List of skill labels, e.g. ["Python", "Django"]
    skills = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    experience_years = models.PositiveSmallIntegerField(null=True, blank=True)
    education = models.TextField(null=True, blank=True)
    salary_expectation = models.PositiveIntegerField(null=True, blank=True)

    linkedin_url = models.URLField(null=True, blank=True)
    github_url = models.URLField(null=True, blank=True)
    portfolio_url = models.URLField(null=True, blank=True)

    # Plain text extracted from the uploaded resume (extraction lives elsewhere).
    resume_content = models.TextField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Candidate"
        verbose_name_plural = "Candidates"

    def __str__(self) -> str:
        return f"{self.full_name} ({self.email})"

    @property
    def full_name(self) -> str:
        return build_full_name(self.first_name, self.last_name)

    def as_payload(self) -> dict:
        """Full record as a plain dict, suitable for an outbound JSON body."""
        data = model_to_dict(self)
        data["id"] = str(self.pk)
        data["created_at"] = self.created_at
        data["updated_at"] = self.updated_at
        return data
