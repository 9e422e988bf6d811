import uuid

from django.conf import settings
from django.db import models

from hireledger.text_utils import build_full_name


class RecruiterProfile(models.Model):
    """
    Recruiter identity attached to a login. Its id is the opaque owner key
    every interaction record and pre-screen is scoped to.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="recruiter_profile",
    )

    first_name = models.CharField(max_length=150)
    last_name = models.CharField(max_length=150)
    email = models.CharField(max_length=254)
    company = models.CharField(max_length=255)
    job_title = models.CharField(max_length=255, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Recruiter Profile"
        verbose_name_plural = "Recruiter Profiles"

    def __str__(self) -> str:
        return f"{build_full_name(self.first_name, self.last_name)} @ {self.company}"
