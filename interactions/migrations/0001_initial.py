import uuid

import django.core.serializers.json
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("candidates", "0001_initial"),
        ("recruiters", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="CandidateInteraction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("saved", "Saved"),
                            ("email_sent", "Email Sent"),
                            ("response_received", "Response Received"),
                            ("interview_scheduled", "Interview Scheduled"),
                            ("rejected", "Rejected"),
                            ("hired", "Hired"),
                            ("pre_screening_completed", "Pre-screening Completed"),
                        ],
                        db_index=True,
                        max_length=30,
                    ),
                ),
                ("occurred_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("details", models.JSONField(blank=True, encoder=django.core.serializers.json.DjangoJSONEncoder, null=True)),
                ("notes", models.TextField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "candidate",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="interactions",
                        to="candidates.candidate",
                    ),
                ),
                (
                    "recruiter",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="interactions",
                        to="recruiters.recruiterprofile",
                    ),
                ),
            ],
            options={
                "verbose_name": "Candidate Interaction",
                "verbose_name_plural": "Candidate Interactions",
                "ordering": ["-occurred_at"],
                "indexes": [
                    models.Index(fields=["recruiter", "-occurred_at"], name="interaction_recruiter_recent"),
                ],
            },
        ),
    ]
