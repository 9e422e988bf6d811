import uuid

import django.core.serializers.json
import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("candidates", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="WorkflowDispatch",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "workflow_kind",
                    models.CharField(
                        choices=[
                            ("outreach", "Outreach"),
                            ("demo-booking", "Demo Booking"),
                            ("follow-up", "Follow-up"),
                            ("nurture", "Nurture"),
                        ],
                        db_index=True,
                        max_length=20,
                    ),
                ),
                ("template_id", models.CharField(max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[("triggered", "Triggered"), ("failed", "Failed")],
                        db_index=True,
                        max_length=20,
                    ),
                ),
                ("remote_response", models.JSONField(blank=True, encoder=django.core.serializers.json.DjangoJSONEncoder, null=True)),
                ("error_detail", models.TextField(blank=True, null=True)),
                ("triggered_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "candidate",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="workflow_dispatches",
                        to="candidates.candidate",
                    ),
                ),
            ],
            options={
                "verbose_name": "Workflow Dispatch",
                "verbose_name_plural": "Workflow Dispatches",
                "ordering": ["-triggered_at"],
            },
        ),
    ]
