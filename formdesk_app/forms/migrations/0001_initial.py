import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Form",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("title", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True)),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("general", "General"),
                            ("survey", "Survey"),
                            ("attendance", "Attendance"),
                            ("quiz", "Quiz"),
                        ],
                        db_index=True,
                        max_length=20,
                    ),
                ),
                (
                    "slug",
                    models.SlugField(editable=False, max_length=80, unique=True),
                ),
                ("fields", models.JSONField(blank=True, default=list)),
                ("settings", models.JSONField(blank=True, default=dict)),
                ("submission_policy", models.JSONField(blank=True, default=dict)),
                ("start_at", models.DateTimeField(blank=True, null=True)),
                ("end_at", models.DateTimeField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("draft", "Draft"),
                            ("published", "Published"),
                            ("archived", "Archived"),
                        ],
                        db_index=True,
                        default="draft",
                        max_length=20,
                    ),
                ),
                ("published_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "owner",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="forms",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-updated_at", "-id"],
                "indexes": [
                    models.Index(
                        fields=["owner", "-updated_at"], name="form_owner_updated_idx"
                    ),
                    models.Index(fields=["status", "type"], name="form_status_type_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="FormResponse",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                ("responder", models.JSONField(blank=True, default=dict)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                (
                    "submitted_at",
                    models.DateTimeField(
                        db_index=True, default=django.utils.timezone.now
                    ),
                ),
                (
                    "duration_ms",
                    models.PositiveIntegerField(blank=True, null=True),
                ),
                ("answers", models.JSONField(default=list)),
                ("score", models.FloatField(blank=True, null=True)),
                ("max_score", models.FloatField(blank=True, null=True)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                (
                    "dedupe_email",
                    models.CharField(blank=True, max_length=254, null=True),
                ),
                (
                    "dedupe_student_id",
                    models.CharField(blank=True, max_length=100, null=True),
                ),
                (
                    "form",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="responses",
                        to="forms.form",
                    ),
                ),
            ],
            options={
                "ordering": ["-submitted_at", "-id"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("dedupe_email__isnull", False)),
                        fields=("form", "dedupe_email"),
                        name="one_response_per_email_per_form",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("dedupe_student_id__isnull", False)),
                        fields=("form", "dedupe_student_id"),
                        name="one_response_per_student_per_form",
                    ),
                ],
            },
        ),
    ]
