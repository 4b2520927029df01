import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("deposits", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="TransferAttempt",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("success", models.BooleanField(db_index=True, default=False)),
                ("reason", models.CharField(blank=True, db_index=True, default="", max_length=32)),
                ("state", models.CharField(max_length=32)),
                ("ambiguous", models.BooleanField(default=False)),
                ("amount", models.DecimalField(decimal_places=0, default=0, max_digits=78)),
                ("top_up_tx_hash", models.CharField(blank=True, max_length=80, null=True)),
                ("approval_tx_hash", models.CharField(blank=True, max_length=80, null=True)),
                ("transfer_tx_hash", models.CharField(blank=True, max_length=80, null=True)),
                ("remaining_balance", models.DecimalField(blank=True, decimal_places=0, max_digits=78, null=True)),
                ("leftover_allowance", models.DecimalField(blank=True, decimal_places=0, max_digits=78, null=True)),
                ("error", models.TextField(blank=True, default="")),
                ("details", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "deposit",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="transfer_attempts_log",
                        to="deposits.deposit",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["deposit", "created_at"], name="attempt_deposit_created_idx")],
            },
        ),
    ]
