import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Deposit",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("user_id", models.CharField(db_index=True, max_length=128)),
                ("address", models.CharField(max_length=64, unique=True)),
                ("secret_encrypted", models.BinaryField()),
                ("expected_amount", models.DecimalField(decimal_places=18, default=0, max_digits=36)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("CONFIRMED", "Confirmed"),
                            ("RELEASED", "Released"),
                            ("EXPIRED", "Expired"),
                        ],
                        db_index=True,
                        default="PENDING",
                        max_length=16,
                    ),
                ),
                ("native_balance", models.DecimalField(decimal_places=0, default=0, max_digits=78)),
                ("token_balance", models.DecimalField(decimal_places=0, default=0, max_digits=78)),
                ("token_received", models.DecimalField(decimal_places=0, default=0, max_digits=78)),
                ("last_checked_at", models.DateTimeField(blank=True, null=True)),
                ("transaction_hash", models.CharField(blank=True, db_index=True, max_length=80, null=True)),
                ("approval_tx_hash", models.CharField(blank=True, max_length=80, null=True)),
                ("top_up_tx_hash", models.CharField(blank=True, max_length=80, null=True)),
                ("amount_transferred", models.DecimalField(blank=True, decimal_places=0, max_digits=78, null=True)),
                ("remaining_balance", models.DecimalField(blank=True, decimal_places=0, max_digits=78, null=True)),
                ("leftover_allowance", models.DecimalField(blank=True, decimal_places=0, max_digits=78, null=True)),
                ("last_transfer_reason", models.CharField(blank=True, default="", max_length=32)),
                ("last_transfer_error", models.TextField(blank=True, default="")),
                ("transfer_attempts", models.PositiveIntegerField(default=0)),
                ("version", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("released_at", models.DateTimeField(blank=True, null=True)),
                ("archived_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "indexes": [models.Index(fields=["user_id", "status", "created_at"], name="deposit_user_status_idx")],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ["PENDING", "CONFIRMED"])),
                        fields=("user_id",),
                        name="one_open_deposit_per_user",
                    )
                ],
            },
        ),
    ]
