# intake/apps/deposits/models.py
import uuid
from django.db import models

# uint256 fits in 78 decimal digits
UINT256 = {"max_digits": 78, "decimal_places": 0}


class DepositStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    CONFIRMED = "CONFIRMED", "Confirmed"
    RELEASED = "RELEASED", "Released"
    EXPIRED = "EXPIRED", "Expired"


OPEN_STATUSES = (DepositStatus.PENDING, DepositStatus.CONFIRMED)


class Deposit(models.Model):
    """One-time deposit address issued to a user."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user_id = models.CharField(max_length=128, db_index=True)
    address = models.CharField(max_length=64, unique=True)
    secret_encrypted = models.BinaryField()  # Fernet
    expected_amount = models.DecimalField(
        max_digits=36, decimal_places=18, default=0
    )  # token units; 0 = any amount
    status = models.CharField(
        max_length=16,
        choices=DepositStatus.choices,
        default=DepositStatus.PENDING,
        db_index=True,
    )

    # Last observed on-chain state, smallest units
    native_balance = models.DecimalField(default=0, **UINT256)
    token_balance = models.DecimalField(default=0, **UINT256)
    token_received = models.DecimalField(default=0, **UINT256)
    last_checked_at = models.DateTimeField(null=True, blank=True)

    # Sweep result
    transaction_hash = models.CharField(max_length=80, null=True, blank=True, db_index=True)
    approval_tx_hash = models.CharField(max_length=80, null=True, blank=True)
    top_up_tx_hash = models.CharField(max_length=80, null=True, blank=True)
    amount_transferred = models.DecimalField(null=True, blank=True, **UINT256)
    remaining_balance = models.DecimalField(null=True, blank=True, **UINT256)
    leftover_allowance = models.DecimalField(null=True, blank=True, **UINT256)

    # Operator visibility into the most recent sweep attempt
    last_transfer_reason = models.CharField(max_length=32, blank=True, default="")
    last_transfer_error = models.TextField(blank=True, default="")
    transfer_attempts = models.PositiveIntegerField(default=0)

    version = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    released_at = models.DateTimeField(null=True, blank=True)
    archived_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        indexes = [
            models.Index(fields=["user_id", "status", "created_at"], name="deposit_user_status_idx")
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["user_id"],
                condition=models.Q(status__in=["PENDING", "CONFIRMED"]),
                name="one_open_deposit_per_user",
            )
        ]

    def __str__(self):
        return f"{self.address} ({self.status})"

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATUSES
