# intake/apps/treasury/models.py
import uuid
from django.db import models


class TransferAttempt(models.Model):
    """Audit row written for every treasury transfer run."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    deposit = models.ForeignKey(
        "deposits.Deposit", on_delete=models.CASCADE, related_name="transfer_attempts_log"
    )
    success = models.BooleanField(default=False, db_index=True)
    reason = models.CharField(max_length=32, blank=True, default="", db_index=True)
    state = models.CharField(max_length=32)  # last state reached
    ambiguous = models.BooleanField(default=False)
    amount = models.DecimalField(max_digits=78, decimal_places=0, default=0)
    top_up_tx_hash = models.CharField(max_length=80, null=True, blank=True)
    approval_tx_hash = models.CharField(max_length=80, null=True, blank=True)
    transfer_tx_hash = models.CharField(max_length=80, null=True, blank=True)
    remaining_balance = models.DecimalField(
        max_digits=78, decimal_places=0, null=True, blank=True
    )
    leftover_allowance = models.DecimalField(
        max_digits=78, decimal_places=0, null=True, blank=True
    )
    error = models.TextField(blank=True, default="")
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [models.Index(fields=["deposit", "created_at"], name="attempt_deposit_created_idx")]
