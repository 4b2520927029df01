from django.contrib import admin
from .models import Deposit


@admin.register(Deposit)
class DepositAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "user_id",
        "address",
        "status",
        "expected_amount",
        "token_received",
        "transaction_hash",
        "last_transfer_reason",
        "created_at",
    )
    list_filter = ("status", "last_transfer_reason")
    search_fields = ("id", "user_id", "address", "transaction_hash")
    date_hierarchy = "created_at"
    exclude = ("secret_encrypted",)
    readonly_fields = (
        "address",
        "status",
        "native_balance",
        "token_balance",
        "token_received",
        "transaction_hash",
        "approval_tx_hash",
        "top_up_tx_hash",
        "amount_transferred",
        "remaining_balance",
        "leftover_allowance",
        "last_transfer_reason",
        "last_transfer_error",
        "transfer_attempts",
        "version",
        "confirmed_at",
        "released_at",
        "archived_at",
    )
