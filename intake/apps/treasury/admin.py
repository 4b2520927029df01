from django.contrib import admin
from .models import TransferAttempt


@admin.register(TransferAttempt)
class TransferAttemptAdmin(admin.ModelAdmin):
    list_display = (
        "created_at",
        "deposit",
        "success",
        "reason",
        "state",
        "ambiguous",
        "amount",
        "transfer_tx_hash",
    )
    list_filter = ("success", "reason", "ambiguous")
    search_fields = (
        "deposit__address",
        "top_up_tx_hash",
        "approval_tx_hash",
        "transfer_tx_hash",
    )
    date_hierarchy = "created_at"
    readonly_fields = [f.name for f in TransferAttempt._meta.fields]
