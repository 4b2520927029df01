from django.urls import path
from .views import (
    create_deposit,
    deposit_status,
    trigger_transfer,
    user_pending_deposits,
    user_released_deposits,
)
from .webhook import stream_webhook

urlpatterns = [
    path("", create_deposit, name="create_deposit"),
    path("<uuid:deposit_id>/", deposit_status, name="deposit_status"),
    path("<uuid:deposit_id>/transfer/", trigger_transfer, name="trigger_transfer"),
    path("users/<str:user_id>/pending/", user_pending_deposits, name="user_pending_deposits"),
    path("users/<str:user_id>/released/", user_released_deposits, name="user_released_deposits"),
    path("webhook/stream/", stream_webhook, name="stream_webhook"),
]
