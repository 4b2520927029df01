from .base import *

DEBUG = False
ALLOWED_HOSTS = ["*"]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

LOCK_BACKEND = "local"
TOP_UP_SETTLE_SECONDS = 0
TREASURY_ADDRESS = "0x000000000000000000000000000000000000dEaD"
# Hardhat account #0, never funded on BSC
GAS_PAYER_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
DEPOSIT_WEBHOOK_SECRET = "test-webhook-secret"
OPS_API_TOKEN = "test-ops-token"
MORALIS_API_KEY = "test-moralis-key"
TELEGRAM_BOT_TOKEN = ""
OPS_ALERT_CHAT_ID = ""
