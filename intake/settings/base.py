import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()  # Load .env file if present

BASE_DIR = Path(__file__).resolve().parents[2]
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-key")
DEBUG = os.getenv("DJANGO_DEBUG", "false").lower() in {"1", "true", "yes"}
raw_hosts = os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1")
ALLOWED_HOSTS = [h.strip() for h in raw_hosts.split(",") if h.strip()]
# Must be a urlsafe base64 32-byte key (Fernet.generate_key()); this one is for dev only
FERNET_KEY = os.getenv("FERNET_KEY", "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY=")

SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

INSTALLED_APPS = [
    # Django Admin Deps
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Our apps
    "intake.apps.deposits.apps.DepositsConfig",
    "intake.apps.treasury.apps.TreasuryConfig",
    "whitenoise.runserver_nostatic",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "intake.urls"
TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [BASE_DIR / "templates"],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ]
        },
    }
]
WSGI_APPLICATION = "intake.wsgi.application"

# Postgres by default; override with dev/test settings as needed
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "HOST": os.getenv("DB_HOST", "localhost"),
        "PORT": os.getenv("DB_PORT", "5432"),
        "NAME": os.getenv("DB_NAME", "intake_db"),
        "USER": os.getenv("DB_USER", "intake_user"),
        "PASSWORD": os.getenv("DB_PASSWORD", "intake_password"),
    }
}

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {
        "BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage"
    },
}

DATABASE_URL = os.getenv("DATABASE_URL")
if DATABASE_URL:
    from urllib.parse import urlparse

    parsed = urlparse(DATABASE_URL)
    DATABASES["default"].update(
        {
            "NAME": parsed.path.lstrip("/"),
            "USER": parsed.username,
            "PASSWORD": parsed.password,
            "HOST": parsed.hostname,
            "PORT": parsed.port or "5432",
            "OPTIONS": {"sslmode": os.getenv("DB_SSLMODE", "require")},
        }
    )

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        },
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "standard"},
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django": {"handlers": ["console"], "level": "WARNING", "propagate": False},
        "web3": {"handlers": ["console"], "level": "WARNING", "propagate": False},
    },
}

# Celery configuration
REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", REDIS_URL)
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", CELERY_BROKER_URL)
CELERY_TASK_DEFAULT_QUEUE = os.getenv("CELERY_TASK_DEFAULT_QUEUE", "deposits")
CELERY_TASK_ACKS_LATE = True
CELERY_TASK_TIME_LIMIT = int(os.getenv("CELERY_TASK_TIME_LIMIT", "1800"))

CELERY_BROKER_CONNECTION_RETRY_ON_STARTUP = True

# ==============================================================================
# Chain / Treasury Configuration
# ==============================================================================

# BSC JSON-RPC endpoint (Ankr, public dataseed, or a private node)
BSC_RPC_URL = os.getenv("BSC_RPC_URL", "https://bsc-dataseed1.binance.org/")
BSC_CHAIN_ID = int(os.getenv("BSC_CHAIN_ID", "56"))

# USDT (BEP-20) on BSC uses 18 decimals
USDT_CONTRACT_ADDRESS = os.getenv(
    "USDT_CONTRACT_ADDRESS", "0x55d398326f99059fF775485246999027B3197955"
)
USDT_DECIMALS = int(os.getenv("USDT_DECIMALS", "18"))

TREASURY_ADDRESS = os.getenv("TREASURY_ADDRESS", "")
GAS_PAYER_PRIVATE_KEY = os.getenv("GAS_PAYER_PRIVATE_KEY", "")

# Gas policy
FALLBACK_GAS_PRICE_GWEI = os.getenv("FALLBACK_GAS_PRICE_GWEI", "5")
NATIVE_TRANSFER_GAS_LIMIT = int(os.getenv("NATIVE_TRANSFER_GAS_LIMIT", "21000"))
TRANSFER_FROM_GAS_RESERVE = int(os.getenv("TRANSFER_FROM_GAS_RESERVE", "100000"))
APPROVAL_GAS_BUFFER_PCT = int(os.getenv("APPROVAL_GAS_BUFFER_PCT", "50"))
TRANSFER_GAS_BUFFER_PCT = int(os.getenv("TRANSFER_GAS_BUFFER_PCT", "20"))

# Timing
TOP_UP_SETTLE_SECONDS = float(os.getenv("TOP_UP_SETTLE_SECONDS", "3"))
RECEIPT_TIMEOUT_SECONDS = int(os.getenv("RECEIPT_TIMEOUT_SECONDS", "180"))
DEPOSIT_EXPIRY_DAYS = int(os.getenv("DEPOSIT_EXPIRY_DAYS", "30"))
DEPOSIT_POLL_INTERVAL_SECONDS = int(os.getenv("DEPOSIT_POLL_INTERVAL_SECONDS", "60"))
RECONCILE_INTERVAL_SECONDS = int(os.getenv("RECONCILE_INTERVAL_SECONDS", "900"))

# Locks: "redis" for multi-worker deployments, "local" for a single process
LOCK_BACKEND = os.getenv("LOCK_BACKEND", "redis")
TREASURY_LEASE_SECONDS = int(os.getenv("TREASURY_LEASE_SECONDS", "900"))
SIGNER_LOCK_WAIT_SECONDS = int(os.getenv("SIGNER_LOCK_WAIT_SECONDS", "600"))

# Indexing API (Moralis Web3 Data API)
MORALIS_API_KEY = os.getenv("MORALIS_API_KEY", "")
MORALIS_BASE_URL = os.getenv("MORALIS_BASE_URL", "https://deep-index.moralis.io/api/v2.2")
MORALIS_CHAIN = os.getenv("MORALIS_CHAIN", "bsc")

# Webhook / ops surface
DEPOSIT_WEBHOOK_SECRET = os.getenv("DEPOSIT_WEBHOOK_SECRET", "")
OPS_API_TOKEN = os.getenv("OPS_API_TOKEN", "")

# Operator alerts go to a Telegram chat when both are set
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
OPS_ALERT_CHAT_ID = os.getenv("OPS_ALERT_CHAT_ID", "")

CELERY_BEAT_SCHEDULE = {
    "poll-deposits": {
        "task": "intake.apps.deposits.tasks.poll_deposits_task",
        "schedule": float(DEPOSIT_POLL_INTERVAL_SECONDS),
    },
    "archive-expired-deposits": {
        "task": "intake.apps.deposits.tasks.archive_expired_deposits_task",
        "schedule": 3600.0,
    },
    "reconcile-deposits": {
        "task": "intake.apps.deposits.tasks.reconcile_deposits_task",
        "schedule": float(RECONCILE_INTERVAL_SECONDS),
    },
}
