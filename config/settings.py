import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name, default=False):
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "lifeline-dev-secret-change-me")
DEBUG = _env_bool("DJANGO_DEBUG", True)
ALLOWED_HOSTS = [h for h in os.environ.get("DJANGO_ALLOWED_HOSTS", "*").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "channels",

    "accounts",
    "blood.apps.BloodConfig",
    "communication",
    "assistant",
    "ledger",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

ASGI_APPLICATION = "config.asgi.application"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("LIFELINE_SQLITE_PATH", str(BASE_DIR / "db.sqlite3")),
    }
}

CHANNEL_LAYERS = {
    "default": {"BACKEND": "channels.layers.InMemoryChannelLayer"},
}

AUTH_USER_MODEL = "accounts.CustomUser"

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.environ.get("LIFELINE_TIME_ZONE", "Asia/Kolkata")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# -------- Email outbox --------
EMAIL_BACKEND = os.environ.get("DJANGO_EMAIL_BACKEND", "django.core.mail.backends.console.EmailBackend")
DEFAULT_FROM_EMAIL = os.environ.get("DEFAULT_FROM_EMAIL", "Lifeline <no-reply@lifeline.local>")
EMAIL_QUEUE_BATCH_SIZE = int(os.environ.get("EMAIL_QUEUE_BATCH_SIZE", 40))
EMAIL_QUEUE_MAX_ATTEMPTS = int(os.environ.get("EMAIL_QUEUE_MAX_ATTEMPTS", 3))

# -------- Lifeline --------
# Strategies are chosen here once; nothing switches them mid-session.
LIFELINE_AI_BACKEND = os.environ.get("LIFELINE_AI_BACKEND", "offline")  # gemini / offline
LIFELINE_LEDGER_BACKEND = os.environ.get("LIFELINE_LEDGER_BACKEND", "disabled")  # algorand / disabled
LIFELINE_FUNCTION_RESULT_FEEDBACK = os.environ.get("LIFELINE_FUNCTION_RESULT_FEEDBACK", "first")  # first / all

LIFELINE_DONOR_RESULT_LIMIT = 10
LIFELINE_DEFAULT_MAX_DISTANCE_KM = 50
LIFELINE_ELIGIBILITY_DAYS = 90
LIFELINE_EMERGENCY_PHONE = os.environ.get("LIFELINE_EMERGENCY_PHONE", "108")

GOOGLE_AI_KEY = os.environ.get("GOOGLE_AI_KEY", "")
LIFELINE_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
LIFELINE_GEMINI_MODEL = os.environ.get("LIFELINE_GEMINI_MODEL", "gemini-1.5-flash")
LIFELINE_GEMINI_TIMEOUT = int(os.environ.get("LIFELINE_GEMINI_TIMEOUT", 25))

ALGORAND_ALGOD_URL = os.environ.get("ALGORAND_ALGOD_URL", "https://testnet-api.algonode.cloud")
ALGORAND_ALGOD_TOKEN = os.environ.get("ALGORAND_ALGOD_TOKEN", "")
ALGORAND_SENDER_MNEMONIC = os.environ.get("ALGORAND_SENDER_MNEMONIC", "")
ALGORAND_CONFIRMATION_ROUNDS = 4

# -------- Logging --------
LIFELINE_LOG_LEVEL = os.environ.get("LIFELINE_LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "lifeline": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "lifeline",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "WARNING",
    },
    "loggers": {
        app: {"handlers": ["console"], "level": LIFELINE_LOG_LEVEL, "propagate": False}
        for app in ("accounts", "blood", "communication", "assistant", "ledger", "core")
    },
}
