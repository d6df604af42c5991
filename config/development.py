import json
import os

SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "clockin"),
}

# "mysql" or "memory"
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "mysql")

DEFAULT_TENANT_ID = os.getenv("DEFAULT_TENANT_ID", "default")

# Token encoded in the kiosk QR code and required by the toggle endpoint
KIOSK_TOKEN = os.getenv("KIOSK_TOKEN", "CLOCKIN_KIOSK")

# Comma-separated; empty means every target model is accepted
ALLOWED_TARGET_MODELS = [m.strip() for m in os.getenv("ALLOWED_TARGET_MODELS", "").split(",") if m.strip()]

# Per-model overrides deep-merged onto the generated defaults, e.g.
# {"Member": {"duplicate_prevention_minutes": 10}}
TARGET_MODEL_CONFIG = json.loads(os.getenv("TARGET_MODEL_CONFIG", "{}"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")

DEBUG = True

# If enabled, app will apply schema.sql on startup (idempotent: CREATE IF NOT EXISTS)
AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "1")))
