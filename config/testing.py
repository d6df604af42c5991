import os

SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "clockin_test"),
}

STORAGE_BACKEND = "memory"

DEFAULT_TENANT_ID = "test-tenant"

KIOSK_TOKEN = "test-kiosk"

ALLOWED_TARGET_MODELS = ["Member", "Employee"]

TARGET_MODEL_CONFIG = {}

LOG_LEVEL = "WARNING"

DEBUG = False
TESTING = True

AUTO_INIT_DB = False
