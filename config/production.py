import json
import os

SECRET_KEY = os.getenv("SECRET_KEY", "please-set-SECRET_KEY")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "clockin"),
}

STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "mysql")

DEFAULT_TENANT_ID = os.getenv("DEFAULT_TENANT_ID", "default")

KIOSK_TOKEN = os.getenv("KIOSK_TOKEN", "please-set-KIOSK_TOKEN")

ALLOWED_TARGET_MODELS = [m.strip() for m in os.getenv("ALLOWED_TARGET_MODELS", "").split(",") if m.strip()]

TARGET_MODEL_CONFIG = json.loads(os.getenv("TARGET_MODEL_CONFIG", "{}"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DEBUG = False

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
