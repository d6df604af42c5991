from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, current_app, jsonify

from config import get_settings_module

from .analytics.controller import register as register_analytics
from .attendance.controller import register as register_attendance
from .container import Container, build_container
from .core.exceptions import ClockInError, NotInitializedError
from .database.bootstrap import apply_schema, list_tables
from .database.connection import DBConfig
from .targets.controller import register as register_targets

logger = logging.getLogger(__name__)

EXTENSION_KEY = "clockin"


def get_container(app: Optional[Flask] = None) -> Container:
    app = app or current_app
    container = app.extensions.get(EXTENSION_KEY)
    if container is None:
        raise NotInitializedError("clockin is not initialised on this app; call create_app() first")
    return container


def create_app(settings_module: Optional[str] = None) -> Flask:
    load_dotenv(override=False)
    app = Flask(__name__)

    settings_module = settings_module or get_settings_module()
    settings = importlib.import_module(settings_module)
    logging.basicConfig(
        level=str(getattr(settings, "LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    app.secret_key = getattr(settings, "SECRET_KEY")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))
    app.config["KIOSK_TOKEN"] = getattr(settings, "KIOSK_TOKEN", "CLOCKIN_KIOSK")
    app.config["DEFAULT_TENANT_ID"] = getattr(settings, "DEFAULT_TENANT_ID", "default")

    storage = getattr(settings, "STORAGE_BACKEND", "mysql")
    db_config = getattr(settings, "DB_CONFIG", None)
    logger.info("clockin settings=%s storage=%s", settings_module, storage)

    if storage == "mysql" and bool(getattr(settings, "AUTO_INIT_DB", False)):
        schema_path = Path(__file__).resolve().parents[3] / "database" / "schema.sql"
        apply_schema(db_config, schema_path=schema_path)
        logger.info(
            "Schema ready on %s (tables=%d)",
            DBConfig.from_mapping(db_config).describe(),
            len(list_tables(db_config)),
        )

    container = build_container(
        db_config=db_config,
        storage=storage,
        target_model_overrides=getattr(settings, "TARGET_MODEL_CONFIG", None),
        allowed_target_models=getattr(settings, "ALLOWED_TARGET_MODELS", None),
    )
    app.extensions[EXTENSION_KEY] = container

    @app.errorhandler(ClockInError)
    def handle_clockin_error(exc: ClockInError):
        if exc.status >= 500:
            logger.error("%s: %s", exc.code, exc.message)
        return jsonify(exc.to_dict()), exc.status

    @app.after_request
    def drain_events(response):
        container.dispatcher.drain()
        return response

    register_targets(app, container)
    register_attendance(app, container)
    register_analytics(app, container)

    return app
