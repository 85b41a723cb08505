from __future__ import annotations

import atexit
import importlib
import logging
from typing import Optional

from dotenv import load_dotenv
from flask import Flask

from config import get_settings_module

from .attendance.controller import register as register_attendance
from .backup.controller import register as register_backup
from .common.http import register_error_handlers
from .container import Container, build_container
from .core.exceptions import ValidationError

logger = logging.getLogger(__name__)


def load_settings():
    load_dotenv(override=False)
    return importlib.import_module(get_settings_module())


def require_remote_backend(settings) -> None:
    """Command-line tools must run against the shared store."""
    if getattr(settings, "STORE_BACKEND", "memory") == "memory":
        name = getattr(settings, "__name__", "settings")
        raise ValidationError(f"{name} uses the in-memory store; set STORE_BACKEND=mysql or APP_ENV=production")


def container_from_settings(settings) -> Container:
    backend = getattr(settings, "STORE_BACKEND", "memory")
    db_config = getattr(settings, "DB_CONFIG", {})
    logger.info(
        "settings=%s store=%s db=%s@%s:%s/%s",
        settings.__name__,
        backend,
        db_config.get("user"),
        db_config.get("host"),
        db_config.get("port", 3306),
        db_config.get("database"),
    )
    return build_container(
        cache_path=getattr(settings, "CACHE_PATH"),
        store_backend=backend,
        db_config=db_config,
        cache_max_age_seconds=int(getattr(settings, "CACHE_MAX_AGE_SECONDS", 300)),
        batch_limit=int(getattr(settings, "REMOTE_BATCH_LIMIT", 500)),
        poll_seconds=float(getattr(settings, "SUBSCRIPTION_POLL_SECONDS", 5)),
        background_workers=int(getattr(settings, "BACKGROUND_WORKERS", 2)),
    )


def create_app(container: Optional[Container] = None) -> Flask:
    settings = load_settings()
    app = Flask(__name__)

    app.secret_key = getattr(settings, "SECRET_KEY")
    app.config["DEBUG"] = bool(getattr(settings, "DEBUG", False))
    app.config["TESTING"] = bool(getattr(settings, "TESTING", False))

    logging.basicConfig(
        level=getattr(settings, "LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if container is None:
        container = container_from_settings(settings)
        atexit.register(container.close)

    app.extensions["cadet_roster"] = container

    register_error_handlers(app)
    register_attendance(app, container)
    register_backup(app, container)

    return app
