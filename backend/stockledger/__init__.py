# backend/stockledger/__init__.py
from __future__ import annotations

from typing import Any, Mapping

from flask import Flask

from .config import Config
from .extensions import db, migrate


def create_app(test_config: Mapping[str, Any] | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        # Applied before extensions bind so the engine sees the override
        app.config.update(test_config)

    app.logger.setLevel(str(app.config.get("LOG_LEVEL", "INFO")).upper())

    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .cli import register_commands
    register_commands(app)

    return app
