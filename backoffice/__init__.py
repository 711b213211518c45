import logging

from flask import Flask

from .config import Config
from .db import close_db, connect, init_db

logger = logging.getLogger(__name__)


def create_app(config_override=None):
    cfg = Config.from_env()
    if config_override:
        cfg.override(config_override)

    logging.basicConfig(
        level=getattr(logging, cfg.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = Flask(__name__, template_folder="templates")
    app.config.update(cfg.to_flask_dict())
    if config_override:
        for key, value in config_override.items():
            if key.isupper():
                app.config[key] = value

    # ================= DATABASE =================

    app.teardown_appcontext(close_db)
    if cfg.AUTO_INIT_DB and cfg.DB_FILE:
        conn = connect(cfg.DB_FILE)
        try:
            init_db(conn, deals_schema=cfg.DEALS_SCHEMA, offerte_ai=cfg.OFFERTE_AI_COLUMNS)
        finally:
            conn.close()
        logger.info("Database ready at %s (deals schema: %s)", cfg.DB_FILE, cfg.DEALS_SCHEMA)

    # ================= ROUTES =================

    from . import appointments, companies, contacts, deals, finance, health, invoices, projects, quotes
    from .cli import register_cli
    from .errors import register_error_handlers
    from .media import init_media

    register_error_handlers(app)
    init_media(app)

    if cfg.E2E:
        logger.info("E2E mode: /api requests return stub responses")
        app.before_request(health.e2e_stub)

    for blueprint in (
        health.bp,
        companies.bp,
        contacts.bp,
        deals.bp,
        projects.bp,
        appointments.bp,
        finance.income_bp,
        finance.expenses_bp,
        invoices.bp,
        quotes.bp,
    ):
        app.register_blueprint(blueprint)

    register_cli(app)
    return app
