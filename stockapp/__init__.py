from datetime import timedelta

from flask import Flask, current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .auth import init_site_password
from .extensions import db, notifier
from .routes import auth, errors, health, history, inventory, orders
from .storage import configure_engine, ensure_item_schema, ping_database
from .utils.logging import configure_logging
from config import Config
from . import models  # ensure models are registered with SQLAlchemy


def _configure_engine_options(app: Flask) -> None:
    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI", "")
    if not database_uri.startswith("sqlite"):
        return

    engine_options = app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {})
    connect_args = engine_options.setdefault("connect_args", {})
    connect_args.setdefault("timeout", float(app.config.get("DB_BUSY_TIMEOUT", 5)))
    if database_uri.startswith("sqlite:///:memory:") or database_uri == "sqlite://":
        connect_args.setdefault("check_same_thread", False)
        engine_options.setdefault("poolclass", StaticPool)


def create_app(config_override=None):
    app = Flask(__name__)

    # load configuration from environment variables
    app.config.from_object(Config)
    if config_override:
        app.config.update(config_override)

    app.config.setdefault("DATABASE_AVAILABLE", True)
    app.config.setdefault("DATABASE_ERROR", None)
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(
        seconds=int(app.config.get("SESSION_MAX_AGE", 60 * 60 * 24 * 7))
    )

    configure_logging(app)
    _configure_engine_options(app)

    db.init_app(app)
    notifier.init_app(app)
    init_site_password(app)

    database_available = True
    database_error_message: str | None = None

    # create tables if they do not exist and ensure legacy schema
    with app.app_context():
        configure_engine(db.engine)
        try:
            ping_database()
        except OperationalError as exc:
            database_available = False
            details = str(getattr(exc, "orig", exc)).strip()
            database_error_message = (
                "Unable to connect to the configured database. Start the "
                "database service or update the DB_URL setting, then restart "
                "the app."
            )
            if details:
                database_error_message += f" (Error: {details})"
            current_app.logger.error(
                "Database connection unavailable during startup%s",
                f": {details}" if details else "",
                exc_info=current_app.debug,
            )
            db.session.remove()
            db.engine.dispose()
        else:
            try:
                db.create_all()
                ensure_item_schema(db.engine)
            except SQLAlchemyError:
                database_available = False
                database_error_message = (
                    "The database schema could not be initialized. Review the logs "
                    "for details and restart the app once resolved."
                )
                current_app.logger.exception("Database initialization error")
                db.session.remove()

    app.config["DATABASE_AVAILABLE"] = database_available
    app.config["DATABASE_ERROR"] = database_error_message

    # register blueprints
    app.register_blueprint(auth.bp)
    app.register_blueprint(inventory.bp)
    app.register_blueprint(orders.bp)
    app.register_blueprint(history.bp)
    app.register_blueprint(health.bp)
    app.register_blueprint(errors.bp)

    return app
