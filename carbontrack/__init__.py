# carbontrack/__init__.py
"""Flask application factory and extension initialization."""

from __future__ import annotations

import logging
from datetime import datetime

from dotenv import load_dotenv
from flask import Flask, jsonify
from flask_apscheduler import APScheduler
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_security import Security, SQLAlchemyUserDatastore
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect
from sqlalchemy import inspect, text

from config import get_config

# ---------------------------------------------------------------------------
# Extension instances (singletons that will be imported elsewhere)
# ---------------------------------------------------------------------------

db = SQLAlchemy()
migrate = Migrate()
csrf = CSRFProtect()
security = Security()
scheduler = APScheduler()
limiter = Limiter(key_func=get_remote_address)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_app(test_config: dict | None = None):
    """Application factory used by run.py and WSGI servers."""

    load_dotenv()

    app = Flask(__name__)

    # Config
    if test_config is None:
        app.config.from_object(get_config())
    else:
        app.config.update(test_config)

    # Logging defaults
    app.logger.setLevel(logging.DEBUG if app.debug else logging.INFO)
    logging.getLogger("flask_security").setLevel(logging.INFO)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)

    # ---------------------------------------------------------------------
    # Extension init
    # ---------------------------------------------------------------------
    db.init_app(app)
    migrate.init_app(app, db)
    csrf.init_app(app)
    limiter.init_app(app)

    app.config.setdefault("SCHEDULER_API_ENABLED", False)
    app.config.setdefault("SCHEDULER_JOB_DEFAULTS", {
        "coalesce": True,
        "max_instances": 1,
        "misfire_grace_time": 300,
    })
    scheduler.init_app(app)

    # ---------------------------------------------------------------------
    # Database bootstrap & security setup – inside app context
    # ---------------------------------------------------------------------
    with app.app_context():
        from carbontrack.models import User, Role  # avoid circular imports at top-level

        inspector = inspect(db.engine)
        if not inspector.has_table("goals"):
            db.create_all()
            app.logger.info("Initial database tables created.")

        # Sanity query so we fail fast if DB unreachable
        db.session.execute(text("SELECT 1"))

        user_datastore = SQLAlchemyUserDatastore(db, User, Role)
        security.init_app(app, user_datastore)

    # ---------------------------------------------------------------------
    # Blueprints
    # ---------------------------------------------------------------------
    from carbontrack.routes import bp as main_bp
    from carbontrack.routes.carbon import bp as carbon_bp
    from carbontrack.routes.goals import bp as goals_bp
    from carbontrack.routes.notifications import bp as notifications_bp
    from carbontrack.routes.business import bp as business_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(carbon_bp)
    app.register_blueprint(goals_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(business_bp)

    # ---------------------------------------------------------------------
    # Error handlers
    # ---------------------------------------------------------------------
    from carbontrack.utils.errors import CarbonTrackError

    @app.errorhandler(CarbonTrackError)
    def _domain_error(e):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def _404(e):
        return jsonify({"error": "Not Found", "message": str(e)}), 404

    @app.errorhandler(500)
    def _500(e):
        logger.error("Unhandled 500: %s", e, exc_info=True)
        return jsonify({"error": "Internal Server Error"}), 500

    @app.route("/health")
    def _health():
        return {"status": "ok", "timestamp": datetime.utcnow().isoformat()}, 200

    # ---------------------------------------------------------------------
    # Background reminder sweep
    # ---------------------------------------------------------------------
    if app.config.get("REMINDER_SWEEP_ENABLED", False):
        from carbontrack.services.scheduler import init_scheduler

        init_scheduler(app)

    return app
