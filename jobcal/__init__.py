import os
import atexit

from flask import Flask, jsonify
from flask_cors import CORS
from sqlalchemy.engine import make_url

# scheduler imports
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.executors.pool import ThreadPoolExecutor

# database imports
from jobcal.models import db
from jobcal.brain import brain_bp
from jobcal.logging_config import configure_logging, get_logger

logger = get_logger(__name__)


def init_scheduler(app):
    """Initialize the background scheduler (daily queue rank backfill + schedule summary)."""

    # --- Prevent scheduler duplication in multi-worker environments ---
    # Only run the scheduler on one instance
    if os.environ.get("WERKZEUG_RUN_MAIN") != "true" and not os.environ.get("IS_SCHEDULER_WORKER"):
        logger.info("Skipping scheduler startup on this worker")
        return None

    from jobcal.brain.scheduling.service import run_daily_rollover
    from jobcal.datetime_utils import get_business_timezone

    def rollover_job():
        with app.app_context():
            try:
                run_daily_rollover()
            except Exception as e:
                logger.error("Daily schedule rollover failed", error=str(e), exc_info=True)

    # --- Configure scheduler ---
    executors = {"default": ThreadPoolExecutor(1)}
    scheduler = BackgroundScheduler(
        executors=executors,
        timezone=get_business_timezone(app.config.get("SCHEDULE_TIMEZONE")),
    )

    # "Today" rolls over at midnight; give ranks to newly sold jobs right after
    scheduler.add_job(
        func=rollover_job,
        trigger="cron",
        hour=app.config.get("ROLLOVER_HOUR", 0),
        minute=app.config.get("ROLLOVER_MINUTE", 5),
        id="daily_schedule_rollover",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    atexit.register(lambda: scheduler.shutdown(wait=False))

    logger.info(
        "Scheduler started",
        job="daily_schedule_rollover",
        hour=app.config.get("ROLLOVER_HOUR", 0),
        minute=app.config.get("ROLLOVER_MINUTE", 5)
    )
    return scheduler


def create_app(test_config=None):
    """
    Application factory.

    Args:
        test_config: Optional mapping applied over the environment config
                     (tests pass TESTING and an in-memory SQLALCHEMY_DATABASE_URI)
    """
    # Import config after dotenv is loaded
    from jobcal.config import get_config
    from jobcal.db_config import configure_database

    # Get the appropriate config class based on environment
    config_class = get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)

    test_config = dict(test_config or {})
    database_uri = configure_database(app, database_uri=test_config.pop("SQLALCHEMY_DATABASE_URI", None))
    app.config.update(test_config)

    configure_logging(
        log_level=app.config.get("LOG_LEVEL", "INFO"),
        log_file=app.config.get("LOG_FILE"),
        schedule_timezone=app.config.get("SCHEDULE_TIMEZONE"),
    )

    # Log the environment being used
    logger.info(f"Starting application in {config_class.ENV} environment")
    logger.info("Database configured", database=make_url(database_uri).render_as_string(hide_password=True))

    # Get allowed origins from environment variable
    allowed_origins = app.config.get("CORS_ORIGINS", "*")
    if allowed_origins != "*":
        # Parse comma-separated list if provided
        allowed_origins = [origin.strip() for origin in allowed_origins.split(",")]

    CORS(app,
         resources={r"/*": {"origins": allowed_origins}},
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"])

    # Initialize database
    db.init_app(app)
    with app.app_context():
        db.create_all()

    app.register_blueprint(brain_bp, url_prefix="/brain")

    @app.route("/health")
    def health():
        from jobcal.queue_lock import queue_lock_manager
        return jsonify({
            "status": "ok",
            "environment": config_class.ENV,
            "queue_lock": queue_lock_manager.get_status(),
        }), 200

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Handle all exceptions and ensure CORS headers are included"""
        # HTTP errors (404, 405, ...) keep their status code
        if hasattr(e, 'code') and isinstance(e.code, int):
            status_code = e.code
        else:
            status_code = 500
            logger.error("Unhandled exception", error=str(e), exc_info=True)

        response = jsonify({
            "error": str(e),
            "message": "An error occurred processing your request"
        })
        response.status_code = status_code
        return response

    # Initialize scheduler safely
    if app.config.get("ENABLE_BACKGROUND_SCHEDULER", True) and not app.config.get("TESTING"):
        try:
            init_scheduler(app)
        except Exception as e:
            logger.error("Failed to start scheduler", error=str(e))

    return app
