"""
Tests for application setup: database configuration and structured logging.
These tests use plain config mappings and structlog's context variables.
"""
import pytest
import structlog
from flask import Flask

from jobcal.config import LocalConfig, ProductionConfig
from jobcal.db_config import configure_database, get_engine_options, is_sqlite, resolve_database_uri
from jobcal.logging_config import SchedulingContext, add_schedule_timezone


@pytest.fixture(autouse=True)
def clean_contextvars():
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


# ==============================================================================
# DATABASE CONFIGURATION TESTS
# ==============================================================================

class TestDatabaseConfig:
    """Tests for resolving the database URI and engine options from Config."""

    def test_override_wins(self):
        """Test an explicit URI bypasses the environment's DATABASE_URL."""
        config = {"DATABASE_URL": "sqlite:///other.sqlite", "ENV": "local"}
        assert resolve_database_uri(config, "sqlite://") == "sqlite://"

    def test_environment_url_used(self):
        """Test the Config class URL is used when nothing overrides it."""
        assert resolve_database_uri({"DATABASE_URL": LocalConfig.DATABASE_URL}) == LocalConfig.DATABASE_URL

    def test_missing_url_raises(self):
        """Test an environment without a URL fails loudly."""
        with pytest.raises(ValueError, match="production"):
            resolve_database_uri({"DATABASE_URL": None, "ENV": "production"})

    def test_legacy_postgres_scheme_is_normalized(self):
        """Test postgres:// URLs are rewritten for SQLAlchemy."""
        uri = resolve_database_uri({"DATABASE_URL": "postgres://u:p@db.example/jobs"})
        assert uri == "postgresql://u:p@db.example/jobs"

    def test_is_sqlite(self):
        """Test backend detection."""
        assert is_sqlite("sqlite://")
        assert is_sqlite("sqlite:///jobcal.sqlite")
        assert not is_sqlite("postgresql://u:p@db.example/jobs")

    def test_engine_options_follow_config(self):
        """Test pool settings come from the app config."""
        options = get_engine_options({
            "DB_POOL_SIZE": 3,
            "DB_MAX_OVERFLOW": 1,
            "DB_POOL_RECYCLE_SECONDS": 60,
            "QUEUE_LOCK_TIMEOUT_SECONDS": 12,
            "DB_SSLMODE": "require",
        })
        assert options["pool_size"] == 3
        assert options["max_overflow"] == 1
        assert options["pool_recycle"] == 60
        assert options["pool_timeout"] == 12
        assert options["connect_args"]["sslmode"] == "require"

    def test_engine_options_without_ssl(self):
        """Test sslmode is only sent when configured."""
        assert "sslmode" not in get_engine_options({})["connect_args"]

    def test_configure_sqlite_app(self):
        """Test SQLite apps get no pool options."""
        app = Flask(__name__)
        app.config.from_object(LocalConfig)

        uri = configure_database(app, "sqlite://")

        assert uri == "sqlite://"
        assert app.config["SQLALCHEMY_DATABASE_URI"] == "sqlite://"
        assert "SQLALCHEMY_ENGINE_OPTIONS" not in app.config

    def test_configure_server_app(self):
        """Test server databases get pooling from the production config."""
        app = Flask(__name__)
        app.config.from_object(ProductionConfig)

        configure_database(app, "postgresql://u:p@db.example/jobs")

        options = app.config["SQLALCHEMY_ENGINE_OPTIONS"]
        assert options["pool_pre_ping"] is True
        assert options["pool_size"] == ProductionConfig.DB_POOL_SIZE


# ==============================================================================
# LOGGING TESTS
# ==============================================================================

class TestSchedulingContext:
    """Tests for operation-scoped log context."""

    def test_binds_operation_ids(self):
        """Test the operation id is visible to every logger inside the block."""
        with SchedulingContext("move_queue", operation_id="op1"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["operation_id"] == "op1"
            assert bound["operation_type"] == "move_queue"

        assert "operation_id" not in structlog.contextvars.get_contextvars()

    def test_nested_context_restores_outer(self):
        """Test an inner operation hands the ids back to the outer one."""
        with SchedulingContext("set_hold_date", operation_id="outer"):
            with SchedulingContext("backfill_ranks", operation_id="inner"):
                assert structlog.contextvars.get_contextvars()["operation_id"] == "inner"
            assert structlog.contextvars.get_contextvars()["operation_id"] == "outer"

    def test_unbinds_on_error(self):
        """Test a failing operation still clears its ids and re-raises."""
        with pytest.raises(RuntimeError):
            with SchedulingContext("move_queue", operation_id="op2"):
                raise RuntimeError("boom")

        assert "operation_id" not in structlog.contextvars.get_contextvars()

    def test_generates_operation_id(self):
        """Test an id is generated when none is given."""
        with SchedulingContext("backfill_ranks") as ctx:
            assert len(ctx.operation_id) == 8


class TestLogProcessors:
    """Tests for custom log processors."""

    def test_schedule_timezone_added(self):
        """Test every event carries the business timezone."""
        processor = add_schedule_timezone("America/Denver")
        assert processor(None, "info", {"event": "x"})["schedule_tz"] == "America/Denver"

    def test_schedule_timezone_skipped_when_unset(self):
        """Test no key is added without a timezone."""
        processor = add_schedule_timezone(None)
        assert "schedule_tz" not in processor(None, "info", {"event": "x"})
