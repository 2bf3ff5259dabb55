"""Database URI and engine options, resolved from the active Config class."""
from sqlalchemy.engine import make_url


def is_sqlite(database_uri: str) -> bool:
    return make_url(database_uri).get_backend_name() == "sqlite"


def resolve_database_uri(config, database_uri=None) -> str:
    """Pick the database URI: an explicit override, else the environment's DATABASE_URL.

    Args:
        config: Flask app config (or any mapping with DATABASE_URL and ENV)
        database_uri: Optional override (tests, scripts)

    Raises:
        ValueError: If no URL is configured for the environment
    """
    uri = database_uri or config.get("DATABASE_URL")
    if not uri:
        raise ValueError(f"No database URL configured for the {config.get('ENV', 'current')} environment")
    # Hosted Postgres providers still hand out the pre-1.4 scheme
    if uri.startswith("postgres://"):
        uri = "postgresql://" + uri[len("postgres://"):]
    return uri


def get_engine_options(config) -> dict:
    """Pool options for server databases.

    Queue mutations hold row locks for the whole read-modify-write, so a
    request waits for a pooled connection no longer than for the queue lock.
    """
    connect_args = {"connect_timeout": 10, "application_name": "jobcal"}
    if config.get("DB_SSLMODE"):
        connect_args["sslmode"] = config["DB_SSLMODE"]

    return {
        "pool_pre_ping": True,
        "pool_recycle": config.get("DB_POOL_RECYCLE_SECONDS", 280),
        "pool_size": config.get("DB_POOL_SIZE", 5),
        "max_overflow": config.get("DB_MAX_OVERFLOW", 10),
        "pool_timeout": config.get("QUEUE_LOCK_TIMEOUT_SECONDS", 30),
        "connect_args": connect_args,
    }


def configure_database(app, database_uri=None):
    """Set SQLALCHEMY_* keys on the app config.

    SQLite (local runs, in-memory tests) keeps Flask-SQLAlchemy's defaults;
    anything else gets pooling from get_engine_options.

    Returns:
        str: the URI in use
    """
    uri = resolve_database_uri(app.config, database_uri)
    app.config["SQLALCHEMY_DATABASE_URI"] = uri
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config.setdefault("SQLALCHEMY_ECHO", False)

    if not is_sqlite(uri):
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = get_engine_options(app.config)
    return uri
