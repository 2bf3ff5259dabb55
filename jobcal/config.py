import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Base configuration class with common settings."""
    # Scheduling configuration
    # "Today" for every scheduling pass is taken in this timezone
    SCHEDULE_TIMEZONE = os.environ.get("SCHEDULE_TIMEZONE", "America/Denver")
    # Per-job placement search cap (safety valve, not a termination proof)
    SCHEDULE_MAX_ITERATIONS = int(os.environ.get("SCHEDULE_MAX_ITERATIONS", "365"))
    # How long a mutating request waits for the queue lock
    QUEUE_LOCK_TIMEOUT_SECONDS = int(os.environ.get("QUEUE_LOCK_TIMEOUT_SECONDS", "30"))

    # Daily rank backfill / schedule roll-over job
    ENABLE_BACKGROUND_SCHEDULER = os.environ.get("ENABLE_BACKGROUND_SCHEDULER", "true").lower() == "true"
    ROLLOVER_HOUR = int(os.environ.get("ROLLOVER_HOUR", "0"))
    ROLLOVER_MINUTE = int(os.environ.get("ROLLOVER_MINUTE", "5"))

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE = os.environ.get("LOG_FILE")

    # CORS configuration
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Database; each environment names its own URL variable
    DATABASE_URL = None
    DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", "5"))
    DB_MAX_OVERFLOW = int(os.environ.get("DB_MAX_OVERFLOW", "10"))
    DB_POOL_RECYCLE_SECONDS = int(os.environ.get("DB_POOL_RECYCLE_SECONDS", "280"))
    DB_SSLMODE = os.environ.get("DB_SSLMODE")


class LocalConfig(Config):
    """Configuration for local development."""
    ENV = "local"
    DEBUG = True
    DATABASE_URL = os.environ.get("LOCAL_DATABASE_URL") or "sqlite:///jobcal.sqlite"


class SandboxConfig(Config):
    """Configuration for sandbox/staging environment."""
    ENV = "sandbox"
    DEBUG = False
    DATABASE_URL = os.environ.get("SANDBOX_DATABASE_URL")
    DB_SSLMODE = os.environ.get("DB_SSLMODE", "require")


class ProductionConfig(Config):
    """Configuration for production environment."""
    ENV = "production"
    DEBUG = False
    DATABASE_URL = os.environ.get("PRODUCTION_DATABASE_URL") or os.environ.get("DATABASE_URL")
    DB_SSLMODE = os.environ.get("DB_SSLMODE", "require")


def get_config():
    """Get the appropriate configuration class based on environment variable.

    Environment is determined by FLASK_ENV or ENVIRONMENT variable:
    - 'local' or 'development' -> LocalConfig
    - 'sandbox' or 'staging' -> SandboxConfig
    - 'production' or 'prod' -> ProductionConfig

    Defaults to LocalConfig if not set.
    """
    env = (os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")).lower()

    if env in ["local", "development", "dev"]:
        return LocalConfig
    elif env in ["sandbox", "staging", "stage"]:
        return SandboxConfig
    elif env in ["production", "prod"]:
        return ProductionConfig
    else:
        # Default to local for safety
        return LocalConfig
