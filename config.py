"""
Query composer configuration.
Everything is read from the environment (or a local .env file).
"""

import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


# Application Configuration
APP_CONFIG = {
    "debug": _env_flag("DEBUG", "true"),
    "name": "SQL Query Composer",
    "version": "1.0.0",

    # Query settings
    "default_limit": int(os.getenv("DEFAULT_LIMIT", "100")),

    # Built-in schema served when a request does not carry its own
    "schema_catalog": os.getenv("SCHEMA_CATALOG", "ecommerce"),

    # Live preview renders errors as SQL comments with this prefix
    "preview_error_prefix": os.getenv("PREVIEW_ERROR_PREFIX", "--"),

    # Server settings
    "host": os.getenv("APP_HOST", "0.0.0.0"),
    "port": int(os.getenv("APP_PORT", "8000")),
}

# Logging Configuration
LOG_CONFIG = {
    "level": "DEBUG" if APP_CONFIG["debug"] else "INFO",
    "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
}

# Feature flags
FEATURE_FLAGS = {
    "enable_join_suggestions": _env_flag("ENABLE_JOIN_SUGGESTIONS", "true"),
    "enable_cross_schema_heuristic": _env_flag("ENABLE_CROSS_SCHEMA_HEURISTIC", "true"),
}


def check_config():
    """Log the effective configuration."""
    logger = logging.getLogger(__name__)

    logger.info(f"📦 Schema catalog: {APP_CONFIG['schema_catalog']}")
    logger.info(f"🔢 Default row limit: {APP_CONFIG['default_limit']}")

    if APP_CONFIG["default_limit"] <= 0:
        logger.warning("⚠️  DEFAULT_LIMIT is not positive. Generated queries will be rejected until a limit is set.")

    disabled = [name for name, enabled in FEATURE_FLAGS.items() if not enabled]
    if disabled:
        logger.info(f"💡 Disabled features: {', '.join(disabled)}")

    if APP_CONFIG["debug"]:
        logger.info("🚀 Starting SQL Query Composer (Debug Mode)")
