"""
Configuration for Field Estimator.

Values come from the environment (a .env file is loaded first). An empty
REMOTE_STORE_URL leaves the gateway unconfigured: the app still runs on its
local backup, and every remote call fails fast with "API Config Missing".
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file early so environment variables are available for Config class
# This must happen before the Config class is defined
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent


class Config:
    """Default configuration for the Flask application."""

    # Flask settings
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16 MB photo uploads
    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")

    # Debug mode
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"

    # ==========================================================================
    # Remote store
    # ==========================================================================
    # Transport failures are retried REMOTE_STORE_RETRIES more times with a
    # fixed backoff. Error replies from the store are not retried.
    # ==========================================================================
    REMOTE_STORE_URL = os.environ.get("REMOTE_STORE_URL", "")
    REMOTE_STORE_TIMEOUT_SECONDS = float(
        os.environ.get("REMOTE_STORE_TIMEOUT_SECONDS", "30")
    )
    REMOTE_STORE_RETRIES = int(os.environ.get("REMOTE_STORE_RETRIES", "2"))
    REMOTE_STORE_RETRY_BACKOFF_SECONDS = float(
        os.environ.get("REMOTE_STORE_RETRY_BACKOFF_SECONDS", "1.0")
    )

    # Local backup of the session and company state
    LOCAL_CACHE_DIR = os.environ.get("LOCAL_CACHE_DIR", str(BASE_DIR / ".cache"))

    # ==========================================================================
    # Sync timing
    # ==========================================================================
    # SYNC_DEBOUNCE_SECONDS: quiet period after the last edit before a push
    # SYNC_STATUS_DECAY_SECONDS: how long "success" stays visible
    # NOTIFICATION_LIFETIME_SECONDS: auto-dismiss delay of notifications
    # ==========================================================================
    SYNC_DEBOUNCE_SECONDS = float(os.environ.get("SYNC_DEBOUNCE_SECONDS", "3.0"))
    SYNC_STATUS_DECAY_SECONDS = float(
        os.environ.get("SYNC_STATUS_DECAY_SECONDS", "3.0")
    )
    NOTIFICATION_LIFETIME_SECONDS = float(
        os.environ.get("NOTIFICATION_LIFETIME_SECONDS", "2.0")
    )


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    ENVIRONMENT = "production"


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration."""
    DEBUG = False
    TESTING = True
    ENVIRONMENT = "testing"
    REMOTE_STORE_URL = "https://remote-store.invalid/exec"
    REMOTE_STORE_RETRIES = 0
    REMOTE_STORE_RETRY_BACKOFF_SECONDS = 0.0
