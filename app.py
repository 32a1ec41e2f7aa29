"""
Field Estimator - Flask Application Entry Point.

This is a slim app factory that:
1. Opens the local cache and creates the remote store gateway
2. Creates the state store and the engines around it
3. Recovers the saved session and starts cloud-first initialization
4. Registers route blueprints
5. Sets up error handlers

ARCHITECTURE:
    Main Thread
    ├── Flask request handling (dispatches actions, calls engines)
    └── Cleanup on shutdown

    Sync Thread (startup)
    └── Cloud-first initialization with local/default fallback

    Timer Threads
    └── Push debounce and status decay

    Reconcile Threads (one per background lifecycle operation)
    └── Field log sheet, remote delete, full-state push

ONE StateStore per app. Engines receive it by injection.
"""

from __future__ import annotations

import atexit
import logging
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

from logging_config import setup_logging, get_logger
from core.exceptions import (
    AuthenticationError,
    ConfirmationRequiredError,
    EstimateNotFoundError,
    FieldEstimatorError,
    LifecycleError,
    NoActiveSessionError,
    RemoteStoreError,
    ValidationError,
)
from core.gateway import RemoteStoreGateway
from core.local_cache import LocalCache
from services import JobLifecycleService, SessionService, StateStore, SyncService
from routes import register_blueprints


# Module logger (configured after setup_logging)
logger = get_logger(__name__)


def _load_environment() -> None:
    """
    Load .env, preferring the copy next to the app (or the frozen executable).

    Values in .env override the shell environment.
    """
    base = Path(sys.executable).parent if getattr(sys, "frozen", False) else Path(__file__).parent
    env_file = base / ".env"
    load_dotenv(env_file if env_file.exists() else None, override=True)


def _configure_logging(app: Flask) -> None:
    level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    app_logger = setup_logging(
        log_level=level,
        enable_file_logging=app.config.get("ENVIRONMENT") == "production",
    )
    # Flask's own messages go through the same handlers
    app.logger.handlers = app_logger.handlers
    app.logger.setLevel(level)


def _status_for(error: FieldEstimatorError) -> int:
    if isinstance(error, (ValidationError, ConfirmationRequiredError)):
        return 400
    if isinstance(error, (NoActiveSessionError, AuthenticationError)):
        return 401
    if isinstance(error, EstimateNotFoundError):
        return 404
    if isinstance(error, LifecycleError):
        return 409
    if isinstance(error, RemoteStoreError):
        return 502
    return 500


def create_app(
    config_object: str = "config.Config",
    gateway: Optional[RemoteStoreGateway] = None,
    local_cache: Optional[LocalCache] = None,
    renderer=None,
    start_sync: bool = True,
) -> Flask:
    """
    Application factory - creates and configures Flask app.

    Args:
        config_object: Import path of the configuration class
        gateway: Remote store gateway (built from config if not provided)
        local_cache: Local cache (opened at LOCAL_CACHE_DIR if not provided)
        renderer: Optional document renderer for work orders and receipts
        start_sync: Recover the session and initialize in the background

    Returns:
        Configured Flask application
    """
    _load_environment()

    app = Flask(__name__)
    app.config.from_object(config_object)
    _configure_logging(app)

    logger.info(f"Starting Field Estimator in {app.config.get('ENVIRONMENT')} mode")

    # =========================================================================
    # CORE INITIALIZATION
    # =========================================================================

    if local_cache is None:
        local_cache = LocalCache(app.config["LOCAL_CACHE_DIR"])

    if gateway is None:
        gateway = RemoteStoreGateway(
            app.config.get("REMOTE_STORE_URL", ""),
            timeout_seconds=app.config.get("REMOTE_STORE_TIMEOUT_SECONDS", 30.0),
            retries=app.config.get("REMOTE_STORE_RETRIES", 2),
            retry_backoff_seconds=app.config.get("REMOTE_STORE_RETRY_BACKOFF_SECONDS", 1.0),
        )
    if not gateway.is_configured:
        logger.warning("REMOTE_STORE_URL is not configured; running on local data only")

    app.config["LOCAL_CACHE"] = local_cache
    app.config["GATEWAY"] = gateway

    # =========================================================================
    # SERVICES INITIALIZATION
    # =========================================================================

    store = StateStore(
        notification_lifetime_seconds=app.config.get("NOTIFICATION_LIFETIME_SECONDS", 2.0)
    )
    app.config["STATE_STORE"] = store

    sync_service = SyncService(
        store,
        gateway,
        local_cache,
        debounce_seconds=app.config.get("SYNC_DEBOUNCE_SECONDS", 3.0),
        status_decay_seconds=app.config.get("SYNC_STATUS_DECAY_SECONDS", 3.0),
    )
    app.config["SYNC_SERVICE"] = sync_service

    lifecycle_service = JobLifecycleService(store, gateway, sync_service, renderer=renderer)
    app.config["LIFECYCLE_SERVICE"] = lifecycle_service

    app.config["SESSION_SERVICE"] = SessionService(gateway, sync_service)
    logger.info("Services initialized")

    if start_sync:
        sync_service.start()

    # =========================================================================
    # CLEANUP REGISTRATION
    # =========================================================================

    def cleanup():
        """Cleanup on application shutdown."""
        logger.info("Shutting down...")

        # Wait for reconcile threads
        lifecycle_service.shutdown()

        # Cancel sync timers
        sync_service.shutdown()

        local_cache.close()

        logger.info("Shutdown complete")

    atexit.register(cleanup)

    # =========================================================================
    # REGISTER BLUEPRINTS
    # =========================================================================

    register_blueprints(app)

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.errorhandler(FieldEstimatorError)
    def handle_domain_error(e: FieldEstimatorError):
        status = _status_for(e)
        if status >= 500:
            logger.error(f"Request failed: {e}")
        else:
            logger.info(f"Request rejected ({status}): {e.message}")
        return jsonify({"error": e.message, "type": type(e).__name__, "details": e.details}), status

    @app.errorhandler(RequestEntityTooLarge)
    def handle_file_too_large(e):
        max_mb = app.config.get("MAX_CONTENT_LENGTH", 16 * 1024 * 1024) / (1024 * 1024)
        return jsonify({"error": f"File too large. Maximum upload size is {max_mb:.0f} MB."}), 413

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify({"error": e.description}), e.code

    @app.errorhandler(500)
    def handle_server_error(e):
        logger.error(f"500 error: {e}", exc_info=True)
        return jsonify({"error": "An unexpected error occurred. Please try again."}), 500

    logger.info("Application initialized successfully")
    return app


if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(debug=debug_mode)
