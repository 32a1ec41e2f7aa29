"""
Flask route blueprints for Field Estimator.

This module contains all route handlers organized by functionality:
- api: Health, state, form edits, navigation, notifications, manual sync
- auth: Login, signup, crew login, logout
- estimates: Estimate lifecycle (save, work order, invoice, paid, delete, ...)
- warehouse: Purchase orders, customers, site photos

All endpoints speak JSON. Each blueprint is registered with the Flask app in
create_app().
"""

from .api import api_bp
from .auth import auth_bp
from .estimates import estimates_bp
from .warehouse import warehouse_bp

__all__ = [
    "api_bp",
    "auth_bp",
    "estimates_bp",
    "warehouse_bp",
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(api_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(estimates_bp)
    app.register_blueprint(warehouse_bp)
