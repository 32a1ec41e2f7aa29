"""
Authentication routes.

Handles:
- /api/login - Company admin login
- /api/signup - New company account
- /api/crew_login - Crew device login (company id + PIN)
- /api/logout - Forget the session on this device
"""

from flask import Blueprint, jsonify

from logging_config import get_logger
from .common import _sanitize_text, json_body, require_field, service


# Module logger
logger = get_logger(__name__)

auth_bp = Blueprint("auth", __name__)

MAX_COMPANY_NAME_LENGTH = 200


def _session_response(session):
    ui = service("STATE_STORE").state.ui
    return jsonify({"session": session.to_dict(), "ui": ui.to_dict()})


@auth_bp.route("/api/login", methods=["POST"])
def login():
    body = json_body()
    session = service("SESSION_SERVICE").login(
        require_field(body, "username").strip(),
        require_field(body, "password"),
    )
    return _session_response(session)


@auth_bp.route("/api/signup", methods=["POST"])
def signup():
    body = json_body()
    company_name = _sanitize_text(
        require_field(body, "companyName"),
        max_length=MAX_COMPANY_NAME_LENGTH,
    )
    session = service("SESSION_SERVICE").signup(
        require_field(body, "username").strip(),
        require_field(body, "password"),
        company_name,
    )
    return _session_response(session), 201


@auth_bp.route("/api/crew_login", methods=["POST"])
def crew_login():
    body = json_body()
    session = service("SESSION_SERVICE").crew_login(
        require_field(body, "username").strip(),
        str(require_field(body, "pin")).strip(),
    )
    return _session_response(session)


@auth_bp.route("/api/logout", methods=["POST"])
def logout():
    service("SESSION_SERVICE").logout()
    return jsonify({"status": "ok"})
