"""
Estimate lifecycle routes.

Each endpoint maps to one JobLifecycleService operation. CalculationResults
come from the client's calculator and are stored as given.
"""

from flask import Blueprint, jsonify

from core.exceptions import ValidationError
from logging_config import get_logger
from models.estimate import EstimateStatus, ExecutionStatus
from .common import json_body, require_field, sanitize, service


# Module logger
logger = get_logger(__name__)

estimates_bp = Blueprint("estimates", __name__, url_prefix="/api/estimates")


def _results(body):
    return require_field(body, "results", dict)


def _enum_field(body, name, enum_cls):
    value = body.get(name)
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Unknown {name}: {value}", field=name)


def _record_response(record, status_code=200):
    ui = service("STATE_STORE").state.ui
    return jsonify({"estimate": record, "ui": ui.to_dict()}), status_code


@estimates_bp.route("", methods=["POST"])
def save_estimate():
    """Save the current form as an estimate (Draft unless targetStatus is given)."""
    body = json_body()
    record = service("LIFECYCLE_SERVICE").save_estimate(
        _results(body),
        target_status=_enum_field(body, "targetStatus", EstimateStatus),
        extra=body.get("extra"),
        redirect=body.get("redirect", True),
    )
    return _record_response(record)


@estimates_bp.route("/new", methods=["POST"])
def new_estimate():
    service("LIFECYCLE_SERVICE").start_new_estimate()
    return jsonify({"ui": service("STATE_STORE").state.ui.to_dict()})


@estimates_bp.route("/work_order", methods=["POST"])
def confirm_work_order():
    record = service("LIFECYCLE_SERVICE").confirm_work_order(_results(json_body()))
    return _record_response(record)


@estimates_bp.route("/invoice", methods=["POST"])
def generate_invoice():
    record = service("LIFECYCLE_SERVICE").generate_invoice(_results(json_body()))
    return _record_response(record)


@estimates_bp.route("/<estimate_id>/edit", methods=["POST"])
def edit_estimate(estimate_id: str):
    record = service("LIFECYCLE_SERVICE").load_estimate_for_editing(estimate_id)
    return _record_response(record)


@estimates_bp.route("/<estimate_id>/actuals", methods=["POST"])
def apply_actuals(estimate_id: str):
    patch = service("LIFECYCLE_SERVICE").apply_field_actuals(estimate_id)
    return jsonify({"applied": patch})


@estimates_bp.route("/<estimate_id>/paid", methods=["POST"])
def mark_paid(estimate_id: str):
    """
    Record payment. Requires {"confirm": true}.

    The local record changes only if the remote store finalizes it.
    """
    body = json_body()
    record = service("LIFECYCLE_SERVICE").mark_paid(
        estimate_id,
        confirmed=body.get("confirm") is True,
    )
    if record is None:
        return jsonify({"error": "Failed to record payment. Status unchanged."}), 502
    return _record_response(record)


@estimates_bp.route("/<estimate_id>/archive", methods=["POST"])
def archive_estimate(estimate_id: str):
    record = service("LIFECYCLE_SERVICE").archive_estimate(estimate_id)
    return _record_response(record)


@estimates_bp.route("/<estimate_id>/execution", methods=["POST"])
def update_execution(estimate_id: str):
    body = json_body()
    require_field(body, "status")
    status = _enum_field(body, "status", ExecutionStatus)
    record = service("LIFECYCLE_SERVICE").update_execution_status(estimate_id, status)
    return _record_response(record)


@estimates_bp.route("/<estimate_id>/completion", methods=["POST"])
def report_completion(estimate_id: str):
    """Crew completion report: actuals plus who completed the job."""
    body = json_body()
    actuals = sanitize(require_field(body, "actuals", dict))
    record = service("LIFECYCLE_SERVICE").report_job_completion(
        estimate_id,
        actuals,
        completed_by=require_field(body, "completedBy").strip(),
    )
    return _record_response(record)


@estimates_bp.route("/<estimate_id>/time", methods=["POST"])
def log_time(estimate_id: str):
    """Crew clock-in/clock-out entry for the job's field log."""
    body = json_body()
    service("LIFECYCLE_SERVICE").log_crew_time(
        estimate_id,
        start=require_field(body, "start").strip(),
        end=require_field(body, "end").strip(),
        user=sanitize(require_field(body, "user")).strip(),
    )
    return jsonify({"logged": estimate_id}), 201


@estimates_bp.route("/<estimate_id>", methods=["DELETE"])
def delete_estimate(estimate_id: str):
    """Delete locally now; the remote delete runs in the background."""
    service("LIFECYCLE_SERVICE").delete_estimate(estimate_id)
    return jsonify({"deleted": estimate_id, "ui": service("STATE_STORE").state.ui.to_dict()})
