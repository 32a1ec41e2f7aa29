"""
Warehouse, customer and photo routes.

Handles:
- /api/purchase_orders - Receive a vendor order into stock
- /api/customers - Add or update a customer
- /api/photos - Upload a site photo for the current estimate
"""

from flask import Blueprint, jsonify, request
from werkzeug.utils import secure_filename

from core.exceptions import ValidationError
from logging_config import get_logger
from .common import _sanitize_text, json_body, require_field, sanitize, service


# Module logger
logger = get_logger(__name__)

warehouse_bp = Blueprint("warehouse", __name__, url_prefix="/api")

# Constants
ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "webp", "heic"}
PHOTO_TYPES = {"site_condition", "completion"}


def _allowed_image(filename: str) -> bool:
    """Check if file extension is allowed."""
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_IMAGE_EXTENSIONS


@warehouse_bp.route("/purchase_orders", methods=["POST"])
def receive_purchase_order():
    body = json_body()
    require_field(body, "items", list)
    order = sanitize(body)
    recorded = service("LIFECYCLE_SERVICE").receive_purchase_order(order)
    return jsonify({
        "purchaseOrder": recorded,
        "warehouse": service("STATE_STORE").state.data.get("warehouse"),
    }), 201


@warehouse_bp.route("/customers", methods=["POST"])
def save_customer():
    customer = sanitize(json_body())
    saved = service("LIFECYCLE_SERVICE").save_customer(customer)
    return jsonify({"customer": saved})


@warehouse_bp.route("/photos", methods=["POST"])
def upload_photo():
    """Upload a photo (multipart field "photo") and attach it to the form."""
    photo = request.files.get("photo")

    # Validation: File required
    if not photo or photo.filename == "":
        raise ValidationError("Please choose a photo to upload.", field="photo")

    # Validation: File type
    if not _allowed_image(photo.filename):
        raise ValidationError("Unsupported file type. Please upload an image.", field="photo")

    photo_type = request.form.get("type", "site_condition")
    if photo_type not in PHOTO_TYPES:
        raise ValidationError(f"Unknown photo type: {photo_type}", field="type")

    uploaded_by = _sanitize_text(request.form.get("uploadedBy", ""), max_length=200)
    filename = secure_filename(photo.filename)

    image = service("LIFECYCLE_SERVICE").upload_site_photo(
        photo.read(),
        filename,
        uploaded_by=uploaded_by,
        photo_type=photo_type,
    )
    logger.info(f"Photo {filename} uploaded by {uploaded_by or 'unknown'}")
    return jsonify({"photo": image}), 201
