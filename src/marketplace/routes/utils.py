from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import abort, g, jsonify, request
from marshmallow import Schema
from marshmallow import ValidationError as SchemaValidationError

from marketplace.core.exceptions import UnauthorizedError, ValidationError
from marketplace.models.user import Caller
from marketplace.utils.validators import ValidationUtils


def _envelope(body: Dict[str, Any]) -> Dict[str, Any]:
    body["timestamp"] = datetime.now(timezone.utc).isoformat()
    request_id = getattr(g, "request_id", None)
    if request_id:
        body["request_id"] = request_id
    return body


def success_response(data, message: Optional[str] = None, status: int = 200):
    """Consistent success response envelope."""
    response = {"success": True, "data": data}
    if message:
        response["message"] = message
    return jsonify(_envelope(response)), status


def flat_response(body: Dict[str, Any], status: int = 200):
    """Success envelope with the payload keys at the top level."""
    return jsonify(_envelope({"success": True, **body})), status


def parse_int(
    v,
    default=None,
    min_val: Optional[int] = None,
    max_val: Optional[int] = None,
    field_name: str = "value",
) -> Optional[int]:
    """Parse an integer with optional range validation."""
    if v is None and default is not None:
        return default
    try:
        result = int(v)
    except (TypeError, ValueError):
        abort(400, f"Invalid {field_name}: must be a valid integer")
    if min_val is not None and result < min_val:
        abort(400, f"{field_name} must be at least {min_val}")
    if max_val is not None and result > max_val:
        abort(400, f"{field_name} cannot exceed {max_val}")
    return result


def get_current_caller() -> Caller:
    """Identity from the X-User-Id / X-User-Role headers set by the auth gateway."""
    uid = request.headers.get("X-User-Id")
    if not uid:
        raise UnauthorizedError("Missing X-User-Id header.")
    try:
        user_id = int(uid)
    except ValueError:
        raise UnauthorizedError("Invalid X-User-Id header: must be a positive integer.")
    if user_id <= 0:
        raise UnauthorizedError("Invalid X-User-Id header: must be a positive integer.")
    role = request.headers.get("X-User-Role", "user").strip().lower() or "user"
    return Caller(user_id=user_id, role=role)


def load_body(schema: Schema) -> Dict[str, Any]:
    """Load and validate the JSON body, reporting every field error."""
    payload = request.get_json(silent=True)
    if payload is None:
        raise ValidationError("Request body must be valid JSON", ["body: Request body must be a JSON object"])
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object", ["body: Request body must be a JSON object"])
    try:
        return schema.load(payload)
    except SchemaValidationError as err:
        raise ValidationError("Invalid request", ValidationUtils.flatten_errors(err.messages))
