"""
portfolio_status/blueprints/users/routes.py

User management (admin-only).

Provides:
- GET    /api/users                 both pools, password hashes removed
- POST   /api/users                 create a user directly (optionally with a generated password)
- PUT    /api/users                 edit name/email/role/status (status moves between pools)
- DELETE /api/users?id=<id>         delete any user except yourself
- POST   /api/users/review          approve or deny a pending sign-up
- POST   /api/users/reset-password  set or generate a new password

SECURITY:
- Every route is @login_required + @admin_required.

AUDIT:
- Every successful mutation is logged via portfolio_status/audit.py.
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from ...audit import log_action, snapshot
from ...exceptions import ValidationError
from ...extensions import user_directory
from ...security import admin_required
from ...utils import json_body, text_field

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.route("", methods=["GET"])
@login_required
@admin_required
def list_users():
    """List pending and approved users."""
    directory = user_directory()
    pending = directory.get_pending_users()
    approved = directory.get_approved_users()
    return jsonify(
        {
            "users": [u.public_dict() for u in pending + approved],
            "pendingCount": len(pending),
            "approvedCount": len(approved),
        }
    )


@users_bp.route("", methods=["POST"])
@login_required
@admin_required
def create_user():
    """
    Body: {name, email, role?, status?, password?}

    When no password is supplied one is generated and returned once as
    `generatedPassword`.
    """
    data = json_body(dict)
    user, generated = user_directory().create_user(
        name=text_field(data, "name"),
        email=text_field(data, "email"),
        role=text_field(data, "role") or "user",
        status=text_field(data, "status") or "approved",
        password=text_field(data, "password") or None,
    )
    log_action("User", user.id, "CREATE", after=snapshot(user))

    payload = {"success": True, "message": "User created successfully", "user": user.public_dict()}
    if generated:
        payload["generatedPassword"] = generated
    return jsonify(payload), 201


@users_bp.route("", methods=["PUT"])
@login_required
@admin_required
def update_user():
    """Body: {id, name?, email?, role?, status?}"""
    data = json_body(dict)
    user_id = text_field(data, "id", required=True)

    directory = user_directory()
    before = directory.find_user_by_id(user_id)
    updated = directory.update_user(
        user_id,
        name=text_field(data, "name") or None,
        email=text_field(data, "email") or None,
        role=text_field(data, "role") or None,
        status=text_field(data, "status") or None,
    )
    log_action("User", user_id, "UPDATE", before=snapshot(before), after=snapshot(updated))
    return jsonify({"success": True, "message": "User updated successfully", "user": updated.public_dict()})


@users_bp.route("", methods=["DELETE"])
@login_required
@admin_required
def delete_user():
    """Query: ?id=<user id>. Admins cannot delete themselves."""
    user_id = (request.args.get("id") or "").strip()
    if not user_id:
        raise ValidationError("User id is required", details={"id": "required"})

    removed = user_directory().delete_user(user_id, acting_user_id=current_user.id)
    log_action("User", user_id, "DELETE", before=snapshot(removed))
    return jsonify({"success": True, "message": "User deleted successfully"})


@users_bp.route("/review", methods=["POST"])
@login_required
@admin_required
def review_user():
    """
    Approve or deny a pending sign-up.

    Body: {email, action: "approve" | "deny", role?}
    """
    data = json_body(dict)
    email = text_field(data, "email", required=True)
    action = text_field(data, "action")

    directory = user_directory()
    if action == "approve":
        user = directory.approve(email, role=text_field(data, "role") or None)
        log_action("User", user.id, "APPROVE", after=snapshot(user))
        return jsonify({"success": True, "message": f"User {email} approved", "user": user.public_dict()})
    if action == "deny":
        user = directory.deny(email)
        log_action("User", user.id, "DENY", before=snapshot(user))
        return jsonify({"success": True, "message": f"User {email} denied"})

    raise ValidationError("Action must be 'approve' or 'deny'", details={"action": str(action)})


@users_bp.route("/reset-password", methods=["POST"])
@login_required
@admin_required
def reset_password():
    """
    Body: {userId, newPassword?}

    Returns `newPassword` only when it was generated here.
    """
    data = json_body(dict)
    user_id = text_field(data, "userId", required=True)

    generated = user_directory().reset_password(user_id, text_field(data, "newPassword") or None)
    log_action("User", user_id, "RESET_PASSWORD")

    payload = {"success": True, "message": "Password reset successfully"}
    if generated:
        payload["newPassword"] = generated
    return jsonify(payload)
