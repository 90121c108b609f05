"""
Authentication Routes

Provides:
- GET  /api/auth/csrf            (CSRF token for the X-CSRFToken header)
- POST /api/auth/login
- POST /api/auth/logout
- GET  /api/auth/me
- POST /api/auth/signup          (creates a PENDING request)
- POST /api/auth/setup-admin     (first admin bootstrap, needs ADMIN_SETUP_KEY)
- POST /api/auth/change-password

Rules:
- Only approved users may log in.
- Login failures never reveal whether the email exists.
- Sessions are Flask-Login cookies; the session payload is returned as JSON.
- Every POST needs the X-CSRFToken header when WTF_CSRF_ENABLED is on.
- Emails are passed on exactly as received (lookups are case- and whitespace-sensitive).
"""

from flask import Blueprint, current_app, jsonify
from flask_wtf.csrf import generate_csrf
from flask_login import current_user, login_required, login_user, logout_user

from ...audit import log_action
from ...extensions import user_directory
from ...models import SessionUser
from ...utils import json_body, text_field

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


# ============================================================
# CSRF TOKEN
# ============================================================

@auth_bp.route("/csrf", methods=["GET"])
def csrf_token():
    """
    Token for state-changing requests.

    Clients fetch it once per session and echo it in the X-CSRFToken header.
    """
    return jsonify({"csrfToken": generate_csrf()})


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate a user.

    Body: {email, password}
    Success: {message, user: {id, name, email, approvedAt, lastLogin, role}}
    Failure: 401 "Invalid email or password."
    """
    data = json_body(dict)
    email = text_field(data, "email")
    password = text_field(data, "password")

    user = user_directory().authenticate(email, password)
    login_user(SessionUser(user))
    log_action("User", user.id, "LOGIN")

    return jsonify({"message": "Login successful", "user": user.session_payload()})


# ============================================================
# LOGOUT / ME
# ============================================================

@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Log out the current user."""
    logout_user()
    return jsonify({"message": "Logged out"})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify({"user": current_user.user.session_payload()})


# ============================================================
# SIGN-UP
# ============================================================

@auth_bp.route("/signup", methods=["POST"])
def signup():
    """
    Request access. The user lands in the pending pool until an admin approves.

    Body: {name, email, password}
    """
    data = json_body(dict)
    user = user_directory().register(
        name=text_field(data, "name"),
        email=text_field(data, "email"),
        password=text_field(data, "password"),
    )
    current_app.logger.info("New access request from %s awaiting approval", user.email)
    log_action("User", user.id, "SIGNUP", after={"email": user.email, "name": user.name})

    return jsonify({"message": "Sign-up request submitted successfully", "status": "pending"})


# ============================================================
# SETUP FIRST ADMIN (BOOTSTRAP)
# ============================================================

@auth_bp.route("/setup-admin", methods=["POST"])
def setup_admin():
    """
    Bootstrap the FIRST admin of the system.

    Safety rules:
    - Requires the ADMIN_SETUP_KEY from config
    - Refused if any admin already exists
    """
    data = json_body(dict)
    admin = user_directory().setup_admin(
        name=text_field(data, "name"),
        email=text_field(data, "email"),
        password=text_field(data, "password"),
        setup_key=text_field(data, "adminKey"),
        expected_key=current_app.config.get("ADMIN_SETUP_KEY", ""),
    )
    log_action("User", admin.id, "SETUP_ADMIN", after={"email": admin.email})

    return jsonify(
        {
            "message": "Admin user created successfully",
            "user": {"id": admin.id, "name": admin.name, "email": admin.email, "role": admin.role.value},
        }
    )


# ============================================================
# CHANGE OWN PASSWORD
# ============================================================

@auth_bp.route("/change-password", methods=["POST"])
@login_required
def change_password():
    """Body: {currentPassword, newPassword}"""
    data = json_body(dict)
    user_directory().change_password(
        current_user.id,
        text_field(data, "currentPassword"),
        text_field(data, "newPassword"),
    )
    log_action("User", current_user.id, "CHANGE_PASSWORD")
    return jsonify({"success": True, "message": "Password changed successfully"})
