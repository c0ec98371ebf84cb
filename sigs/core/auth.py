from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request
from flask_login import login_required, login_user, logout_user
from werkzeug.security import check_password_hash

from sigs.core.models import User

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


@auth_bp.post("/login")
def login_post():
    payload = request.get_json(silent=True) or request.form
    email = (payload.get("email") or "").strip().lower()
    password = payload.get("password") or ""
    user = User.query.filter_by(email=email).first()
    if not user or not check_password_hash(user.password_hash, password):
        current_app.logger.info("Login rechazado para %s", email or "<vacio>")
        return jsonify({"success": False, "error": "Credenciales invalidas", "errorKind": "unauthenticated"}), 401
    if not login_user(user):
        return jsonify({"success": False, "error": "Cuenta desactivada", "errorKind": "permission_denied"}), 403
    return jsonify({"success": True, "data": {"id": user.id, "role": user.role.value}})


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"success": True, "data": None})


@auth_bp.get("/me")
@login_required
def me():
    actor = g.actor
    return jsonify(
        {
            "success": True,
            "data": {
                "id": actor.user_id,
                "email": actor.email,
                "full_name": actor.full_name,
                "role": actor.role.value if actor.role else None,
                "permissions": sorted(actor.permissions),
                "team_ids": sorted(actor.team_ids),
            },
        }
    )
