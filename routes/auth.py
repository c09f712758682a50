"""Admin session endpoints backed by Flask-Login."""
from flask import Blueprint, current_app, jsonify, request, session
from flask_login import current_user, login_user, logout_user
from wtforms import PasswordField, StringField
from wtforms.validators import DataRequired, Length

from utils.complaint_service import current_service
from utils.errors import TooManyAttempts, Unauthorized
from utils.validation import ApiForm, validated

auth_bp = Blueprint("auth", __name__)


class LoginForm(ApiForm):
    username = StringField("Username", validators=[DataRequired(), Length(max=150)])
    password = PasswordField("Password", validators=[DataRequired()])


@auth_bp.route("/login", methods=["POST"])
def login():
    attempts = current_app.extensions["login_attempts"]
    attempt_key = f"login:{request.remote_addr}"
    if attempts.exceeded(attempt_key):
        current_app.logger.warning("Login throttled", extra={"ip_address": request.remote_addr})
        raise TooManyAttempts()

    form = validated(LoginForm(), "Invalid login data")
    user = current_service().access.authenticate(form.username.data, form.password.data)
    if not user:
        attempts.record_failure(attempt_key)
        current_app.logger.warning(
            "Failed admin login",
            extra={"username": form.username.data, "ip_address": request.remote_addr},
        )
        raise Unauthorized("Invalid username or password")

    attempts.reset(attempt_key)
    login_user(user)
    session.permanent = True
    current_app.logger.info("Admin login", extra={"user_id": user.id})
    return jsonify({"message": "Login successful", "user": user.payload()})


@auth_bp.route("/logout", methods=["POST"])
def logout():
    user_id = getattr(current_user, "id", None)
    logout_user()
    session.clear()
    current_app.logger.info("Admin logout", extra={"user_id": user_id})
    return jsonify({"message": "Logout successful"})


@auth_bp.route("/status", methods=["GET"])
def status():
    if current_user.is_authenticated:
        return jsonify({"is_authenticated": True, "user": current_user.payload()})
    return jsonify({"is_authenticated": False})
