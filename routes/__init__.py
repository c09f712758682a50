"""Blueprint registration and liveness route."""
from flask import Blueprint, jsonify

from models import utcnow
from .auth import auth_bp
from .complaints import complaints_bp

main_bp = Blueprint("main", __name__)


@main_bp.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "ok", "time": utcnow().isoformat()})


__all__ = ["main_bp", "auth_bp", "complaints_bp"]
