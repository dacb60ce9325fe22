"""
Login, password reset and OTP activation endpoints.
"""
from flask import Blueprint, current_app, jsonify, request

auth_bp = Blueprint("auth", __name__)


def _service():
    return current_app.extensions["auth_service"]


@auth_bp.route("/login", methods=["POST"])
def login():
    body = request.get_json(silent=True) or {}
    token = _service().login(body.get("email"), body.get("password"))
    return jsonify({"message": "Login successful", "authCode": token})


@auth_bp.route("/resetpassword", methods=["POST"])
def reset_password():
    body = request.get_json(silent=True) or {}
    token = _service().reset_password(
        body.get("email"), body.get("oldPassword"), body.get("newPassword"),
    )
    return jsonify({"message": "Password reset successful", "authCode": token})


@auth_bp.route("/generate-otp", methods=["POST"])
def generate_otp():
    body = request.get_json(silent=True) or {}
    _service().generate_otp(body.get("email"))
    return jsonify({"message": "OTP generated successfully"})


@auth_bp.route("/verify-otp", methods=["POST"])
def verify_otp():
    body = request.get_json(silent=True) or {}
    _service().verify_otp(body.get("email"), body.get("otp"))
    return jsonify({"message": "OTP verified successfully. Account activated."})
