"""
Client configuration endpoint.  Exempt from the version gate so outdated
apps can still learn where to update.
"""
from flask import Blueprint, current_app, jsonify

app_config_bp = Blueprint("app_config", __name__)


@app_config_bp.route("/app-config")
def get_app_config():
    return jsonify(current_app.extensions["version_policy"].as_dict())
