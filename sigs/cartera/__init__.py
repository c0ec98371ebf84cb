from flask import Blueprint

cartera_bp = Blueprint("cartera", __name__, url_prefix="/cartera")

from sigs.cartera import routes  # noqa: E402,F401
