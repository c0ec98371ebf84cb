from flask import Blueprint

siniestros_bp = Blueprint("siniestros", __name__, url_prefix="/siniestros")

from sigs.siniestros import routes  # noqa: E402,F401
