from flask import Blueprint

documentos_bp = Blueprint("documentos", __name__, url_prefix="/documentos")

from sigs.documentos import routes  # noqa: E402,F401
