from flask import Blueprint

bp = Blueprint("ingest", __name__, url_prefix="/ingest")

from . import routes  # noqa: E402,F401
