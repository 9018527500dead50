from flask import render_template

from ..models import IngestionRun, Project
from ..services.gateway import _get_model_gateway
from . import bp


@bp.route("/")
def dashboard():
    projects = Project.query.order_by(Project.updated_at.desc()).all()
    open_runs = (
        IngestionRun.query.filter(IngestionRun.step != "complete")
        .order_by(IngestionRun.updated_at.desc())
        .all()
    )
    return render_template(
        "main/dashboard.html",
        projects=projects,
        open_runs=open_runs,
        gateway_ready=_get_model_gateway() is not None,
    )
