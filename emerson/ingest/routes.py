from __future__ import annotations

from flask import abort, current_app, flash, redirect, render_template, url_for

from ..extensions import db
from ..models import IngestionRun
from ..services.files import read_uploaded_files
from ..services.gateway import _get_model_gateway
from ..services.ingestion import (
    IngestionError,
    answer_question,
    confirm_run,
    create_run,
    discard_run,
    ingest_files,
    load_analysis,
    load_dialogue,
    start_fresh,
)
from ..store import get_store
from . import bp
from .forms import AnswerForm, ProjectNameForm, UploadForm


def _get_run_or_404(run_id: str) -> IngestionRun:
    run = db.session.get(IngestionRun, run_id)
    if run is None:
        abort(404)
    return run


@bp.route("/", methods=["GET", "POST"])
def start():
    form = UploadForm()
    if not form.validate_on_submit():
        return render_template("ingest/start.html", form=form)

    if form.start_fresh.data:
        run = create_run()
        start_fresh(run)
        return redirect(url_for("ingest.detail", run_id=run.id))

    if _get_model_gateway() is None:
        flash("Add an OpenRouter API key in settings before importing files.", "warning")
        return redirect(url_for("settings.index"))

    run = create_run()
    ingest_files(run, read_uploaded_files(form.files.data or []))
    if run.step == "welcome":
        message = run.error or run.messages[-1]["content"]
        flash(message, "warning")
        discard_run(run)
        return redirect(url_for("ingest.start"))
    return redirect(url_for("ingest.detail", run_id=run.id))


@bp.route("/<run_id>")
def detail(run_id: str):
    run = _get_run_or_404(run_id)
    analysis = load_analysis(run)
    dialogue = load_dialogue(run)

    answer_form = None
    current_question = dialogue.current_question if dialogue else None
    if run.step == "questions" and current_question is not None:
        answer_form = AnswerForm(question_id=current_question.id)
        answer_form.choice.choices = [(option, option) for option in current_question.options or []]

    name_form = ProjectNameForm(name=run.project_name) if run.step == "confirm" else None

    return render_template(
        "ingest/detail.html",
        run=run,
        analysis=analysis,
        current_question=current_question,
        answer_form=answer_form,
        name_form=name_form,
    )


@bp.route("/<run_id>/answer", methods=["POST"])
def answer(run_id: str):
    run = _get_run_or_404(run_id)
    form = AnswerForm()
    if not form.validate_on_submit():
        flash("Please answer the question before continuing.", "warning")
        return redirect(url_for("ingest.detail", run_id=run.id))

    text = form.answer_text()
    if not text:
        flash("Please answer the question before continuing.", "warning")
        return redirect(url_for("ingest.detail", run_id=run.id))

    try:
        answer_question(run, form.question_id.data, text)
    except IngestionError as exc:
        flash(str(exc), "danger")
    return redirect(url_for("ingest.detail", run_id=run.id))


@bp.route("/<run_id>/confirm", methods=["POST"])
def confirm(run_id: str):
    run = _get_run_or_404(run_id)
    form = ProjectNameForm()
    if not form.validate_on_submit():
        flash("Give your project a name.", "warning")
        return redirect(url_for("ingest.detail", run_id=run.id))

    try:
        project_id = confirm_run(run, form.name.data, store=get_store())
    except IngestionError as exc:
        current_app.logger.warning("Project creation for run %s failed: %s", run.id, exc)
        flash(run.error or str(exc), "danger")
        return redirect(url_for("ingest.detail", run_id=run.id))

    flash(f'Project "{run.project_name}" created.', "success")
    return redirect(url_for("projects.detail", project_id=project_id))


@bp.route("/<run_id>/discard", methods=["POST"])
def discard(run_id: str):
    run = _get_run_or_404(run_id)
    discard_run(run)
    flash("Import discarded.", "info")
    return redirect(url_for("main.dashboard"))
