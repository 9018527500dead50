from __future__ import annotations

from flask import abort, current_app, flash, redirect, render_template, url_for

from ..models import CodexEntry, Project, Scene
from ..services.codex import CodexMergeError, merge_codex_entries
from ..store import StoreError, get_store
from . import bp
from .forms import CodexMergeForm, DeleteProjectForm


def _get_project_or_404(project_id: str) -> Project:
    project = get_store().get(Project, project_id)
    if project is None:
        abort(404)
    return project


@bp.route("/<project_id>")
def detail(project_id: str):
    project = _get_project_or_404(project_id)
    store = get_store()
    characters = store.query_by_field(CodexEntry, project.id, type="character")
    locations = store.query_by_field(CodexEntry, project.id, type="location")
    scene_count = len(store.query_by_field(Scene, project.id))
    total_words = sum(scene.word_count for chapter in project.chapters for scene in chapter.scenes)

    merge_form = CodexMergeForm()
    merge_form.set_entries(project.codex_entries)

    return render_template(
        "projects/detail.html",
        project=project,
        characters=characters,
        locations=locations,
        scene_count=scene_count,
        total_words=total_words,
        merge_form=merge_form,
        delete_form=DeleteProjectForm(),
    )


@bp.route("/<project_id>/codex/merge", methods=["POST"])
def merge_codex(project_id: str):
    project = _get_project_or_404(project_id)
    form = CodexMergeForm()
    form.set_entries(project.codex_entries)
    if not form.validate_on_submit():
        flash("Select two entries to merge.", "warning")
        return redirect(url_for("projects.detail", project_id=project.id))

    try:
        kept = merge_codex_entries(get_store(), project.id, form.keep_id.data, form.merge_id.data)
    except (CodexMergeError, StoreError) as exc:
        flash(str(exc), "danger")
    else:
        flash(f"Merged into {kept.name}.", "success")
    return redirect(url_for("projects.detail", project_id=project.id))


@bp.route("/<project_id>/delete", methods=["POST"])
def delete(project_id: str):
    project = _get_project_or_404(project_id)
    form = DeleteProjectForm()
    if not form.validate_on_submit():
        abort(400)

    store = get_store()
    name = project.name
    try:
        with store.transaction():
            # Scenes hang off chapters; the chapter cascade removes them.
            store.delete(Project, project.id)
    except StoreError:
        current_app.logger.exception("Failed to delete project %s", project_id)
        flash("We couldn't delete that project. Please try again.", "danger")
        return redirect(url_for("projects.detail", project_id=project_id))

    flash(f'Project "{name}" deleted.', "info")
    return redirect(url_for("main.dashboard"))
