"""Drive one ingestion run from dropped files to a materialized project.

The run's state lives on an :class:`~emerson.models.IngestionRun` row so the
web flow can span several requests. Steps advance strictly forward::

    welcome -> reading -> classifying -> analyzing -> summary
            -> questions -> confirm -> building -> complete
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import IngestionRun
from ..store import ProjectStore
from .analysis import IngestionAnalysis, analyze_project
from .app_settings import get_model_preferences
from .classification import classify_files
from .dialogue import ClarificationDialogue, DialogueError
from .files import DroppedFile
from .gateway import _get_model_gateway
from .materialize import MaterializationError, materialize_project

NO_FILES_MESSAGE = (
    "I couldn't find any text files in what you dropped. "
    "I can read .txt, .md, .docx, and similar files. Could you try again?"
)


class IngestionError(RuntimeError):
    """Raised when an ingestion run cannot move to the requested step."""


def create_run() -> IngestionRun:
    run = IngestionRun(step="welcome", files=[], messages=[])
    db.session.add(run)
    db.session.commit()
    return run


def add_message(run: IngestionRun, role: str, content: str) -> None:
    # JSON columns only track reassignment.
    run.messages = [*(run.messages or []), {"role": role, "content": content}]


def load_analysis(run: IngestionRun) -> Optional[IngestionAnalysis]:
    if not run.analysis:
        return None
    return IngestionAnalysis.from_dict(run.analysis)


def load_dialogue(run: IngestionRun) -> Optional[ClarificationDialogue]:
    if not run.dialogue:
        return None
    return ClarificationDialogue.from_dict(run.dialogue)


def _set_step(run: IngestionRun, step: str, progress: Optional[str] = None) -> None:
    run.step = step
    run.progress = progress
    db.session.commit()


def ingest_files(
    run: IngestionRun,
    files: Sequence[DroppedFile],
    *,
    model: Optional[str] = None,
    gateway: Optional[Any] = None,
) -> IngestionRun:
    """Classify and analyze ``files``, then present the summary.

    With no readable files the run returns to ``welcome`` with a message.
    """

    if run.step != "welcome":
        raise IngestionError(f"Cannot ingest files while the run is at '{run.step}'.")

    config = current_app.config
    if model is None:
        model = get_model_preferences()["analysis"]
    if gateway is None:
        gateway = _get_model_gateway()

    add_message(run, "system", "Reading your files...")
    _set_step(run, "reading")

    if not files:
        add_message(run, "assistant", NO_FILES_MESSAGE)
        _set_step(run, "welcome")
        return run

    run.files = [file.to_dict() for file in files]
    add_message(run, "assistant", f"Found {len(files)} files. Let me take a look...")
    _set_step(run, "classifying")

    def record_progress(message: str) -> None:
        run.progress = message

    classified = classify_files(
        files,
        model,
        gateway=gateway,
        on_progress=record_progress,
        max_workers=int(config.get("CLASSIFICATION_WORKERS", 1) or 1),
    )

    add_message(run, "assistant", "I've read all your files. Now let me piece together the big picture...")
    _set_step(run, "analyzing")

    try:
        analysis = analyze_project(
            classified,
            model,
            gateway=gateway,
            on_progress=record_progress,
            enrich_limit=int(config.get("CHARACTER_ENRICHMENT_LIMIT", 0) or 0),
        )
    except Exception:
        current_app.logger.exception("Unexpected error while analyzing ingestion run %s", run.id)
        run.error = "Failed to analyze project. Please try again."
        _set_step(run, "welcome")
        return run

    run.analysis = analysis.to_dict()
    _set_step(run, "summary")
    _present_summary(run, analysis)
    return run


def _present_summary(run: IngestionRun, analysis: IngestionAnalysis) -> None:
    chapters = analysis.structure_guess.chapters
    complete = sum(1 for chapter in chapters if chapter.status == "complete")
    partial = sum(1 for chapter in chapters if chapter.status == "partial")

    add_message(
        run,
        "assistant",
        f"Here's what I found: {analysis.total_words:,} words of prose, {len(chapters)} chapters, "
        f"{len(analysis.characters)} characters and {len(analysis.locations)} locations. "
        f"Genre: {analysis.genre}.",
    )
    if complete or partial:
        add_message(
            run,
            "assistant",
            f"Of those chapters: {complete} look complete, {partial} are partial or cut off mid-scene.",
        )

    dialogue = ClarificationDialogue(analysis.questions)
    first = dialogue.start()
    run.dialogue = dialogue.to_dict()
    if first is None:
        add_message(run, "assistant", "Everything looks pretty clear! Let's give your project a name and I'll set it up.")
        _set_step(run, "confirm")
        return

    add_message(run, "assistant", "I have a few questions to make sure I understand everything correctly.")
    add_message(run, "assistant", first.question)
    _set_step(run, "questions")


def answer_question(run: IngestionRun, question_id: str, text: str) -> IngestionRun:
    if run.step != "questions":
        raise IngestionError("There is no open question for this run.")
    dialogue = load_dialogue(run)
    if dialogue is None:
        raise IngestionError("This run has no questions to answer.")

    try:
        next_question = dialogue.answer(question_id, text)
    except DialogueError as exc:
        raise IngestionError(str(exc)) from exc

    add_message(run, "user", text)
    run.dialogue = dialogue.to_dict()
    if next_question is not None:
        add_message(run, "assistant", next_question.question)
        db.session.commit()
        return run

    add_message(run, "assistant", "Perfect, I've got what I need. Let's give your project a name.")
    _set_step(run, "confirm")
    return run


def start_fresh(run: IngestionRun) -> IngestionRun:
    """Skip file ingestion and go straight to naming an empty project."""

    if run.step != "welcome":
        raise IngestionError(f"Cannot start fresh while the run is at '{run.step}'.")
    run.analysis = IngestionAnalysis().to_dict()
    run.dialogue = ClarificationDialogue([]).to_dict()
    add_message(run, "assistant", "Starting fresh! Let's begin with the basics. What's your story called?")
    _set_step(run, "confirm")
    return run


def confirm_run(
    run: IngestionRun,
    project_name: str,
    *,
    store: ProjectStore,
    preferred_models: Optional[Dict[str, str]] = None,
) -> str:
    """Materialize the run's analysis as a project and return its id.

    A run that already produced a project returns that id without writing
    anything. When materialization fails the run goes back to ``confirm``
    and :class:`IngestionError` is raised.
    """

    if run.project_id:
        return run.project_id
    if run.step != "confirm":
        raise IngestionError(f"Cannot create a project while the run is at '{run.step}'.")

    analysis = load_analysis(run) or IngestionAnalysis()
    dialogue = load_dialogue(run)
    answers = dict(dialogue.answers) if dialogue else {}
    if preferred_models is None:
        preferred_models = get_model_preferences()

    run.project_name = (project_name or "").strip() or None
    run.error = None
    add_message(run, "system", "Building your project...")
    _set_step(run, "building")

    try:
        project_id = materialize_project(
            analysis,
            answers,
            project_name,
            store=store,
            preferred_models=preferred_models,
        )
    except (MaterializationError, SQLAlchemyError) as exc:
        db.session.rollback()
        current_app.logger.warning("Materialization of run %s failed: %s", run.id, exc)
        run.error = "Failed to create project. Please try again."
        _set_step(run, "confirm")
        raise IngestionError(str(exc)) from exc

    run.project_id = project_id
    add_message(
        run,
        "assistant",
        f'Your project "{run.project_name}" is ready! I\'ve imported '
        f"{len(analysis.structure_guess.chapters)} chapters and created entries for "
        f"{len(analysis.characters)} characters and {len(analysis.locations)} locations.",
    )
    _set_step(run, "complete")
    return project_id


def discard_run(run: IngestionRun) -> None:
    db.session.delete(run)
    db.session.commit()
