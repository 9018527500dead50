"""``flask ingest-folder``: run the whole ingestion pipeline from the terminal."""
from __future__ import annotations

from pathlib import Path

import click
from flask.cli import with_appcontext

from .services.files import FileExtractionError, read_directory
from .services.gateway import _get_model_gateway
from .services.ingestion import (
    IngestionError,
    answer_question,
    confirm_run,
    create_run,
    ingest_files,
    load_dialogue,
)
from .store import get_store


@click.command("ingest-folder")
@click.argument("folder", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--name", "project_name", help="Project name; prompted for when omitted.")
@click.option("--model", default=None, help="Model id used for analysis (defaults to the saved preference).")
@with_appcontext
def ingest_folder_command(folder: Path, project_name: str | None, model: str | None) -> None:
    """Import every manuscript file below FOLDER as a new project."""

    if _get_model_gateway() is None:
        raise click.ClickException("No model configured. Set OPENROUTER_API_KEY or TEXT_GENERATOR_MODEL_PATH.")

    try:
        files = read_directory(folder)
    except FileExtractionError as exc:
        raise click.ClickException(str(exc)) from exc

    run = create_run()
    ingest_files(run, files, model=model)
    seen = _echo_new_messages(run, 0)
    if run.step == "welcome":
        raise click.ClickException(run.error or "Nothing to import.")

    while run.step == "questions":
        dialogue = load_dialogue(run)
        question = dialogue.current_question
        if question.options:
            for index, option in enumerate(question.options, start=1):
                click.echo(f"  {index}. {option}")
        reply = click.prompt("Your answer").strip()
        if question.options and reply.isdigit() and 1 <= int(reply) <= len(question.options):
            reply = question.options[int(reply) - 1]
        answer_question(run, question.id, reply)
        seen = _echo_new_messages(run, seen)

    if not project_name:
        project_name = click.prompt("Project name").strip()

    try:
        project_id = confirm_run(run, project_name, store=get_store())
    except IngestionError as exc:
        raise click.ClickException(str(exc)) from exc

    _echo_new_messages(run, seen)
    click.echo(f"Project id: {project_id}")


def _echo_new_messages(run, start: int) -> int:
    messages = run.messages or []
    for message in messages[start:]:
        if message["role"] != "user":
            click.echo(message["content"])
    return len(messages)
