import json
import sys
from datetime import datetime
from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError

sys.path.append(str(Path(__file__).resolve().parents[1]))

from api_handler import GatewayError, GenerationResponse
from emerson import create_app
from emerson.config import TestConfig
from emerson.extensions import db
from emerson.models import Chapter, CodexEntry, IngestionRun, Project, Scene
from emerson.services import ingestion
from emerson.services.files import DroppedFile
from emerson.services.ingestion import (
    IngestionError,
    answer_question,
    confirm_run,
    create_run,
    ingest_files,
    load_dialogue,
    start_fresh,
)
from emerson.store import ProjectStore, StoreError

CHAPTER_TEXT = "Alice walked into Rivertown at dusk. " * 50


@pytest.fixture
def app_instance():
    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def store(app_instance):
    return ProjectStore(db.session)


def _dropped(name, content):
    return DroppedFile(
        name=name,
        path=name,
        type=name.rsplit(".", 1)[-1],
        size=len(content),
        content=content,
        last_modified=datetime(2024, 1, 1),
    )


class ManuscriptGateway:
    """Classifies ``chapter1.txt`` and ``notes.md`` and returns a fixed consolidation."""

    def __init__(self, consolidation):
        self.consolidation = consolidation
        self.calls = 0

    def generate(self, request):
        self.calls += 1
        prompt = request.user_prompt
        if "FILE NAME: chapter1.txt" in prompt:
            payload = {
                "classification": "chapter-draft",
                "confidence": 0.95,
                "summary": "Alice arrives in Rivertown.",
                "characters": ["Alice"],
                "locations": ["Rivertown"],
                "concepts": [],
                "chapterNumber": 1,
                "isComplete": True,
            }
        elif "FILE NAME: notes.md" in prompt:
            payload = {
                "classification": "notes",
                "confidence": 0.7,
                "summary": "Ideas for later.",
                "characters": ["alice", "Bob"],
                "locations": [],
                "concepts": ["The Tide Guild"],
            }
        else:
            if isinstance(self.consolidation, Exception):
                raise self.consolidation
            return GenerationResponse(content=json.dumps(self.consolidation), model=request.model)
        return GenerationResponse(content=json.dumps(payload), model=request.model)


def _files():
    return [_dropped("chapter1.txt", CHAPTER_TEXT), _dropped("notes.md", "Alice should meet Bob.")]


def test_round_trip_without_questions(store):
    gateway = ManuscriptGateway(GatewayError("upstream unavailable", status_code=503))
    run = create_run()

    ingest_files(run, _files(), gateway=gateway)

    assert run.step == "confirm"
    assert load_dialogue(run).is_done
    assert "Found 2 files. Let me take a look..." in [message["content"] for message in run.messages]

    project_id = confirm_run(run, "River Book", store=store)

    assert run.step == "complete"
    project = store.get(Project, project_id)
    assert project.genre == "Fiction"

    chapters = store.query_by_field(Chapter, project_id)
    assert [chapter.number for chapter in chapters] == [1]
    scene = store.query_by_field(Scene, project_id)[0]
    assert scene.content == CHAPTER_TEXT
    assert scene.word_count == 300
    assert scene.status == "drafted"

    characters = store.query_by_field(CodexEntry, project_id, type="character")
    alice = next(entry for entry in characters if entry.name == "Alice")
    assert alice.attributes["mentions"] == "2"
    assert {entry.name for entry in characters} == {"Alice", "Bob"}


def test_questions_are_asked_before_confirmation(store):
    gateway = ManuscriptGateway(
        {
            "genreGuess": "Mystery",
            "possibleDuplicates": [],
            "questions": [
                {"id": "q1", "type": "character", "question": "Who is the protagonist?", "options": ["Alice", "Bob"]},
                {"id": "q2", "type": "canon", "question": "Are the notes canon?"},
            ],
        }
    )
    run = create_run()

    ingest_files(run, _files(), gateway=gateway)

    assert run.step == "questions"
    assert run.messages[-1]["content"] == "Who is the protagonist?"

    answer_question(run, "q2", "No")
    assert run.step == "questions"
    assert run.messages[-1]["content"] == "Who is the protagonist?"

    answer_question(run, "q1", "Alice")
    assert run.step == "confirm"

    project_id = confirm_run(run, "Mystery Book", store=store)
    project = store.get(Project, project_id)
    assert project.genre == "Mystery"
    assert project.settings["clarifications"] == {"q1": "Alice", "q2": "No"}


def test_unknown_answer_id_is_rejected(store):
    gateway = ManuscriptGateway(
        {"genreGuess": "Mystery", "questions": [{"id": "q1", "type": "other", "question": "Title?"}]}
    )
    run = create_run()
    ingest_files(run, _files(), gateway=gateway)

    with pytest.raises(IngestionError):
        answer_question(run, "q7", "Whatever")


def test_empty_input_returns_to_welcome(store):
    run = create_run()

    ingest_files(run, [], gateway=ManuscriptGateway({}))

    assert run.step == "welcome"
    assert run.messages[-1]["content"] == ingestion.NO_FILES_MESSAGE
    assert Project.query.count() == 0


def test_repeated_confirm_does_not_duplicate(store):
    run = create_run()
    ingest_files(run, _files(), gateway=ManuscriptGateway(GatewayError("down")))

    first = confirm_run(run, "Once", store=store)
    second = confirm_run(run, "Twice", store=store)

    assert first == second
    assert Project.query.count() == 1


def test_failed_materialization_returns_to_confirm(store, monkeypatch):
    run = create_run()
    ingest_files(run, _files(), gateway=ManuscriptGateway(GatewayError("down")))

    original_put = ProjectStore.put

    def failing_put(self, record):
        if isinstance(record, Scene):
            raise StoreError("disk full")
        return original_put(self, record)

    monkeypatch.setattr(ProjectStore, "put", failing_put)

    with pytest.raises(IngestionError):
        confirm_run(run, "Broken", store=store)

    assert run.step == "confirm"
    assert run.error
    assert run.project_id is None
    assert Project.query.count() == 0

    monkeypatch.setattr(ProjectStore, "put", original_put)
    project_id = confirm_run(run, "Fixed", store=store)
    assert store.get(Project, project_id).name == "Fixed"


class LockedSession:
    """Delegates to a real session but refuses to commit."""

    def __init__(self, session):
        self._session = session

    def commit(self):
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    def __getattr__(self, name):
        return getattr(self._session, name)


def test_commit_failure_returns_run_to_confirm(store):
    run = create_run()
    ingest_files(run, _files(), gateway=ManuscriptGateway(GatewayError("down")))

    with pytest.raises(IngestionError):
        confirm_run(run, "Locked", store=ProjectStore(LockedSession(db.session)))

    assert run.step == "confirm"
    assert run.error == "Failed to create project. Please try again."
    assert run.project_id is None
    assert Project.query.count() == 0

    project_id = confirm_run(run, "Unlocked", store=store)
    assert run.step == "complete"
    assert store.get(Project, project_id).name == "Unlocked"


def test_start_fresh_creates_empty_project(store):
    run = create_run()

    start_fresh(run)
    project_id = confirm_run(run, "Blank Slate", store=store)

    project = store.get(Project, project_id)
    assert project.name == "Blank Slate"
    assert project.genre == "Fiction"
    assert project.chapters == []
    assert store.query_by_field(CodexEntry, project_id) == []


def test_steps_cannot_be_skipped(store):
    run = create_run()

    with pytest.raises(IngestionError):
        confirm_run(run, "Too early", store=store)
    with pytest.raises(IngestionError):
        answer_question(run, "q1", "Yes")
    assert db.session.get(IngestionRun, run.id).step == "welcome"


def test_library_round_trip(store):
    class LibraryGateway:
        def generate(self, request):
            if "FILE NAME: chapter1.txt" in request.user_prompt:
                payload = {
                    "classification": "chapter-draft",
                    "confidence": 0.9,
                    "summary": "Alice visits the library.",
                    "characters": ["Alice"],
                    "locations": ["the library"],
                    "chapterNumber": 1,
                    "isComplete": True,
                }
            elif "FILE NAME: notes.md" in request.user_prompt:
                payload = {"classification": "worldbuilding", "confidence": 0.8, "summary": "World notes"}
            else:
                payload = {"genreGuess": "Literary Fiction", "possibleDuplicates": [], "questions": []}
            return GenerationResponse(content=json.dumps(payload), model=request.model)

    run = create_run()
    files = [
        _dropped("chapter1.txt", "Alice walked into the library."),
        _dropped("notes.md", "The city has three libraries."),
    ]

    ingest_files(run, files, gateway=LibraryGateway())
    assert run.step == "confirm"
    project_id = confirm_run(run, "Library", store=store)

    assert Project.query.count() == 1
    chapters = store.query_by_field(Chapter, project_id)
    assert [chapter.number for chapter in chapters] == [1]
    scenes = store.query_by_field(Scene, project_id)
    assert len(scenes) == 1
    assert scenes[0].content == "Alice walked into the library."
    assert scenes[0].status == "drafted"
    assert scenes[0].word_count == 5
    names = [entry.name for entry in store.query_by_field(CodexEntry, project_id, type="character")]
    assert "Alice" in names
