import io
import json
import sys
from pathlib import Path

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from api_handler import GenerationResponse
from emerson import create_app
from emerson.config import TestConfig
from emerson.extensions import db
from emerson.models import AppSetting, CodexEntry, IngestionRun, Project
from emerson.services.app_settings import API_KEY_SETTING, MODEL_PREFERENCES_SETTING
from emerson.services.gateway import GATEWAY_CACHE_KEY


class QuestioningGateway:
    def generate(self, request):
        if "FILE NAME: chapter1.txt" in request.user_prompt:
            payload = {
                "classification": "chapter-draft",
                "confidence": 0.9,
                "summary": "Opening chapter",
                "characters": ["Alice", "Alicia"],
                "locations": ["Rivertown"],
                "chapterNumber": 1,
                "isComplete": False,
            }
        else:
            payload = {
                "genreGuess": "Fantasy",
                "possibleDuplicates": [{"items": ["Alice", "Alicia"], "reason": "Similar names"}],
                "questions": [
                    {
                        "id": "q1",
                        "type": "duplicate",
                        "question": "Are Alice and Alicia the same person?",
                        "options": ["Yes", "No"],
                    }
                ],
            }
        return GenerationResponse(content=json.dumps(payload), model=request.model)


@pytest.fixture
def app_instance():
    app = create_app(TestConfig)
    app.config["WTF_CSRF_ENABLED"] = False
    ctx = app.app_context()
    ctx.push()
    db.create_all()
    yield app
    db.session.remove()
    db.drop_all()
    ctx.pop()


@pytest.fixture
def client(app_instance):
    return app_instance.test_client()


@pytest.fixture
def gateway(app_instance):
    fake = QuestioningGateway()
    app_instance.config[GATEWAY_CACHE_KEY] = fake
    return fake


@pytest.fixture
def project(app_instance):
    project = Project(name="Demo Project", genre="Fantasy")
    db.session.add(project)
    db.session.flush()
    db.session.add_all(
        [
            CodexEntry(project_id=project.id, type="character", name="Alice"),
            CodexEntry(project_id=project.id, type="character", name="Alicia", aliases=["Ali"]),
        ]
    )
    db.session.commit()
    return project


def _upload(client):
    return client.post(
        "/ingest/",
        data={
            "files": [(io.BytesIO(b"Alice and Alicia reached Rivertown."), "chapter1.txt")],
            "submit": "I have files",
        },
        content_type="multipart/form-data",
    )


def test_dashboard_lists_projects(client, project):
    response = client.get("/")

    assert response.status_code == 200
    assert b"Demo Project" in response.data


def test_upload_without_model_redirects_to_settings(app_instance, client):
    app_instance.config[GATEWAY_CACHE_KEY] = None

    response = _upload(client)

    assert response.status_code == 302
    assert response.headers["Location"].endswith("/settings/")
    assert IngestionRun.query.count() == 0


def test_upload_with_no_text_files_flashes_message(client, gateway):
    response = client.post(
        "/ingest/",
        data={"files": [(io.BytesIO(b"\x89PNG"), "cover.png")], "submit": "I have files"},
        content_type="multipart/form-data",
        follow_redirects=True,
    )

    assert response.status_code == 200
    assert b"couldn&#39;t find any text files" in response.data
    assert IngestionRun.query.count() == 0


def test_full_ingestion_through_the_browser(client, gateway):
    response = _upload(client)
    assert response.status_code == 302

    run = IngestionRun.query.one()
    assert run.step == "questions"

    page = client.get(f"/ingest/{run.id}")
    assert b"Are Alice and Alicia the same person?" in page.data
    assert b"Similar names" in page.data

    response = client.post(f"/ingest/{run.id}/answer", data={"question_id": "q1", "choice": "No"})
    assert response.status_code == 302
    db.session.refresh(run)
    assert run.step == "confirm"

    response = client.post(f"/ingest/{run.id}/confirm", data={"name": "River Saga"})
    assert response.status_code == 302

    project = Project.query.filter_by(name="River Saga").one()
    assert response.headers["Location"].endswith(f"/projects/{project.id}")
    assert project.settings["clarifications"] == {"q1": "No"}

    detail = client.get(f"/projects/{project.id}")
    assert detail.status_code == 200
    assert b"Chapter 1" in detail.data
    assert b"Rivertown" in detail.data


def test_blank_answer_is_not_recorded(client, gateway):
    _upload(client)
    run = IngestionRun.query.one()

    client.post(f"/ingest/{run.id}/answer", data={"question_id": "q1", "answer": "  "})

    db.session.refresh(run)
    assert run.step == "questions"


def test_start_fresh_then_confirm(client):
    response = client.post("/ingest/", data={"start_fresh": "Starting fresh"})
    run = IngestionRun.query.one()
    assert response.headers["Location"].endswith(f"/ingest/{run.id}")

    client.post(f"/ingest/{run.id}/confirm", data={"name": "Blank"})

    assert Project.query.filter_by(name="Blank").count() == 1


def test_discard_removes_run(client):
    client.post("/ingest/", data={"start_fresh": "Starting fresh"})
    run = IngestionRun.query.one()

    response = client.post(f"/ingest/{run.id}/discard")

    assert response.status_code == 302
    assert IngestionRun.query.count() == 0


def test_unknown_run_is_404(client):
    assert client.get("/ingest/does-not-exist").status_code == 404


def test_codex_merge_route(client, project):
    alice = CodexEntry.query.filter_by(name="Alice").one()
    alicia = CodexEntry.query.filter_by(name="Alicia").one()

    response = client.post(
        f"/projects/{project.id}/codex/merge",
        data={"keep_id": alice.id, "merge_id": alicia.id},
        follow_redirects=True,
    )

    assert response.status_code == 200
    assert b"Merged into Alice." in response.data
    db.session.expire_all()
    merged = db.session.get(CodexEntry, alice.id)
    assert merged.aliases == ["Alicia", "Ali"]
    assert db.session.get(CodexEntry, alicia.id) is None


def test_delete_project_route(client, project):
    response = client.post(f"/projects/{project.id}/delete", data={"submit": "Delete project"})

    assert response.status_code == 302
    assert Project.query.count() == 0
    assert CodexEntry.query.count() == 0


def test_settings_save_key_and_models(app_instance, client, gateway):
    response = client.post(
        "/settings/",
        data={
            "api_key": "sk-or-test-key",
            "analysis_model": "anthropic/claude-3-haiku",
            "writing_model": "anthropic/claude-sonnet-4",
            "brainstorm_model": "openai/gpt-4o",
        },
    )

    assert response.status_code == 302
    assert db.session.get(AppSetting, API_KEY_SETTING).value == "sk-or-test-key"
    assert db.session.get(AppSetting, MODEL_PREFERENCES_SETTING).value["analysis"] == "anthropic/claude-3-haiku"
    assert GATEWAY_CACHE_KEY not in app_instance.config


def test_settings_rejects_unknown_model(client):
    response = client.post(
        "/settings/",
        data={
            "analysis_model": "made-up/model",
            "writing_model": "anthropic/claude-sonnet-4",
            "brainstorm_model": "openai/gpt-4o",
        },
    )

    assert response.status_code == 200
    assert db.session.get(AppSetting, MODEL_PREFERENCES_SETTING) is None
