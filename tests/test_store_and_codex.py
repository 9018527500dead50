import sys
from pathlib import Path

import pytest
from sqlalchemy.exc import OperationalError

sys.path.append(str(Path(__file__).resolve().parents[1]))

from emerson import create_app
from emerson.config import TestConfig
from emerson.extensions import db
from emerson.models import CodexEntry, Project
from emerson.services.codex import CodexMergeError, merge_codex_entries
from emerson.store import ProjectStore, StoreError


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


@pytest.fixture
def project(store):
    with store.transaction():
        project = store.put(Project(name="Demo", genre="Fantasy"))
    return project


def _entry(store, project, name, **fields):
    values = dict(project_id=project.id, type="character", name=name)
    values.update(fields)
    with store.transaction():
        entry = store.put(CodexEntry(**values))
    return entry


def test_put_assigns_string_ids(store, project):
    assert isinstance(project.id, str)
    assert len(project.id) == 36
    assert store.get(Project, project.id) is project


def test_query_by_field_filters_by_type(store, project):
    _entry(store, project, "Alice")
    _entry(store, project, "Rivertown", type="location")

    assert sorted(entry.name for entry in store.query_by_field(CodexEntry, project.id)) == ["Alice", "Rivertown"]
    assert [entry.name for entry in store.query_by_field(CodexEntry, project.id, type="location")] == ["Rivertown"]


def test_transaction_rolls_back_on_error(store):
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.put(Project(name="Half written"))
            raise RuntimeError("interrupted")

    assert Project.query.count() == 0


class LockedSession:
    def __init__(self, session):
        self._session = session

    def commit(self):
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    def __getattr__(self, name):
        return getattr(self._session, name)


def test_commit_failure_raises_store_error(app_instance):
    locked = ProjectStore(LockedSession(db.session))

    with pytest.raises(StoreError, match="database is locked"):
        with locked.transaction():
            locked.put(Project(name="Never saved"))

    assert Project.query.count() == 0


def test_delete_reports_missing_records(store, project):
    assert store.delete(Project, "not-an-id") is False
    with store.transaction():
        assert store.delete(Project, project.id) is True
    assert store.get(Project, project.id) is None


def test_merge_folds_names_and_attributes(store, project):
    keep = _entry(
        store,
        project,
        "Alice",
        aliases=["Ali"],
        description="A cartographer.",
        attributes={"role": "protagonist", "mentions": "5"},
        tags=["pov"],
    )
    merge = _entry(
        store,
        project,
        "Alicia",
        aliases=["Ali", "Lady A"],
        description="Mapmaker of Rivertown.",
        attributes={"role": "unknown", "age": "32"},
        tags=["pov", "noble"],
    )

    kept = merge_codex_entries(store, project.id, keep.id, merge.id)

    assert kept.aliases == ["Ali", "Alicia", "Lady A"]
    assert kept.attributes == {"role": "protagonist", "mentions": "5", "age": "32"}
    assert kept.tags == ["pov", "noble"]
    assert kept.description == "A cartographer.\n\nMapmaker of Rivertown."
    assert store.get(CodexEntry, merge.id) is None
    assert len(store.query_by_field(CodexEntry, project.id)) == 1


def test_merge_rejects_mismatched_entries(store, project):
    alice = _entry(store, project, "Alice")
    town = _entry(store, project, "Rivertown", type="location")

    with pytest.raises(CodexMergeError):
        merge_codex_entries(store, project.id, alice.id, town.id)
    with pytest.raises(CodexMergeError):
        merge_codex_entries(store, project.id, alice.id, alice.id)
    with pytest.raises(CodexMergeError):
        merge_codex_entries(store, "other-project", alice.id, town.id)
