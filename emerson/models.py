from __future__ import annotations

import uuid
from datetime import datetime

from .extensions import db


def _new_id() -> str:
    return str(uuid.uuid4())


class Project(db.Model):
    __tablename__ = "projects"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    name = db.Column(db.String(150), nullable=False)
    genre = db.Column(db.String(120), nullable=False, default="Fiction")
    status = db.Column(db.String(50), nullable=False, default="drafting")
    settings = db.Column(db.JSON, nullable=False, default=dict)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    chapters = db.relationship(
        "Chapter",
        backref="project",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Chapter.number",
    )
    codex_entries = db.relationship(
        "CodexEntry",
        backref="project",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="CodexEntry.name",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Project {self.name} ({self.status})>"


class CodexEntry(db.Model):
    __tablename__ = "codex_entries"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    project_id = db.Column(db.String(36), db.ForeignKey("projects.id"), nullable=False, index=True)
    type = db.Column(db.String(50), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    aliases = db.Column(db.JSON, nullable=False, default=list)
    description = db.Column(db.Text, nullable=False, default="")
    attributes = db.Column(db.JSON, nullable=False, default=dict)
    relationships = db.Column(db.JSON, nullable=False, default=list)
    tags = db.Column(db.JSON, nullable=False, default=list)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<CodexEntry {self.type}:{self.name}>"


class Chapter(db.Model):
    __tablename__ = "chapters"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    project_id = db.Column(db.String(36), db.ForeignKey("projects.id"), nullable=False, index=True)
    number = db.Column(db.Integer, nullable=False, default=0)
    title = db.Column(db.String(200), nullable=False, default="")
    summary = db.Column(db.Text, nullable=True)

    scenes = db.relationship(
        "Scene",
        backref="chapter",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="Scene.number",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Chapter {self.number}: {self.title}>"


class Scene(db.Model):
    __tablename__ = "scenes"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    project_id = db.Column(db.String(36), db.ForeignKey("projects.id"), nullable=False, index=True)
    chapter_id = db.Column(db.String(36), db.ForeignKey("chapters.id"), nullable=False, index=True)
    number = db.Column(db.Integer, nullable=False, default=1)
    goal = db.Column(db.Text, nullable=False, default="")
    status = db.Column(db.String(50), nullable=False, default="planned")
    content = db.Column(db.Text, nullable=False, default="")
    word_count = db.Column(db.Integer, nullable=False, default=0)
    issues = db.Column(db.JSON, nullable=False, default=list)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Scene {self.number} of chapter {self.chapter_id} ({self.status})>"


class IngestionRun(db.Model):
    """Server-side state of one ingestion session across requests."""

    __tablename__ = "ingestion_runs"

    id = db.Column(db.String(36), primary_key=True, default=_new_id)
    step = db.Column(db.String(30), nullable=False, default="welcome")
    files = db.Column(db.JSON, nullable=False, default=list)
    analysis = db.Column(db.JSON, nullable=True)
    dialogue = db.Column(db.JSON, nullable=True)
    messages = db.Column(db.JSON, nullable=False, default=list)
    progress = db.Column(db.String(255), nullable=True)
    project_name = db.Column(db.String(150), nullable=True)
    project_id = db.Column(db.String(36), nullable=True)
    error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<IngestionRun {self.id} ({self.step})>"


class AppSetting(db.Model):
    __tablename__ = "app_settings"

    key = db.Column(db.String(80), primary_key=True)
    value = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<AppSetting {self.key}>"
