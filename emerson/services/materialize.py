"""Turn a reconciled ingestion analysis into persisted project records."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, Mapping, Optional, Sequence

from ..models import Chapter, CodexEntry, Project, Scene
from ..store import ProjectStore, StoreError
from .aggregation import STRUCTURE_CLASSIFICATIONS, ChapterGuess
from .analysis import IngestionAnalysis
from .classification import ClassifiedFile
from .consolidation import DEFAULT_GENRE
from .files import count_words

CHARACTER_ENTRY_LIMIT = 20
LOCATION_ENTRY_LIMIT = 15
IMPORTED_SCENE_GOAL = "Imported scene"


class MaterializationError(RuntimeError):
    """Raised when the project records cannot be written."""


def _scene_source(guess: ChapterGuess, prose: Sequence[ClassifiedFile]) -> Optional[ClassifiedFile]:
    """Return the first file of a chapter bucket, matched by path when known."""
    for path in guess.paths:
        for file in prose:
            if file.path == path:
                return file
    for name in guess.files:
        for file in prose:
            if file.name == name:
                return file
    return None


def materialize_project(
    analysis: IngestionAnalysis,
    answers: Mapping[str, str],
    project_name: str,
    *,
    store: ProjectStore,
    preferred_models: Optional[Dict[str, str]] = None,
) -> str:
    """Write the project, its codex entries, chapters and scenes.

    Everything is written in one store transaction; on failure nothing is
    left behind and :class:`MaterializationError` is raised. Returns the new
    project id.
    """

    name = (project_name or "").strip()
    if not name:
        raise MaterializationError("A project name is required.")

    now = datetime.utcnow()
    prose = [file for file in analysis.files if file.classification in STRUCTURE_CLASSIFICATIONS]

    try:
        with store.transaction():
            project = store.put(
                Project(
                    name=name,
                    genre=analysis.genre or DEFAULT_GENRE,
                    status="drafting",
                    created_at=now,
                    updated_at=now,
                    settings={
                        "preferred_models": dict(preferred_models or {}),
                        "clarifications": dict(answers),
                    },
                )
            )

            for character in analysis.characters[:CHARACTER_ENTRY_LIMIT]:
                store.put(
                    CodexEntry(
                        project_id=project.id,
                        type="character",
                        name=character.name,
                        aliases=list(character.aliases),
                        description=character.description or "",
                        attributes={"role": character.role or "unknown", "mentions": str(character.mentions)},
                        relationships=[],
                        tags=[],
                    )
                )

            for location in analysis.locations[:LOCATION_ENTRY_LIMIT]:
                store.put(
                    CodexEntry(
                        project_id=project.id,
                        type="location",
                        name=location.name,
                        aliases=[],
                        description=location.description or "",
                        attributes={},
                        relationships=[],
                        tags=[],
                    )
                )

            for guess in analysis.structure_guess.chapters:
                number = guess.number or 0
                chapter = store.put(
                    Chapter(
                        project_id=project.id,
                        number=number,
                        title=guess.title or (f"Chapter {number}" if number else ""),
                    )
                )

                # Alternate versions stay in the analysis; only the first file becomes a scene.
                source = _scene_source(guess, prose)
                if source is None:
                    continue
                store.put(
                    Scene(
                        project_id=project.id,
                        chapter_id=chapter.id,
                        number=1,
                        goal=source.summary or IMPORTED_SCENE_GOAL,
                        status="drafted" if guess.status == "complete" else "planned",
                        content=source.content,
                        word_count=count_words(source.content),
                        issues=[],
                    )
                )
            project_id = project.id
    except StoreError as exc:
        raise MaterializationError(str(exc)) from exc

    return project_id
