"""The ingestion analysis: aggregate plus consolidation, built once per run."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from .aggregation import (
    CharacterMention,
    ConceptMention,
    LocationMention,
    StructureGuess,
    aggregate,
)
from .classification import ClassifiedFile
from .consolidation import (
    DEFAULT_GENRE,
    ClarifyingQuestion,
    DuplicateCandidate,
    consolidate,
)
from .enrichment import enrich_top_characters


@dataclass
class IngestionAnalysis:
    genre: str = DEFAULT_GENRE
    total_words: int = 0
    files: List[ClassifiedFile] = field(default_factory=list)
    characters: List[CharacterMention] = field(default_factory=list)
    locations: List[LocationMention] = field(default_factory=list)
    concepts: List[ConceptMention] = field(default_factory=list)
    possible_duplicates: List[DuplicateCandidate] = field(default_factory=list)
    structure_guess: StructureGuess = field(default_factory=StructureGuess)
    questions: List[ClarifyingQuestion] = field(default_factory=list)
    title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["files"] = [file.to_dict() for file in self.files]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IngestionAnalysis":
        return cls(
            genre=data.get("genre") or DEFAULT_GENRE,
            total_words=int(data.get("total_words") or 0),
            files=[ClassifiedFile.from_dict(item) for item in data.get("files") or []],
            characters=[CharacterMention.from_dict(item) for item in data.get("characters") or []],
            locations=[LocationMention.from_dict(item) for item in data.get("locations") or []],
            concepts=[ConceptMention.from_dict(item) for item in data.get("concepts") or []],
            possible_duplicates=[
                DuplicateCandidate.from_dict(item) for item in data.get("possible_duplicates") or []
            ],
            structure_guess=StructureGuess.from_dict(data.get("structure_guess") or {}),
            questions=[ClarifyingQuestion.from_dict(item) for item in data.get("questions") or []],
            title=data.get("title"),
        )


def analyze_project(
    files: Sequence[ClassifiedFile],
    model: str,
    *,
    gateway: Optional[Any] = None,
    on_progress: Optional[Callable[[str], None]] = None,
    enrich_limit: int = 0,
) -> IngestionAnalysis:
    if on_progress is not None:
        on_progress("Consolidating findings...")
    summary = aggregate(files)

    if enrich_limit > 0 and summary.characters:
        if on_progress is not None:
            on_progress("Getting to know the main characters...")
        summary.characters = enrich_top_characters(
            summary.characters,
            files,
            model,
            limit=enrich_limit,
            gateway=gateway,
        )

    if on_progress is not None:
        on_progress("Looking for duplicates and generating questions...")
    consolidation = consolidate(summary, model, gateway=gateway)

    return IngestionAnalysis(
        genre=consolidation.genre,
        total_words=summary.total_words,
        files=list(files),
        characters=summary.characters,
        locations=summary.locations,
        concepts=summary.concepts,
        possible_duplicates=consolidation.possible_duplicates,
        structure_guess=summary.structure_guess,
        questions=consolidation.questions,
    )
