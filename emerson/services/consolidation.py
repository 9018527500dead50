"""Second model pass over the aggregate: genre, likely duplicates, questions."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from flask import current_app

from api_handler import GenerationRequest

from .aggregation import EntityAggregate
from .gateway import _get_model_gateway
from .parsing import clean_string, clean_string_list, parse_json_object
from .prompts import apply_template, extract_generation_parameters, load_prompt_entry

PROMPT_KEY = "project_consolidation"
DEFAULT_GENRE = "Fiction"
CHARACTER_DIGEST_LIMIT = 30
LOCATION_DIGEST_LIMIT = 20

QUESTION_TYPES = ("duplicate", "canon", "structure", "character", "other")


@dataclass
class DuplicateCandidate:
    items: List[str]
    reason: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DuplicateCandidate":
        return cls(items=list(data.get("items") or []), reason=data.get("reason") or "")


@dataclass
class ClarifyingQuestion:
    id: str
    type: str
    question: str
    options: Optional[List[str]] = None
    context: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClarifyingQuestion":
        return cls(
            id=data["id"],
            type=data.get("type") or "other",
            question=data.get("question") or "",
            options=list(data["options"]) if data.get("options") else None,
            context=data.get("context"),
        )


@dataclass
class ConsolidationResult:
    genre: str = DEFAULT_GENRE
    possible_duplicates: List[DuplicateCandidate] = field(default_factory=list)
    questions: List[ClarifyingQuestion] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def consolidate(
    summary: EntityAggregate,
    model: str,
    *,
    gateway: Optional[Any] = None,
) -> ConsolidationResult:
    """Ask the model which names collide and what to ask the author.

    Fails soft: without a usable response the result is the neutral
    ``Fiction`` genre with no duplicates and no questions, which lets the
    ingestion run go straight to project creation.
    """

    try:
        config = load_prompt_entry(PROMPT_KEY)
        request = GenerationRequest(
            model=model,
            system_prompt=config.get("system_prompt", ""),
            user_prompt=apply_template(config["prompt_template"], digest=build_digest(summary)),
            **extract_generation_parameters(config.get("parameters")),
        )
        if gateway is None:
            gateway = _get_model_gateway()
        if gateway is None:
            current_app.logger.warning("No model gateway configured; skipping consolidation.")
            return ConsolidationResult()
        response = gateway.generate(request)
    except Exception as exc:
        current_app.logger.warning("Consolidation failed; continuing without questions. Error: %s", exc)
        return ConsolidationResult()

    result = parse_json_object(response.content)
    if not result.ok:
        current_app.logger.warning("Unable to parse consolidation response: %s", result.error)
        return ConsolidationResult()

    payload = result.value
    return ConsolidationResult(
        genre=clean_string(payload.get("genreGuess")) or DEFAULT_GENRE,
        possible_duplicates=_parse_duplicates(payload.get("possibleDuplicates")),
        questions=_parse_questions(payload.get("questions")),
    )


def build_digest(summary: EntityAggregate) -> str:
    characters = summary.characters
    locations = summary.locations
    chapters = summary.structure_guess.chapters

    lines = [f"CHARACTERS ({len(characters)}):"]
    lines.extend(
        f"- {character.name} ({character.mentions} mentions)"
        for character in characters[:CHARACTER_DIGEST_LIMIT]
    )
    lines.append("")
    lines.append(f"LOCATIONS ({len(locations)}):")
    lines.extend(
        f"- {location.name} ({location.mentions} mentions)"
        for location in locations[:LOCATION_DIGEST_LIMIT]
    )
    lines.append("")
    lines.append("CHAPTERS FOUND:")
    for chapter in chapters:
        alternates = " (has alternate versions)" if chapter.has_alternate_versions else ""
        lines.append(
            f"- Chapter {chapter.number or '?'}: {chapter.word_count} words, {chapter.status}{alternates}"
        )
    return "\n".join(lines)


def _parse_duplicates(raw: object) -> List[DuplicateCandidate]:
    if not isinstance(raw, list):
        return []
    duplicates: List[DuplicateCandidate] = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        items = clean_string_list(entry.get("items"))
        if len(items) < 2:
            continue
        duplicates.append(DuplicateCandidate(items=items, reason=clean_string(entry.get("reason")) or ""))
    return duplicates


def _parse_questions(raw: object) -> List[ClarifyingQuestion]:
    if not isinstance(raw, list):
        return []
    questions: List[ClarifyingQuestion] = []
    seen_ids: set[str] = set()
    for index, entry in enumerate(raw, start=1):
        if not isinstance(entry, dict):
            continue
        text = clean_string(entry.get("question"))
        if not text:
            continue
        question_id = clean_string(str(entry["id"]) if entry.get("id") is not None else None) or f"q{index}"
        if question_id in seen_ids:
            question_id = f"{question_id}-{index}"
        seen_ids.add(question_id)

        question_type = clean_string(entry.get("type"))
        options = clean_string_list(entry.get("options"))
        questions.append(
            ClarifyingQuestion(
                id=question_id,
                type=question_type if question_type in QUESTION_TYPES else "other",
                question=text,
                options=options or None,
                context=clean_string(entry.get("context")),
            )
        )
    return questions
