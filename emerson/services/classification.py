"""Per-file classification and entity extraction through the model gateway."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from flask import current_app

from api_handler import GenerationRequest

from .files import DroppedFile, _dropped_file_fields, count_words, truncate_for_analysis
from .gateway import _get_model_gateway
from .parsing import clean_string, clean_string_list, parse_json_object
from .prompts import apply_template, extract_generation_parameters, load_prompt_entry

PROMPT_KEY = "file_classification"

FILE_CLASSIFICATIONS = (
    "chapter-draft",
    "scene-fragment",
    "character-doc",
    "worldbuilding",
    "plot-outline",
    "notes",
    "timeline",
    "dialogue",
    "research",
    "unknown",
)

FAILED_SUMMARY = "Failed to analyze"
MISSING_SUMMARY = "Could not summarize"
DEFAULT_CONFIDENCE = 0.5

ProgressCallback = Callable[[str], None]


@dataclass(frozen=True)
class ExtractedEntities:
    characters: List[str] = field(default_factory=list)
    locations: List[str] = field(default_factory=list)
    concepts: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ClassifiedFile(DroppedFile):
    classification: str = "unknown"
    confidence: float = 0.0
    summary: str = FAILED_SUMMARY
    extracted_entities: ExtractedEntities = field(default_factory=ExtractedEntities)
    chapter_guess: Optional[int] = None
    is_complete: Optional[bool] = None

    @property
    def word_count(self) -> int:
        return count_words(self.content)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClassifiedFile":
        entities = data.get("extracted_entities") or {}
        return cls(
            **_dropped_file_fields(data),
            classification=data.get("classification") or "unknown",
            confidence=float(data.get("confidence") or 0.0),
            summary=data.get("summary") or "",
            extracted_entities=ExtractedEntities(
                characters=list(entities.get("characters") or []),
                locations=list(entities.get("locations") or []),
                concepts=list(entities.get("concepts") or []),
            ),
            chapter_guess=data.get("chapter_guess"),
            is_complete=data.get("is_complete"),
        )


def degraded_classification(file: DroppedFile) -> ClassifiedFile:
    """The record used whenever a file could not be analysed."""

    return ClassifiedFile(
        **_base_fields(file),
        classification="unknown",
        confidence=0.0,
        summary=FAILED_SUMMARY,
        extracted_entities=ExtractedEntities(),
    )


def classify_file(file: DroppedFile, model: str, *, gateway: Optional[Any] = None) -> ClassifiedFile:
    """Classify ``file`` and extract the entities it mentions.

    Never raises: any gateway, configuration or parsing failure yields the
    degraded ``unknown`` record so one bad file cannot stop an ingestion run.
    """

    try:
        config = load_prompt_entry(PROMPT_KEY)
        request = GenerationRequest(
            model=model,
            system_prompt=config.get("system_prompt", ""),
            user_prompt=apply_template(
                config["prompt_template"],
                file_name=file.name,
                file_path=file.path,
                word_count=count_words(file.content),
                content=truncate_for_analysis(file.content),
            ),
            **extract_generation_parameters(config.get("parameters")),
        )
        if gateway is None:
            gateway = _get_model_gateway()
        if gateway is None:
            current_app.logger.warning("No model gateway configured; cannot classify %s.", file.name)
            return degraded_classification(file)
        response = gateway.generate(request)
    except Exception as exc:
        current_app.logger.warning("Classification of %s failed; marking as unknown. Error: %s", file.name, exc)
        return degraded_classification(file)

    result = parse_json_object(response.content)
    if not result.ok:
        current_app.logger.warning("Unable to parse classification for %s: %s", file.name, result.error)
        return degraded_classification(file)

    return _build_classified_file(file, result.value)


def classify_files(
    files: Sequence[DroppedFile],
    model: str,
    *,
    gateway: Optional[Any] = None,
    on_progress: Optional[ProgressCallback] = None,
    max_workers: int = 1,
) -> List[ClassifiedFile]:
    """Classify every file, returning results in input order.

    With ``max_workers`` above one the gateway calls run on a bounded thread
    pool; progress is still reported once per file in input order.
    """

    total = len(files)
    if gateway is None:
        gateway = _get_model_gateway()

    def report(index: int) -> None:
        message = f"Analyzing file {index + 1} of {total}: {files[index].name}"
        current_app.logger.info(message)
        if on_progress is not None:
            on_progress(message)

    if max_workers <= 1 or total <= 1:
        classified: List[ClassifiedFile] = []
        for index, file in enumerate(files):
            report(index)
            classified.append(classify_file(file, model, gateway=gateway))
        return classified

    app = current_app._get_current_object()

    def worker(file: DroppedFile) -> ClassifiedFile:
        with app.app_context():
            return classify_file(file, model, gateway=gateway)

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = [pool.submit(worker, file) for file in files]
        results: List[ClassifiedFile] = []
        for index, future in enumerate(futures):
            report(index)
            results.append(future.result())
    return results


def _build_classified_file(file: DroppedFile, payload: Dict[str, Any]) -> ClassifiedFile:
    classification = clean_string(payload.get("classification"))
    if classification not in FILE_CLASSIFICATIONS:
        classification = "unknown"

    return ClassifiedFile(
        **_base_fields(file),
        classification=classification,
        confidence=_parse_confidence(payload.get("confidence")),
        summary=clean_string(payload.get("summary")) or MISSING_SUMMARY,
        extracted_entities=ExtractedEntities(
            characters=clean_string_list(payload.get("characters")),
            locations=clean_string_list(payload.get("locations")),
            concepts=clean_string_list(payload.get("concepts")),
        ),
        chapter_guess=_parse_chapter_number(payload.get("chapterNumber")),
        is_complete=payload.get("isComplete") if isinstance(payload.get("isComplete"), bool) else None,
    )


def _parse_confidence(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    if not value:
        return DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, float(value)))


def _parse_chapter_number(value: object) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _base_fields(file: DroppedFile) -> Dict[str, Any]:
    return {
        "name": file.name,
        "path": file.path,
        "type": file.type,
        "size": file.size,
        "content": file.content,
        "last_modified": file.last_modified,
    }
