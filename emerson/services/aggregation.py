"""Local merge of per-file entity mentions into project-wide registries.

Nothing here talks to the model gateway. Identity is the trimmed, lower-cased
name: ``"Alice"`` and ``" alice "`` are the same character, while
``"Alice"`` and ``"Alicia"`` are not. Near matches are left for the
consolidation pass to raise as a question.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, TypeVar

from .classification import ClassifiedFile
from .files import count_words

REFERENCE_NOVEL_WORDS = 80_000
STRUCTURE_CLASSIFICATIONS = ("chapter-draft", "scene-fragment")

CHARACTER_ROLES = ("protagonist", "antagonist", "supporting", "minor", "unknown")


@dataclass
class CharacterMention:
    name: str
    mentions: int = 1
    appears_in: List[str] = field(default_factory=list)
    aliases: List[str] = field(default_factory=list)
    description: Optional[str] = None
    role: str = "unknown"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CharacterMention":
        return cls(
            name=data["name"],
            mentions=int(data.get("mentions") or 1),
            appears_in=list(data.get("appears_in") or []),
            aliases=list(data.get("aliases") or []),
            description=data.get("description"),
            role=data.get("role") or "unknown",
        )


@dataclass
class LocationMention:
    name: str
    mentions: int = 1
    appears_in: List[str] = field(default_factory=list)
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LocationMention":
        return cls(
            name=data["name"],
            mentions=int(data.get("mentions") or 1),
            appears_in=list(data.get("appears_in") or []),
            description=data.get("description"),
        )


@dataclass
class ConceptMention:
    name: str
    mentions: int = 1
    appears_in: List[str] = field(default_factory=list)
    type: str = "other"
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConceptMention":
        return cls(
            name=data["name"],
            mentions=int(data.get("mentions") or 1),
            appears_in=list(data.get("appears_in") or []),
            type=data.get("type") or "other",
            description=data.get("description"),
        )


@dataclass
class ChapterGuess:
    number: int
    files: List[str] = field(default_factory=list)
    paths: List[str] = field(default_factory=list)
    word_count: int = 0
    status: str = "partial"
    has_alternate_versions: bool = False
    title: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChapterGuess":
        return cls(
            number=int(data.get("number") or 0),
            files=list(data.get("files") or []),
            paths=list(data.get("paths") or []),
            word_count=int(data.get("word_count") or 0),
            status=data.get("status") or "partial",
            has_alternate_versions=bool(data.get("has_alternate_versions")),
            title=data.get("title"),
        )


@dataclass
class StructureGuess:
    chapters: List[ChapterGuess] = field(default_factory=list)
    estimated_completion: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StructureGuess":
        return cls(
            chapters=[ChapterGuess.from_dict(item) for item in data.get("chapters") or []],
            estimated_completion=int(data.get("estimated_completion") or 0),
        )


@dataclass
class EntityAggregate:
    characters: List[CharacterMention]
    locations: List[LocationMention]
    concepts: List[ConceptMention]
    structure_guess: StructureGuess
    total_words: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


MentionT = TypeVar("MentionT", CharacterMention, LocationMention, ConceptMention)


def normalize_name(name: str) -> str:
    return name.strip().lower()


def aggregate(files: Sequence[ClassifiedFile]) -> EntityAggregate:
    """Merge entity mentions across ``files`` and guess the chapter structure."""

    characters: Dict[str, CharacterMention] = {}
    locations: Dict[str, LocationMention] = {}
    concepts: Dict[str, ConceptMention] = {}

    for file in files:
        entities = file.extracted_entities
        _merge_mentions(characters, entities.characters, file.name, CharacterMention)
        _merge_mentions(locations, entities.locations, file.name, LocationMention)
        _merge_mentions(concepts, entities.concepts, file.name, ConceptMention)

    total_words = sum(count_words(file.content) for file in files)

    return EntityAggregate(
        characters=_rank(characters.values()),
        locations=_rank(locations.values()),
        concepts=_rank(concepts.values()),
        structure_guess=StructureGuess(
            chapters=guess_chapters(files),
            estimated_completion=estimate_completion(total_words),
        ),
        total_words=total_words,
    )


def _merge_mentions(
    registry: Dict[str, MentionT],
    names: Iterable[str],
    file_name: str,
    factory: type,
) -> None:
    for raw_name in names:
        key = normalize_name(raw_name)
        if not key:
            continue
        existing = registry.get(key)
        if existing is None:
            registry[key] = factory(name=raw_name.strip(), mentions=1, appears_in=[file_name])
            continue
        existing.mentions += 1
        if file_name not in existing.appears_in:
            existing.appears_in.append(file_name)


def _rank(mentions: Iterable[MentionT]) -> List[MentionT]:
    # sorted() is stable: equal counts keep first-seen order.
    return sorted(mentions, key=lambda mention: mention.mentions, reverse=True)


def guess_chapters(files: Sequence[ClassifiedFile]) -> List[ChapterGuess]:
    """Group prose files into chapters by the classifier's chapter number.

    Files without a number share the ``0`` bucket. The first file seen for a
    chapter decides its status; later files only add words and mark the
    chapter as having alternate versions.
    """

    buckets: Dict[int, ChapterGuess] = {}
    for file in files:
        if file.classification not in STRUCTURE_CLASSIFICATIONS:
            continue
        number = file.chapter_guess or 0
        words = count_words(file.content)
        existing = buckets.get(number)
        if existing is None:
            buckets[number] = ChapterGuess(
                number=number,
                files=[file.name],
                paths=[file.path],
                word_count=words,
                status="complete" if file.is_complete else "partial",
                has_alternate_versions=False,
            )
            continue
        existing.files.append(file.name)
        existing.paths.append(file.path)
        existing.word_count += words
        existing.has_alternate_versions = True

    return sorted(buckets.values(), key=lambda chapter: chapter.number)


def estimate_completion(total_words: int) -> int:
    # Half-up rounding; round() would bank to even.
    return min(100, int(total_words * 100 / REFERENCE_NOVEL_WORDS + 0.5))
