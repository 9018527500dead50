from __future__ import annotations

from dataclasses import replace
from typing import Any, List, Optional, Sequence

from flask import current_app

from api_handler import GenerationRequest

from .aggregation import CHARACTER_ROLES, CharacterMention, normalize_name
from .classification import ClassifiedFile
from .files import truncate_for_analysis
from .gateway import _get_model_gateway
from .parsing import clean_string, clean_string_list, parse_json_object
from .prompts import apply_template, extract_generation_parameters, load_prompt_entry

PROMPT_KEY = "character_enrichment"
ENRICHMENT_CONTENT_CHARS = 4000


def enrich_character(
    character: CharacterMention,
    relevant_content: str,
    model: str,
    *,
    gateway: Optional[Any] = None,
) -> CharacterMention:
    """Return a copy of ``character`` with description, role and aliases filled in.

    The input is returned unchanged when the model cannot help.
    """

    try:
        config = load_prompt_entry(PROMPT_KEY)
        request = GenerationRequest(
            model=model,
            system_prompt=config.get("system_prompt", ""),
            user_prompt=apply_template(
                config["prompt_template"],
                character_name=character.name,
                content=truncate_for_analysis(relevant_content, ENRICHMENT_CONTENT_CHARS),
            ),
            **extract_generation_parameters(config.get("parameters")),
        )
        if gateway is None:
            gateway = _get_model_gateway()
        if gateway is None:
            return character
        response = gateway.generate(request)
    except Exception as exc:
        current_app.logger.warning("Enrichment of %s failed; keeping extracted data. Error: %s", character.name, exc)
        return character

    result = parse_json_object(response.content)
    if not result.ok:
        current_app.logger.warning("Unable to parse enrichment for %s: %s", character.name, result.error)
        return character

    payload = result.value
    role = clean_string(payload.get("role"))
    aliases = list(character.aliases)
    for alias in clean_string_list(payload.get("possibleAliases")):
        if alias not in aliases and alias.lower() != character.name.lower():
            aliases.append(alias)

    return replace(
        character,
        description=clean_string(payload.get("description")) or character.description,
        role=role if role in CHARACTER_ROLES else "unknown",
        aliases=aliases,
    )


def _files_mentioning(character: CharacterMention, files: Sequence[ClassifiedFile]) -> List[ClassifiedFile]:
    key = normalize_name(character.name)
    names = set(character.appears_in)
    return [
        file
        for file in files
        if file.name in names and any(normalize_name(raw) == key for raw in file.extracted_entities.characters)
    ]


def enrich_top_characters(
    characters: Sequence[CharacterMention],
    files: Sequence[ClassifiedFile],
    model: str,
    *,
    limit: int,
    gateway: Optional[Any] = None,
) -> List[CharacterMention]:
    enriched: List[CharacterMention] = []
    for index, character in enumerate(characters):
        if index >= limit:
            enriched.append(character)
            continue
        relevant = "\n\n".join(file.content for file in _files_mentioning(character, files))
        enriched.append(enrich_character(character, relevant, model, gateway=gateway))
    return enriched
