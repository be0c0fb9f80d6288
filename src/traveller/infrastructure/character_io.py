from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict

from traveller.domain.errors import ImportFormatError
from traveller.domain.models.character import Character


EXPORT_FORMAT = "traveller-character"
EXPORT_VERSION = 1

_KNOWN_KEYS = {
    "name",
    "species",
    "age",
    "attributes",
    "skills",
    "career_history",
    "careerHistory",
    "current_career",
    "currentCareer",
}


def stamp_saved_at(character: Character) -> Character:
    """Return a copy of ``character`` carrying the current UTC time as an ISO string."""
    return replace(character, saved_at=datetime.now(timezone.utc).isoformat())


def character_document(character: Character) -> Dict[str, Any]:
    return {"format": EXPORT_FORMAT, "version": EXPORT_VERSION, "character": character.to_dict()}


def export_character(character: Character, *, indent: int | None = 2) -> str:
    return json.dumps(character_document(character), ensure_ascii=False, indent=indent)


def _unwrap(document: Any) -> Any:
    if isinstance(document, dict) and document.get("format") == EXPORT_FORMAT:
        return document.get("character")
    return document


def import_character(raw: str | bytes | Dict[str, Any]) -> Character:
    """Parse an exported document, or a bare character mapping, into a Character.

    Raises ImportFormatError when the payload is not a recognisable character.
    """
    if isinstance(raw, (str, bytes)):
        try:
            document = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ImportFormatError(f"Character file is not valid JSON: {exc}") from exc
    else:
        document = raw

    payload = _unwrap(document)
    if not isinstance(payload, dict):
        raise ImportFormatError("Character data must be a JSON object")
    if not _KNOWN_KEYS.intersection(payload):
        raise ImportFormatError("Character data has none of the expected fields")
    if "attributes" in payload and not isinstance(payload["attributes"], dict):
        raise ImportFormatError("Character attributes must be an object")
    for history_key in ("career_history", "careerHistory"):
        if history_key in payload and not isinstance(payload[history_key], list):
            raise ImportFormatError("Career history must be a list")
    if "skills" in payload and not isinstance(payload["skills"], dict):
        raise ImportFormatError("Character skills must be an object")

    try:
        return Character.from_dict(payload)
    except (TypeError, ValueError, AttributeError) as exc:
        raise ImportFormatError(f"Character data could not be read: {exc}") from exc
