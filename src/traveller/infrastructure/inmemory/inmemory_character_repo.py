from typing import Any, Dict, List, Optional

from traveller.domain.models.character import Character
from traveller.domain.repositories import CharacterRepository
from traveller.infrastructure.character_io import stamp_saved_at


class InMemoryCharacterRepository(CharacterRepository):
    def __init__(self) -> None:
        self._saves: Dict[str, Dict[str, Any]] = {}

    def load(self, key: str) -> Optional[Character]:
        payload = self._saves.get(str(key))
        if payload is None:
            return None
        return Character.from_dict(payload)

    def save(self, key: str, character: Character) -> None:
        self._saves[str(key)] = stamp_saved_at(character).to_dict()

    def list_keys(self) -> List[str]:
        return sorted(self._saves)

    def delete(self, key: str) -> bool:
        return self._saves.pop(str(key), None) is not None
