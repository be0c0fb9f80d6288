from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional

from traveller.domain.models.character import Character


class CharacterRepository(ABC):
    @abstractmethod
    def load(self, key: str) -> Optional[Character]:
        raise NotImplementedError

    @abstractmethod
    def save(self, key: str, character: Character) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_keys(self) -> List[str]:
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> bool:
        raise NotImplementedError


class RuleTableRepository(ABC):
    @abstractmethod
    def careers(self) -> Dict[str, Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    def species(self) -> Dict[str, Dict[str, Any]]:
        raise NotImplementedError

    def tables(self) -> Dict[str, Any]:
        return {}

    def get_career(self, name: str) -> Optional[Mapping[str, Any]]:
        """Case-insensitive career lookup; data files key careers by lower-cased name."""
        careers = self.careers()
        key = str(name or "").strip().lower()
        if key in careers:
            return careers[key]
        for candidate, data in careers.items():
            if str(candidate).strip().lower() == key or str((data or {}).get("name", "")).strip().lower() == key:
                return data
        return None

    def get_species(self, name: str) -> Optional[Mapping[str, Any]]:
        species = self.species()
        if name in species:
            return species[name]
        lowered = str(name or "").strip().lower()
        for candidate, data in species.items():
            if str(candidate).strip().lower() == lowered:
                return data
        return None
