from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from traveller.domain.models.stats import ALL_ATTRIBUTES, DEFAULT_ATTRIBUTES, physical_total


DEFAULT_AGE = 18
DEFAULT_SPECIES = "Human"
YEARS_PER_TERM = 4


def _as_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except Exception:
        return default


def _as_str_list(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [str(item) for item in value if item is not None]


def _pick(data: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return default


@dataclass
class Damage:
    current: int = 0
    max: int = 0


@dataclass
class TempModifiers:
    advancement_dm: int = 0
    benefit_dm: int = 0


@dataclass
class CareerStint:
    career: str
    assignment: Optional[str] = None
    terms: int = 0
    rank: int = 0
    rank_title: str = ""
    events: List[Dict[str, Any]] = field(default_factory=list)
    commissioned: bool = False
    benefits_forfeited: bool = False
    benefit_rolls_awarded: bool = False
    start_age: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(asdict(self))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CareerStint":
        events = _pick(data, "events", default=[])
        start_age = _pick(data, "start_age", "startAge")
        return cls(
            career=str(_pick(data, "career", "name", default="") or ""),
            assignment=_pick(data, "assignment"),
            terms=_as_int(_pick(data, "terms", default=0)),
            rank=_as_int(_pick(data, "rank", default=0)),
            rank_title=str(_pick(data, "rank_title", "rankTitle", default="") or ""),
            events=[dict(event) for event in events if isinstance(event, Mapping)] if isinstance(events, list) else [],
            commissioned=bool(_pick(data, "commissioned", default=False)),
            benefits_forfeited=bool(_pick(data, "benefits_forfeited", "benefitsForfeited", default=False)),
            benefit_rolls_awarded=bool(_pick(data, "benefit_rolls_awarded", "benefitRollsAwarded", default=False)),
            start_age=None if start_age is None else _as_int(start_age),
        )


@dataclass
class Character:
    name: str = ""
    species: str = DEFAULT_SPECIES
    age: int = DEFAULT_AGE
    attributes: Dict[str, int] = field(default_factory=lambda: dict(DEFAULT_ATTRIBUTES))
    skills: Dict[str, int] = field(default_factory=dict)
    career_history: List[CareerStint] = field(default_factory=list)
    contacts: List[str] = field(default_factory=list)
    allies: List[str] = field(default_factory=list)
    enemies: List[str] = field(default_factory=list)
    rivals: List[str] = field(default_factory=list)
    gear: List[str] = field(default_factory=list)
    cyberware: List[str] = field(default_factory=list)
    money: int = 0
    benefit_rolls: int = 0
    injuries: List[Dict[str, Any]] = field(default_factory=list)
    damage: Damage = field(default_factory=Damage)
    attributes_locked: bool = False
    background_skills_selected: bool = False
    current_career: Optional[str] = None
    current_term: int = 0
    temp_modifiers: TempModifiers = field(default_factory=TempModifiers)
    saved_at: Optional[str] = None

    def __post_init__(self) -> None:
        attributes = dict(DEFAULT_ATTRIBUTES)
        if isinstance(self.attributes, Mapping):
            for raw_name, raw_value in self.attributes.items():
                attributes[str(raw_name).upper()] = _as_int(raw_value)
        self.attributes = attributes
        self.recompute_damage_max()

    def recompute_damage_max(self) -> None:
        self.damage.max = physical_total(self.attributes)

    @property
    def open_stint(self) -> Optional[CareerStint]:
        if self.current_career is None or not self.career_history:
            return None
        last = self.career_history[-1]
        return last if last.career == self.current_career else None

    @property
    def last_stint(self) -> Optional[CareerStint]:
        return self.career_history[-1] if self.career_history else None

    def skill_level(self, skill: str) -> int:
        return _as_int(self.skills.get(skill, 0))

    def to_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(asdict(self))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "Character":
        """Build a character from a stored document, filling gaps with defaults.

        Accepts both the snake_case keys produced by ``to_dict`` and the
        camelCase keys used by older saves. Unknown keys are ignored and
        ``damage.max`` is always derived from the physical attributes.
        """
        payload = data if isinstance(data, Mapping) else {}
        character = cls()

        character.name = str(_pick(payload, "name", default="") or "")
        character.species = str(_pick(payload, "species", default=DEFAULT_SPECIES) or DEFAULT_SPECIES)
        character.age = max(0, _as_int(_pick(payload, "age", default=DEFAULT_AGE), DEFAULT_AGE))

        attributes = _pick(payload, "attributes", default={})
        if isinstance(attributes, Mapping):
            for raw_name, raw_value in attributes.items():
                name = str(raw_name).upper()
                if name in ALL_ATTRIBUTES:
                    character.attributes[name] = _as_int(raw_value)

        skills = _pick(payload, "skills", default={})
        if isinstance(skills, Mapping):
            character.skills = {str(name): max(0, _as_int(level)) for name, level in skills.items()}

        history = _pick(payload, "career_history", "careerHistory", default=[])
        if isinstance(history, list):
            character.career_history = [CareerStint.from_dict(item) for item in history if isinstance(item, Mapping)]

        for attr in ("contacts", "allies", "enemies", "rivals", "gear", "cyberware"):
            setattr(character, attr, _as_str_list(payload.get(attr)))

        character.money = max(0, _as_int(_pick(payload, "money", default=0)))
        character.benefit_rolls = max(0, _as_int(_pick(payload, "benefit_rolls", "benefitRolls", default=0)))

        injuries = _pick(payload, "injuries", default=[])
        if isinstance(injuries, list):
            character.injuries = [dict(item) for item in injuries if isinstance(item, Mapping)]

        damage = _pick(payload, "damage", default={})
        if isinstance(damage, Mapping):
            character.damage = Damage(current=_as_int(damage.get("current", 0)))

        character.attributes_locked = bool(_pick(payload, "attributes_locked", "attributesLocked", default=False))
        character.background_skills_selected = bool(
            _pick(payload, "background_skills_selected", "backgroundSkillsSelected", default=False)
        )

        current_career = _pick(payload, "current_career", "currentCareer")
        character.current_career = str(current_career) if current_career else None
        character.current_term = max(0, _as_int(_pick(payload, "current_term", "currentTerm", default=0)))

        temp = _pick(payload, "temp_modifiers", "tempModifiers", default={})
        if isinstance(temp, Mapping):
            character.temp_modifiers = TempModifiers(
                advancement_dm=_as_int(_pick(temp, "advancement_dm", "advancementDM", default=0)),
                benefit_dm=_as_int(_pick(temp, "benefit_dm", "benefitDM", default=0)),
            )

        saved_at = _pick(payload, "saved_at", "savedAt", "lastSaved")
        character.saved_at = str(saved_at) if saved_at else None

        character.recompute_damage_max()
        return character


def new_character() -> Character:
    return Character()
