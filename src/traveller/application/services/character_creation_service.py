from __future__ import annotations

import logging
import random
from typing import Any, Dict, List, Mapping

from traveller.application.dtos import CreationOutcome
from traveller.application.services.character_store import Action, ActionType, apply
from traveller.application.services.dice import generate_attributes_2d6, generate_attributes_3d6_drop_lowest
from traveller.application.services.validation import (
    BACKGROUND_SKILLS,
    background_points_available,
    background_points_used,
    validate_attributes,
)
from traveller.domain.models.character import Character


logger = logging.getLogger(__name__)

ATTRIBUTE_METHODS = ("2d6", "3d6_drop_lowest")


class CharacterCreationService:
    def __init__(self, species_tables: Mapping[str, Any] | None = None, rng: random.Random | None = None) -> None:
        self.species_tables = species_tables or {}
        self.rng = rng or random.Random()

    def set_seed(self, seed: int) -> None:
        self.rng.seed(seed)

    def list_species(self) -> List[str]:
        return sorted(str(name) for name in self.species_tables)

    def species_data(self, name: str) -> Mapping[str, Any] | None:
        if name in self.species_tables:
            return self.species_tables[name]
        lowered = str(name or "").strip().lower()
        for candidate, data in self.species_tables.items():
            if str(candidate).lower() == lowered:
                return data
        return None

    def set_name(self, character: Character, name: str) -> CreationOutcome:
        cleaned = str(name or "").strip()
        if not cleaned:
            return CreationOutcome(character=character, issues=["Name cannot be empty"])
        return CreationOutcome(character=apply(character, Action(ActionType.SET_NAME, cleaned)))

    def roll_attributes(self, character: Character, method: str = "2d6") -> CreationOutcome:
        if character.attributes_locked:
            return CreationOutcome(character=character, issues=["Attributes are locked"])
        if method == "2d6":
            rolled: Dict[str, int] = generate_attributes_2d6(rng=self.rng)
        elif method == "3d6_drop_lowest":
            rolled = {name: roll.total for name, roll in generate_attributes_3d6_drop_lowest(rng=self.rng).items()}
        else:
            return CreationOutcome(
                character=character,
                issues=[f"Unknown attribute method {method!r}; expected one of {', '.join(ATTRIBUTE_METHODS)}"],
            )
        updated = apply(character, Action(ActionType.SET_ATTRIBUTES, rolled))
        summary = " ".join(f"{name} {value}" for name, value in rolled.items())
        return CreationOutcome(character=updated, messages=[f"Rolled ({method}): {summary}"])

    def apply_species(self, character: Character, species_name: str) -> CreationOutcome:
        """Set the species and apply its attribute modifiers, flooring each attribute at 0.

        PSI modifiers are recorded in the species data but not applied here.
        """
        data = self.species_data(species_name)
        if data is None:
            return CreationOutcome(character=character, issues=[f"Unknown species: {species_name}"])
        name = str(data.get("name") or species_name)
        updated = apply(character, Action(ActionType.SET_SPECIES, name))

        modified: Dict[str, int] = {}
        for attribute, modifier in (data.get("attributeModifiers") or {}).items():
            key = str(attribute).upper()
            if key == "PSI" or key not in updated.attributes:
                continue
            try:
                modified[key] = max(0, int(updated.attributes[key]) + int(modifier))
            except (TypeError, ValueError):
                logger.warning("Ignoring unreadable species modifier", extra={"species": name, "attribute": key})
        if modified:
            updated = apply(updated, Action(ActionType.SET_ATTRIBUTES, modified))

        messages = [f"Species set to {name}"]
        messages.extend(f"Trait: {trait}" for trait in data.get("traits") or [])
        return CreationOutcome(character=updated, messages=messages)

    def lock_attributes(self, character: Character) -> CreationOutcome:
        validation = validate_attributes(character.attributes)
        if not validation.valid:
            return CreationOutcome(character=character, issues=list(validation.issues))
        return CreationOutcome(character=apply(character, Action(ActionType.LOCK_ATTRIBUTES, True)))

    def background_skill_points(self, character: Character) -> int:
        return background_points_available(character.attributes.get("EDU", 0))

    def remaining_background_points(self, character: Character) -> int:
        return max(0, self.background_skill_points(character) - background_points_used(character.skills))

    def add_background_skill(self, character: Character, skill: str) -> CreationOutcome:
        if character.background_skills_selected:
            return CreationOutcome(character=character, issues=["Background skills are already finalised"])
        if skill not in BACKGROUND_SKILLS:
            return CreationOutcome(character=character, issues=[f"{skill} is not a background skill"])
        if self.remaining_background_points(character) <= 0:
            return CreationOutcome(character=character, issues=["No background skill points remaining"])
        updated = apply(character, Action(ActionType.ADD_SKILL, {"skill": skill, "level": 1}))
        return CreationOutcome(character=updated, messages=[f"Added background skill {skill}"])

    def auto_select_background(self, character: Character) -> CreationOutcome:
        updated = character
        messages: List[str] = []
        candidates = [skill for skill in BACKGROUND_SKILLS if skill not in character.skills]
        self.rng.shuffle(candidates)
        for skill in candidates:
            if self.remaining_background_points(updated) <= 0:
                break
            outcome = self.add_background_skill(updated, skill)
            updated = outcome.character
            messages.extend(outcome.messages)
        return CreationOutcome(character=updated, messages=messages)

    def finish_background(self, character: Character) -> CreationOutcome:
        if not character.attributes_locked:
            return CreationOutcome(character=character, issues=["Lock attributes before choosing background skills"])
        return CreationOutcome(character=apply(character, Action(ActionType.SET_BACKGROUND_SKILLS_SELECTED, True)))
