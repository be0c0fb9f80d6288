from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional

from traveller.application.dtos import CharacterProgress, ProgressStep, ValidationResult
from traveller.domain.models.character import DEFAULT_AGE, YEARS_PER_TERM, Character
from traveller.domain.models.stats import ATTRIBUTE_ORDER, attribute_modifier


MIN_ATTRIBUTE = 1
MAX_ATTRIBUTE = 18
BASE_BACKGROUND_POINTS = 3

KNOWN_SPECIES = ("Human", "Aslan", "Vargr", "Zhodani", "Vilani", "Solomani")

BACKGROUND_SKILLS = (
    "Admin",
    "Electronics",
    "Science",
    "Animals",
    "Flyer",
    "Seafarer",
    "Art",
    "Language",
    "Streetwise",
    "Athletics",
    "Mechanic",
    "Survival",
    "Carouse",
    "Medic",
    "Vacc Suit",
    "Drive",
    "Profession",
)


def background_points_available(edu: Any) -> int:
    return max(0, BASE_BACKGROUND_POINTS + attribute_modifier(edu))


def background_points_used(skills: Mapping[str, Any]) -> int:
    used = 0
    for name, level in (skills or {}).items():
        if name in BACKGROUND_SKILLS:
            try:
                used += int(level)
            except Exception:
                continue
    return used


def validate_attributes(attributes: Mapping[str, Any] | None) -> ValidationResult:
    issues: List[str] = []
    attrs = attributes or {}
    for name in ATTRIBUTE_ORDER:
        value = attrs.get(name)
        if isinstance(value, bool) or not isinstance(value, int) or not MIN_ATTRIBUTE <= value <= MAX_ATTRIBUTE:
            issues.append(f"{name} must be a number between {MIN_ATTRIBUTE} and {MAX_ATTRIBUTE}")
    return ValidationResult(valid=not issues, issues=issues)


def validate_species(species: Optional[str], known: Optional[Iterable[str]] = None) -> ValidationResult:
    names = tuple(known) if known is not None else KNOWN_SPECIES
    if species in names:
        return ValidationResult(valid=True)
    return ValidationResult(valid=False, issues=["Invalid species selection"])


def validate_background_skills(skills: Mapping[str, Any], edu_dm: int) -> ValidationResult:
    max_points = max(0, BASE_BACKGROUND_POINTS + int(edu_dm))
    used = background_points_used(skills)
    if used > max_points:
        return ValidationResult(valid=False, issues=[f"Too many background skill points used ({used}/{max_points})"])
    return ValidationResult(valid=True)


def validate_career_selection(character: Character, career_name: Optional[str]) -> ValidationResult:
    issues: List[str] = []
    if not career_name:
        issues.append("No career selected")
    if not validate_attributes(character.attributes).valid:
        issues.append("Character attributes must be set before selecting career")
    return ValidationResult(valid=not issues, issues=issues)


def expected_age(character: Character) -> int:
    return DEFAULT_AGE + sum(stint.terms for stint in character.career_history) * YEARS_PER_TERM


def validate_complete_character(character: Character, known_species: Optional[Iterable[str]] = None) -> ValidationResult:
    issues: List[str] = []
    issues.extend(validate_species(character.species, known_species).issues)
    issues.extend(validate_attributes(character.attributes).issues)
    if not character.career_history:
        issues.append("Character must have at least one career")
    expected = expected_age(character)
    if character.age != expected:
        issues.append(f"Age inconsistency: expected {expected}, got {character.age}")
    return ValidationResult(valid=not issues, issues=issues)


def get_character_progress(character: Character, known_species: Optional[Iterable[str]] = None) -> CharacterProgress:
    steps = [
        ProgressStep("species", "Species Selection", bool(character.species)),
        ProgressStep(
            "attributes",
            "Attributes",
            character.attributes_locked and validate_attributes(character.attributes).valid,
        ),
        ProgressStep("background", "Background Skills", character.background_skills_selected),
        ProgressStep("career", "Career", bool(character.career_history)),
        ProgressStep("mustering", "Mustering Out", character.benefit_rolls == 0),
        ProgressStep("complete", "Complete", validate_complete_character(character, known_species).valid),
    ]
    completed = sum(1 for step in steps if step.completed)
    return CharacterProgress(
        steps=steps,
        completed_steps=completed,
        total_steps=len(steps),
        progress_percentage=round(completed / len(steps) * 100),
        is_complete=completed == len(steps),
    )
