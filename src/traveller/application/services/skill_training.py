from __future__ import annotations

import logging
import random
import re
from typing import Any, Dict, List, Mapping, Optional

from traveller.application.dtos import (
    FormattedSkill,
    ParsedSkillEntry,
    SkillGain,
    SkillTable,
    SkillTrainingResult,
    ValidationResult,
)
from traveller.application.services.character_store import Action, ActionType, apply
from traveller.application.services.dice import roll_2d6
from traveller.domain.errors import ChoiceResolutionError
from traveller.domain.models.character import Character
from traveller.domain.models.stats import normalize_attribute_name
from traveller.domain.models.tables import table_entry


logger = logging.getLogger(__name__)

DEFAULT_ADVANCED_EDUCATION_EDU = 8

_BONUS_RE = re.compile(r"^(.+?)\s*\+(\d+)$")

SKILL_DESCRIPTIONS: Dict[str, str] = {
    "Gun Combat": "Proficiency with firearms and ranged weapons",
    "Heavy Weapons": "Operation of heavy military weapons and artillery",
    "Melee": "Hand-to-hand combat and melee weapons",
    "Athletics": "Physical fitness, climbing, swimming, and endurance",
    "Drive": "Operation of ground vehicles",
    "Flyer": "Piloting of atmospheric aircraft",
    "Pilot": "Operation of spacecraft and starships",
    "Vacc Suit": "Working in vacuum and zero-gravity environments",
    "Electronics": "Computer systems, sensors, and electronic devices",
    "Engineer": "Maintenance and repair of complex systems",
    "Investigate": "Research, analysis, and detective work",
    "Medic": "Medical treatment and first aid",
    "Navigation": "Plotting courses and finding directions",
    "Science": "Scientific knowledge and research",
    "Admin": "Bureaucracy, paperwork, and organizational skills",
    "Advocate": "Legal knowledge and courtroom procedures",
    "Carouse": "Social drinking and party skills",
    "Deception": "Lying, disguise, and misdirection",
    "Diplomat": "Negotiation and international relations",
    "Leadership": "Command and inspiring others",
    "Persuade": "Convincing and influencing others",
    "Streetwise": "Urban survival and criminal contacts",
    "Animals": "Handling and training animals",
    "Recon": "Scouting, surveillance, and intelligence gathering",
    "Stealth": "Moving unseen and unheard",
    "Survival": "Wilderness survival and resource management",
    "Broker": "Trade negotiations and market analysis",
    "Explosives": "Handling and using explosive devices",
    "Gambler": "Games of chance and reading people",
    "Language": "Communication in foreign languages",
    "Mechanic": "Repair and maintenance of vehicles and equipment",
    "Profession": "Specialized professional knowledge",
    "Trader": "Commercial transactions and business",
    "Tactics": "Military strategy and battlefield command",
    "Jack of All Trades": "Basic competence in many areas",
}


def _skills_section(career: Mapping[str, Any] | None) -> Mapping[str, Any]:
    section = (career or {}).get("skills_and_training")
    return section if isinstance(section, Mapping) else {}


def _advanced_education_requirement(section: Mapping[str, Any]) -> int:
    requirements = section.get("advanced_education_requirements") or {}
    try:
        return int(requirements.get("EDU") or DEFAULT_ADVANCED_EDUCATION_EDU)
    except Exception:
        return DEFAULT_ADVANCED_EDUCATION_EDU


def can_access_advanced_education(character: Character, career: Mapping[str, Any] | None) -> bool:
    section = _skills_section(career)
    if "advanced_education_requirements" not in section:
        return False
    return int(character.attributes.get("EDU", 0)) >= _advanced_education_requirement(section)


def get_available_skill_tables(
    career: Mapping[str, Any] | None,
    assignment: Optional[str],
    character: Character,
) -> List[SkillTable]:
    section = _skills_section(career)
    tables: List[SkillTable] = []
    if not section:
        return tables

    if isinstance(section.get("personal_development"), Mapping):
        tables.append(
            SkillTable(
                name="Personal Development",
                key="personal_development",
                skills=dict(section["personal_development"]),
                description="Basic personal improvement skills",
            )
        )

    if isinstance(section.get("service_skills"), Mapping):
        tables.append(
            SkillTable(
                name="Service Skills",
                key="service_skills",
                skills=dict(section["service_skills"]),
                description="Core skills for your career",
            )
        )

    if isinstance(section.get("advanced_education"), Mapping):
        required = _advanced_education_requirement(section)
        if int(character.attributes.get("EDU", 0)) >= required:
            tables.append(
                SkillTable(
                    name="Advanced Education",
                    key="advanced_education",
                    skills=dict(section["advanced_education"]),
                    description=f"Advanced skills (requires EDU {required}+)",
                    requirement=f"EDU {required}+",
                )
            )

    last = character.last_stint
    if isinstance(section.get("officer"), Mapping) and last is not None and last.commissioned:
        tables.append(
            SkillTable(
                name="Officer",
                key="officer",
                skills=dict(section["officer"]),
                description="Officer leadership and command skills",
            )
        )

    assignment_key = str(assignment or "").strip().lower()
    if assignment_key and isinstance(section.get(assignment_key), Mapping):
        tables.append(
            SkillTable(
                name=f"{assignment} Specialist",
                key=assignment_key,
                skills=dict(section[assignment_key]),
                description=f"Specialized skills for {assignment} assignment",
            )
        )

    return tables


def _parse_single(entry: str) -> SkillGain:
    text = entry.strip()
    bonus = _BONUS_RE.match(text)
    if bonus:
        name = bonus.group(1).strip()
        level = int(bonus.group(2))
        attribute = normalize_attribute_name(name)
        if attribute is not None:
            return SkillGain(name=attribute, level=level, is_attribute=True, display_name=f"{attribute} +{level}")
        return SkillGain(name=name, level=level, display_name=f"{name} {level}")

    head, _, tail = text.rpartition(" ")
    if head and tail.lstrip("-").isdigit():
        return SkillGain(name=head.strip(), level=int(tail), display_name=text)
    return SkillGain(name=text, level=1, display_name=f"{text} 1")


def parse_skill_entry(entry: Any) -> ParsedSkillEntry:
    """Parse one skill-table cell.

    ``"EDU +1"`` is an attribute gain, a list is a choice between its parsed
    members, and anything else is a skill whose level is the trailing integer
    (``"Gun Combat 2"``) or 1 when absent. A ``+N`` suffix on a name that is
    not an attribute (``"Gun Combat +1"``) is read as a skill gain.
    """
    if isinstance(entry, (list, tuple)):
        options = [_parse_single(str(item)) for item in entry if item is not None and str(item).strip()]
        return ParsedSkillEntry(kind="choice", options=options)
    if isinstance(entry, str) and entry.strip():
        gain = _parse_single(entry)
        return ParsedSkillEntry(kind="attribute" if gain.is_attribute else "skill", skills=[gain])
    return ParsedSkillEntry(kind="unknown")


def roll_on_skill_table(table: SkillTable, rng: random.Random | None = None) -> Optional[SkillTrainingResult]:
    rolled = roll_2d6(rng=rng)
    entry = table_entry(table.skills, rolled.total)
    if entry is None:
        logger.warning("No skill entry for roll", extra={"roll": rolled.total, "table": table.name})
        return None
    return SkillTrainingResult(
        roll=rolled.total,
        table=table.name,
        table_key=table.key,
        entry=entry,
        parsed=parse_skill_entry(entry),
    )


def _apply_gain(character: Character, gain: SkillGain) -> Character:
    if gain.is_attribute:
        current = int(character.attributes.get(gain.name, 0))
        return apply(character, Action(ActionType.UPDATE_ATTRIBUTE, {"attribute": gain.name, "value": current + gain.level}))
    return apply(character, Action(ActionType.ADD_SKILL, {"skill": gain.name, "level": gain.level}))


def apply_skill_training(character: Character, result: Optional[SkillTrainingResult]) -> Character:
    if result is None or not result.parsed.skills:
        return character
    if result.requires_choice:
        logger.warning("Choice results must go through handle_skill_choice", extra={"table": result.table})
        return character

    updated = character
    for gain in result.parsed.skills:
        updated = _apply_gain(updated, gain)

    names = ", ".join(gain.display_name for gain in result.parsed.skills)
    return apply(
        updated,
        Action(
            ActionType.ADD_CAREER_EVENT,
            {
                "type": "skill_training",
                "table": result.table,
                "roll": result.roll,
                "description": f"Trained on {result.table}: {names}",
            },
        ),
    )


def handle_skill_choice(character: Character, result: SkillTrainingResult, option_index: int) -> Character:
    options = result.parsed.options
    if not 0 <= option_index < len(options):
        raise ChoiceResolutionError(f"Option {option_index} is out of range for {len(options)} skill options")
    gain = options[option_index]
    updated = _apply_gain(character, gain)
    return apply(
        updated,
        Action(
            ActionType.ADD_CAREER_EVENT,
            {"type": "skill_choice", "table": result.table, "description": f"Chose: {gain.display_name}"},
        ),
    )


def validate_skill_training_prerequisites(
    character: Character,
    career: Mapping[str, Any] | None,
    assignment: Optional[str],
) -> ValidationResult:
    issues: List[str] = []
    if not character.current_career:
        issues.append("No active career")
    if not career:
        issues.append("Career data not found")
    if not assignment:
        issues.append("No assignment selected")
    if not _skills_section(career):
        issues.append("No skill training data available for this career")
    return ValidationResult(valid=not issues, issues=issues)


def format_skill_display(skill: str, level: int) -> FormattedSkill:
    return FormattedSkill(
        name=skill,
        level=level,
        description=SKILL_DESCRIPTIONS.get(skill, "Specialized skill"),
        display_name=f"{skill} {level}",
        modifier=level // 3,
    )


def get_formatted_skills(character: Character) -> List[FormattedSkill]:
    return [
        format_skill_display(name, level)
        for name, level in sorted(character.skills.items(), key=lambda item: item[0])
        if level > 0
    ]
