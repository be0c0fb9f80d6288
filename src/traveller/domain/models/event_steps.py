"""Typed event-chain steps.

Career event and mishap tables describe their consequences as lists of loosely
shaped mappings (``{"type": "Gain_Skill", "skills_list": [...]}``). They are
parsed once into the frozen dataclasses below so every consumer works with a
closed, known set of step kinds. Anything unrecognised becomes ``UnknownStep``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Tuple


class StepType(str, Enum):
    GAIN_SKILL = "Gain_Skill"
    INCREASE_SKILL = "Increase_Skill"
    ROLL_SKILL = "Roll_Skill"
    CHOICE = "choice"
    GAIN_ENEMY = "Gain_Enemy"
    GAIN_ALLY = "Gain_Ally"
    GAIN_CONTACT = "Gain_Contact"
    GAIN_RIVAL = "Gain_Rival"
    GAIN_CONTACTS = "Gain_Contacts"
    ADVANCEMENT_DM = "Advancement_DM"
    BENEFIT_DM = "Benefit_DM"
    AUTOMATIC_PROMOTION = "Automatic_Promotion"
    AUTOMATIC_PROMOTION_OR_COMMISSION = "Automatic_Promotion_Or_Comission"
    AUTOMATIC_COMMISSION = "Automatic_Commission"
    INJURY = "Injury"
    SEVERE_INJURY = "Severe_Injury"
    DISASTER = "Disaster"
    LIFE_EVENT = "Life_Event"
    ROLL_ON_EVENTS_TABLE = "Roll_On_Events_Table"
    ROLL_ON_MISHAPS_TABLE = "Roll_On_Mishaps_Table"
    ROLL_ON_SPECIALIST_TABLE = "Roll_On_Specialist_Table"
    INCREASE_STAT = "Increase_Stat"
    REMOVED_FROM_CAREER = "Removed_From_Career"
    REMOVED_FROM_CAREER_NO_BENEFITS = "Removed_From_Career_No_Benefits"


RELATIONSHIP_KINDS: Dict[str, str] = {
    StepType.GAIN_ENEMY.value: "enemy",
    StepType.GAIN_ALLY.value: "ally",
    StepType.GAIN_CONTACT.value: "contact",
    StepType.GAIN_RIVAL.value: "rival",
}


def _as_tuple(value: Any) -> Tuple[Any, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(value)
    return (value,)


def _as_steps(value: Any) -> Tuple[Dict[str, Any], ...]:
    return tuple(dict(item) for item in _as_tuple(value) if isinstance(item, Mapping))


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except Exception:
        return default


@dataclass(frozen=True)
class EventStep:
    type: str


@dataclass(frozen=True)
class GainSkill(EventStep):
    skills: Tuple[str, ...] = ()


@dataclass(frozen=True)
class IncreaseSkill(EventStep):
    skills: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RollSkill(EventStep):
    checks: Tuple[Tuple[str, int], ...] = ()
    on_success: Tuple[Dict[str, Any], ...] = ()
    on_failure: Tuple[Dict[str, Any], ...] = ()


@dataclass(frozen=True)
class Choice(EventStep):
    choices: Tuple[Dict[str, Any], ...] = ()


@dataclass(frozen=True)
class GainRelationship(EventStep):
    relationship: str = "contact"
    amount: int = 1


@dataclass(frozen=True)
class GainContacts(EventStep):
    amount: Any = 1


@dataclass(frozen=True)
class AdvancementDM(EventStep):
    dm: int = 0


@dataclass(frozen=True)
class BenefitDM(EventStep):
    dm: int = 0


@dataclass(frozen=True)
class AutomaticPromotion(EventStep):
    pass


@dataclass(frozen=True)
class AutomaticPromotionOrCommission(EventStep):
    pass


@dataclass(frozen=True)
class AutomaticCommission(EventStep):
    pass


@dataclass(frozen=True)
class Injury(EventStep):
    severe: bool = False


@dataclass(frozen=True)
class Disaster(EventStep):
    pass


@dataclass(frozen=True)
class LifeEvent(EventStep):
    pass


@dataclass(frozen=True)
class RollOnCareerTable(EventStep):
    table: str = "events"
    careers: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RollOnSpecialistTable(EventStep):
    careers: Tuple[str, ...] = ()


@dataclass(frozen=True)
class IncreaseStat(EventStep):
    stat: str = ""
    amount: int = 1


@dataclass(frozen=True)
class RemovedFromCareer(EventStep):
    keep_benefits: bool = True


@dataclass(frozen=True)
class UnknownStep(EventStep):
    raw: Dict[str, Any] = field(default_factory=dict)


STEP_CLASSES: Tuple[type, ...] = (
    GainSkill,
    IncreaseSkill,
    RollSkill,
    Choice,
    GainRelationship,
    GainContacts,
    AdvancementDM,
    BenefitDM,
    AutomaticPromotion,
    AutomaticPromotionOrCommission,
    AutomaticCommission,
    Injury,
    Disaster,
    LifeEvent,
    RollOnCareerTable,
    RollOnSpecialistTable,
    IncreaseStat,
    RemovedFromCareer,
    UnknownStep,
)


def _skills(raw: Mapping[str, Any]) -> Tuple[str, ...]:
    entries = raw.get("skills_list") or raw.get("Skills_To_Increase") or []
    return tuple(str(entry) for entry in _as_tuple(entries) if entry is not None)


def _skill_checks(raw: Mapping[str, Any]) -> Tuple[Tuple[str, int], ...]:
    checks = []
    for item in _as_tuple(raw.get("SkillsAbleToRoll")):
        if not isinstance(item, Mapping) or not item:
            continue
        skill, target = next(iter(item.items()))
        checks.append((str(skill), _as_int(target, 8)))
    return tuple(checks)


_PARSERS: Dict[str, Callable[[str, Mapping[str, Any]], EventStep]] = {
    StepType.GAIN_SKILL.value: lambda t, raw: GainSkill(type=t, skills=_skills(raw)),
    StepType.INCREASE_SKILL.value: lambda t, raw: IncreaseSkill(type=t, skills=_skills(raw)),
    StepType.ROLL_SKILL.value: lambda t, raw: RollSkill(
        type=t,
        checks=_skill_checks(raw),
        on_success=_as_steps(raw.get("Success")),
        on_failure=_as_steps(raw.get("Failure")),
    ),
    StepType.CHOICE.value: lambda t, raw: Choice(type=t, choices=_as_steps(raw.get("choices"))),
    StepType.GAIN_CONTACTS.value: lambda t, raw: GainContacts(type=t, amount=raw.get("amount", 1)),
    StepType.ADVANCEMENT_DM.value: lambda t, raw: AdvancementDM(type=t, dm=_as_int(raw.get("DM"), 0)),
    StepType.BENEFIT_DM.value: lambda t, raw: BenefitDM(type=t, dm=_as_int(raw.get("DM"), 0)),
    StepType.AUTOMATIC_PROMOTION.value: lambda t, raw: AutomaticPromotion(type=t),
    StepType.AUTOMATIC_PROMOTION_OR_COMMISSION.value: lambda t, raw: AutomaticPromotionOrCommission(type=t),
    StepType.AUTOMATIC_COMMISSION.value: lambda t, raw: AutomaticCommission(type=t),
    StepType.INJURY.value: lambda t, raw: Injury(type=t, severe=False),
    StepType.SEVERE_INJURY.value: lambda t, raw: Injury(type=t, severe=True),
    StepType.DISASTER.value: lambda t, raw: Disaster(type=t),
    StepType.LIFE_EVENT.value: lambda t, raw: LifeEvent(type=t),
    StepType.ROLL_ON_EVENTS_TABLE.value: lambda t, raw: RollOnCareerTable(
        type=t, table="events", careers=tuple(str(name) for name in _as_tuple(raw.get("Events_Tables")))
    ),
    StepType.ROLL_ON_MISHAPS_TABLE.value: lambda t, raw: RollOnCareerTable(
        type=t, table="mishaps", careers=tuple(str(name) for name in _as_tuple(raw.get("Events_Tables")))
    ),
    StepType.ROLL_ON_SPECIALIST_TABLE.value: lambda t, raw: RollOnSpecialistTable(
        type=t, careers=tuple(str(name) for name in _as_tuple(raw.get("Events_Tables")))
    ),
    StepType.INCREASE_STAT.value: lambda t, raw: IncreaseStat(
        type=t, stat=str(raw.get("stat") or "").strip().upper(), amount=_as_int(raw.get("amount"), 1)
    ),
    StepType.REMOVED_FROM_CAREER.value: lambda t, raw: RemovedFromCareer(type=t, keep_benefits=True),
    StepType.REMOVED_FROM_CAREER_NO_BENEFITS.value: lambda t, raw: RemovedFromCareer(type=t, keep_benefits=False),
}

for _kind_type, _kind in RELATIONSHIP_KINDS.items():
    _PARSERS[_kind_type] = (
        lambda t, raw, kind=_kind: GainRelationship(type=t, relationship=kind, amount=max(0, _as_int(raw.get("amount"), 1)))
    )


def parse_event_step(raw: Any) -> EventStep:
    if isinstance(raw, EventStep):
        return raw
    if not isinstance(raw, Mapping):
        return UnknownStep(type=str(raw), raw={})
    step_type = str(raw.get("type") or "")
    parser = _PARSERS.get(step_type)
    if parser is None:
        return UnknownStep(type=step_type, raw=dict(raw))
    return parser(step_type, raw)


def describe_choice_option(option: Mapping[str, Any]) -> str:
    if option.get("description"):
        return str(option["description"])
    step_type = str(option.get("type") or "")
    skills = _skills(option)
    if step_type == StepType.GAIN_SKILL.value:
        return f"Gain {skills[0] if skills else 'skill'}"
    if step_type == StepType.INCREASE_SKILL.value:
        return f"Increase {skills[0] if skills else 'skill'}"
    if step_type == StepType.ADVANCEMENT_DM.value:
        return f"Gain +{option.get('DM', 0)} advancement DM"
    if step_type == StepType.GAIN_ALLY.value:
        return "Gain an ally"
    if step_type == StepType.GAIN_ENEMY.value:
        return "Gain an enemy"
    return step_type or "Unknown option"
