"""Pure rule checks for careers, aging and mustering out.

Every check takes explicit character state plus the relevant fragment of a
career table and returns a result object. Missing table data never raises:
the result carries ``automatic``, ``not_applicable`` or ``no_result`` instead.
"""
from __future__ import annotations

import logging
import random
from typing import Any, Dict, List, Mapping, Optional

from traveller.application.dtos import (
    AgingCheckpoint,
    AgingResult,
    BenefitResult,
    RuleResult,
    TableEventResult,
    ValidationResult,
)
from traveller.application.services.dice import make_skill_check, roll_1d6, roll_2d6, roll_with_modifier
from traveller.domain.models.character import Character
from traveller.domain.models.stats import PHYSICAL_ATTRIBUTES, attribute_modifier, physical_total
from traveller.domain.models.tables import (
    career_progress_requirement,
    commission_requirement,
    first_requirement,
    table_entry,
)


logger = logging.getLogger(__name__)

FIRST_AGING_AGE = 34
AGING_INTERVAL = 4
BENEFIT_TABLE_MIN = 1
BENEFIT_TABLE_MAX = 7


def get_attribute_modifier(value: Any) -> int:
    return attribute_modifier(value)


def calculate_physical_total(attributes: Mapping[str, Any] | None) -> int:
    return physical_total(attributes)


def _attribute_value(character: Character, attribute: str) -> int:
    try:
        return int(character.attributes.get(attribute, 0) or 0)
    except Exception:
        return 0


def _attribute_check(
    character: Character,
    attribute: str,
    target: int,
    label: str,
    passed: str,
    failed: str,
    additional_dm: int = 0,
    rng: random.Random | None = None,
) -> RuleResult:
    value = _attribute_value(character, attribute)
    attribute_dm = get_attribute_modifier(value)
    total_dm = attribute_dm + int(additional_dm)
    rolled = roll_with_modifier(total_dm, rng=rng)
    success = rolled.total >= target
    return RuleResult(
        success=success,
        roll=rolled.total,
        target=target,
        attribute=attribute,
        attribute_value=value,
        attribute_dm=attribute_dm,
        margin=rolled.total - target,
        formatted=f"{label} ({attribute} {target}+): {rolled.formatted} = {passed if success else failed}",
        additional_dm=int(additional_dm),
        total_dm=total_dm,
    )


def make_qualification_roll(character: Character, career: Mapping[str, Any], rng: random.Random | None = None) -> RuleResult:
    requirement = first_requirement((career or {}).get("qualification"))
    if requirement is None:
        return RuleResult(success=True, automatic=True, formatted="Qualification: automatic")
    attribute, target = requirement
    return _attribute_check(character, attribute, target, "Qualification", "QUALIFIED", "FAILED", rng=rng)


def make_survival_roll(
    character: Character,
    career: Mapping[str, Any],
    assignment: Optional[str],
    rng: random.Random | None = None,
) -> RuleResult:
    requirement = career_progress_requirement(career, "survival", assignment)
    if requirement is None:
        return RuleResult(success=True, automatic=True, formatted="Survival: automatic")
    attribute, target = requirement
    return _attribute_check(character, attribute, target, "Survival", "SURVIVED", "FAILED", rng=rng)


def make_advancement_roll(
    character: Character,
    career: Mapping[str, Any],
    assignment: Optional[str],
    additional_dm: int = 0,
    rng: random.Random | None = None,
) -> RuleResult:
    requirement = career_progress_requirement(career, "advancement", assignment)
    if requirement is None:
        return RuleResult(success=False, no_result=True, formatted="Advancement: not available")
    attribute, target = requirement
    return _attribute_check(
        character, attribute, target, "Advancement", "PROMOTED", "NO PROMOTION", additional_dm=additional_dm, rng=rng
    )


def make_commission_roll(character: Character, career: Mapping[str, Any], rng: random.Random | None = None) -> RuleResult:
    requirement = commission_requirement(career)
    if requirement is None:
        return RuleResult(success=False, not_applicable=True, formatted="Commission: not applicable")
    attribute, target = requirement
    return _attribute_check(character, attribute, target, "Commission", "COMMISSIONED", "REMAIN ENLISTED", rng=rng)


def aging_target(checkpoint_age: int) -> int:
    if checkpoint_age < 50:
        return 8
    if checkpoint_age < 66:
        return 9
    if checkpoint_age < 82:
        return 10
    return 11


def aging_checkpoints(age: int, previous_age: Optional[int] = None) -> List[int]:
    """Checkpoints 34, 38, 42, ... whose four-year span has fully elapsed by ``age``.

    Checkpoints already complete at ``previous_age`` are excluded.
    """
    checkpoints = []
    checkpoint = FIRST_AGING_AGE
    while checkpoint + AGING_INTERVAL <= age:
        if previous_age is None or checkpoint + AGING_INTERVAL > previous_age:
            checkpoints.append(checkpoint)
        checkpoint += AGING_INTERVAL
    return checkpoints


def calculate_aging_effects(
    age: int,
    attributes: Mapping[str, Any],
    previous_age: Optional[int] = None,
    rng: random.Random | None = None,
) -> AgingResult:
    if age < FIRST_AGING_AGE:
        return AgingResult(age=age, no_aging=True)

    results: List[AgingCheckpoint] = []
    totals: Dict[str, int] = {name: 0 for name in PHYSICAL_ATTRIBUTES}
    for checkpoint in aging_checkpoints(age, previous_age):
        target = aging_target(checkpoint)
        checks = {}
        effects = {}
        for name in PHYSICAL_ATTRIBUTES:
            try:
                value = int(attributes.get(name, 0) or 0)
            except Exception:
                value = 0
            check = make_skill_check(value, 0, target, rng=rng)
            checks[name] = check
            effects[name] = 0 if check.success else -1
            totals[name] += effects[name]
        results.append(AgingCheckpoint(age=checkpoint, target=target, checks=checks, effects=effects))

    return AgingResult(age=age, no_aging=not results, checkpoints=results, total_effects=totals)


def roll_mustering_out_benefit(
    benefit_table: Mapping[str, Any],
    is_cash: bool = False,
    additional_dm: int = 0,
    rng: random.Random | None = None,
) -> BenefitResult:
    rolled = roll_with_modifier(additional_dm, rng=rng)
    clamped = max(BENEFIT_TABLE_MIN, min(BENEFIT_TABLE_MAX, rolled.total))
    section = (benefit_table or {}).get("cash" if is_cash else "benefits")
    benefit = table_entry(section, clamped)
    label = "Cash" if is_cash else "Benefit"
    if benefit is None:
        logger.warning(
            "No mustering-out entry for roll",
            extra={"roll": rolled.total, "clamped_roll": clamped, "is_cash": is_cash},
        )
    return BenefitResult(
        roll=rolled.total,
        clamped_roll=clamped,
        dice=rolled.dice,
        additional_dm=int(additional_dm),
        benefit=benefit,
        is_cash=is_cash,
        no_result=benefit is None,
        formatted=f"{label} Roll {rolled.formatted} ({clamped}): {benefit if benefit is not None else 'no result'}",
    )


def _table_event(table: Mapping[Any, Any] | None, roll: int, dice: List[int], label: str) -> TableEventResult:
    entry = table_entry(table, roll)
    if not isinstance(entry, Mapping):
        return TableEventResult(
            roll=roll,
            dice=dice,
            entry=None,
            description=f"No {label} found for this roll",
            no_result=True,
        )
    chain = entry.get("eventChain") or entry.get("event_chain") or []
    return TableEventResult(
        roll=roll,
        dice=dice,
        entry=dict(entry),
        description=str(entry.get("description") or f"{label.capitalize()} occurred"),
        event_chain=[dict(step) for step in chain if isinstance(step, Mapping)],
    )


def roll_event(events_table: Mapping[Any, Any] | None, rng: random.Random | None = None) -> TableEventResult:
    rolled = roll_2d6(rng=rng)
    return _table_event(events_table, rolled.total, rolled.dice, "event")


def roll_mishap(mishap_table: Mapping[Any, Any] | None, rng: random.Random | None = None) -> TableEventResult:
    rolled = roll_1d6(rng=rng)
    return _table_event(mishap_table, rolled.total, rolled.dice, "mishap")


def validate_career_prerequisites(character: Character, career: Mapping[str, Any]) -> ValidationResult:
    issues: List[str] = []
    data = career or {}

    min_age = data.get("minAge")
    max_age = data.get("maxAge")
    if min_age and character.age < int(min_age):
        issues.append(f"Too young (minimum age: {min_age})")
    if max_age and character.age > int(max_age):
        issues.append(f"Too old (maximum age: {max_age})")

    minimums = data.get("minimumAttributes") or {}
    if isinstance(minimums, Mapping):
        for attribute, minimum in minimums.items():
            current = _attribute_value(character, str(attribute).upper())
            if current < int(minimum):
                issues.append(f"{attribute} too low (minimum: {minimum}, current: {current})")

    for skill in data.get("requiredSkills") or []:
        if character.skill_level(str(skill)) < 1:
            issues.append(f"Missing required skill: {skill}")

    return ValidationResult(valid=not issues, issues=issues)
