from __future__ import annotations

import random
import re
from typing import Any, Dict, List, Mapping

from traveller.application.dtos import (
    DiceRoll,
    DropLowestRoll,
    ModifiedRoll,
    NotationRoll,
    SkillCheck,
    SuccessCheck,
    TableRoll,
)
from traveller.domain.errors import DiceNotationError
from traveller.domain.models.stats import ATTRIBUTE_ORDER, attribute_modifier


_NOTATION_RE = re.compile(r"^\s*(\d+)d(\d+)\s*([+-]\s*\d+)?\s*$", re.IGNORECASE)

UNSKILLED_PENALTY = -3


def _signed(value: int) -> str:
    return f"+{value}" if value >= 0 else str(value)


def roll_die(sides: int = 6, rng: random.Random | None = None) -> int:
    rng = rng or random
    return rng.randint(1, max(1, int(sides)))


def roll_dice(count: int, sides: int = 6, rng: random.Random | None = None) -> List[int]:
    return [roll_die(sides, rng=rng) for _ in range(max(0, int(count)))]


def roll_2d6(rng: random.Random | None = None) -> DiceRoll:
    dice = roll_dice(2, 6, rng=rng)
    total = sum(dice)
    return DiceRoll(total=total, dice=dice, formatted=f"{total} ({', '.join(map(str, dice))})")


def roll_3d6_drop_lowest(rng: random.Random | None = None) -> DropLowestRoll:
    dice = roll_dice(3, 6, rng=rng)
    ordered = sorted(dice, reverse=True)
    kept = ordered[:2]
    dropped = ordered[2]
    total = sum(kept)
    return DropLowestRoll(
        total=total,
        all_dice=dice,
        kept_dice=kept,
        dropped_die=dropped,
        formatted=f"{total} (kept: {', '.join(map(str, kept))}, dropped: {dropped})",
    )


def roll_1d6(rng: random.Random | None = None) -> DiceRoll:
    value = roll_die(6, rng=rng)
    return DiceRoll(total=value, dice=[value], formatted=str(value))


def roll_1d3(rng: random.Random | None = None) -> DiceRoll:
    value = roll_die(3, rng=rng)
    return DiceRoll(total=value, dice=[value], formatted=str(value))


def roll_with_modifier(dm: int = 0, rng: random.Random | None = None) -> ModifiedRoll:
    base = roll_2d6(rng=rng)
    total = base.total + int(dm)
    return ModifiedRoll(
        total=total,
        base_roll=base.total,
        modifier=int(dm),
        dice=base.dice,
        formatted=f"{total} ({', '.join(map(str, base.dice))}{_signed(int(dm))})",
    )


def check_success(roll: int, target: int) -> SuccessCheck:
    success = roll >= target
    margin = roll - target
    outcome = "SUCCESS" if success else "FAILURE"
    return SuccessCheck(
        success=success,
        roll=roll,
        target=target,
        margin=margin,
        formatted=f"{roll} vs {target}: {outcome} (margin: {_signed(margin)})",
    )


def roll_dice_notation(expression: str, rng: random.Random | None = None) -> NotationRoll:
    """Roll an ``NdS[+/-M]`` expression such as ``3d6+2``.

    The whole string must match; anything else raises ``DiceNotationError``.
    """
    match = _NOTATION_RE.match(str(expression or ""))
    if not match:
        raise DiceNotationError(f"Invalid dice notation: {expression!r}")
    count = int(match.group(1))
    sides = int(match.group(2))
    if count <= 0 or sides <= 0:
        raise DiceNotationError(f"Dice count and sides must be positive: {expression!r}")
    modifier = int(match.group(3).replace(" ", "")) if match.group(3) else 0

    dice = roll_dice(count, sides, rng=rng)
    base_total = sum(dice)
    total = base_total + modifier
    suffix = _signed(modifier) if modifier else ""
    return NotationRoll(
        total=total,
        base_total=base_total,
        modifier=modifier,
        dice=dice,
        notation=str(expression),
        formatted=f"{total} ({', '.join(map(str, dice))}{suffix})",
    )


def make_skill_check(
    attribute_value: int,
    skill_level: int = 0,
    target: int = 8,
    additional_dm: int = 0,
    rng: random.Random | None = None,
) -> SkillCheck:
    attribute_dm = attribute_modifier(attribute_value)
    penalty = UNSKILLED_PENALTY if skill_level == 0 else 0
    total_dm = attribute_dm + skill_level + additional_dm + penalty
    rolled = roll_with_modifier(total_dm, rng=rng)
    result = check_success(rolled.total, target)
    outcome = "SUCCESS" if result.success else "FAILURE"
    return SkillCheck(
        success=result.success,
        roll=result.roll,
        target=target,
        margin=result.margin,
        attribute_value=attribute_value,
        attribute_dm=attribute_dm,
        skill_level=skill_level,
        unskilled_penalty=penalty,
        additional_dm=additional_dm,
        total_dm=total_dm,
        roll_result=rolled,
        formatted=f"Skill Check: {rolled.formatted} vs {target} = {outcome}",
    )


def roll_on_table(table: Mapping[Any, Any], rng: random.Random | None = None) -> TableRoll:
    rolled = roll_2d6(rng=rng)
    result = table.get(str(rolled.total), table.get(rolled.total)) if isinstance(table, Mapping) else None
    if result is None and isinstance(table, Mapping):
        result = table.get("default")
    if result is None:
        result = "No result found"
    return TableRoll(
        roll=rolled.total,
        dice=rolled.dice,
        result=result,
        formatted=f"Rolled {rolled.formatted}: {result}",
    )


def generate_attributes_2d6(rng: random.Random | None = None) -> Dict[str, int]:
    return {name: roll_2d6(rng=rng).total for name in ATTRIBUTE_ORDER}


def generate_attributes_3d6_drop_lowest(rng: random.Random | None = None) -> Dict[str, DropLowestRoll]:
    return {name: roll_3d6_drop_lowest(rng=rng) for name in ATTRIBUTE_ORDER}


class DiceRoller:
    """Dice operations bound to one random source, for reproducible runs."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()

    def set_seed(self, seed: int) -> None:
        self.rng.seed(seed)

    def roll_die(self, sides: int = 6) -> int:
        return roll_die(sides, rng=self.rng)

    def roll_dice(self, count: int, sides: int = 6) -> List[int]:
        return roll_dice(count, sides, rng=self.rng)

    def roll_2d6(self) -> DiceRoll:
        return roll_2d6(rng=self.rng)

    def roll_3d6_drop_lowest(self) -> DropLowestRoll:
        return roll_3d6_drop_lowest(rng=self.rng)

    def roll_1d6(self) -> DiceRoll:
        return roll_1d6(rng=self.rng)

    def roll_1d3(self) -> DiceRoll:
        return roll_1d3(rng=self.rng)

    def roll_with_modifier(self, dm: int = 0) -> ModifiedRoll:
        return roll_with_modifier(dm, rng=self.rng)

    def roll_dice_notation(self, expression: str) -> NotationRoll:
        return roll_dice_notation(expression, rng=self.rng)

    def make_skill_check(self, attribute_value: int, skill_level: int = 0, target: int = 8, additional_dm: int = 0) -> SkillCheck:
        return make_skill_check(attribute_value, skill_level, target, additional_dm, rng=self.rng)

    def roll_on_table(self, table: Mapping[Any, Any]) -> TableRoll:
        return roll_on_table(table, rng=self.rng)

    check_success = staticmethod(check_success)
