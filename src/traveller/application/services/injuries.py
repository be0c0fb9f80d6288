from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from traveller.application.services.dice import roll_1d6, roll_2d6
from traveller.domain.models.stats import PHYSICAL_ATTRIBUTES


INJURY_TABLE: Dict[int, Dict[str, object]] = {
    1: {
        "description": "Nearly killed",
        "effect": "Reduce one physical characteristic by 1d6, reduce the other physical characteristics by 2",
        "severe": True,
    },
    2: {"description": "Severely injured", "effect": "Reduce one physical characteristic by 1d6", "severe": True},
    3: {"description": "Missing eye or limb", "effect": "Reduce STR or DEX by 2", "permanent": True},
    4: {"description": "Scarred", "effect": "You are scarred and injured. Reduce any physical characteristic by 2"},
    5: {"description": "Injured", "effect": "Reduce any physical characteristic by 1"},
    6: {"description": "Lightly injured", "effect": "No permanent effect"},
}


@dataclass
class InjuryResult:
    roll: int
    index: int
    description: str
    effect: str
    reductions: List[Tuple[str, int]] = field(default_factory=list)
    permanent: bool = False
    severe: bool = False


def injury_index(roll: int) -> int:
    return max(1, min(6, roll - 1))


def roll_on_injury_table(severe: bool = False, rng: random.Random | None = None) -> InjuryResult:
    """Roll 2d6 on the injury table; severe injuries keep the lower of two rolls."""
    chooser = rng or random
    roll = roll_2d6(rng=rng).total
    if severe:
        roll = min(roll, roll_2d6(rng=rng).total)

    index = injury_index(roll)
    row = INJURY_TABLE[index]
    reductions: List[Tuple[str, int]] = []
    if index == 1:
        primary = chooser.choice(PHYSICAL_ATTRIBUTES)
        reductions.append((primary, roll_1d6(rng=rng).total))
        reductions.extend((name, 2) for name in PHYSICAL_ATTRIBUTES if name != primary)
    elif index == 2:
        reductions.append((chooser.choice(PHYSICAL_ATTRIBUTES), roll_1d6(rng=rng).total))
    elif index == 3:
        reductions.append((chooser.choice(("STR", "DEX")), 2))
    elif index == 4:
        reductions.append((chooser.choice(PHYSICAL_ATTRIBUTES), 2))
    elif index == 5:
        reductions.append((chooser.choice(PHYSICAL_ATTRIBUTES), 1))

    return InjuryResult(
        roll=roll,
        index=index,
        description=str(row["description"]),
        effect=str(row["effect"]),
        reductions=reductions,
        permanent=bool(row.get("permanent", False)),
        severe=bool(row.get("severe", False)),
    )
