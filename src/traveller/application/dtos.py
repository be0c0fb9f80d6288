from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from traveller.domain.models.character import Character


@dataclass
class DiceRoll:
    total: int
    dice: List[int]
    formatted: str


@dataclass
class DropLowestRoll:
    total: int
    all_dice: List[int]
    kept_dice: List[int]
    dropped_die: int
    formatted: str


@dataclass
class ModifiedRoll:
    total: int
    base_roll: int
    modifier: int
    dice: List[int]
    formatted: str


@dataclass
class SuccessCheck:
    success: bool
    roll: int
    target: int
    margin: int
    formatted: str


@dataclass
class NotationRoll:
    total: int
    base_total: int
    modifier: int
    dice: List[int]
    notation: str
    formatted: str


@dataclass
class SkillCheck:
    success: bool
    roll: int
    target: int
    margin: int
    attribute_value: int
    attribute_dm: int
    skill_level: int
    unskilled_penalty: int
    additional_dm: int
    total_dm: int
    roll_result: ModifiedRoll
    formatted: str


@dataclass
class TableRoll:
    roll: int
    dice: List[int]
    result: Any
    formatted: str


@dataclass
class RuleResult:
    success: bool
    roll: Optional[int] = None
    target: Optional[int] = None
    attribute: Optional[str] = None
    attribute_value: Optional[int] = None
    attribute_dm: int = 0
    margin: Optional[int] = None
    formatted: str = ""
    automatic: bool = False
    not_applicable: bool = False
    no_result: bool = False
    additional_dm: int = 0
    total_dm: int = 0


@dataclass
class AgingCheckpoint:
    age: int
    target: int
    checks: Dict[str, SkillCheck]
    effects: Dict[str, int]


@dataclass
class AgingResult:
    age: int
    no_aging: bool = False
    checkpoints: List[AgingCheckpoint] = field(default_factory=list)
    total_effects: Dict[str, int] = field(default_factory=lambda: {"STR": 0, "DEX": 0, "END": 0})


@dataclass
class BenefitResult:
    roll: int
    clamped_roll: int
    dice: List[int]
    additional_dm: int
    benefit: Any
    is_cash: bool
    no_result: bool = False
    formatted: str = ""


@dataclass
class TableEventResult:
    roll: int
    dice: List[int]
    entry: Optional[Dict[str, Any]]
    description: str
    event_chain: List[Dict[str, Any]] = field(default_factory=list)
    no_result: bool = False


@dataclass
class ValidationResult:
    valid: bool
    issues: List[str] = field(default_factory=list)


@dataclass
class SkillTable:
    name: str
    key: str
    skills: Dict[str, Any]
    description: str
    requirement: Optional[str] = None


@dataclass
class SkillGain:
    name: str
    level: int = 1
    is_attribute: bool = False
    display_name: str = ""


@dataclass
class ParsedSkillEntry:
    kind: str
    skills: List[SkillGain] = field(default_factory=list)
    options: List[SkillGain] = field(default_factory=list)


@dataclass
class SkillTrainingResult:
    roll: int
    table: str
    table_key: str
    entry: Any
    parsed: ParsedSkillEntry

    @property
    def requires_choice(self) -> bool:
        return self.parsed.kind == "choice"


@dataclass
class FormattedSkill:
    name: str
    level: int
    description: str
    display_name: str
    modifier: int


@dataclass
class ProgressStep:
    id: str
    name: str
    completed: bool


@dataclass
class CharacterProgress:
    steps: List[ProgressStep]
    completed_steps: int
    total_steps: int
    progress_percentage: int
    is_complete: bool


@dataclass
class TermOutcome:
    character: Character
    check: Optional[RuleResult] = None
    chain: Optional[Any] = None
    training: Optional[SkillTrainingResult] = None
    aging: Optional[AgingResult] = None
    benefit: Optional[BenefitResult] = None
    messages: List[str] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)
    career_ended: bool = False

    @property
    def pending_choices(self) -> list:
        return list(getattr(self.chain, "pending_choices", []) or [])


@dataclass
class CreationOutcome:
    character: Character
    messages: List[str] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.issues
