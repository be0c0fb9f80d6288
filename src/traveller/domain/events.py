from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class CharacterActionApplied:
    action_type: str
    character_name: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EventChainSuspended:
    choice_id: str
    description: str
    option_count: int
    depth: int


@dataclass
class EventChainRecursionLimited:
    step_type: str
    depth: int
    career: Optional[str] = None
    table: Optional[str] = None


@dataclass
class CareerEnded:
    career: str
    terms: int
    benefits_forfeited: bool
    reason: str
