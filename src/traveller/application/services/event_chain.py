"""Interpreter for data-driven career event chains.

A chain is an ordered list of raw step mappings taken from a career's events
or mishaps table. ``EventChainInterpreter.process_event_chain`` walks every
step, applying state changes through the character store. Steps that need a
player decision are not applied; they are collected as ``PendingChoice``
entries on the returned ``ChainOutcome``. The caller stores the outcome
(``to_dict``/``from_dict``) and later feeds the chosen option back through
``resolve_player_choice``. Conditional sub-chains (skill check branches,
rolls on other careers' tables, disaster mishaps, rank bonuses) are walked
immediately with a depth limit and a visited (career, table) path.
"""
from __future__ import annotations

import logging
import random
import uuid
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from traveller.application.services.character_store import RELATIONSHIP_ACTIONS, Action, ActionType, apply
from traveller.application.services.dice import make_skill_check, roll_1d3, roll_1d6
from traveller.application.services.injuries import roll_on_injury_table
from traveller.application.services.rules import roll_event, roll_mishap
from traveller.application.services.skill_training import parse_skill_entry
from traveller.domain.errors import ChoiceResolutionError
from traveller.domain.events import CareerEnded, EventChainRecursionLimited, EventChainSuspended
from traveller.domain.models.character import Character
from traveller.domain.models.event_steps import (
    STEP_CLASSES,
    AdvancementDM,
    AutomaticCommission,
    AutomaticPromotion,
    AutomaticPromotionOrCommission,
    BenefitDM,
    Choice,
    Disaster,
    EventStep,
    GainContacts,
    GainRelationship,
    GainSkill,
    IncreaseSkill,
    IncreaseStat,
    Injury,
    LifeEvent,
    RemovedFromCareer,
    RollOnCareerTable,
    RollOnSpecialistTable,
    RollSkill,
    StepType,
    UnknownStep,
    describe_choice_option,
    parse_event_step,
)
from traveller.domain.models.stats import ALL_ATTRIBUTES, normalize_attribute_name
from traveller.domain.models.tables import (
    career_key,
    find_career,
    rank_bonus,
    rank_title,
    specialist_table_keys,
    table_entry,
)


logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 8
RECURSION_GUARD = "recursion_guard"

SKILL_ATTRIBUTES: Dict[str, str] = {
    "Gun Combat": "DEX",
    "Melee": "STR",
    "Athletics": "STR",
    "Investigate": "INT",
    "Streetwise": "INT",
    "Deception": "INT",
    "Persuade": "SOC",
    "Leadership": "SOC",
    "Recon": "INT",
    "Stealth": "DEX",
    "Pilot": "DEX",
    "Drive": "DEX",
    "Mechanic": "INT",
    "Electronics": "INT",
    "Medic": "EDU",
    "Science": "EDU",
    "Admin": "EDU",
    "Advocate": "EDU",
    "Diplomat": "SOC",
}

RELATIONSHIP_NAMES: Tuple[str, ...] = (
    "Alex Chen",
    "Morgan Smith",
    "Jordan Taylor",
    "Casey Johnson",
    "Riley Brown",
    "Avery Davis",
    "Quinn Wilson",
    "Sage Miller",
    "River Jones",
    "Phoenix Garcia",
)

RELATIONSHIP_TITLES: Dict[str, Tuple[str, ...]] = {
    "contact": ("Contact", "Informant", "Associate", "Colleague"),
    "ally": ("Ally", "Friend", "Supporter", "Partner"),
    "enemy": ("Enemy", "Rival", "Opponent", "Adversary"),
    "rival": ("Rival", "Competitor", "Challenger"),
}

_PLURALS = {"ally": "allies", "enemy": "enemies", "contact": "contacts", "rival": "rivals"}


@dataclass
class StepResult:
    type: str
    success: bool
    description: str
    requires_choice: bool = False
    depth: int = 0
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StepResult":
        return cls(
            type=str(data.get("type", "")),
            success=bool(data.get("success", False)),
            description=str(data.get("description", "")),
            requires_choice=bool(data.get("requires_choice", False)),
            depth=int(data.get("depth", 0) or 0),
            details=dict(data.get("details") or {}),
        )


@dataclass
class ChoiceOption:
    index: int
    description: str
    step: Dict[str, Any]


@dataclass
class PendingChoice:
    choice_id: str
    step_type: str
    description: str
    options: List[ChoiceOption]
    depth: int = 0
    path: Tuple[Tuple[str, str], ...] = ()
    remain_in_career: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "choice_id": self.choice_id,
            "step_type": self.step_type,
            "description": self.description,
            "options": [asdict(option) for option in self.options],
            "depth": self.depth,
            "path": [list(pair) for pair in self.path],
            "remain_in_career": self.remain_in_career,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PendingChoice":
        return cls(
            choice_id=str(data["choice_id"]),
            step_type=str(data.get("step_type", "")),
            description=str(data.get("description", "")),
            options=[
                ChoiceOption(index=int(opt["index"]), description=str(opt.get("description", "")), step=dict(opt["step"]))
                for opt in data.get("options") or []
            ],
            depth=int(data.get("depth", 0) or 0),
            path=tuple((str(pair[0]), str(pair[1])) for pair in data.get("path") or []),
            remain_in_career=bool(data.get("remain_in_career", False)),
        )


@dataclass
class ChainOutcome:
    character: Optional[Character]
    results: List[StepResult] = field(default_factory=list)
    pending_choices: List[PendingChoice] = field(default_factory=list)
    truncated: bool = False

    @property
    def completed(self) -> bool:
        return not self.pending_choices

    def find_choice(self, choice_id: str) -> Optional[PendingChoice]:
        for pending in self.pending_choices:
            if pending.choice_id == choice_id:
                return pending
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Continuation token; the character is stored separately by the caller."""
        return {
            "results": [result.to_dict() for result in self.results],
            "pending_choices": [pending.to_dict() for pending in self.pending_choices],
            "completed": self.completed,
            "truncated": self.truncated,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], character: Optional[Character] = None) -> "ChainOutcome":
        return cls(
            character=character,
            results=[StepResult.from_dict(item) for item in data.get("results") or []],
            pending_choices=[PendingChoice.from_dict(item) for item in data.get("pending_choices") or []],
            truncated=bool(data.get("truncated", False)),
        )


@dataclass(frozen=True)
class _Frame:
    depth: int = 0
    path: Tuple[Tuple[str, str], ...] = ()
    remain_in_career: bool = False


@dataclass
class _SubChain:
    steps: List[Dict[str, Any]]
    career: Optional[str] = None
    table: Optional[str] = None
    remain_in_career: bool = False


@dataclass
class _Handled:
    result: StepResult
    sub_chains: List[_SubChain] = field(default_factory=list)
    choice: Optional[PendingChoice] = None


class _ChainRun:
    def __init__(self, character: Character) -> None:
        self.character = character
        self.results: List[StepResult] = []
        self.pending: List[PendingChoice] = []
        self.truncated = False

    def dispatch(self, action_type: ActionType, payload: Any = None) -> Character:
        self.character = apply(self.character, Action(action_type, payload))
        return self.character


def skill_step_for_entry(entry: Any) -> Optional[Dict[str, Any]]:
    """Turn a rank-bonus or skill-table cell into a concrete step."""
    if isinstance(entry, Mapping) and entry.get("type"):
        return dict(entry)
    if isinstance(entry, (list, tuple)):
        skills = [str(item) for item in entry if item]
        return {"type": StepType.GAIN_SKILL.value, "skills_list": skills} if skills else None
    if isinstance(entry, str) and entry.strip():
        parsed = parse_skill_entry(entry)
        if parsed.kind == "attribute":
            gain = parsed.skills[0]
            return {"type": StepType.INCREASE_STAT.value, "stat": gain.name, "amount": gain.level}
        return {"type": StepType.GAIN_SKILL.value, "skills_list": [entry.strip()]}
    return None


class EventChainInterpreter:
    def __init__(
        self,
        careers: Mapping[str, Any] | None = None,
        rng: random.Random | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
        event_publisher: Optional[Callable[[object], None]] = None,
        life_events: Mapping[Any, Any] | None = None,
    ) -> None:
        self.careers = careers or {}
        self.rng = rng or random.Random()
        self.max_depth = max(0, int(max_depth))
        self.event_publisher = event_publisher
        self.life_events = life_events

    def set_seed(self, seed: int) -> None:
        self.rng.seed(seed)

    def process_event_chain(
        self,
        character: Character,
        steps: Sequence[Any],
        depth: int = 0,
        origin: Optional[Tuple[str, str]] = None,
    ) -> ChainOutcome:
        run = _ChainRun(character)
        path = ((career_key(origin[0]), str(origin[1])),) if origin else ()
        self._walk(run, list(steps or []), _Frame(depth=depth, path=path))
        return ChainOutcome(
            character=run.character,
            results=run.results,
            pending_choices=run.pending,
            truncated=run.truncated,
        )

    def resolve_player_choice(
        self,
        outcome: ChainOutcome | Character,
        choice: PendingChoice | str,
        option_index: int,
        character: Optional[Character] = None,
    ) -> ChainOutcome:
        if isinstance(outcome, Character):
            if not isinstance(choice, PendingChoice):
                raise ChoiceResolutionError("A PendingChoice is required when resolving against a bare character")
            outcome = ChainOutcome(character=outcome, pending_choices=[choice])

        choice_id = choice.choice_id if isinstance(choice, PendingChoice) else str(choice)
        pending = outcome.find_choice(choice_id)
        if pending is None:
            raise ChoiceResolutionError(f"No pending choice with id {choice_id!r}")
        if not 0 <= int(option_index) < len(pending.options):
            raise ChoiceResolutionError(
                f"Option {option_index} is out of range for choice {choice_id!r} with {len(pending.options)} options"
            )
        base = character if character is not None else outcome.character
        if base is None:
            raise ChoiceResolutionError("No character available to resolve the choice against")

        selected = pending.options[int(option_index)]
        run = _ChainRun(base)
        run.results.append(
            StepResult(
                type=pending.step_type,
                success=True,
                description=f"Chose: {selected.description}",
                depth=pending.depth,
                details={"choice_id": choice_id, "option_index": int(option_index)},
            )
        )
        frame = _Frame(depth=pending.depth, path=pending.path, remain_in_career=pending.remain_in_career)
        self._walk(run, [selected.step], frame)

        remaining = [item for item in outcome.pending_choices if item.choice_id != choice_id]
        return ChainOutcome(
            character=run.character,
            results=list(outcome.results) + run.results,
            pending_choices=remaining + run.pending,
            truncated=outcome.truncated or run.truncated,
        )

    def _publish(self, event: object) -> None:
        if self.event_publisher is not None:
            self.event_publisher(event)

    def _walk(self, run: _ChainRun, steps: List[Any], frame: _Frame) -> None:
        for raw in steps:
            step = parse_event_step(raw)
            handler = getattr(self, _HANDLERS[type(step)])
            handled: _Handled = handler(run, step, frame)
            handled.result.depth = frame.depth
            run.results.append(handled.result)
            if handled.choice is not None:
                run.pending.append(handled.choice)
                self._publish(
                    EventChainSuspended(
                        choice_id=handled.choice.choice_id,
                        description=handled.choice.description,
                        option_count=len(handled.choice.options),
                        depth=frame.depth,
                    )
                )
            for sub in handled.sub_chains:
                self._walk_sub_chain(run, sub, frame)

    def _walk_sub_chain(self, run: _ChainRun, sub: _SubChain, frame: _Frame) -> None:
        if not sub.steps:
            return
        depth = frame.depth + 1
        pair = (career_key(sub.career), sub.table) if sub.career and sub.table else None
        reason = None
        if depth > self.max_depth:
            reason = f"Chain depth {depth} exceeds the limit of {self.max_depth}"
        elif pair is not None and pair in frame.path:
            reason = f"Table {pair[1]} of {pair[0]} is already being resolved"
        if reason is not None:
            run.truncated = True
            run.results.append(
                StepResult(
                    type=RECURSION_GUARD,
                    success=False,
                    description=reason,
                    depth=depth,
                    details={"career": sub.career, "table": sub.table},
                )
            )
            logger.warning("Event chain truncated", extra={"depth": depth, "career": sub.career, "table": sub.table})
            self._publish(EventChainRecursionLimited(step_type=RECURSION_GUARD, depth=depth, career=sub.career, table=sub.table))
            return
        path = frame.path + (pair,) if pair is not None else frame.path
        self._walk(
            run,
            sub.steps,
            _Frame(depth=depth, path=path, remain_in_career=frame.remain_in_career or sub.remain_in_career),
        )

    def _pending(self, step: EventStep, description: str, options: List[Dict[str, Any]], frame: _Frame) -> PendingChoice:
        return PendingChoice(
            choice_id=f"choice-{uuid.uuid4().hex[:12]}",
            step_type=step.type,
            description=description,
            options=[
                ChoiceOption(index=index, description=describe_choice_option(option), step=dict(option))
                for index, option in enumerate(options)
            ],
            depth=frame.depth,
            path=frame.path,
            remain_in_career=frame.remain_in_career,
        )

    def _choice(self, step: EventStep, description: str, options: List[Dict[str, Any]], frame: _Frame) -> _Handled:
        pending = self._pending(step, description, options, frame)
        return _Handled(
            result=StepResult(
                type=step.type,
                success=True,
                description=description,
                requires_choice=True,
                details={"choice_id": pending.choice_id, "options": [opt.description for opt in pending.options]},
            ),
            choice=pending,
        )

    def _failed(self, step: EventStep, description: str) -> _Handled:
        return _Handled(result=StepResult(type=step.type, success=False, description=description))

    def _current_career_data(self, character: Character) -> Optional[Mapping[str, Any]]:
        name = character.current_career or (character.last_stint.career if character.last_stint else None)
        return find_career(self.careers, name)

    def _handle_gain_skill(self, run: _ChainRun, step: GainSkill, frame: _Frame) -> _Handled:
        if not step.skills:
            return self._failed(step, "No skills specified")
        if len(step.skills) > 1:
            options = []
            for entry in step.skills:
                gain = (parse_skill_entry(entry).skills or [None])[0]
                label = gain.display_name if gain else entry
                options.append({"type": StepType.GAIN_SKILL.value, "skills_list": [entry], "description": f"Gain {label}"})
            return self._choice(step, "Choose a skill to gain", options, frame)

        parsed = parse_skill_entry(step.skills[0])
        if not parsed.skills:
            return self._failed(step, f"Unreadable skill entry: {step.skills[0]}")
        gain = parsed.skills[0]
        if gain.is_attribute:
            current = int(run.character.attributes.get(gain.name, 0))
            run.dispatch(ActionType.UPDATE_ATTRIBUTE, {"attribute": gain.name, "value": current + gain.level})
        else:
            run.dispatch(ActionType.ADD_SKILL, {"skill": gain.name, "level": gain.level})
        return _Handled(
            result=StepResult(
                type=step.type,
                success=True,
                description=f"Gained {gain.display_name}",
                details={"skill": gain.name, "level": gain.level, "is_attribute": gain.is_attribute},
            )
        )

    def _handle_increase_skill(self, run: _ChainRun, step: IncreaseSkill, frame: _Frame) -> _Handled:
        if "Any" in step.skills:
            existing = [name for name, level in run.character.skills.items() if level > 0]
            if not existing:
                return self._failed(step, "No existing skills to increase")
            options = [
                {"type": StepType.INCREASE_SKILL.value, "skills_list": [name], "description": f"Increase {name} by 1 level"}
                for name in existing
            ]
            return self._choice(step, "Choose an existing skill to increase by 1 level", options, frame)
        if len(step.skills) > 1:
            options = [
                {"type": StepType.INCREASE_SKILL.value, "skills_list": [name], "description": f"Increase {name} by 1 level"}
                for name in step.skills
            ]
            return self._choice(step, "Choose a skill to increase by 1 level", options, frame)
        if not step.skills:
            return self._failed(step, "No skills specified")

        name = step.skills[0]
        run.dispatch(ActionType.ADD_SKILL, {"skill": name, "level": 1})
        return _Handled(
            result=StepResult(type=step.type, success=True, description=f"Increased {name} by 1 level", details={"skill": name})
        )

    def _handle_roll_skill(self, run: _ChainRun, step: RollSkill, frame: _Frame) -> _Handled:
        if not step.checks:
            return self._failed(step, "No valid skills to roll")
        if len(step.checks) > 1:
            options = [
                {
                    "type": StepType.ROLL_SKILL.value,
                    "SkillsAbleToRoll": [{skill: target}],
                    "Success": [dict(item) for item in step.on_success],
                    "Failure": [dict(item) for item in step.on_failure],
                    "description": f"Roll {skill} {target}+",
                }
                for skill, target in step.checks
            ]
            return self._choice(step, "Choose a skill to roll", options, frame)

        skill, target = step.checks[0]
        attribute = SKILL_ATTRIBUTES.get(skill, "INT")
        check = make_skill_check(
            int(run.character.attributes.get(attribute, 0)),
            run.character.skill_level(skill),
            target,
            rng=self.rng,
        )
        branch = step.on_success if check.success else step.on_failure
        return _Handled(
            result=StepResult(
                type=step.type,
                success=check.success,
                description=f"{skill} check: {check.formatted}",
                details={"skill": skill, "attribute": attribute, "target": target, "roll": check.roll},
            ),
            sub_chains=[_SubChain(steps=[dict(item) for item in branch])],
        )

    def _handle_choice(self, run: _ChainRun, step: Choice, frame: _Frame) -> _Handled:
        if not step.choices:
            return self._failed(step, "Choice step has no options")
        return self._choice(step, "Make a choice", [dict(option) for option in step.choices], frame)

    def _relationship_name(self, kind: str) -> str:
        titles = RELATIONSHIP_TITLES.get(kind, (kind.title(),))
        return f"{self.rng.choice(RELATIONSHIP_NAMES)} ({self.rng.choice(titles)})"

    def _add_relationships(self, run: _ChainRun, kind: str, amount: int) -> List[str]:
        names = []
        for _ in range(amount):
            name = self._relationship_name(kind)
            run.dispatch(RELATIONSHIP_ACTIONS[kind], name)
            names.append(name)
        return names

    def _handle_gain_relationship(self, run: _ChainRun, step: GainRelationship, frame: _Frame) -> _Handled:
        names = self._add_relationships(run, step.relationship, step.amount)
        label = _PLURALS[step.relationship] if step.amount != 1 else step.relationship
        return _Handled(
            result=StepResult(
                type=step.type,
                success=True,
                description=f"Gained {step.amount} {label}: {', '.join(names)}",
                details={"relationship": step.relationship, "names": names},
            )
        )

    def _handle_gain_contacts(self, run: _ChainRun, step: GainContacts, frame: _Frame) -> _Handled:
        if str(step.amount).strip().upper() == "D3":
            amount = roll_1d3(rng=self.rng).total
        else:
            try:
                amount = max(0, int(step.amount))
            except (TypeError, ValueError):
                amount = 1
        names = self._add_relationships(run, "contact", amount)
        return _Handled(
            result=StepResult(
                type=step.type,
                success=True,
                description=f"Gained {amount} {'contacts' if amount != 1 else 'contact'}: {', '.join(names)}",
                details={"relationship": "contact", "names": names},
            )
        )

    def _handle_advancement_dm(self, run: _ChainRun, step: AdvancementDM, frame: _Frame) -> _Handled:
        run.dispatch(ActionType.SET_ADVANCEMENT_DM, step.dm)
        return _Handled(
            result=StepResult(
                type=step.type,
                success=True,
                description=f"Gained {step.dm:+d} DM to next advancement roll",
                details={"dm": step.dm},
            )
        )

    def _handle_benefit_dm(self, run: _ChainRun, step: BenefitDM, frame: _Frame) -> _Handled:
        run.dispatch(ActionType.SET_BENEFIT_DM, step.dm)
        return _Handled(
            result=StepResult(
                type=step.type,
                success=True,
                description=f"Gained {step.dm:+d} DM to benefit rolls",
                details={"dm": step.dm},
            )
        )

    def _rank_bonus_chain(self, career: Mapping[str, Any] | None, assignment: Optional[str], rank: int, commissioned: bool) -> List[_SubChain]:
        bonus_step = skill_step_for_entry(rank_bonus(career, assignment, rank, commissioned))
        return [_SubChain(steps=[bonus_step])] if bonus_step else []

    def _handle_automatic_promotion(self, run: _ChainRun, step: AutomaticPromotion, frame: _Frame) -> _Handled:
        stint = run.character.open_stint
        if stint is None:
            return self._failed(step, "No active career to be promoted in")
        career = find_career(self.careers, stint.career)
        new_rank = stint.rank + 1
        title = rank_title(career, stint.assignment, new_rank, stint.commissioned)
        run.dispatch(ActionType.PROMOTE, {"rank_title": title})
        return _Handled(
            result=StepResult(
                type=step.type,
                success=True,
                description=f"Automatically promoted to rank {new_rank}" + (f" ({title})" if title else ""),
                details={"rank": new_rank, "rank_title": title},
            ),
            sub_chains=self._rank_bonus_chain(career, stint.assignment, new_rank, stint.commissioned),
        )

    def _handle_automatic_promotion_or_commission(
        self, run: _ChainRun, step: AutomaticPromotionOrCommission, frame: _Frame
    ) -> _Handled:
        options = [
            {"type": StepType.AUTOMATIC_PROMOTION.value, "description": "Gain automatic promotion"},
            {"type": StepType.AUTOMATIC_COMMISSION.value, "description": "Gain automatic commission (if eligible)"},
        ]
        return self._choice(step, "Choose automatic promotion or commission", options, frame)

    def _handle_automatic_commission(self, run: _ChainRun, step: AutomaticCommission, frame: _Frame) -> _Handled:
        stint = run.character.open_stint
        if stint is None:
            return self._failed(step, "No active career to be commissioned in")
        if stint.commissioned:
            return self._failed(step, "Already commissioned")
        career = find_career(self.careers, stint.career)
        if career is not None and not career.get("hasCommission"):
            return self._failed(step, f"{stint.career} does not offer commissions")
        title = rank_title(career, stint.assignment, 1, True)
        run.dispatch(ActionType.COMMISSION, {"rank_title": title})
        return _Handled(
            result=StepResult(
                type=step.type,
                success=True,
                description="Commissioned as an officer" + (f" ({title})" if title else ""),
                details={"rank": 1, "rank_title": title},
            ),
            sub_chains=self._rank_bonus_chain(career, stint.assignment, 1, True),
        )

    def _handle_injury(self, run: _ChainRun, step: Injury, frame: _Frame) -> _Handled:
        injury = roll_on_injury_table(severe=step.severe, rng=self.rng)
        for attribute, amount in injury.reductions:
            run.dispatch(ActionType.REDUCE_ATTRIBUTE, {"attribute": attribute, "amount": amount})
        run.dispatch(
            ActionType.ADD_INJURY,
            {
                "type": step.type,
                "term": run.character.current_term,
                "roll": injury.roll,
                "description": injury.description,
                "effect": injury.effect,
                "reductions": [{"attribute": attr, "amount": amount} for attr, amount in injury.reductions],
            },
        )
        return _Handled(
            result=StepResult(
                type=step.type,
                success=True,
                description=injury.description,
                details={
                    "roll": injury.roll,
                    "effect": injury.effect,
                    "reductions": [{"attribute": attr, "amount": amount} for attr, amount in injury.reductions],
                },
            )
        )

    def _handle_disaster(self, run: _ChainRun, step: Disaster, frame: _Frame) -> _Handled:
        career = self._current_career_data(run.character)
        if career is None:
            return self._failed(step, "No career mishap table available for disaster")
        mishap = roll_mishap(career.get("mishaps"), rng=self.rng)
        name = run.character.current_career or run.character.last_stint.career
        return _Handled(
            result=StepResult(
                type=step.type,
                success=True,
                description=f"Disaster: {mishap.description} (remain in career)",
                details={"career": name, "roll": mishap.roll, "no_result": mishap.no_result},
            ),
            sub_chains=[_SubChain(steps=mishap.event_chain, career=name, table="mishaps", remain_in_career=True)],
        )

    def _handle_life_event(self, run: _ChainRun, step: LifeEvent, frame: _Frame) -> _Handled:
        if not self.life_events:
            return _Handled(result=StepResult(type=step.type, success=True, description="A significant life event occurred"))
        event = roll_event(self.life_events, rng=self.rng)
        return _Handled(
            result=StepResult(
                type=step.type,
                success=True,
                description=f"Life event: {event.description}",
                details={"roll": event.roll, "no_result": event.no_result},
            ),
            sub_chains=[_SubChain(steps=event.event_chain, career="life", table="events")],
        )

    def _handle_roll_on_career_table(self, run: _ChainRun, step: RollOnCareerTable, frame: _Frame) -> _Handled:
        rolls = []
        sub_chains = []
        for name in step.careers:
            career = find_career(self.careers, name)
            if career is None:
                rolls.append({"career": name, "missing": True})
                continue
            if step.table == "mishaps":
                rolled = roll_mishap(career.get("mishaps"), rng=self.rng)
            else:
                rolled = roll_event(career.get("events"), rng=self.rng)
            rolls.append({"career": name, "roll": rolled.roll, "description": rolled.description})
            sub_chains.append(_SubChain(steps=rolled.event_chain, career=name, table=step.table))
        plural = "s" if len(step.careers) > 1 else ""
        return _Handled(
            result=StepResult(
                type=step.type,
                success=True,
                description=f"Rolled on {step.table} table{plural} for: {', '.join(step.careers)}",
                details={"rolls": rolls},
            ),
            sub_chains=sub_chains,
        )

    def _handle_roll_on_specialist_table(self, run: _ChainRun, step: RollOnSpecialistTable, frame: _Frame) -> _Handled:
        rolls = []
        sub_chains = []
        for name in step.careers:
            career = find_career(self.careers, name)
            keys = specialist_table_keys(career)
            if not keys:
                rolls.append({"career": name, "missing": True})
                continue
            table_key = self.rng.choice(keys)
            roll = roll_1d6(rng=self.rng).total
            entry = table_entry(career["skills_and_training"][table_key], roll)
            rolls.append({"career": name, "table": table_key, "roll": roll, "skill": entry})
            skill_step = skill_step_for_entry(entry)
            if skill_step is not None:
                sub_chains.append(_SubChain(steps=[skill_step], career=name, table=table_key))
        plural = "s" if len(step.careers) > 1 else ""
        return _Handled(
            result=StepResult(
                type=step.type,
                success=True,
                description=f"Rolled on specialist skill table{plural} for: {', '.join(step.careers)}",
                details={"rolls": rolls},
            ),
            sub_chains=sub_chains,
        )

    def _handle_increase_stat(self, run: _ChainRun, step: IncreaseStat, frame: _Frame) -> _Handled:
        stat = normalize_attribute_name(step.stat)
        if stat is None or stat not in ALL_ATTRIBUTES:
            return self._failed(step, f"Invalid stat: {step.stat}")
        current = int(run.character.attributes.get(stat, 0))
        run.dispatch(ActionType.UPDATE_ATTRIBUTE, {"attribute": stat, "value": current + step.amount})
        return _Handled(
            result=StepResult(
                type=step.type,
                success=True,
                description=f"{stat} increased by {step.amount}",
                details={"stat": stat, "amount": step.amount},
            )
        )

    def _handle_removed_from_career(self, run: _ChainRun, step: RemovedFromCareer, frame: _Frame) -> _Handled:
        if frame.remain_in_career:
            return _Handled(
                result=StepResult(
                    type=step.type,
                    success=True,
                    description="Removal ignored: disaster leaves you in your career",
                    details={"ignored": True},
                )
            )
        career = run.character.current_career
        if career is None:
            return self._failed(step, "No active career to be removed from")
        run.dispatch(ActionType.END_CAREER, {"forfeit_benefits": not step.keep_benefits})
        stint = run.character.last_stint
        self._publish(
            CareerEnded(
                career=career,
                terms=stint.terms if stint else 0,
                benefits_forfeited=not step.keep_benefits,
                reason="removed",
            )
        )
        return _Handled(
            result=StepResult(
                type=step.type,
                success=True,
                description="Removed from career" + ("" if step.keep_benefits else " (no benefits)"),
                details={"career_ended": True, "keep_benefits": step.keep_benefits},
            )
        )

    def _handle_unknown(self, run: _ChainRun, step: UnknownStep, frame: _Frame) -> _Handled:
        logger.warning("Unknown event step type", extra={"step_type": step.type})
        return self._failed(step, f"Unknown event type: {step.type}")


_HANDLERS: Dict[type, str] = {
    GainSkill: "_handle_gain_skill",
    IncreaseSkill: "_handle_increase_skill",
    RollSkill: "_handle_roll_skill",
    Choice: "_handle_choice",
    GainRelationship: "_handle_gain_relationship",
    GainContacts: "_handle_gain_contacts",
    AdvancementDM: "_handle_advancement_dm",
    BenefitDM: "_handle_benefit_dm",
    AutomaticPromotion: "_handle_automatic_promotion",
    AutomaticPromotionOrCommission: "_handle_automatic_promotion_or_commission",
    AutomaticCommission: "_handle_automatic_commission",
    Injury: "_handle_injury",
    Disaster: "_handle_disaster",
    LifeEvent: "_handle_life_event",
    RollOnCareerTable: "_handle_roll_on_career_table",
    RollOnSpecialistTable: "_handle_roll_on_specialist_table",
    IncreaseStat: "_handle_increase_stat",
    RemovedFromCareer: "_handle_removed_from_career",
    UnknownStep: "_handle_unknown",
}

_missing_handlers = [klass.__name__ for klass in STEP_CLASSES if klass not in _HANDLERS]
if _missing_handlers:
    raise RuntimeError(f"Event step classes without handlers: {', '.join(_missing_handlers)}")
_unbound_handlers = [name for name in _HANDLERS.values() if not callable(getattr(EventChainInterpreter, name, None))]
if _unbound_handlers:
    raise RuntimeError(f"Event step handlers not defined on EventChainInterpreter: {', '.join(_unbound_handlers)}")
