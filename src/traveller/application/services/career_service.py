from __future__ import annotations

import logging
import random
import re
from typing import Any, Callable, Mapping, Optional

from traveller.application.dtos import AgingResult, SkillTrainingResult, TermOutcome
from traveller.application.services.character_store import RELATIONSHIP_ACTIONS, Action, ActionType, apply
from traveller.application.services.event_chain import ChainOutcome, EventChainInterpreter, skill_step_for_entry
from traveller.application.services.rules import (
    calculate_aging_effects,
    make_advancement_roll,
    make_commission_roll,
    make_qualification_roll,
    make_survival_roll,
    roll_event,
    roll_mishap,
    roll_mustering_out_benefit,
    validate_career_prerequisites,
)
from traveller.application.services.skill_training import (
    apply_skill_training,
    get_available_skill_tables,
    handle_skill_choice,
    parse_skill_entry,
    roll_on_skill_table,
    validate_skill_training_prerequisites,
)
from traveller.domain.events import CareerEnded
from traveller.domain.models.character import YEARS_PER_TERM, Character
from traveller.domain.models.tables import find_career, rank_bonus, rank_title


logger = logging.getLogger(__name__)

_CREDITS_RE = re.compile(r"[^\d-]")
_RELATIONSHIP_WORDS = {
    kind: re.compile(rf"\b(?:{kind}s?|{kind[:-1]}ies)\b", re.IGNORECASE) for kind in RELATIONSHIP_ACTIONS
}


def benefit_rank_bonus(rank: int) -> int:
    if rank >= 5:
        return 3
    if rank >= 3:
        return 2
    if rank >= 1:
        return 1
    return 0


def parse_credits(value: Any) -> int:
    """Cash table cells are either integers or strings like ``"Cr10,000"``."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    digits = _CREDITS_RE.sub("", str(value or ""))
    try:
        return int(digits)
    except ValueError:
        logger.warning("Unreadable cash benefit", extra={"benefit": value})
        return 0


def _event(character: Character, payload: dict) -> Character:
    return apply(character, Action(ActionType.ADD_CAREER_EVENT, payload))


class CareerService:
    """Runs one career term at a time: survival, event, advancement, training, continue or leave.

    Every operation takes the current character and returns a ``TermOutcome``
    holding the new character. Nothing is mutated in place.
    """

    def __init__(
        self,
        careers: Mapping[str, Any],
        rng: random.Random | None = None,
        interpreter: Optional[EventChainInterpreter] = None,
        event_publisher: Optional[Callable[[object], None]] = None,
    ) -> None:
        self.careers = careers or {}
        self.rng = rng or random.Random()
        self.event_publisher = event_publisher
        self.interpreter = interpreter or EventChainInterpreter(self.careers, rng=self.rng, event_publisher=event_publisher)

    def set_seed(self, seed: int) -> None:
        self.rng.seed(seed)

    def _publish(self, event: object) -> None:
        if self.event_publisher is not None:
            self.event_publisher(event)

    def _open_career(self, character: Character) -> tuple[Optional[Mapping[str, Any]], list[str]]:
        if character.current_career is None or character.open_stint is None:
            return None, ["No active career"]
        career = find_career(self.careers, character.current_career)
        if career is None:
            return None, [f"Career data not found: {character.current_career}"]
        return career, []

    def attempt_qualification(self, character: Character, career_name: str) -> TermOutcome:
        career = find_career(self.careers, career_name)
        if career is None:
            return TermOutcome(character=character, issues=[f"Unknown career: {career_name}"])
        if character.current_career is not None:
            return TermOutcome(character=character, issues=[f"Already serving in {character.current_career}"])
        prerequisites = validate_career_prerequisites(character, career)
        if not prerequisites.valid:
            return TermOutcome(character=character, issues=list(prerequisites.issues))
        check = make_qualification_roll(character, career, rng=self.rng)
        return TermOutcome(character=character, check=check, messages=[check.formatted])

    def begin_career(self, character: Character, career_name: str, assignment: Optional[str] = None) -> TermOutcome:
        career = find_career(self.careers, career_name)
        if career is None:
            return TermOutcome(character=character, issues=[f"Unknown career: {career_name}"])
        if character.current_career is not None:
            return TermOutcome(character=character, issues=[f"Already serving in {character.current_career}"])

        assignments = career.get("assignments") or []
        if assignment is None and assignments:
            assignment = str(list(assignments)[0])
        name = str(career.get("name") or career_name)
        title = rank_title(career, assignment, 0)
        updated = apply(
            character,
            Action(
                ActionType.START_CAREER,
                {"career": name, "assignment": assignment, "rank_title": title, "commissioned": False},
            ),
        )
        updated = _event(updated, {"type": "career_start", "description": f"Began {name} ({assignment or 'general'})"})
        logger.info("Career started", extra={"career": name, "assignment": assignment})
        return TermOutcome(character=updated, messages=[f"Entered {name} as {assignment or 'general'}"])

    def _settle_departure(
        self,
        before: Character,
        after: Character,
        reason: str,
        completed_terms: Optional[int] = None,
        publish: bool = True,
    ) -> tuple[Character, list[str]]:
        """Fix the age of a career that just closed and award its benefit rolls.

        Terms served are already counted by ``ADVANCE_TERM``; the age is pinned
        to the age at entry plus four years per finalised term.
        """
        messages: list[str] = []
        stint = after.last_stint
        if stint is None:
            return after, messages
        if stint.start_age is not None:
            after = apply(after, Action(ActionType.SET_AGE, stint.start_age + stint.terms * YEARS_PER_TERM))
        aging = calculate_aging_effects(after.age, after.attributes, previous_age=before.age, rng=self.rng)
        after, aging_messages = self._apply_aging(after, aging)
        messages.extend(aging_messages)
        outcome = self.award_benefit_rolls(after, completed_terms=completed_terms)
        messages.extend(outcome.messages)
        if publish:
            self._publish(
                CareerEnded(career=stint.career, terms=stint.terms, benefits_forfeited=stint.benefits_forfeited, reason=reason)
            )
        return outcome.character, messages

    def _after_chain(self, before: Character, chain: ChainOutcome) -> tuple[Character, list[str], bool]:
        character = chain.character
        ended = before.current_career is not None and character.current_career is None
        if not ended:
            return character, [], False
        character, messages = self._settle_departure(before, character, "removed", publish=False)
        return character, messages, True

    def resolve_survival(self, character: Character) -> TermOutcome:
        career, issues = self._open_career(character)
        if career is None:
            return TermOutcome(character=character, issues=issues)
        stint = character.open_stint
        check = make_survival_roll(character, career, stint.assignment, rng=self.rng)
        updated = _event(
            character,
            {
                "type": "survival",
                "success": check.success,
                "roll": check.roll,
                "target": check.target,
                "description": check.formatted,
            },
        )
        if check.success:
            return TermOutcome(character=updated, check=check, messages=[check.formatted])

        mishap = roll_mishap(career.get("mishaps"), rng=self.rng)
        updated = _event(updated, {"type": "mishap", "roll": mishap.roll, "description": mishap.description})
        chain = self.interpreter.process_event_chain(
            updated, mishap.event_chain, origin=(character.current_career, "mishaps")
        )
        after = chain.character
        removed_by_chain = after.current_career is None
        if not removed_by_chain:
            after = apply(after, Action(ActionType.END_CAREER, {"forfeit_benefits": False}))
        final, messages = self._settle_departure(
            character,
            after,
            "mishap",
            completed_terms=max(0, character.current_term - 1),
            publish=not removed_by_chain,
        )
        chain.character = final
        return TermOutcome(
            character=final,
            check=check,
            chain=chain,
            messages=[check.formatted, f"Mishap: {mishap.description}"] + messages,
            career_ended=True,
        )

    def resolve_event(self, character: Character) -> TermOutcome:
        career, issues = self._open_career(character)
        if career is None:
            return TermOutcome(character=character, issues=issues)
        event = roll_event(career.get("events"), rng=self.rng)
        updated = _event(character, {"type": "event", "roll": event.roll, "description": event.description})
        chain = self.interpreter.process_event_chain(updated, event.event_chain, origin=(character.current_career, "events"))
        final, messages, ended = self._after_chain(character, chain)
        chain.character = final
        return TermOutcome(
            character=final,
            chain=chain,
            messages=[f"Event {event.roll}: {event.description}"] + messages,
            career_ended=ended,
        )

    def resolve_pending_choice(self, outcome: ChainOutcome, choice_id: str, option_index: int, character: Optional[Character] = None) -> TermOutcome:
        before = character if character is not None else outcome.character
        chain = self.interpreter.resolve_player_choice(outcome, choice_id, option_index, character=before)
        final, messages, ended = self._after_chain(before, chain)
        chain.character = final
        return TermOutcome(character=final, chain=chain, messages=messages, career_ended=ended)

    def _bonus_chain(self, character: Character, career: Mapping[str, Any], rank: int, commissioned: bool) -> Optional[ChainOutcome]:
        stint = character.open_stint
        step = skill_step_for_entry(rank_bonus(career, stint.assignment if stint else None, rank, commissioned))
        if step is None:
            return None
        return self.interpreter.process_event_chain(character, [step], depth=1)

    def resolve_advancement(self, character: Character) -> TermOutcome:
        career, issues = self._open_career(character)
        if career is None:
            return TermOutcome(character=character, issues=issues)
        stint = character.open_stint
        dm = character.temp_modifiers.advancement_dm
        check = make_advancement_roll(character, career, stint.assignment, additional_dm=dm, rng=self.rng)
        updated = apply(character, Action(ActionType.SET_ADVANCEMENT_DM, 0))
        if check.no_result:
            return TermOutcome(character=updated, check=check, messages=[check.formatted])

        updated = _event(
            updated,
            {
                "type": "advancement",
                "success": check.success,
                "roll": check.roll,
                "target": check.target,
                "description": check.formatted,
            },
        )
        if not check.success:
            return TermOutcome(character=updated, check=check, messages=[check.formatted])

        new_rank = stint.rank + 1
        title = rank_title(career, stint.assignment, new_rank, stint.commissioned)
        updated = apply(updated, Action(ActionType.PROMOTE, {"rank_title": title}))
        messages = [check.formatted, f"Promoted to rank {new_rank}" + (f" ({title})" if title else "")]
        chain = self._bonus_chain(updated, career, new_rank, stint.commissioned)
        if chain is not None:
            updated = chain.character
            messages.extend(result.description for result in chain.results)
        return TermOutcome(character=updated, check=check, chain=chain, messages=messages)

    def resolve_commission(self, character: Character) -> TermOutcome:
        career, issues = self._open_career(character)
        if career is None:
            return TermOutcome(character=character, issues=issues)
        stint = character.open_stint
        if stint.commissioned:
            return TermOutcome(character=character, issues=["Already commissioned"])
        check = make_commission_roll(character, career, rng=self.rng)
        if check.not_applicable:
            return TermOutcome(character=character, check=check, messages=[check.formatted])

        updated = _event(
            character,
            {"type": "commission", "success": check.success, "roll": check.roll, "description": check.formatted},
        )
        if not check.success:
            return TermOutcome(character=updated, check=check, messages=[check.formatted])

        title = rank_title(career, stint.assignment, 1, True)
        updated = apply(updated, Action(ActionType.COMMISSION, {"rank_title": title}))
        messages = [check.formatted]
        chain = self._bonus_chain(updated, career, 1, True)
        if chain is not None:
            updated = chain.character
            messages.extend(result.description for result in chain.results)
        return TermOutcome(character=updated, check=check, chain=chain, messages=messages)

    def train_skills(self, character: Character, table_key: Optional[str] = None) -> TermOutcome:
        career = find_career(self.careers, character.current_career)
        stint = character.open_stint
        assignment = stint.assignment if stint else None
        validation = validate_skill_training_prerequisites(character, career, assignment)
        if not validation.valid:
            return TermOutcome(character=character, issues=list(validation.issues))

        tables = get_available_skill_tables(career, assignment, character)
        if not tables:
            return TermOutcome(character=character, issues=["No skill tables available"])
        if table_key is None:
            table = self.rng.choice(tables)
        else:
            matches = [table for table in tables if table.key == table_key]
            if not matches:
                return TermOutcome(character=character, issues=[f"Skill table not available: {table_key}"])
            table = matches[0]

        training = roll_on_skill_table(table, rng=self.rng)
        if training is None:
            return TermOutcome(character=character, messages=[f"No skill entry on {table.name}"])
        if training.requires_choice:
            options = ", ".join(option.display_name for option in training.parsed.options)
            return TermOutcome(character=character, training=training, messages=[f"{table.name}: choose from {options}"])
        updated = apply_skill_training(character, training)
        gained = ", ".join(gain.display_name for gain in training.parsed.skills)
        return TermOutcome(character=updated, training=training, messages=[f"{table.name}: {gained}"])

    def choose_training_option(self, character: Character, training: SkillTrainingResult, option_index: int) -> TermOutcome:
        updated = handle_skill_choice(character, training, option_index)
        return TermOutcome(
            character=updated,
            training=training,
            messages=[f"Chose {training.parsed.options[option_index].display_name}"],
        )

    def _apply_aging(self, character: Character, aging: AgingResult) -> tuple[Character, list[str]]:
        if aging.no_aging or not aging.checkpoints:
            return character, []
        updated = character
        for attribute, delta in aging.total_effects.items():
            if delta < 0:
                updated = apply(updated, Action(ActionType.REDUCE_ATTRIBUTE, {"attribute": attribute, "amount": -delta}))
        effects = ", ".join(f"{name} {delta:+d}" for name, delta in aging.total_effects.items() if delta)
        summary = f"Aging at {', '.join(str(point.age) for point in aging.checkpoints)}: {effects or 'no effect'}"
        if updated.career_history:
            updated = _event(updated, {"type": "aging", "description": summary})
        return updated, [summary]

    def continue_career(self, character: Character) -> TermOutcome:
        career, issues = self._open_career(character)
        if career is None:
            return TermOutcome(character=character, issues=issues)
        updated = apply(character, Action(ActionType.ADVANCE_TERM))
        aging = calculate_aging_effects(updated.age, updated.attributes, previous_age=character.age, rng=self.rng)
        updated, messages = self._apply_aging(updated, aging)
        return TermOutcome(
            character=updated,
            aging=aging,
            messages=[f"Began term {updated.current_term} at age {updated.age}"] + messages,
        )

    def leave_career(self, character: Character) -> TermOutcome:
        career, issues = self._open_career(character)
        if career is None:
            return TermOutcome(character=character, issues=issues)
        ended = apply(character, Action(ActionType.END_CAREER, {"forfeit_benefits": False}))
        final, messages = self._settle_departure(character, ended, "left")
        stint = final.last_stint
        return TermOutcome(
            character=final,
            messages=[f"Left {stint.career} after {stint.terms} term(s)"] + messages,
            career_ended=True,
        )

    def award_benefit_rolls(self, character: Character, completed_terms: Optional[int] = None) -> TermOutcome:
        stint = character.last_stint
        if stint is None or character.current_career is not None:
            return TermOutcome(character=character, issues=["No finished career to award benefits for"])
        if stint.benefit_rolls_awarded:
            return TermOutcome(character=character, issues=["Benefit rolls already awarded for this career"])
        terms = stint.terms if completed_terms is None else max(0, min(stint.terms, completed_terms))
        amount = 0 if stint.benefits_forfeited else terms + benefit_rank_bonus(stint.rank)
        updated = apply(character, Action(ActionType.AWARD_BENEFIT_ROLLS, {"amount": amount}))
        if stint.benefits_forfeited:
            message = f"Benefits from {stint.career} were forfeited"
        else:
            message = f"Awarded {amount} benefit roll(s) from {stint.career}"
        return TermOutcome(character=updated, messages=[message])

    def muster_out(self, character: Character, cash: bool = False) -> TermOutcome:
        if character.benefit_rolls <= 0:
            return TermOutcome(character=character, issues=["No benefit rolls remaining"])
        stint = character.last_stint
        career = find_career(self.careers, stint.career if stint else None)
        if career is None:
            return TermOutcome(character=character, issues=["Career data not found for mustering out"])

        benefit = roll_mustering_out_benefit(
            career.get("muster_out_benefits") or {},
            is_cash=cash,
            additional_dm=character.temp_modifiers.benefit_dm,
            rng=self.rng,
        )
        updated = apply(character, Action(ActionType.RESOLVE_BENEFIT_ROLL))
        if benefit.no_result:
            return TermOutcome(character=updated, benefit=benefit, messages=[benefit.formatted])
        if cash:
            credits = parse_credits(benefit.benefit)
            updated = apply(updated, Action(ActionType.UPDATE_MONEY, credits))
            return TermOutcome(character=updated, benefit=benefit, messages=[f"Received Cr{credits:,}"])
        updated, message = self._apply_material_benefit(updated, benefit.benefit)
        return TermOutcome(character=updated, benefit=benefit, messages=[message])

    def _apply_material_benefit(self, character: Character, benefit: Any) -> tuple[Character, str]:
        text = str(benefit).strip()
        parsed = parse_skill_entry(text)
        if parsed.kind == "attribute":
            gain = parsed.skills[0]
            current = int(character.attributes.get(gain.name, 0))
            updated = apply(character, Action(ActionType.UPDATE_ATTRIBUTE, {"attribute": gain.name, "value": current + gain.level}))
            return updated, f"{gain.name} increased by {gain.level}"

        for kind, action_type in RELATIONSHIP_ACTIONS.items():
            if _RELATIONSHIP_WORDS[kind].search(text):
                return apply(character, Action(action_type, text)), f"Gained {kind}: {text}"
        if "cyber" in text.lower():
            return apply(character, Action(ActionType.ADD_CYBERWARE, text)), f"Gained cyberware: {text}"
        return apply(character, Action(ActionType.ADD_GEAR, text)), f"Gained {text}"
