from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import List, Optional

from traveller.application.dtos import TermOutcome
from traveller.application.services.career_service import CareerService
from traveller.application.services.character_creation_service import CharacterCreationService
from traveller.application.services.character_session import CharacterSession
from traveller.application.services.validation import validate_complete_character
from traveller.domain.models.character import Character, new_character
from traveller.domain.models.tables import find_career


logger = logging.getLogger(__name__)

MAX_TERMS_PER_CAREER = 7
MAX_CAREERS = 3


@dataclass
class GenerationReport:
    character: Character
    log: List[str] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)


class CharacterGenerator:
    """Drives a complete character through creation and careers without prompting.

    Pending choices are resolved by picking a random option. Each committed
    state is adopted by the session, which keeps it current without
    publishing per-action events.
    """

    def __init__(
        self,
        creation: CharacterCreationService,
        careers: CareerService,
        session: Optional[CharacterSession] = None,
        rng: random.Random | None = None,
    ) -> None:
        self.creation = creation
        self.careers = careers
        self.session = session or CharacterSession()
        self.rng = rng or random.Random()

    def set_seed(self, seed: int) -> None:
        self.rng.seed(seed)

    def _commit(self, report: GenerationReport, character: Character, messages: List[str], issues: List[str] | None = None) -> Character:
        report.log.extend(messages)
        report.issues.extend(issues or [])
        report.character = self.session.adopt(character)
        return report.character

    def _settle_choices(self, report: GenerationReport, outcome: TermOutcome) -> TermOutcome:
        current = outcome
        while current.pending_choices:
            pending = current.pending_choices[0]
            index = self.rng.randrange(len(pending.options))
            report.log.append(f"{pending.description}: picked {pending.options[index].description}")
            resolved = self.careers.resolve_pending_choice(current.chain, pending.choice_id, index)
            current = TermOutcome(
                character=resolved.character,
                chain=resolved.chain,
                messages=resolved.messages,
                career_ended=current.career_ended or resolved.career_ended,
            )
            self._commit(report, current.character, current.messages)
        return current

    def _run_step(self, report: GenerationReport, outcome: TermOutcome) -> TermOutcome:
        self._commit(report, outcome.character, outcome.messages, outcome.issues)
        return self._settle_choices(report, outcome)

    def _train(self, report: GenerationReport) -> None:
        outcome = self.careers.train_skills(report.character)
        self._commit(report, outcome.character, outcome.messages, outcome.issues)
        if outcome.training is not None and outcome.training.requires_choice:
            index = self.rng.randrange(len(outcome.training.parsed.options))
            chosen = self.careers.choose_training_option(report.character, outcome.training, index)
            self._commit(report, chosen.character, chosen.messages)

    def create_base(self, name: str, species: str = "Human", method: str = "2d6") -> GenerationReport:
        report = GenerationReport(character=self.session.adopt(new_character()))
        for step in (
            lambda c: self.creation.set_name(c, name),
            lambda c: self.creation.roll_attributes(c, method),
            lambda c: self.creation.apply_species(c, species),
            self.creation.lock_attributes,
            self.creation.auto_select_background,
            self.creation.finish_background,
        ):
            outcome = step(report.character)
            self._commit(report, outcome.character, outcome.messages, outcome.issues)
        return report

    def serve_career(self, report: GenerationReport, career_name: str, terms: int) -> bool:
        """Attempt to enter ``career_name`` and serve up to ``terms`` terms; True if the career was entered."""
        qualification = self.careers.attempt_qualification(report.character, career_name)
        self._commit(report, qualification.character, qualification.messages, qualification.issues)
        if qualification.issues or qualification.check is None or not qualification.check.success:
            return False

        career = find_career(self.careers.careers, career_name) or {}
        assignments = list(career.get("assignments") or [])
        assignment = self.rng.choice(assignments) if assignments else None
        self._run_step(report, self.careers.begin_career(report.character, career_name, assignment))

        for term in range(1, max(1, terms) + 1):
            survival = self._run_step(report, self.careers.resolve_survival(report.character))
            if survival.career_ended or report.character.current_career is None:
                return True
            event = self._run_step(report, self.careers.resolve_event(report.character))
            if event.career_ended or report.character.current_career is None:
                return True
            stint = report.character.open_stint
            if career.get("hasCommission") and stint is not None and not stint.commissioned:
                self._run_step(report, self.careers.resolve_commission(report.character))
            else:
                self._run_step(report, self.careers.resolve_advancement(report.character))
            self._train(report)
            if term < terms and term < MAX_TERMS_PER_CAREER:
                self._run_step(report, self.careers.continue_career(report.character))
            else:
                break

        if report.character.current_career is not None:
            self._run_step(report, self.careers.leave_career(report.character))
        return True

    def muster_out(self, report: GenerationReport, max_cash_rolls: int = 3) -> None:
        cash_rolls = 0
        while report.character.benefit_rolls > 0:
            cash = cash_rolls < max_cash_rolls and self.rng.random() < 0.5
            outcome = self.careers.muster_out(report.character, cash=cash)
            if outcome.issues:
                report.issues.extend(outcome.issues)
                break
            cash_rolls += int(cash)
            self._commit(report, outcome.character, outcome.messages)

    def generate(
        self,
        name: str,
        species: str = "Human",
        career_plan: Optional[List[str]] = None,
        terms_per_career: int = 2,
        method: str = "2d6",
    ) -> GenerationReport:
        report = self.create_base(name, species, method)
        plan = list(career_plan or [])
        if not plan:
            available = sorted(self.careers.careers)
            plan = self.rng.sample(available, k=min(MAX_CAREERS, len(available)))

        for career_name in plan[:MAX_CAREERS]:
            if self.serve_career(report, career_name, terms_per_career):
                self.muster_out(report)

        validation = validate_complete_character(report.character, self.creation.list_species() or None)
        report.issues.extend(validation.issues)
        logger.info(
            "Character generated",
            extra={"character_name": report.character.name, "careers": len(report.character.career_history)},
        )
        return report
