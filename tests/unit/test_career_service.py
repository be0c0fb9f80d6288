import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from traveller.application.services.career_service import CareerService, benefit_rank_bonus, parse_credits
from traveller.application.services.character_store import Action, ActionType, apply
from traveller.application.services.event_bus import EventBus
from traveller.domain.events import CareerEnded
from traveller.domain.models.character import Character


class _ScriptedRng:
    def __init__(self, values=()):
        self.values = list(values)

    def randint(self, low, high):
        return self.values.pop(0)

    def choice(self, seq):
        return seq[0]

    def feed(self, *values):
        self.values.extend(values)


def _every_roll(chain, low=2, high=12):
    return {str(roll): {"description": f"Happening {roll}", "eventChain": chain} for roll in range(low, high + 1)}


def _careers(mishap_chain=None, event_chain=None):
    return {
        "agent": {
            "name": "Agent",
            "assignments": ["Intelligence", "Corporate"],
            "career_progress": {
                "survival": {"Intelligence": {"END": 12}},
                "advancement": {"Intelligence": {"INT": 6}},
            },
            "ranks": {"0": "Agent", "1": "Field Agent", "2": "Special Agent"},
            "rank_bonus": {"1": "Streetwise 1"},
            "skills_and_training": {
                "service_skills": {str(roll): "Gun Combat" for roll in range(2, 13)},
                "personal_development": {str(roll): ["Melee", "Athletics"] for roll in range(2, 13)},
            },
            "events": _every_roll(event_chain or []),
            "mishaps": _every_roll(mishap_chain or [], low=1, high=6),
            "muster_out_benefits": {
                "cash": {str(roll): f"Cr{roll},000" for roll in range(1, 8)},
                "benefits": {"1": "Weapon", "2": "Ally", "3": "EDU +1", "4": "Cybernetic Implant", "5": "Arrival Pass", "6": "Ship Share", "7": "TAS Membership"},
            },
        },
        "drifter": {"name": "Drifter", "assignments": ["Wanderer"]},
    }


def _character() -> Character:
    return Character(name="Ines", attributes={"STR": 7, "DEX": 7, "END": 7, "INT": 7, "EDU": 7, "SOC": 7})


class CareerEntryTests(unittest.TestCase):
    def test_unknown_career_is_reported(self) -> None:
        service = CareerService(_careers(), rng=_ScriptedRng())
        outcome = service.attempt_qualification(_character(), "Navy")
        self.assertEqual(["Unknown career: Navy"], outcome.issues)

    def test_missing_qualification_is_automatic(self) -> None:
        service = CareerService(_careers(), rng=_ScriptedRng())
        outcome = service.attempt_qualification(_character(), "Drifter")
        self.assertTrue(outcome.check.success)
        self.assertTrue(outcome.check.automatic)

    def test_begin_career_uses_first_assignment_and_rank_zero_title(self) -> None:
        service = CareerService(_careers(), rng=_ScriptedRng())
        character = service.begin_career(_character(), "agent").character
        self.assertEqual("Agent", character.current_career)
        self.assertEqual(1, character.current_term)
        self.assertEqual("Intelligence", character.open_stint.assignment)
        self.assertEqual("Agent", character.open_stint.rank_title)
        self.assertEqual("career_start", character.open_stint.events[0]["type"])

        again = service.begin_career(character, "drifter")
        self.assertEqual(["Already serving in Agent"], again.issues)

    def test_prerequisites_block_qualification(self) -> None:
        careers = _careers()
        careers["agent"]["minimumAttributes"] = {"INT": 9}
        service = CareerService(careers, rng=_ScriptedRng())
        outcome = service.attempt_qualification(_character(), "agent")
        self.assertIsNone(outcome.check)
        self.assertEqual(1, len(outcome.issues))


class TermResolutionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.rng = _ScriptedRng()
        self.bus = EventBus()
        self.ended = []
        self.bus.subscribe(CareerEnded, self.ended.append)

    def _service(self, **kwargs) -> CareerService:
        return CareerService(_careers(**kwargs), rng=self.rng, event_publisher=self.bus.publish)

    def test_failed_survival_rolls_mishap_and_ends_career(self) -> None:
        service = self._service()
        character = service.begin_career(_character(), "agent").character
        self.rng.feed(1, 1, 3)

        outcome = service.resolve_survival(character)

        self.assertTrue(outcome.career_ended)
        self.assertIsNone(outcome.character.current_career)
        self.assertEqual(22, outcome.character.age)
        self.assertEqual(0, outcome.character.benefit_rolls)
        self.assertEqual(["mishap"], [event.reason for event in self.ended])
        self.assertIn("Mishap: Happening 3", outcome.messages)

    def test_mishap_removal_publishes_once_and_forfeits_benefits(self) -> None:
        service = self._service(mishap_chain=[{"type": "Removed_From_Career_No_Benefits"}])
        character = service.begin_career(_character(), "agent").character
        character = service.continue_career(character).character
        self.rng.feed(1, 1, 4)

        outcome = service.resolve_survival(character)

        self.assertTrue(outcome.character.last_stint.benefits_forfeited)
        self.assertEqual(0, outcome.character.benefit_rolls)
        self.assertEqual(26, outcome.character.age)
        self.assertEqual(["removed"], [event.reason for event in self.ended])

    def test_event_choice_is_resolved_through_service(self) -> None:
        service = self._service(event_chain=[{"type": "Gain_Skill", "skills_list": ["Admin", "Broker"]}])
        character = service.begin_career(_character(), "agent").character
        self.rng.feed(3, 4)

        outcome = service.resolve_event(character)
        self.assertEqual(1, len(outcome.pending_choices))
        self.assertEqual("Event 7: Happening 7", outcome.messages[0])

        resolved = service.resolve_pending_choice(outcome.chain, outcome.pending_choices[0].choice_id, 1)
        self.assertEqual(1, resolved.character.skills["Broker"])
        self.assertFalse(resolved.pending_choices)

    def test_advancement_promotes_and_grants_rank_bonus(self) -> None:
        service = self._service()
        character = service.begin_career(_character(), "agent").character
        self.rng.feed(3, 3)

        outcome = service.resolve_advancement(character)

        self.assertTrue(outcome.check.success)
        self.assertEqual(1, outcome.character.open_stint.rank)
        self.assertEqual("Field Agent", outcome.character.open_stint.rank_title)
        self.assertEqual(1, outcome.character.skills["Streetwise"])

    def test_advancement_dm_is_consumed(self) -> None:
        service = self._service()
        character = service.begin_career(_character(), "agent").character
        character = apply(character, Action(ActionType.SET_ADVANCEMENT_DM, 2))
        self.rng.feed(1, 1)

        outcome = service.resolve_advancement(character)

        self.assertFalse(outcome.check.success)
        self.assertEqual(4, outcome.check.roll)
        self.assertEqual(0, outcome.character.temp_modifiers.advancement_dm)
        self.assertEqual(0, outcome.character.open_stint.rank)

    def test_commission_is_not_applicable_without_officer_track(self) -> None:
        service = self._service()
        character = service.begin_career(_character(), "agent").character
        outcome = service.resolve_commission(character)
        self.assertTrue(outcome.check.not_applicable)
        self.assertFalse(outcome.character.open_stint.commissioned)

    def test_continue_and_leave_keep_age_consistent(self) -> None:
        service = self._service()
        character = service.begin_career(_character(), "agent").character
        character = service.continue_career(character).character
        self.assertEqual(2, character.current_term)
        self.assertEqual(22, character.age)

        outcome = service.leave_career(character)

        self.assertEqual(26, outcome.character.age)
        self.assertEqual(2, outcome.character.last_stint.terms)
        self.assertEqual(2, outcome.character.benefit_rolls)
        self.assertEqual(["left"], [event.reason for event in self.ended])

        repeat = service.award_benefit_rolls(outcome.character)
        self.assertEqual(["Benefit rolls already awarded for this career"], repeat.issues)


class TrainingAndMusterTests(unittest.TestCase):
    def test_training_on_named_table(self) -> None:
        rng = _ScriptedRng([3, 4])
        service = CareerService(_careers(), rng=rng)
        character = service.begin_career(_character(), "agent").character

        outcome = service.train_skills(character, table_key="service_skills")

        self.assertEqual(1, outcome.character.skills["Gun Combat"])
        self.assertEqual(["Service Skills: Gun Combat 1"], outcome.messages)

    def test_training_choice_needs_selection(self) -> None:
        rng = _ScriptedRng([2, 2])
        service = CareerService(_careers(), rng=rng)
        character = service.begin_career(_character(), "agent").character

        outcome = service.train_skills(character, table_key="personal_development")
        self.assertTrue(outcome.training.requires_choice)
        self.assertEqual({}, outcome.character.skills)

        chosen = service.choose_training_option(outcome.character, outcome.training, 1)
        self.assertEqual(1, chosen.character.skills["Athletics"])

    def test_unavailable_table_is_reported(self) -> None:
        service = CareerService(_careers(), rng=_ScriptedRng())
        character = service.begin_career(_character(), "agent").character
        outcome = service.train_skills(character, table_key="officer")
        self.assertEqual(["Skill table not available: officer"], outcome.issues)

    def _mustered(self, rng):
        service = CareerService(_careers(), rng=rng)
        character = service.begin_career(_character(), "agent").character
        return service, service.leave_career(character).character

    def test_cash_benefit(self) -> None:
        rng = _ScriptedRng()
        service, character = self._mustered(rng)
        rng.feed(2, 3)

        outcome = service.muster_out(character, cash=True)

        self.assertEqual(5000, outcome.character.money)
        self.assertEqual(character.benefit_rolls - 1, outcome.character.benefit_rolls)

    def test_material_benefits(self) -> None:
        rng = _ScriptedRng()
        service, character = self._mustered(rng)
        character = apply(character, Action(ActionType.ADD_BENEFIT_ROLLS, 3))

        rng.feed(1, 1)
        character = service.muster_out(character).character
        self.assertEqual(1, len(character.allies))
        rng.feed(1, 2)
        character = service.muster_out(character).character
        self.assertEqual(8, character.attributes["EDU"])
        rng.feed(2, 2)
        character = service.muster_out(character).character
        self.assertEqual(["Cybernetic Implant"], character.cyberware)

    def test_relationship_benefits_match_whole_words(self) -> None:
        rng = _ScriptedRng()
        service, character = self._mustered(rng)
        character = apply(character, Action(ActionType.ADD_BENEFIT_ROLLS, 1))

        rng.feed(2, 3)
        character = service.muster_out(character).character

        self.assertEqual(["Arrival Pass"], character.gear)
        self.assertEqual([], character.rivals)

    def test_no_rolls_left(self) -> None:
        service = CareerService(_careers(), rng=_ScriptedRng())
        outcome = service.muster_out(_character())
        self.assertEqual(["No benefit rolls remaining"], outcome.issues)


class HelperTests(unittest.TestCase):
    def test_parse_credits(self) -> None:
        self.assertEqual(10000, parse_credits("Cr10,000"))
        self.assertEqual(2500, parse_credits(2500))
        self.assertEqual(0, parse_credits("nothing"))

    def test_rank_bonus_steps(self) -> None:
        self.assertEqual([0, 1, 1, 2, 2, 3], [benefit_rank_bonus(rank) for rank in range(6)])


if __name__ == "__main__":
    unittest.main()
