import json
import random
import sys
from pathlib import Path
import unittest

sys.path.insert(0, str(Path(__file__).resolve().parents[2] / "src"))

from traveller.application.services.character_store import Action, ActionType, apply
from traveller.application.services.event_bus import EventBus
from traveller.application.services.event_chain import RECURSION_GUARD, ChainOutcome, EventChainInterpreter
from traveller.domain.errors import ChoiceResolutionError
from traveller.domain.events import CareerEnded, EventChainRecursionLimited, EventChainSuspended
from traveller.domain.models.character import Character


class _ScriptedRng:
    def __init__(self, values):
        self.values = list(values)

    def randint(self, low, high):
        return self.values.pop(0)

    def choice(self, seq):
        return seq[0]


def _every_roll(chain, low=1, high=12):
    return {str(roll): {"description": f"Roll {roll}", "eventChain": chain} for roll in range(low, high + 1)}


CAREERS = {
    "agent": {
        "name": "Agent",
        "assignments": ["Intelligence"],
        "ranks": {"0": "Agent", "1": "Field Agent", "2": "Special Agent"},
        "rank_bonus": {"1": "Streetwise 1"},
        "events": _every_roll([{"type": "Roll_On_Events_Table", "Events_Tables": ["agent"]}]),
        "mishaps": _every_roll([{"type": "Removed_From_Career"}], high=6),
    },
    "echo": {
        "name": "Echo",
        "events": _every_roll([{"type": "Roll_On_Events_Table", "Events_Tables": ["relay"]}]),
    },
    "relay": {
        "name": "Relay",
        "events": _every_roll([{"type": "Roll_On_Events_Table", "Events_Tables": ["echo"]}]),
    },
}


def _character(**attributes) -> Character:
    values = {"STR": 7, "DEX": 7, "END": 7, "INT": 7, "EDU": 7, "SOC": 7}
    values.update(attributes)
    return Character(name="Ines", attributes=values)


def _in_career(name="Agent") -> Character:
    return apply(_character(), Action(ActionType.START_CAREER, {"career": name, "assignment": "Intelligence"}))


class EventChainChoiceTests(unittest.TestCase):
    def test_multi_skill_gain_suspends_until_resolved(self) -> None:
        interpreter = EventChainInterpreter(CAREERS, rng=random.Random(1))
        character = _in_career()
        outcome = interpreter.process_event_chain(
            character, [{"type": "Gain_Skill", "skills_list": ["Gun Combat", "Pilot", "Vacc Suit"]}]
        )

        self.assertFalse(outcome.completed)
        self.assertEqual(1, len(outcome.pending_choices))
        pending = outcome.pending_choices[0]
        self.assertEqual(3, len(pending.options))
        self.assertTrue(pending.choice_id.startswith("choice-"))
        self.assertEqual({}, outcome.character.skills)

        resolved = interpreter.resolve_player_choice(outcome, pending.choice_id, 1)
        self.assertTrue(resolved.completed)
        self.assertEqual({"Pilot": 1}, resolved.character.skills)
        self.assertTrue(any(result.description.startswith("Chose:") for result in resolved.results))

    def test_choice_resolution_rejects_bad_ids_and_indices(self) -> None:
        interpreter = EventChainInterpreter(CAREERS, rng=random.Random(1))
        outcome = interpreter.process_event_chain(_in_career(), [{"type": "Gain_Skill", "skills_list": ["Admin", "Broker"]}])
        pending = outcome.pending_choices[0]
        with self.assertRaises(ChoiceResolutionError):
            interpreter.resolve_player_choice(outcome, pending.choice_id, 2)
        with self.assertRaises(ChoiceResolutionError):
            interpreter.resolve_player_choice(outcome, "choice-missing", 0)
        with self.assertRaises(ValueError):
            interpreter.resolve_player_choice(outcome, pending.choice_id, -1)

    def test_continuation_survives_json_round_trip(self) -> None:
        interpreter = EventChainInterpreter(CAREERS, rng=random.Random(1))
        character = _in_career()
        outcome = interpreter.process_event_chain(
            character,
            [{"type": "choice", "choices": [{"type": "Advancement_DM", "DM": 4}, {"type": "Benefit_DM", "DM": 1}]}],
        )
        stored = json.dumps(outcome.to_dict())
        restored = ChainOutcome.from_dict(json.loads(stored), character=outcome.character)
        self.assertEqual(outcome.pending_choices[0].choice_id, restored.pending_choices[0].choice_id)

        resolved = interpreter.resolve_player_choice(restored, restored.pending_choices[0].choice_id, 0)
        self.assertEqual(4, resolved.character.temp_modifiers.advancement_dm)
        self.assertTrue(resolved.completed)

    def test_resolving_against_bare_character_needs_pending_choice(self) -> None:
        interpreter = EventChainInterpreter(CAREERS, rng=random.Random(1))
        outcome = interpreter.process_event_chain(_in_career(), [{"type": "Gain_Skill", "skills_list": ["Admin", "Broker"]}])
        pending = outcome.pending_choices[0]
        resolved = interpreter.resolve_player_choice(outcome.character, pending, 0)
        self.assertEqual(1, resolved.character.skills["Admin"])
        with self.assertRaises(ChoiceResolutionError):
            interpreter.resolve_player_choice(outcome.character, pending.choice_id, 0)

    def test_suspension_is_published(self) -> None:
        bus = EventBus()
        seen = []
        bus.subscribe(EventChainSuspended, seen.append)
        interpreter = EventChainInterpreter(CAREERS, rng=random.Random(1), event_publisher=bus.publish)
        interpreter.process_event_chain(_in_career(), [{"type": "Automatic_Promotion_Or_Comission"}])
        self.assertEqual(1, len(seen))
        self.assertEqual(2, seen[0].option_count)


class EventChainStepTests(unittest.TestCase):
    def test_unknown_step_is_recorded_as_failure(self) -> None:
        interpreter = EventChainInterpreter(CAREERS, rng=random.Random(1))
        outcome = interpreter.process_event_chain(_in_career(), [{"type": "Teleport"}, {"type": "Benefit_DM", "DM": 2}])
        self.assertFalse(outcome.results[0].success)
        self.assertEqual("Unknown event type: Teleport", outcome.results[0].description)
        self.assertEqual(2, outcome.character.temp_modifiers.benefit_dm)

    def test_roll_skill_success_branch(self) -> None:
        interpreter = EventChainInterpreter(CAREERS, rng=_ScriptedRng([3, 3]))
        character = apply(_in_career(), Action(ActionType.SET_ATTRIBUTES, {"DEX": 9}))
        character = apply(character, Action(ActionType.ADD_SKILL, {"skill": "Pilot", "level": 1}))
        step = {
            "type": "Roll_Skill",
            "SkillsAbleToRoll": [{"Pilot": 8}],
            "Success": [{"type": "Benefit_DM", "DM": 2}],
            "Failure": [{"type": "Advancement_DM", "DM": -1}],
        }
        outcome = interpreter.process_event_chain(character, [step])
        self.assertTrue(outcome.results[0].success)
        self.assertEqual(8, outcome.results[0].details["roll"])
        self.assertEqual(2, outcome.character.temp_modifiers.benefit_dm)
        self.assertEqual(0, outcome.character.temp_modifiers.advancement_dm)

    def test_roll_skill_failure_branch(self) -> None:
        interpreter = EventChainInterpreter(CAREERS, rng=_ScriptedRng([1, 1]))
        step = {
            "type": "Roll_Skill",
            "SkillsAbleToRoll": [{"Pilot": 8}],
            "Success": [{"type": "Benefit_DM", "DM": 2}],
            "Failure": [{"type": "Advancement_DM", "DM": -1}],
        }
        outcome = interpreter.process_event_chain(_in_career(), [step])
        self.assertFalse(outcome.results[0].success)
        self.assertEqual(-1, outcome.character.temp_modifiers.advancement_dm)
        self.assertEqual(1, outcome.results[1].depth)

    def test_roll_skill_with_several_skills_offers_a_choice(self) -> None:
        interpreter = EventChainInterpreter(CAREERS, rng=random.Random(1))
        step = {"type": "Roll_Skill", "SkillsAbleToRoll": [{"Stealth": 8}, {"Streetwise": 8}], "Success": [], "Failure": []}
        outcome = interpreter.process_event_chain(_in_career(), [step])
        self.assertEqual(["Roll Stealth 8+", "Roll Streetwise 8+"], [opt.description for opt in outcome.pending_choices[0].options])

    def test_automatic_promotion_grants_rank_bonus(self) -> None:
        interpreter = EventChainInterpreter(CAREERS, rng=random.Random(1))
        outcome = interpreter.process_event_chain(_in_career(), [{"type": "Automatic_Promotion"}])
        stint = outcome.character.open_stint
        self.assertEqual(1, stint.rank)
        self.assertEqual("Field Agent", stint.rank_title)
        self.assertEqual(1, outcome.character.skills["Streetwise"])

    def test_removal_ends_career_and_publishes(self) -> None:
        bus = EventBus()
        ended = []
        bus.subscribe(CareerEnded, ended.append)
        interpreter = EventChainInterpreter(CAREERS, rng=random.Random(1), event_publisher=bus.publish)
        outcome = interpreter.process_event_chain(_in_career(), [{"type": "Removed_From_Career_No_Benefits"}])
        self.assertIsNone(outcome.character.current_career)
        self.assertTrue(outcome.character.last_stint.benefits_forfeited)
        self.assertEqual("removed", ended[0].reason)

    def test_disaster_keeps_character_in_career(self) -> None:
        interpreter = EventChainInterpreter(CAREERS, rng=random.Random(5))
        outcome = interpreter.process_event_chain(_in_career(), [{"type": "Disaster"}])
        self.assertEqual("Agent", outcome.character.current_career)
        self.assertTrue(any(result.details.get("ignored") for result in outcome.results))

    def test_gain_relationships(self) -> None:
        interpreter = EventChainInterpreter(CAREERS, rng=random.Random(2))
        outcome = interpreter.process_event_chain(
            _in_career(), [{"type": "Gain_Ally"}, {"type": "Gain_Enemy", "amount": 2}, {"type": "Gain_Contacts", "amount": 3}]
        )
        self.assertEqual(1, len(outcome.character.allies))
        self.assertEqual(2, len(outcome.character.enemies))
        self.assertEqual(3, len(outcome.character.contacts))

    def test_zero_contacts_adds_none(self) -> None:
        interpreter = EventChainInterpreter(CAREERS, rng=random.Random(2))
        outcome = interpreter.process_event_chain(_in_career(), [{"type": "Gain_Contacts", "amount": 0}])
        self.assertEqual([], outcome.character.contacts)
        self.assertTrue(outcome.completed)

    def test_increase_stat_validates_name(self) -> None:
        interpreter = EventChainInterpreter(CAREERS, rng=random.Random(2))
        outcome = interpreter.process_event_chain(
            _in_career(), [{"type": "Increase_Stat", "stat": "edu", "amount": 2}, {"type": "Increase_Stat", "stat": "LUCK"}]
        )
        self.assertEqual(9, outcome.character.attributes["EDU"])
        self.assertFalse(outcome.results[1].success)

    def test_injury_reduces_attributes_and_is_recorded(self) -> None:
        interpreter = EventChainInterpreter(CAREERS, rng=random.Random(11))
        character = _in_career()
        outcome = interpreter.process_event_chain(character, [{"type": "Injury"}])
        self.assertEqual(1, len(outcome.character.injuries))
        reductions = outcome.character.injuries[0]["reductions"]
        total = sum(item["amount"] for item in reductions)
        before = sum(character.attributes[name] for name in ("STR", "DEX", "END"))
        after = sum(outcome.character.attributes[name] for name in ("STR", "DEX", "END"))
        self.assertEqual(before - total, after)


class RecursionGuardTests(unittest.TestCase):
    def test_self_referencing_table_is_cut(self) -> None:
        bus = EventBus()
        limited = []
        bus.subscribe(EventChainRecursionLimited, limited.append)
        interpreter = EventChainInterpreter(CAREERS, rng=random.Random(3), event_publisher=bus.publish)
        outcome = interpreter.process_event_chain(
            _in_career(), [{"type": "Roll_On_Events_Table", "Events_Tables": ["agent"]}], origin=("Agent", "events")
        )
        self.assertTrue(outcome.truncated)
        self.assertEqual(RECURSION_GUARD, outcome.results[-1].type)
        self.assertEqual(1, len(limited))

    def test_mutual_recursion_stops(self) -> None:
        interpreter = EventChainInterpreter(CAREERS, rng=random.Random(3))
        outcome = interpreter.process_event_chain(_in_career(), [{"type": "Roll_On_Events_Table", "Events_Tables": ["echo"]}])
        self.assertTrue(outcome.truncated)
        guard = [result for result in outcome.results if result.type == RECURSION_GUARD]
        self.assertEqual(1, len(guard))

    def test_depth_limit_applies(self) -> None:
        interpreter = EventChainInterpreter(CAREERS, rng=random.Random(3), max_depth=0)
        outcome = interpreter.process_event_chain(_in_career(), [{"type": "Roll_On_Events_Table", "Events_Tables": ["echo"]}])
        self.assertTrue(outcome.truncated)
        self.assertIn("exceeds the limit", outcome.results[-1].description)


if __name__ == "__main__":
    unittest.main()
